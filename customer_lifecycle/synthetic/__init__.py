"""Synthetic data generation utilities.

This package produces realistic-but-fake retail snapshots to exercise the
lifecycle reports without accessing production data.
"""

from .generator import (
    DEFAULT_CATALOG,
    Customer,
    SnapshotConfig,
    generate_customers,
    generate_snapshot,
)

__all__ = [
    "DEFAULT_CATALOG",
    "Customer",
    "SnapshotConfig",
    "generate_customers",
    "generate_snapshot",
]
