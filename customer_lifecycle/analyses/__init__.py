"""Lifecycle analyses built on period-indexed purchase events.

1. Lifecycle classification - New / Retained / Reactivated / Unclassified /
   Anonymous per identity, segment and period
2. Aggregation - customer, order, value and unit totals per label
3. Ranking - rank, dense rank, share and cumulative share within partitions
4. Tenure - class performance for New vs Existing customers
5. Qualification - multi-period rules selecting the top customers
"""

from .aggregation import AggregateRow, aggregate_classified
from .lifecycle import (
    LABEL_ORDER,
    ClassificationConfig,
    ClassifiedEvent,
    LifecycleLabel,
    classify_activity,
    classify_events,
    classify_period,
    label_counts,
    new_identities_in_window,
)
from .qualification import (
    IdentitySummary,
    QualificationRule,
    qualify_identities,
    summarise_identities,
    top_identities,
)
from .ranking import DEFAULT_TOP_N, RankedRow, flag_top, rank_and_share
from .tenure import (
    TENURE_ORDER,
    ClassTenureMetrics,
    ClassTenureSummary,
    TenureGroup,
    rank_class_tenure,
    summarise_class_tenure,
    tenure_of,
)

__all__ = [
    # Lifecycle
    "LABEL_ORDER",
    "ClassificationConfig",
    "ClassifiedEvent",
    "LifecycleLabel",
    "classify_activity",
    "classify_events",
    "classify_period",
    "label_counts",
    "new_identities_in_window",
    # Aggregation
    "AggregateRow",
    "aggregate_classified",
    # Ranking
    "DEFAULT_TOP_N",
    "RankedRow",
    "flag_top",
    "rank_and_share",
    # Tenure
    "TENURE_ORDER",
    "ClassTenureMetrics",
    "ClassTenureSummary",
    "TenureGroup",
    "rank_class_tenure",
    "summarise_class_tenure",
    "tenure_of",
    # Qualification
    "IdentitySummary",
    "QualificationRule",
    "qualify_identities",
    "summarise_identities",
    "top_identities",
]
