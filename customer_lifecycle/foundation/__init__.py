"""Foundational building blocks for lifecycle reporting.

This package turns raw order, line, taxonomy and calendar records into
period-indexed purchase events and the per-identity activity history that
every lifecycle and ranking report is computed from.
"""

from .calendar import (
    ActivityHistory,
    CalendarEntry,
    FiscalCalendar,
    PeriodGranularity,
    build_activity_history,
    index_events,
    is_dense,
)
from .events import (
    ExclusionPolicy,
    ExtractionStats,
    PurchaseEvent,
    PurchaseEventExtractor,
    channel_segment,
)
from .identity import IdentityResolver
from .records import OrderHeader, OrderLine, TaxonomyEntry

__all__ = [
    "ActivityHistory",
    "CalendarEntry",
    "FiscalCalendar",
    "PeriodGranularity",
    "build_activity_history",
    "index_events",
    "is_dense",
    "ExclusionPolicy",
    "ExtractionStats",
    "PurchaseEvent",
    "PurchaseEventExtractor",
    "channel_segment",
    "IdentityResolver",
    "OrderHeader",
    "OrderLine",
    "TaxonomyEntry",
]
