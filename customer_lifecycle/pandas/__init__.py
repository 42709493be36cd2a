"""Pandas DataFrame adapters for customer lifecycle components."""

from .lifecycle import (
    aggregate_df,
    aggregates_to_dataframe,
    classified_to_dataframe,
    classify_df,
    dataframe_to_events,
    events_to_dataframe,
)
from .ranking import (
    class_report_to_dataframe,
    ranked_aggregates_to_dataframe,
    top_customers_to_dataframe,
)

__all__ = [
    # Event and lifecycle adapters
    "events_to_dataframe",
    "dataframe_to_events",
    "classified_to_dataframe",
    "aggregates_to_dataframe",
    "classify_df",
    "aggregate_df",
    # Ranked report adapters
    "ranked_aggregates_to_dataframe",
    "top_customers_to_dataframe",
    "class_report_to_dataframe",
]
