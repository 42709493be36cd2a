"""Pandas DataFrame adapters for purchase events and lifecycle classification."""

from typing import List, Optional, Sequence

import pandas as pd  # type: ignore

from customer_lifecycle.analyses.aggregation import AggregateRow, aggregate_classified
from customer_lifecycle.analyses.lifecycle import (
    ClassificationConfig,
    ClassifiedEvent,
    classify_events,
)
from customer_lifecycle.foundation.events import PurchaseEvent
from ._utils import decimal_to_float, float_to_decimal, optional_str, require_columns

EVENT_COLUMNS = [
    "identity",
    "order_id",
    "line_id",
    "order_date",
    "amount",
    "quantity",
    "segment",
    "period",
    "product_id",
    "category",
    "class_name",
]

AGGREGATE_COLUMNS = [
    "period",
    "segment",
    "label",
    "customer_count",
    "order_count",
    "total_value",
    "total_units",
]


def _event_record(event: PurchaseEvent) -> dict:
    return {
        "identity": event.identity,
        "order_id": event.order_id,
        "line_id": event.line_id,
        "order_date": event.order_date,
        "amount": decimal_to_float(event.amount),
        "quantity": event.quantity,
        "segment": event.segment,
        "period": event.period,
        "product_id": event.product_id,
        "category": event.category,
        "class_name": event.class_name,
    }


def events_to_dataframe(events: Sequence[PurchaseEvent]) -> pd.DataFrame:
    """Convert purchase events to a DataFrame, one row per event.

    Args:
        events: Sequence of PurchaseEvent objects

    Returns:
        DataFrame with columns: identity, order_id, line_id, order_date,
        amount, quantity, segment, period, product_id, category, class_name
    """
    if not events:
        return pd.DataFrame(columns=EVENT_COLUMNS)
    return pd.DataFrame([_event_record(event) for event in events], columns=EVENT_COLUMNS)


def dataframe_to_events(events_df: pd.DataFrame) -> List[PurchaseEvent]:
    """Convert a DataFrame of purchase events back to PurchaseEvent objects.

    Args:
        events_df: DataFrame with at least identity, order_id, line_id,
            order_date, amount and quantity columns. Missing identities
            (None/NaN) become anonymous events.

    Returns:
        List of PurchaseEvent objects in row order

    Raises:
        ValueError: If required columns are missing or contain nulls

    Example:
        >>> events = dataframe_to_events(pd.read_csv("events.csv"))
        >>> classified = classify_events(events)
    """
    required_cols = ["identity", "order_id", "line_id", "order_date", "amount", "quantity"]
    require_columns(events_df, required_cols)

    if events_df.empty:
        return []

    not_null = [col for col in required_cols if col != "identity"]
    null_cols = events_df[not_null].isnull().any()
    if null_cols.any():
        raise ValueError(
            f"Null/NaN values found in columns: {null_cols[null_cols].index.tolist()}"
        )

    events = []
    for record in events_df.to_dict("records"):
        period = record.get("period")
        events.append(
            PurchaseEvent(
                identity=optional_str(record["identity"]),
                order_id=str(record["order_id"]),
                line_id=str(record["line_id"]),
                order_date=pd.to_datetime(record["order_date"]).date(),
                amount=float_to_decimal(record["amount"]),
                quantity=int(record["quantity"]),
                segment=optional_str(record.get("segment")),
                period=None if optional_str(period) is None else int(period),
                product_id=optional_str(record.get("product_id")) or "",
                category=optional_str(record.get("category")),
                class_name=optional_str(record.get("class_name")),
            )
        )
    return events


def classified_to_dataframe(classified: Sequence[ClassifiedEvent]) -> pd.DataFrame:
    """Convert classified events to a DataFrame with a ``label`` column."""
    columns = EVENT_COLUMNS + ["label"]
    if not classified:
        return pd.DataFrame(columns=columns)
    rows = []
    for item in classified:
        record = _event_record(item.event)
        record["label"] = item.label.value
        rows.append(record)
    return pd.DataFrame(rows, columns=columns)


def aggregates_to_dataframe(aggregates: Sequence[AggregateRow]) -> pd.DataFrame:
    """Convert aggregate rows to a DataFrame, preserving their order."""
    if not aggregates:
        return pd.DataFrame(columns=AGGREGATE_COLUMNS)
    rows = [
        {
            "period": row.period,
            "segment": row.segment,
            "label": row.label.value,
            "customer_count": row.customer_count,
            "order_count": row.order_count,
            "total_value": decimal_to_float(row.total_value),
            "total_units": row.total_units,
        }
        for row in aggregates
    ]
    return pd.DataFrame(rows, columns=AGGREGATE_COLUMNS)


def classify_df(
    events_df: pd.DataFrame,
    config: Optional[ClassificationConfig] = None,
) -> pd.DataFrame:
    """Classify a DataFrame of period-indexed events.

    Convenience function combining conversion and classification.

    Args:
        events_df: DataFrame accepted by :func:`dataframe_to_events`, with
            the ``period`` column populated
        config: Optional classification parameters

    Returns:
        DataFrame of the input events with a ``label`` column
    """
    return classified_to_dataframe(classify_events(dataframe_to_events(events_df), config))


def aggregate_df(
    events_df: pd.DataFrame,
    config: Optional[ClassificationConfig] = None,
) -> pd.DataFrame:
    """Classify and aggregate a DataFrame of period-indexed events."""
    classified = classify_events(dataframe_to_events(events_df), config)
    return aggregates_to_dataframe(aggregate_classified(classified))
