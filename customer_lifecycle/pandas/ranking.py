"""Pandas DataFrame adapters for ranked report rows."""

from typing import Sequence

import pandas as pd  # type: ignore

from customer_lifecycle.analyses.aggregation import AggregateRow
from customer_lifecycle.analyses.qualification import IdentitySummary
from customer_lifecycle.analyses.ranking import RankedRow
from customer_lifecycle.analyses.tenure import ClassTenureMetrics
from ._utils import decimal_to_float

RANK_COLUMNS = [
    "row_number",
    "rank",
    "dense_rank",
    "share",
    "cumulative_share",
]


def _rank_fields(row: RankedRow) -> dict:
    return {
        "row_number": row.row_number,
        "rank": row.rank,
        "dense_rank": row.dense_rank,
        "share": decimal_to_float(row.share),
        "cumulative_share": decimal_to_float(row.cumulative_share),
    }


def ranked_aggregates_to_dataframe(
    ranked: Sequence[RankedRow[AggregateRow]],
) -> pd.DataFrame:
    """Convert aggregates ranked within each period to a DataFrame.

    Args:
        ranked: Output of :func:`customer_lifecycle.reports.rank_aggregates`

    Returns:
        DataFrame with the aggregate columns, ``period_total_value`` and the
        rank / share columns
    """
    columns = [
        "period",
        "segment",
        "label",
        "customer_count",
        "order_count",
        "total_value",
        "total_units",
        "period_total_value",
    ] + RANK_COLUMNS
    if not ranked:
        return pd.DataFrame(columns=columns)

    rows = []
    for ranked_row in ranked:
        row = ranked_row.item
        record = {
            "period": row.period,
            "segment": row.segment,
            "label": row.label.value,
            "customer_count": row.customer_count,
            "order_count": row.order_count,
            "total_value": decimal_to_float(row.total_value),
            "total_units": row.total_units,
            "period_total_value": decimal_to_float(ranked_row.partition_total),
        }
        record.update(_rank_fields(ranked_row))
        rows.append(record)
    return pd.DataFrame(rows, columns=columns)


def top_customers_to_dataframe(
    ranked: Sequence[RankedRow[IdentitySummary]],
) -> pd.DataFrame:
    """Convert the top customers ranking to a DataFrame.

    Example:
        >>> top = build_top_customers_report(snapshot, rules, limit=5000)
        >>> top_customers_to_dataframe(top).to_csv("top_customers.csv", index=False)
    """
    columns = ["identity", "total_orders", "total_value"] + RANK_COLUMNS
    if not ranked:
        return pd.DataFrame(columns=columns)

    rows = []
    for ranked_row in ranked:
        record = {
            "identity": ranked_row.item.identity,
            "total_orders": ranked_row.item.total_orders,
            "total_value": decimal_to_float(ranked_row.item.total_value),
        }
        record.update(_rank_fields(ranked_row))
        rows.append(record)
    return pd.DataFrame(rows, columns=columns)


def class_report_to_dataframe(metrics: Sequence[ClassTenureMetrics]) -> pd.DataFrame:
    """Convert the class tenure report to a DataFrame."""
    columns = [
        "customer_tenure",
        "class_name",
        "sales",
        "quantity",
        "distinct_customers",
        "distinct_orders",
        "sales_by_tenure",
        "qty_by_tenure",
        "sales_all_groups",
        "qty_all_groups",
        "sales_share_within_tenure",
        "qty_share_within_tenure",
        "sales_rank_within_tenure",
        "cum_sales_share_within_tenure",
        "top_flag",
    ]
    if not metrics:
        return pd.DataFrame(columns=columns)

    rows = [
        {
            "customer_tenure": m.summary.tenure_group.value,
            "class_name": m.summary.class_name,
            "sales": decimal_to_float(m.summary.sales),
            "quantity": m.summary.quantity,
            "distinct_customers": m.summary.distinct_customers,
            "distinct_orders": m.summary.distinct_orders,
            "sales_by_tenure": decimal_to_float(m.sales_by_tenure),
            "qty_by_tenure": m.quantity_by_tenure,
            "sales_all_groups": decimal_to_float(m.sales_all_groups),
            "qty_all_groups": m.quantity_all_groups,
            "sales_share_within_tenure": decimal_to_float(m.sales_share),
            "qty_share_within_tenure": decimal_to_float(m.quantity_share),
            "sales_rank_within_tenure": m.sales_rank,
            "cum_sales_share_within_tenure": decimal_to_float(m.cumulative_sales_share),
            "top_flag": m.top_flag,
        }
        for m in metrics
    ]
    return pd.DataFrame(rows, columns=columns)
