"""Class performance split by customer tenure (New vs Existing).

Answers "which classes drive revenue, and does that differ for customers
acquired this year versus earlier?". Each class is summarised for New and
Existing customers plus an "All" roll-up, then ranked within each tenure
group with sales share, quantity share and a cumulative sales curve.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping

from customer_lifecycle.analyses.ranking import DEFAULT_TOP_N, flag_top, rank_and_share
from customer_lifecycle.foundation.calendar import FiscalCalendar, PeriodGranularity
from customer_lifecycle.foundation.events import PurchaseEvent

logger = logging.getLogger(__name__)

UNCATEGORIZED_CLASS = "Uncategorized"


class TenureGroup(str, Enum):
    """Customer tenure group; ALL is the roll-up across both groups."""

    ALL = "All"
    NEW = "New"
    EXISTING = "Existing"


TENURE_ORDER = (TenureGroup.ALL, TenureGroup.NEW, TenureGroup.EXISTING)


def tenure_of(acquisition_year: int, analysis_year: int) -> TenureGroup:
    """New when acquired in the analysis year, otherwise Existing."""
    return TenureGroup.NEW if acquisition_year == analysis_year else TenureGroup.EXISTING


@dataclass(frozen=True)
class ClassTenureSummary:
    """Sales of one class to one tenure group."""

    tenure_group: TenureGroup
    class_name: str
    sales: Decimal
    quantity: int
    distinct_customers: int
    distinct_orders: int


@dataclass(frozen=True)
class ClassTenureMetrics:
    """Ranked class summary with share analytics within its tenure group.

    Attributes
    ----------
    summary:
        The class × tenure totals.
    sales_by_tenure / quantity_by_tenure:
        Totals of the tenure group the row belongs to.
    sales_all_groups / quantity_all_groups:
        Totals across New and Existing (the "All" roll-up is not double
        counted).
    sales_share / quantity_share:
        Row value over its tenure group total; 0 when that total is 0.
    sales_rank:
        Competition rank by sales within the tenure group.
    cumulative_sales_share:
        Pareto curve position within the tenure group.
    top_flag:
        ``"Top N"`` or ``"Other"``.
    """

    summary: ClassTenureSummary
    sales_by_tenure: Decimal
    quantity_by_tenure: int
    sales_all_groups: Decimal
    quantity_all_groups: int
    sales_share: Decimal
    quantity_share: Decimal
    sales_rank: int
    cumulative_sales_share: Decimal
    top_flag: str

    def as_dict(self) -> dict[str, object]:
        return {
            "customer_tenure": self.summary.tenure_group.value,
            "class_name": self.summary.class_name,
            "sales": str(self.summary.sales),
            "quantity": self.summary.quantity,
            "distinct_customers": self.summary.distinct_customers,
            "distinct_orders": self.summary.distinct_orders,
            "sales_by_tenure": str(self.sales_by_tenure),
            "qty_by_tenure": self.quantity_by_tenure,
            "sales_all_groups": str(self.sales_all_groups),
            "qty_all_groups": self.quantity_all_groups,
            "sales_share_within_tenure": str(self.sales_share),
            "qty_share_within_tenure": str(self.quantity_share),
            "sales_rank_within_tenure": self.sales_rank,
            "cum_sales_share_within_tenure": str(self.cumulative_sales_share),
            "top_flag": self.top_flag,
        }


def _analysis_year_of(event: PurchaseEvent, calendar: FiscalCalendar | None) -> int:
    if calendar is not None:
        return calendar.period_of(event.order_date, PeriodGranularity.YEAR)
    return event.order_date.year


def summarise_class_tenure(
    events: Iterable[PurchaseEvent],
    acquisition_years: Mapping[str, int],
    analysis_year: int,
    category: str | None = None,
    calendar: FiscalCalendar | None = None,
) -> list[ClassTenureSummary]:
    """Summarise class sales per tenure group, plus the "All" roll-up.

    Parameters
    ----------
    events:
        Purchase events; anonymous events and events outside the analysis
        year are ignored.
    acquisition_years:
        Year each identity was first entered as a customer. Identities
        without an entry cannot be assigned a tenure and are skipped.
    analysis_year:
        Year under analysis.
    category:
        Optional category filter (case-insensitive exact match).
    calendar:
        Fiscal calendar used to decide the year of an order; calendar years
        are used when omitted.
    """

    buckets: dict[tuple[TenureGroup, str], dict[str, object]] = {}
    missing_tenure: set[str] = set()
    wanted_category = category.lower() if category else None

    for event in events:
        if event.identity is None:
            continue
        if wanted_category is not None and (event.category or "").lower() != wanted_category:
            continue
        if _analysis_year_of(event, calendar) != analysis_year:
            continue
        acquired = acquisition_years.get(event.identity)
        if acquired is None:
            missing_tenure.add(event.identity)
            continue

        class_name = event.class_name or UNCATEGORIZED_CLASS
        group = tenure_of(acquired, analysis_year)
        for tenure in (group, TenureGroup.ALL):
            bucket = buckets.setdefault(
                (tenure, class_name),
                {
                    "sales": Decimal("0"),
                    "quantity": 0,
                    "customers": set(),
                    "orders": set(),
                },
            )
            bucket["sales"] += event.amount
            bucket["quantity"] += event.quantity
            bucket["customers"].add(event.identity)
            bucket["orders"].add(event.order_id)

    if missing_tenure:
        logger.warning(
            f"{len(missing_tenure)} customers have no acquisition year and were "
            "left out of the tenure report"
        )

    return [
        ClassTenureSummary(
            tenure_group=tenure,
            class_name=class_name,
            sales=payload["sales"],
            quantity=payload["quantity"],
            distinct_customers=len(payload["customers"]),
            distinct_orders=len(payload["orders"]),
        )
        for (tenure, class_name), payload in buckets.items()
    ]


def rank_class_tenure(
    summaries: Iterable[ClassTenureSummary], top_n: int = DEFAULT_TOP_N
) -> list[ClassTenureMetrics]:
    """Rank classes by sales within each tenure group.

    Returns rows ordered All, New, Existing, then by sales rank.
    """

    summaries = list(summaries)
    quantity_by_tenure: dict[TenureGroup, int] = {}
    for summary in summaries:
        quantity_by_tenure[summary.tenure_group] = (
            quantity_by_tenure.get(summary.tenure_group, 0) + summary.quantity
        )

    split_groups = [s for s in summaries if s.tenure_group is not TenureGroup.ALL]
    sales_all_groups = sum((s.sales for s in split_groups), Decimal("0"))
    quantity_all_groups = sum(s.quantity for s in split_groups)

    ranked = rank_and_share(
        summaries,
        metric=lambda s: s.sales,
        partition=lambda s: s.tenure_group,
        tie_key=lambda s: s.class_name,
        partition_order=TENURE_ORDER,
    )

    metrics: list[ClassTenureMetrics] = []
    for row in ranked:
        summary = row.item
        group_quantity = quantity_by_tenure[summary.tenure_group]
        quantity_share = (
            Decimal(summary.quantity) / Decimal(group_quantity)
            if group_quantity
            else Decimal("0")
        )
        metrics.append(
            ClassTenureMetrics(
                summary=summary,
                sales_by_tenure=row.partition_total,
                quantity_by_tenure=group_quantity,
                sales_all_groups=sales_all_groups,
                quantity_all_groups=quantity_all_groups,
                sales_share=row.share,
                quantity_share=quantity_share,
                sales_rank=row.rank,
                cumulative_sales_share=row.cumulative_share,
                top_flag=flag_top(row.rank, top_n),
            )
        )
    return metrics
