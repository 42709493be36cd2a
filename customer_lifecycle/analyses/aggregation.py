"""Roll classified purchase events up to (period, segment, label) rows."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from customer_lifecycle.analyses.lifecycle import (
    LABEL_ORDER,
    ClassifiedEvent,
    LifecycleLabel,
)


@dataclass(frozen=True)
class AggregateRow:
    """Lifecycle totals for one (period, segment, label) group.

    Attributes
    ----------
    period:
        Period ordinal.
    segment:
        Segment (sales channel) or None for a total-business view.
    label:
        Lifecycle label shared by all events in the group.
    customer_count:
        Distinct identities. Anonymous groups count distinct orders instead,
        since every anonymous order stands for an unknown customer.
    order_count:
        Distinct orders.
    total_value:
        Sum of event amounts; returns contribute negatively.
    total_units:
        Sum of event quantities.
    """

    period: int
    segment: str | None
    label: LifecycleLabel
    customer_count: int
    order_count: int
    total_value: Decimal
    total_units: int

    def __post_init__(self) -> None:
        if self.customer_count < 0:
            raise ValueError(f"customer_count cannot be negative: {self.customer_count}")
        if self.order_count < 0:
            raise ValueError(f"order_count cannot be negative: {self.order_count}")

    def as_dict(self) -> dict[str, object]:
        return {
            "period": self.period,
            "segment": self.segment,
            "label": self.label.value,
            "customer_count": self.customer_count,
            "order_count": self.order_count,
            "total_value": str(self.total_value),
            "total_units": self.total_units,
        }


def aggregate_classified(classified: Iterable[ClassifiedEvent]) -> list[AggregateRow]:
    """Group classified events and compute counts and sums.

    Returns
    -------
    list[AggregateRow]
        Sorted by period, segment (None first) and label order
        (New, Retained, Reactivated, Unclassified, Anonymous).

    Examples
    --------
    >>> from datetime import date
    >>> from customer_lifecycle.foundation.events import PurchaseEvent
    >>> anon = [
    ...     ClassifiedEvent(PurchaseEvent(None, f"O{i}", "1", date(2024, 1, 1), Decimal("5"), 1, period=1),
    ...                     LifecycleLabel.ANONYMOUS)
    ...     for i in (1, 2)
    ... ]
    >>> aggregate_classified(anon)[0].customer_count
    2
    """

    buckets: dict[tuple[int, str | None, LifecycleLabel], dict[str, object]] = {}
    for item in classified:
        key = (item.period, item.segment, item.label)
        bucket = buckets.setdefault(
            key,
            {
                "customers": set(),
                "orders": set(),
                "total_value": Decimal("0"),
                "total_units": 0,
            },
        )
        # Anonymous rows have no identity; each distinct order stands in for one
        if item.identity is None:
            bucket["customers"].add(("order", item.order_id))
        else:
            bucket["customers"].add(("identity", item.identity))
        bucket["orders"].add(item.order_id)
        bucket["total_value"] += item.amount
        bucket["total_units"] += item.quantity

    rows = [
        AggregateRow(
            period=period,
            segment=segment,
            label=label,
            customer_count=len(payload["customers"]),
            order_count=len(payload["orders"]),
            total_value=payload["total_value"],
            total_units=payload["total_units"],
        )
        for (period, segment, label), payload in buckets.items()
    ]
    rows.sort(key=lambda row: (row.period, row.segment or "", LABEL_ORDER[row.label]))
    return rows
