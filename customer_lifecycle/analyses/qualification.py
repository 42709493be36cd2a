"""High-value customer selection by multi-period qualification rules.

A customer qualifies only if every rule holds: each rule names a period
and the minimum spend and order-count bounds the customer must meet in it.
Qualified customers are then summarised over all their purchases, ranked
by total value and cut to the top N.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from customer_lifecycle.analyses.ranking import RankedRow, rank_and_share
from customer_lifecycle.foundation.events import PurchaseEvent

logger = logging.getLogger(__name__)

DEFAULT_TOP_CUSTOMERS = 5000


@dataclass(frozen=True)
class QualificationRule:
    """Thresholds an identity must satisfy within one period.

    Attributes
    ----------
    period:
        Period ordinal the rule applies to (e.g. a fiscal year).
    min_spend:
        Minimum total value in the period, inclusive.
    min_orders:
        Minimum distinct orders in the period, inclusive.
    max_orders:
        Maximum distinct orders in the period, inclusive. Caps out resellers
        and data-entry accounts.
    """

    period: int
    min_spend: Decimal | None = None
    min_orders: int | None = None
    max_orders: int | None = None

    def __post_init__(self) -> None:
        if self.min_orders is not None and self.min_orders < 0:
            raise ValueError(f"min_orders cannot be negative: {self.min_orders}")
        if self.max_orders is not None and self.max_orders < 0:
            raise ValueError(f"max_orders cannot be negative: {self.max_orders}")
        if (
            self.min_orders is not None
            and self.max_orders is not None
            and self.min_orders > self.max_orders
        ):
            raise ValueError(
                f"min_orders ({self.min_orders}) cannot exceed max_orders "
                f"({self.max_orders}) for period {self.period}"
            )

    def is_satisfied(self, total_value: Decimal, order_count: int) -> bool:
        if order_count == 0:
            # No activity in the rule's period never qualifies
            return False
        if self.min_spend is not None and total_value < self.min_spend:
            return False
        if self.min_orders is not None and order_count < self.min_orders:
            return False
        if self.max_orders is not None and order_count > self.max_orders:
            return False
        return True


@dataclass(frozen=True)
class IdentitySummary:
    """Lifetime totals of one identity over the supplied events."""

    identity: str
    total_orders: int
    total_value: Decimal


def _period_totals(
    events: Iterable[PurchaseEvent],
) -> dict[tuple[str, int], tuple[Decimal, set[str]]]:
    totals: dict[tuple[str, int], tuple[Decimal, set[str]]] = {}
    for event in events:
        if event.identity is None or event.period is None:
            continue
        key = (event.identity, event.period)
        value, orders = totals.get(key, (Decimal("0"), set()))
        orders.add(event.order_id)
        totals[key] = (value + event.amount, orders)
    return totals


def qualify_identities(
    events: Iterable[PurchaseEvent], rules: Sequence[QualificationRule]
) -> frozenset[str]:
    """Return the identities satisfying every rule (logical AND).

    Events must be indexed at the granularity the rules are written in.
    With no rules, every identified customer qualifies.
    """

    totals = _period_totals(events)
    identities = {identity for identity, _ in totals}
    if not rules:
        return frozenset(identities)

    def satisfies(identity: str, rule: QualificationRule) -> bool:
        value, orders = totals.get((identity, rule.period), (Decimal("0"), set()))
        return rule.is_satisfied(value, len(orders))

    qualified = {
        identity
        for identity in identities
        if all(satisfies(identity, rule) for rule in rules)
    }

    logger.info(
        f"{len(qualified)} of {len(identities)} customers satisfy "
        f"{len(rules)} qualification rules"
    )
    return frozenset(qualified)


def summarise_identities(
    events: Iterable[PurchaseEvent], identities: Iterable[str] | None = None
) -> list[IdentitySummary]:
    """Total orders and value per identity, optionally restricted to a set."""

    wanted = set(identities) if identities is not None else None
    buckets: dict[str, tuple[Decimal, set[str]]] = {}
    for event in events:
        if event.identity is None:
            continue
        if wanted is not None and event.identity not in wanted:
            continue
        value, orders = buckets.get(event.identity, (Decimal("0"), set()))
        orders.add(event.order_id)
        buckets[event.identity] = (value + event.amount, orders)

    return [
        IdentitySummary(identity=identity, total_orders=len(orders), total_value=value)
        for identity, (value, orders) in sorted(buckets.items())
    ]


def top_identities(
    events: Iterable[PurchaseEvent],
    rules: Sequence[QualificationRule],
    limit: int = DEFAULT_TOP_CUSTOMERS,
) -> list[RankedRow[IdentitySummary]]:
    """Rank qualified customers by total value and keep the first ``limit``.

    Shares and cumulative shares are computed over all qualified customers
    before the cut, so the last kept row shows how much of qualified
    revenue the top ``limit`` capture.
    """

    if limit < 1:
        raise ValueError(f"limit must be positive: {limit}")

    events = list(events)
    qualified = qualify_identities(events, rules)
    summaries = summarise_identities(events, qualified)
    ranked = rank_and_share(
        summaries,
        metric=lambda summary: summary.total_value,
        tie_key=lambda summary: summary.identity,
    )
    return [row for row in ranked if row.row_number <= limit]
