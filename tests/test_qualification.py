"""Tests for multi-period qualification rules and the top customers ranking."""

from datetime import date
from decimal import Decimal

import pytest

from customer_lifecycle.analyses.qualification import (
    QualificationRule,
    qualify_identities,
    summarise_identities,
    top_identities,
)
from customer_lifecycle.foundation.events import PurchaseEvent


def _event(identity, order_id, period, amount, line_id="1"):
    return PurchaseEvent(
        identity=identity,
        order_id=order_id,
        line_id=line_id,
        order_date=date(period, 6, 1),
        amount=Decimal(amount),
        quantity=1,
        period=period,
    )


EVENTS = [
    # Qualifies: spend in both years
    _event("loyal@x.com", "L1", 2022, "150"),
    _event("loyal@x.com", "L2", 2023, "120"),
    _event("loyal@x.com", "L3", 2024, "500"),
    # Fails the 2023 spend rule
    _event("lapsed@x.com", "P1", 2022, "300"),
    _event("lapsed@x.com", "P2", 2023, "20"),
    # No 2022 activity at all
    _event("recent@x.com", "R1", 2023, "900"),
    # Too many 2022 orders
    _event("reseller@x.com", "S1", 2022, "100"),
    _event("reseller@x.com", "S2", 2022, "100"),
    _event("reseller@x.com", "S3", 2022, "100"),
    _event("reseller@x.com", "S4", 2023, "400"),
    # Qualifies with two lines on one 2022 order
    _event("big@x.com", "B1", 2022, "60", line_id="1"),
    _event("big@x.com", "B1", 2022, "60", line_id="2"),
    _event("big@x.com", "B2", 2023, "700"),
    _event(None, "A1", 2022, "1000"),
]

RULES = [
    QualificationRule(period=2022, min_spend=Decimal("100"), min_orders=1, max_orders=2),
    QualificationRule(period=2023, min_spend=Decimal("100")),
]


class TestQualificationRule:
    """Test QualificationRule validation and evaluation."""

    def test_min_orders_above_max_raises(self):
        with pytest.raises(ValueError, match="cannot exceed max_orders"):
            QualificationRule(period=2022, min_orders=5, max_orders=2)

    def test_negative_bounds_raise(self):
        with pytest.raises(ValueError, match="min_orders cannot be negative"):
            QualificationRule(period=2022, min_orders=-1)
        with pytest.raises(ValueError, match="max_orders cannot be negative"):
            QualificationRule(period=2022, max_orders=-1)

    def test_no_activity_never_qualifies(self):
        """Even a rule with no thresholds needs activity in its period."""
        rule = QualificationRule(period=2022)
        assert not rule.is_satisfied(Decimal("0"), 0)
        assert rule.is_satisfied(Decimal("1"), 1)

    def test_inclusive_bounds(self):
        rule = QualificationRule(period=2022, min_spend=Decimal("100"), min_orders=1, max_orders=2)
        assert rule.is_satisfied(Decimal("100"), 2)
        assert not rule.is_satisfied(Decimal("99.99"), 1)
        assert not rule.is_satisfied(Decimal("500"), 3)


class TestQualifyIdentities:
    """Test AND-combination of rules."""

    def test_every_rule_must_hold(self):
        assert qualify_identities(EVENTS, RULES) == frozenset({"loyal@x.com", "big@x.com"})

    def test_no_rules_qualifies_every_identified_customer(self):
        qualified = qualify_identities(EVENTS, [])
        assert "recent@x.com" in qualified
        assert len(qualified) == 5


class TestSummariseIdentities:
    """Test lifetime totals."""

    def test_distinct_orders_and_value(self):
        summaries = summarise_identities(EVENTS, ["big@x.com"])
        assert len(summaries) == 1
        assert summaries[0].total_orders == 2
        assert summaries[0].total_value == Decimal("820")


class TestTopIdentities:
    """Test ranking of qualified customers."""

    def test_ranked_by_total_value_over_all_periods(self):
        """Totals include every period, not only the rule periods."""
        ranked = top_identities(EVENTS, RULES)
        assert [(r.item.identity, r.item.total_value) for r in ranked] == [
            ("big@x.com", Decimal("820")),
            ("loyal@x.com", Decimal("770")),
        ]
        assert [r.rank for r in ranked] == [1, 2]
        assert ranked[-1].cumulative_share == Decimal("1")

    def test_limit_applied_after_ranking(self):
        """Shares are relative to all qualified customers, not only the kept ones."""
        ranked = top_identities(EVENTS, RULES, limit=1)
        assert len(ranked) == 1
        assert ranked[0].partition_total == Decimal("1590")
        assert ranked[0].cumulative_share == Decimal("820") / Decimal("1590")

    def test_limit_must_be_positive(self):
        with pytest.raises(ValueError, match="limit must be positive"):
            top_identities(EVENTS, RULES, limit=0)
