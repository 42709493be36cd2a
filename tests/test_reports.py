"""End-to-end tests for report builders over in-memory snapshots."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from customer_lifecycle.analyses.lifecycle import ClassificationConfig, LifecycleLabel
from customer_lifecycle.analyses.qualification import QualificationRule
from customer_lifecycle.analyses.tenure import TenureGroup
from customer_lifecycle.foundation.calendar import FiscalCalendar, PeriodGranularity
from customer_lifecycle.reports import (
    RetailSnapshot,
    acquisition_years,
    build_class_report,
    build_lifecycle_report,
    build_new_customer_report,
    build_top_customers_report,
)
from customer_lifecycle.synthetic import (
    SnapshotConfig,
    generate_customers,
    generate_snapshot,
)

JAN, FEB, MAR = 2024 * 12, 2024 * 12 + 1, 2024 * 12 + 2


def _header(order_id, identity, source, order_type, order_date, linked=None):
    return {
        "order_id": order_id,
        "identity": identity,
        "source": source,
        "order_type": order_type,
        "order_date": order_date,
        "linked_order_id": linked,
    }


def _line(order_id, product_id, amount, quantity=1, channel="store", line_id="1"):
    return {
        "order_id": order_id,
        "line_id": line_id,
        "product_id": product_id,
        "quantity": quantity,
        "amount": amount,
        "channel": channel,
        "line_type": "sale",
    }


SNAPSHOT_PAYLOAD = {
    "headers": [
        _header("S1", "A@x.com", "xcenter", "in_store_sale", "2024-01-10"),
        _header("S2", "a@x.com", "xcenter", "in_store_sale", "2024-02-12"),
        _header("W1", "b@x.com", "oroms", "ecommerce", "2024-01-15"),
        _header("W2", "b@x.com", "oroms", "ecommerce", "2024-03-20"),
        _header("S3", None, "xcenter", "in_store_sale", "2024-02-14"),
        _header("W3", "c@x.com", "oroms", "ecommerce", "2024-02-20"),
        # Pickup recorded by both systems; only the online copy has the e-mail
        _header("P1", None, "xcenter", "bopis", "2024-03-05", linked="W4"),
        _header("W4", "d@x.com", "oroms", "bopis", "2024-03-01"),
    ],
    "lines": [
        _line("S1", "SKU1", "100"),
        _line("S2", "SKU2", "50", quantity=2),
        _line("S2", "GC", "25", line_id="2"),
        _line("W1", "SKU1", "80", channel="web"),
        _line("W2", "SKU2", "40", channel="web"),
        _line("S3", "SKU1", "30"),
        _line("W3", "SKU1", "200", channel="amazon"),
        _line("P1", "SKU2", "60"),
        _line("W4", "SKU2", "60", channel="web"),
    ],
    "taxonomy": [
        {"product_id": "SKU1", "category": "COOKWARE", "class_name": "Skillets"},
        {"product_id": "SKU2", "category": "COOKING SCHOOL", "class_name": "Knife Skills"},
        {"product_id": "GC", "category": "GIFT CERTIFICATES", "class_name": "Gift Cards"},
    ],
    "acquisitions": {
        "a@x.com": "2024-01-10",
        "B@x.com": "2019-05-01T00:00:00",
        "d@x.com": "2024-03-01",
    },
}


@pytest.fixture
def snapshot():
    return RetailSnapshot.from_mapping(SNAPSHOT_PAYLOAD)


def _summary(aggregates):
    return [
        (row.period, row.segment, row.label.value, row.customer_count, row.total_value)
        for row in aggregates
    ]


class TestRetailSnapshot:
    """Test snapshot parsing."""

    def test_from_mapping(self, snapshot):
        assert len(snapshot.headers) == 8
        assert snapshot.headers[0].identity == "a@x.com"
        assert snapshot.acquisitions["b@x.com"] == date(2019, 5, 1)
        assert snapshot.calendar is None

    def test_missing_sections(self):
        with pytest.raises(ValueError, match="missing required sections"):
            RetailSnapshot.from_mapping({"headers": []})

    def test_derived_calendar_spans_orders(self, snapshot):
        calendar = snapshot.resolve_calendar()
        assert calendar.first_date == date(2024, 1, 10)
        assert calendar.last_date == date(2024, 3, 20)

    def test_calendar_requires_orders(self):
        empty = RetailSnapshot.from_mapping({"headers": [], "lines": [], "taxonomy": []})
        with pytest.raises(ValueError, match="without orders"):
            empty.resolve_calendar()


class TestLifecycleReport:
    """Test the monthly Retail / Direct lifecycle report."""

    def test_monthly_segmented_report(self, snapshot):
        """Exclusions, mirrored pickups and per-segment labels end to end."""
        report = build_lifecycle_report(snapshot)

        assert _summary(report.aggregates) == [
            (JAN, "Direct", "New", 1, Decimal("80")),
            (JAN, "Retail", "New", 1, Decimal("100")),
            (FEB, "Retail", "Retained", 1, Decimal("50")),
            (FEB, "Retail", "Anonymous", 1, Decimal("30")),
            (MAR, "Direct", "New", 1, Decimal("60")),
            (MAR, "Direct", "Unclassified", 1, Decimal("40")),
        ]
        assert report.stats.orders_excluded_by_channel == 1
        assert report.stats.lines_excluded_by_category == 1
        assert report.stats.mirrored_orders_suppressed == 1
        assert report.stats.anonymous_events == 1

    def test_literal_window_reactivates(self, snapshot):
        """With reactivation_gap equal to the window, a one month gap reactivates."""
        config = ClassificationConfig(retention_window=1, reactivation_gap=1)
        report = build_lifecycle_report(snapshot, config=config)
        march = [row for row in report.aggregates if row.period == MAR]
        assert [row.label for row in march] == [
            LifecycleLabel.NEW,
            LifecycleLabel.REACTIVATED,
        ]

    def test_ranked_within_period(self, snapshot):
        report = build_lifecycle_report(snapshot)
        january = [r for r in report.ranked if r.partition == JAN]
        assert [(r.item.segment, r.rank) for r in january] == [("Retail", 1), ("Direct", 2)]
        assert january[0].partition_total == Decimal("180")
        assert january[0].share == Decimal("100") / Decimal("180")

    def test_total_business(self, snapshot):
        report = build_lifecycle_report(snapshot, segment_fn=None)
        january = [row for row in report.aggregates if row.period == JAN]
        assert _summary(january) == [(JAN, None, "New", 2, Decimal("180"))]

    def test_report_periods_keep_history(self, snapshot):
        """Restricting the output does not reset earlier activity."""
        report = build_lifecycle_report(snapshot, report_periods=[FEB])
        assert {row.period for row in report.aggregates} == {FEB}
        assert report.aggregates[0].label is LifecycleLabel.RETAINED

    def test_weekly_granularity(self, snapshot):
        report = build_lifecycle_report(
            snapshot, config=ClassificationConfig(granularity=PeriodGranularity.WEEK)
        )
        assert report.config.granularity is PeriodGranularity.WEEK
        assert sum(row.total_value for row in report.aggregates) == Decimal("360")

    def test_idempotent(self, snapshot):
        assert build_lifecycle_report(snapshot) == build_lifecycle_report(snapshot)


class TestSyntheticSnapshot:
    """Run the full pipeline over generated data."""

    @pytest.fixture
    def synthetic(self):
        customers = generate_customers(40, date(2022, 1, 1), date(2023, 6, 30), seed=7)
        payload = generate_snapshot(
            customers, date(2022, 1, 1), date(2023, 12, 31), config=SnapshotConfig(seed=7)
        )
        return RetailSnapshot.from_mapping(payload)

    def test_pickup_lines_mirrored_once(self):
        """Each pickup order's online copy carries exactly the store copy's lines."""
        customers = generate_customers(10, date(2022, 1, 1), date(2022, 1, 31), seed=3)
        payload = generate_snapshot(
            customers,
            date(2022, 1, 1),
            date(2022, 6, 30),
            config=SnapshotConfig(seed=3, direct_share=1.0, pickup_share=1.0),
        )

        def lines_of(order_id):
            return [
                (line["line_id"], line["product_id"], line["amount"])
                for line in payload["lines"]
                if line["order_id"] == order_id
            ]

        pickups = [h for h in payload["headers"] if h.get("linked_order_id")]
        assert pickups
        for header in pickups:
            assert lines_of(header["order_id"])
            assert lines_of(header["linked_order_id"]) == lines_of(header["order_id"])

    def test_generator_is_deterministic(self):
        customers = generate_customers(5, date(2022, 1, 1), date(2022, 6, 30), seed=1)
        first = generate_snapshot(
            customers, date(2022, 1, 1), date(2022, 12, 31), config=SnapshotConfig(seed=1)
        )
        second = generate_snapshot(
            customers, date(2022, 1, 1), date(2022, 12, 31), config=SnapshotConfig(seed=1)
        )
        assert first == second

    def test_rerun_yields_identical_output(self, synthetic):
        first = build_lifecycle_report(synthetic)
        second = build_lifecycle_report(synthetic)
        assert first.aggregates == second.aggregates
        assert first.stats == second.stats

    def test_every_event_has_one_label(self, synthetic):
        report = build_lifecycle_report(synthetic)
        assert len(report.classified) == report.stats.events_emitted
        assert sum(row.total_value for row in report.aggregates) == sum(
            item.amount for item in report.classified
        )

    def test_no_gift_cards_or_marketplace_orders(self, synthetic):
        report = build_lifecycle_report(synthetic)
        assert all(item.event.category != "GIFT CERTIFICATES" for item in report.classified)
        excluded = {
            line.order_id for line in synthetic.lines if line.channel == "amazon"
        }
        assert not excluded & {item.order_id for item in report.classified}


class TestNewCustomerReport:
    """Test the rolling-window new customer list."""

    def test_first_purchase_in_window(self, snapshot):
        new = build_new_customer_report(snapshot, as_of=date(2024, 3, 20), window=52)
        assert new == frozenset({"a@x.com", "b@x.com", "d@x.com"})

    def test_as_of_week_excluded(self, snapshot):
        """The week containing the as-of date is not part of the window."""
        new = build_new_customer_report(snapshot, as_of=date(2024, 3, 20), window=2)
        assert new == frozenset({"d@x.com"})

    def test_as_of_after_last_order(self, snapshot):
        """Without a fiscal calendar, the derived one is extended to the as-of date."""
        assert snapshot.calendar is None

        new = build_new_customer_report(snapshot, as_of=date(2024, 4, 15), window=52)
        assert new == frozenset({"a@x.com", "b@x.com", "d@x.com"})

        # Weeks 9 to 12 before the week of 2024-04-02 hold only d's first order
        new = build_new_customer_report(snapshot, as_of=date(2024, 4, 2), window=4)
        assert new == frozenset({"d@x.com"})

    def test_covering_extends_derived_calendar(self, snapshot):
        covered = snapshot.covering(date(2024, 4, 15))
        assert covered.resolve_calendar().last_date == date(2024, 4, 15)
        assert covered.resolve_calendar().first_date == date(2024, 1, 10)
        assert covered.covering(date(2024, 4, 15)) is covered

    def test_explicit_calendar_is_not_extended(self, snapshot):
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 3, 31))
        explicit = replace(snapshot, calendar=calendar)
        assert explicit.covering(date(2024, 6, 1)) is explicit
        with pytest.raises(KeyError, match="not mapped"):
            build_new_customer_report(explicit, as_of=date(2024, 6, 1))


class TestTopCustomersReport:
    """Test the qualification based top customers report."""

    def test_rules_and_limit(self, snapshot):
        rules = [QualificationRule(period=2024, min_spend=Decimal("100"))]

        ranked = build_top_customers_report(snapshot, rules)
        assert [(r.item.identity, r.item.total_value) for r in ranked] == [
            ("a@x.com", Decimal("150")),
            ("b@x.com", Decimal("120")),
        ]

        assert len(build_top_customers_report(snapshot, rules, limit=1)) == 1


class TestClassReport:
    """Test the class sales by tenure report."""

    def test_acquisition_years(self, snapshot):
        years = acquisition_years(snapshot, snapshot.resolve_calendar())
        assert years == {"a@x.com": 2024, "b@x.com": 2019, "d@x.com": 2024}

    def test_cooking_school_classes(self, snapshot):
        metrics = build_class_report(snapshot, 2024, category="COOKING SCHOOL")
        assert [
            (m.summary.tenure_group, m.summary.class_name, m.summary.sales)
            for m in metrics
        ] == [
            (TenureGroup.ALL, "Knife Skills", Decimal("150")),
            (TenureGroup.NEW, "Knife Skills", Decimal("110")),
            (TenureGroup.EXISTING, "Knife Skills", Decimal("40")),
        ]
        assert metrics[1].summary.distinct_customers == 2
