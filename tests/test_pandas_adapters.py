"""Tests for pandas DataFrame adapters."""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from customer_lifecycle.analyses.aggregation import aggregate_classified
from customer_lifecycle.analyses.lifecycle import classify_events
from customer_lifecycle.analyses.qualification import QualificationRule, top_identities
from customer_lifecycle.analyses.ranking import rank_and_share
from customer_lifecycle.analyses.tenure import rank_class_tenure, summarise_class_tenure
from customer_lifecycle.foundation.events import PurchaseEvent
from customer_lifecycle.pandas import (
    aggregate_df,
    aggregates_to_dataframe,
    classified_to_dataframe,
    class_report_to_dataframe,
    classify_df,
    dataframe_to_events,
    events_to_dataframe,
    ranked_aggregates_to_dataframe,
    top_customers_to_dataframe,
)
from customer_lifecycle.reports import rank_aggregates


@pytest.fixture
def sample_events():
    return [
        PurchaseEvent("a@x.com", "O1", "1", date(2024, 1, 5), Decimal("10.50"), 1,
                      segment="Retail", period=10, product_id="SKU1",
                      category="COOKWARE", class_name="Skillets"),
        PurchaseEvent("a@x.com", "O2", "1", date(2024, 2, 5), Decimal("20.00"), 2,
                      segment="Retail", period=11, product_id="SKU1",
                      category="COOKWARE", class_name="Skillets"),
        PurchaseEvent(None, "O3", "1", date(2024, 2, 6), Decimal("5.25"), 1,
                      segment="Retail", period=11, product_id="SKU2"),
    ]


class TestEventAdapters:
    """Test conversion between events and DataFrames."""

    def test_events_round_trip(self, sample_events):
        events_df = events_to_dataframe(sample_events)
        assert list(events_df["amount"]) == [10.5, 20.0, 5.25]

        restored = dataframe_to_events(events_df)
        assert restored == sample_events

    def test_empty_events(self):
        events_df = events_to_dataframe([])
        assert events_df.empty
        assert "identity" in events_df.columns
        assert dataframe_to_events(events_df) == []

    def test_missing_columns_raise(self):
        with pytest.raises(ValueError, match="missing required columns"):
            dataframe_to_events(pd.DataFrame({"identity": ["a@x.com"]}))

    def test_null_required_values_raise(self):
        events_df = pd.DataFrame(
            {
                "identity": ["a@x.com"],
                "order_id": ["O1"],
                "line_id": ["1"],
                "order_date": ["2024-01-05"],
                "amount": [None],
                "quantity": [1],
            }
        )
        with pytest.raises(ValueError, match="Null/NaN values"):
            dataframe_to_events(events_df)

    def test_nan_identity_is_anonymous(self):
        events_df = pd.DataFrame(
            {
                "identity": [float("nan")],
                "order_id": ["O1"],
                "line_id": ["1"],
                "order_date": ["2024-01-05"],
                "amount": [12.0],
                "quantity": [1],
                "period": [3],
            }
        )
        [event] = dataframe_to_events(events_df)
        assert event.identity is None
        assert event.period == 3
        assert event.order_date == date(2024, 1, 5)


class TestLifecycleAdapters:
    """Test classification and aggregation over DataFrames."""

    def test_classify_df_adds_label(self, sample_events):
        labelled = classify_df(events_to_dataframe(sample_events))
        assert list(labelled["label"]) == ["New", "Retained", "Anonymous"]

    def test_classified_to_dataframe_matches_core(self, sample_events):
        classified = classify_events(sample_events)
        labelled = classified_to_dataframe(classified)
        assert len(labelled) == len(classified)

    def test_aggregate_df(self, sample_events):
        aggregates = aggregate_df(events_to_dataframe(sample_events))
        assert list(aggregates["label"]) == ["New", "Retained", "Anonymous"]
        assert list(aggregates["customer_count"]) == [1, 1, 1]

    def test_aggregates_to_dataframe_empty(self):
        assert list(aggregates_to_dataframe([]).columns)[:3] == ["period", "segment", "label"]


class TestRankingAdapters:
    """Test ranked row conversion."""

    def test_ranked_aggregates(self, sample_events):
        aggregates = aggregate_classified(classify_events(sample_events))
        ranked_df = ranked_aggregates_to_dataframe(rank_aggregates(aggregates))

        period_11 = ranked_df[ranked_df["period"] == 11]
        assert list(period_11["label"]) == ["Retained", "Anonymous"]
        assert list(period_11["rank"]) == [1, 2]
        assert period_11["period_total_value"].iloc[0] == pytest.approx(25.25)
        assert period_11["cumulative_share"].iloc[-1] == pytest.approx(1.0)

    def test_empty_ranked_keeps_columns(self):
        ranked_df = ranked_aggregates_to_dataframe(rank_and_share([], metric=lambda r: r))
        assert ranked_df.empty
        assert "cumulative_share" in ranked_df.columns


class TestReportAdapters:
    """Test top customer and class report conversion."""

    def test_top_customers(self, sample_events):
        ranked = top_identities(sample_events, [QualificationRule(period=10)])
        top_df = top_customers_to_dataframe(ranked)
        assert list(top_df["identity"]) == ["a@x.com"]
        assert top_df["total_value"].iloc[0] == pytest.approx(30.5)
        assert top_df["share"].iloc[0] == pytest.approx(1.0)

    def test_class_report(self, sample_events):
        metrics = rank_class_tenure(
            summarise_class_tenure(sample_events, {"a@x.com": 2024}, 2024)
        )
        class_df = class_report_to_dataframe(metrics)
        assert list(class_df["customer_tenure"]) == ["All", "New"]
        assert list(class_df["top_flag"]) == ["Top 10", "Top 10"]
        assert class_df["sales"].iloc[0] == pytest.approx(30.5)

    def test_empty_reports_keep_columns(self):
        assert "identity" in top_customers_to_dataframe([]).columns
        assert "customer_tenure" in class_report_to_dataframe([]).columns
