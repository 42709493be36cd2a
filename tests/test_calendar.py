"""Tests for fiscal calendar lookups, period indexing and activity history."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from customer_lifecycle.foundation.calendar import (
    ActivityHistory,
    CalendarEntry,
    FiscalCalendar,
    PeriodGranularity,
    build_activity_history,
    index_events,
    is_dense,
)
from customer_lifecycle.foundation.events import PurchaseEvent


def _event(identity, order_date=date(2024, 1, 15), period=None, segment=None, order_id="O1"):
    return PurchaseEvent(
        identity, order_id, "1", order_date, Decimal("10"), 1, segment=segment, period=period
    )


class TestGregorianCalendar:
    """Test the derived calendar used when no fiscal calendar is supplied."""

    def test_month_and_year_ordinals(self):
        """Months are year*12 + month - 1 and years are calendar years."""
        calendar = FiscalCalendar.gregorian(date(2023, 1, 1), date(2024, 12, 31))
        assert calendar.period_of(date(2024, 2, 10), PeriodGranularity.MONTH) == 24289
        assert calendar.period_of(date(2024, 1, 1), PeriodGranularity.MONTH) == 24288
        assert calendar.period_of(date(2023, 12, 31), PeriodGranularity.MONTH) == 24287
        assert calendar.period_of(date(2024, 2, 10), PeriodGranularity.YEAR) == 2024

    def test_week_ordinals_dense_across_year_boundary(self):
        """Week ids continue across January 1st without gaps."""
        calendar = FiscalCalendar.gregorian(date(2023, 12, 25), date(2024, 1, 14))
        weeks = [
            calendar.period_of(day, PeriodGranularity.WEEK)
            for day in (date(2023, 12, 25), date(2024, 1, 1), date(2024, 1, 14))
        ]
        assert weeks == [1, 2, 3]
        assert is_dense(calendar.periods(PeriodGranularity.WEEK))

    def test_start_after_end_raises(self):
        """An inverted range should raise ValueError."""
        with pytest.raises(ValueError, match="start date must be <= end date"):
            FiscalCalendar.gregorian(date(2024, 2, 1), date(2024, 1, 1))


class TestFiscalCalendar:
    """Test explicit fiscal calendars."""

    def test_from_records_with_iso_dates(self):
        """Calendar rows should be built from plain mappings."""
        calendar = FiscalCalendar.from_records(
            [
                {
                    "gregorian_date": "2024-02-04",
                    "fiscal_week_id": 1201,
                    "fiscal_month_id": 301,
                    "fiscal_year": 2024,
                    "last_year_week_id": 1148,
                }
            ]
        )
        assert len(calendar) == 1
        assert date(2024, 2, 4) in calendar
        assert calendar.period_of(date(2024, 2, 4), PeriodGranularity.WEEK) == 1201
        assert calendar.same_period_last_year(1201, PeriodGranularity.WEEK) == 1148

    def test_same_period_last_year_fallback(self):
        """Without an explicit mapping the period offset per year is used."""
        calendar = FiscalCalendar([])
        assert calendar.same_period_last_year(1201, PeriodGranularity.WEEK) == 1149
        assert calendar.same_period_last_year(301, PeriodGranularity.MONTH) == 289
        assert calendar.same_period_last_year(2024, PeriodGranularity.YEAR) == 2023

    def test_unmapped_date_raises_key_error(self):
        """Looking up a date outside the calendar raises KeyError."""
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 1, 31))
        with pytest.raises(KeyError, match="not mapped"):
            calendar.period_of(date(2024, 2, 1), PeriodGranularity.MONTH)

    def test_duplicate_dates_rejected(self):
        """Two rows for the same date make the calendar ambiguous."""
        entry = CalendarEntry(date(2024, 1, 1), 1, 1, 2024)
        with pytest.raises(ValueError, match="Duplicate calendar entry"):
            FiscalCalendar([entry, entry])

    def test_first_and_last_date(self):
        """Calendar bounds should reflect the covered dates."""
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 1, 31))
        assert calendar.first_date == date(2024, 1, 1)
        assert calendar.last_date == date(2024, 1, 31)


class TestRollingWindow:
    """Test as-of driven rolling windows."""

    def test_window_excludes_current_period(self):
        """The window holds the periods strictly before the as-of period, newest first."""
        calendar = FiscalCalendar.gregorian(date(2023, 1, 1), date(2024, 12, 31))
        window = calendar.rolling_window(date(2024, 3, 15), 3, PeriodGranularity.MONTH)
        assert window == [24289, 24288, 24287]

    def test_short_window_warns(self, caplog):
        """A calendar that cannot cover the window logs a warning."""
        calendar = FiscalCalendar.gregorian(date(2023, 1, 1), date(2023, 3, 31))
        with caplog.at_level(logging.WARNING):
            window = calendar.rolling_window(date(2023, 2, 10), 3, PeriodGranularity.MONTH)
        assert window == [24276]
        assert "only covers 1 of 3" in caplog.text

    def test_non_positive_count_raises(self):
        """A window needs at least one period."""
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 1, 31))
        with pytest.raises(ValueError, match="count must be positive"):
            calendar.rolling_window(date(2024, 1, 15), 0, PeriodGranularity.WEEK)


class TestIndexEvents:
    """Test period indexing of purchase events."""

    def test_events_receive_period(self):
        """Indexed events carry the ordinal of their order date."""
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 12, 31))
        indexed = list(
            index_events([_event("a@x.com", date(2024, 3, 2))], calendar, PeriodGranularity.MONTH)
        )
        assert indexed[0].period == 24290

    def test_unmapped_events_skipped_with_warning(self, caplog):
        """Events outside the calendar are a reporting gap, not an error."""
        calendar = FiscalCalendar.gregorian(date(2024, 1, 1), date(2024, 1, 31))
        events = [_event("a@x.com", date(2024, 1, 5)), _event("b@x.com", date(2025, 1, 5))]
        with caplog.at_level(logging.WARNING):
            indexed = list(index_events(events, calendar, PeriodGranularity.MONTH))
        assert [e.identity for e in indexed] == ["a@x.com"]
        assert "1 purchase events fall outside the fiscal calendar" in caplog.text


class TestIsDense:
    """Test the contiguous-ordinal diagnostic."""

    def test_dense_and_sparse(self):
        assert is_dense([3, 1, 2, 2])
        assert not is_dense([1, 3])
        assert is_dense([])


class TestActivityHistory:
    """Test per-identity activity history."""

    def test_periods_sorted_and_deduplicated(self):
        """Adding periods out of order keeps a sorted distinct list."""
        history = ActivityHistory()
        for period in (9, 5, 9, 7):
            history.add("a@x.com", "Retail", period)

        assert history.periods("a@x.com", "Retail") == (5, 7, 9)
        assert history.first_period("a@x.com", "Retail") == 5
        assert history.previous_active("a@x.com", "Retail", 9) == 7
        assert history.previous_active("a@x.com", "Retail", 5) is None
        assert history.is_active("a@x.com", "Retail", 7)
        assert not history.is_active("a@x.com", "Retail", 8)

    def test_segments_tracked_independently(self):
        """Per-segment history keeps channels apart."""
        history = ActivityHistory()
        history.add("a@x.com", "Retail", 10)
        history.add("a@x.com", "Direct", 11)

        assert history.first_period("a@x.com", "Direct") == 11
        assert history.keys() == [("a@x.com", "Direct"), ("a@x.com", "Retail")]

    def test_shared_history_ignores_segment(self):
        """Shared history merges all channels of an identity."""
        history = ActivityHistory(shared_history=True)
        history.add("a@x.com", "Retail", 10)
        history.add("a@x.com", "Direct", 11)

        assert history.first_period("a@x.com", "Direct") == 10
        assert history.keys() == [("a@x.com", None)]

    def test_build_skips_anonymous_events(self):
        """Anonymous events never enter any history."""
        history = build_activity_history(
            [_event(None, period=3), _event("a@x.com", period=4)]
        )
        assert history.keys() == [("a@x.com", None)]

    def test_build_requires_indexed_events(self):
        """Unindexed identified events raise ValueError."""
        with pytest.raises(ValueError, match="run index_events"):
            build_activity_history([_event("a@x.com")])
