"""Fiscal calendar lookups and period indexing for purchase events.

Every lifecycle decision is made on integer period ordinals: fiscal week
ids, fiscal month ids or fiscal years. Ordinals must support plain integer
arithmetic (``period - 1`` is "the previous period"), so a calendar that
skips ids will surface as Unclassified rows downstream rather than fail.

Quick Start
-----------
>>> from datetime import date
>>> from customer_lifecycle.foundation.calendar import FiscalCalendar, PeriodGranularity
>>> calendar = FiscalCalendar.gregorian(date(2023, 1, 1), date(2024, 12, 31))
>>> calendar.period_of(date(2024, 2, 10), PeriodGranularity.MONTH)
24289
>>> calendar.period_of(date(2024, 2, 10), PeriodGranularity.YEAR)
2024
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Sequence

from customer_lifecycle.foundation.events import PurchaseEvent

logger = logging.getLogger(__name__)

# Period offsets used when no explicit "same period last year" mapping exists
PERIODS_PER_YEAR = {
    "week": 52,
    "month": 12,
    "year": 1,
}


class PeriodGranularity(str, Enum):
    """Supported time granularities for lifecycle classification."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class CalendarEntry:
    """One gregorian date mapped onto the fiscal calendar.

    Attributes
    ----------
    gregorian_date:
        Calendar date being mapped.
    fiscal_week_id:
        Monotonically increasing fiscal week ordinal.
    fiscal_month_id:
        Monotonically increasing fiscal month ordinal.
    fiscal_year:
        Fiscal year the date belongs to.
    last_year_week_id:
        Optional explicit "same week last year" ordinal. Fiscal years with a
        53rd week make ``week - 52`` wrong, so the warehouse calendar
        carries this mapping directly when it matters.
    """

    gregorian_date: date
    fiscal_week_id: int
    fiscal_month_id: int
    fiscal_year: int
    last_year_week_id: int | None = None

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "CalendarEntry":
        raw_date = record["gregorian_date"]
        if isinstance(raw_date, datetime):
            raw_date = raw_date.date()
        elif isinstance(raw_date, str):
            raw_date = date.fromisoformat(raw_date)
        last_year = record.get("last_year_week_id")
        return cls(
            gregorian_date=raw_date,
            fiscal_week_id=int(record["fiscal_week_id"]),
            fiscal_month_id=int(record["fiscal_month_id"]),
            fiscal_year=int(record["fiscal_year"]),
            last_year_week_id=int(last_year) if last_year is not None else None,
        )

    def ordinal(self, granularity: PeriodGranularity) -> int:
        if granularity is PeriodGranularity.WEEK:
            return self.fiscal_week_id
        if granularity is PeriodGranularity.MONTH:
            return self.fiscal_month_id
        if granularity is PeriodGranularity.YEAR:
            return self.fiscal_year
        raise ValueError(f"Unsupported granularity: {granularity}")  # pragma: no cover


class FiscalCalendar:
    """Map gregorian dates to fiscal period ordinals.

    Parameters
    ----------
    entries:
        Calendar rows, one per gregorian date. Duplicate dates are rejected.
    """

    def __init__(self, entries: Iterable[CalendarEntry]):
        self._entries: dict[date, CalendarEntry] = {}
        self._last_year_weeks: dict[int, int] = {}
        for entry in entries:
            if entry.gregorian_date in self._entries:
                raise ValueError(
                    f"Duplicate calendar entry for {entry.gregorian_date.isoformat()}"
                )
            self._entries[entry.gregorian_date] = entry
            if entry.last_year_week_id is not None:
                self._last_year_weeks[entry.fiscal_week_id] = entry.last_year_week_id
        self._sorted_dates = sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, day: object) -> bool:
        return day in self._entries

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "FiscalCalendar":
        return cls(CalendarEntry.from_mapping(record) for record in records)

    @classmethod
    def gregorian(cls, start: date, end: date) -> "FiscalCalendar":
        """Build a calendar whose fiscal periods are plain calendar periods.

        Weeks are numbered consecutively from the Monday on or before
        ``start`` so that week ordinals stay dense across year boundaries.
        Month ordinals are ``year * 12 + month - 1``.
        """

        if start > end:
            raise ValueError("start date must be <= end date")

        anchor = start - timedelta(days=start.weekday())
        entries = []
        current = start
        while current <= end:
            entries.append(
                CalendarEntry(
                    gregorian_date=current,
                    fiscal_week_id=(current - anchor).days // 7 + 1,
                    fiscal_month_id=current.year * 12 + current.month - 1,
                    fiscal_year=current.year,
                )
            )
            current += timedelta(days=1)
        return cls(entries)

    def entry_for(self, day: date | datetime) -> CalendarEntry:
        if isinstance(day, datetime):
            day = day.date()
        try:
            return self._entries[day]
        except KeyError:
            raise KeyError(f"Date {day.isoformat()} is not mapped in the fiscal calendar")

    def period_of(self, day: date | datetime, granularity: PeriodGranularity) -> int:
        """Return the period ordinal for ``day`` at the given granularity."""
        return self.entry_for(day).ordinal(granularity)

    def same_period_last_year(self, period: int, granularity: PeriodGranularity) -> int:
        """Return the ordinal of the same period one fiscal year earlier."""
        if granularity is PeriodGranularity.WEEK and period in self._last_year_weeks:
            return self._last_year_weeks[period]
        return period - PERIODS_PER_YEAR[granularity.value]

    def periods(self, granularity: PeriodGranularity) -> list[int]:
        """Return every distinct period ordinal covered by the calendar."""
        return sorted({entry.ordinal(granularity) for entry in self._entries.values()})

    def rolling_window(
        self, as_of: date | datetime, count: int, granularity: PeriodGranularity
    ) -> list[int]:
        """Return the ``count`` periods strictly before the as-of period.

        This is the "rolling 52 weeks excluding the current week" selection
        with the as-of date passed in explicitly, newest period first.
        """

        if count <= 0:
            raise ValueError(f"count must be positive: {count}")
        current = self.period_of(as_of, granularity)
        known = self.periods(granularity)
        idx = bisect_left(known, current)
        window = known[max(0, idx - count) : idx]
        if len(window) < count:
            logger.warning(
                f"Calendar only covers {len(window)} of {count} requested "
                f"{granularity.value} periods before {current}"
            )
        return list(reversed(window))

    @property
    def first_date(self) -> date | None:
        return self._sorted_dates[0] if self._sorted_dates else None

    @property
    def last_date(self) -> date | None:
        return self._sorted_dates[-1] if self._sorted_dates else None


def is_dense(periods: Iterable[int]) -> bool:
    """Return True when the distinct ordinals form an unbroken integer run."""
    distinct = sorted(set(periods))
    if not distinct:
        return True
    return distinct[-1] - distinct[0] + 1 == len(distinct)


def index_events(
    events: Iterable[PurchaseEvent],
    calendar: FiscalCalendar,
    granularity: PeriodGranularity,
) -> Iterator[PurchaseEvent]:
    """Annotate each event with its period ordinal.

    Events whose order date is missing from the calendar are skipped and
    reported once at the end; this is a reporting gap, not a failure.
    """

    unmapped = 0
    for event in events:
        try:
            period = calendar.period_of(event.order_date, granularity)
        except KeyError:
            unmapped += 1
            continue
        yield replace(event, period=period)

    if unmapped:
        logger.warning(
            f"{unmapped} purchase events fall outside the fiscal calendar "
            f"and were left out of {granularity.value} indexing"
        )


HistoryKey = tuple[str, "str | None"]


class ActivityHistory:
    """Ordered active periods per (identity, segment).

    Built from period-indexed events; anonymous events never contribute.
    With ``shared_history`` the segment is ignored when keying, so an
    identity has one history across all channels.
    """

    def __init__(self, shared_history: bool = False):
        self.shared_history = shared_history
        self._periods: dict[HistoryKey, list[int]] = {}

    def key_for(self, identity: str, segment: str | None) -> HistoryKey:
        return (identity, None if self.shared_history else segment)

    def add(self, identity: str, segment: str | None, period: int) -> None:
        periods = self._periods.setdefault(self.key_for(identity, segment), [])
        idx = bisect_left(periods, period)
        if idx == len(periods) or periods[idx] != period:
            periods.insert(idx, period)

    def keys(self) -> list[HistoryKey]:
        return sorted(self._periods, key=lambda key: (key[0], key[1] or ""))

    def periods(self, identity: str, segment: str | None) -> Sequence[int]:
        return tuple(self._periods.get(self.key_for(identity, segment), ()))

    def first_period(self, identity: str, segment: str | None) -> int | None:
        periods = self._periods.get(self.key_for(identity, segment))
        return periods[0] if periods else None

    def is_active(self, identity: str, segment: str | None, period: int) -> bool:
        periods = self._periods.get(self.key_for(identity, segment), [])
        idx = bisect_left(periods, period)
        return idx < len(periods) and periods[idx] == period

    def previous_active(
        self, identity: str, segment: str | None, period: int
    ) -> int | None:
        """Return the most recent active period strictly before ``period``."""
        periods = self._periods.get(self.key_for(identity, segment), [])
        idx = bisect_left(periods, period)
        return periods[idx - 1] if idx > 0 else None


def build_activity_history(
    events: Iterable[PurchaseEvent], shared_history: bool = False
) -> ActivityHistory:
    """Collect the active periods of every identified event."""

    history = ActivityHistory(shared_history=shared_history)
    for event in events:
        if event.identity is None:
            continue
        if event.period is None:
            raise ValueError(
                f"Event for order {event.order_id} has no period; "
                "run index_events before building history"
            )
        history.add(event.identity, event.segment, event.period)
    return history
