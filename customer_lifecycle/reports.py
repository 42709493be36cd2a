"""End-to-end report builders over a retail snapshot.

Each builder runs the pipeline extract -> index -> classify -> aggregate ->
rank on one in-memory snapshot and returns plain result objects. Builders
never read a clock: as-of dates and analysis periods are always passed in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from customer_lifecycle.analyses.aggregation import AggregateRow, aggregate_classified
from customer_lifecycle.analyses.lifecycle import (
    LABEL_ORDER,
    ClassificationConfig,
    ClassifiedEvent,
    classify_events,
    new_identities_in_window,
)
from customer_lifecycle.analyses.qualification import (
    DEFAULT_TOP_CUSTOMERS,
    IdentitySummary,
    QualificationRule,
    top_identities,
)
from customer_lifecycle.analyses.ranking import DEFAULT_TOP_N, RankedRow, rank_and_share
from customer_lifecycle.analyses.tenure import (
    ClassTenureMetrics,
    rank_class_tenure,
    summarise_class_tenure,
)
from customer_lifecycle.foundation.calendar import (
    FiscalCalendar,
    PeriodGranularity,
    index_events,
)
from customer_lifecycle.foundation.events import (
    ExclusionPolicy,
    ExtractionStats,
    PurchaseEvent,
    PurchaseEventExtractor,
    SegmentFn,
    channel_segment,
)
from customer_lifecycle.foundation.records import (
    OrderHeader,
    OrderLine,
    TaxonomyEntry,
    normalise_identity,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetailSnapshot:
    """One consistent copy of the warehouse tables a report reads.

    Attributes
    ----------
    headers / lines / taxonomy:
        Raw order header, order line and product taxonomy records.
    calendar:
        Fiscal calendar. When absent, a gregorian calendar spanning the
        order dates is derived.
    acquisitions:
        Date each identity was first entered as a customer; only the tenure
        class report needs it.
    """

    headers: list[OrderHeader]
    lines: list[OrderLine]
    taxonomy: list[TaxonomyEntry]
    calendar: FiscalCalendar | None = None
    acquisitions: dict[str, date] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RetailSnapshot":
        """Build a snapshot from a decoded JSON document.

        Expects ``headers``, ``lines`` and ``taxonomy`` lists plus optional
        ``calendar`` (list of calendar rows) and ``acquisitions`` (mapping of
        identity to ISO date).
        """

        missing = {"headers", "lines", "taxonomy"} - set(payload)
        if missing:
            raise ValueError(f"Snapshot missing required sections: {sorted(missing)}")

        calendar = None
        if payload.get("calendar"):
            calendar = FiscalCalendar.from_records(payload["calendar"])

        acquisitions: dict[str, date] = {}
        for raw_identity, raw_date in (payload.get("acquisitions") or {}).items():
            identity = normalise_identity(raw_identity)
            if identity is None or raw_date is None:
                continue
            if isinstance(raw_date, datetime):
                acquisitions[identity] = raw_date.date()
            elif isinstance(raw_date, date):
                acquisitions[identity] = raw_date
            else:
                acquisitions[identity] = date.fromisoformat(str(raw_date)[:10])

        return cls(
            headers=[OrderHeader.from_mapping(r) for r in payload["headers"]],
            lines=[OrderLine.from_mapping(r) for r in payload["lines"]],
            taxonomy=[TaxonomyEntry.from_mapping(r) for r in payload["taxonomy"]],
            calendar=calendar,
            acquisitions=acquisitions,
        )

    def resolve_calendar(self, as_of: date | None = None) -> FiscalCalendar:
        """Return the fiscal calendar, deriving a gregorian one when absent.

        A derived calendar spans the order dates and is extended to cover
        ``as_of`` so a reporting date after the last order can be mapped.
        An explicit calendar is returned unchanged.
        """

        if self.calendar is not None:
            return self.calendar
        dates = [header.order_date for header in self.headers]
        if not dates:
            raise ValueError("Cannot derive a calendar from a snapshot without orders")
        if as_of is not None:
            dates.append(as_of)
        return FiscalCalendar.gregorian(min(dates), max(dates))

    def covering(self, as_of: date) -> "RetailSnapshot":
        """Return a snapshot whose calendar maps ``as_of``.

        Pins the derived calendar so events and the as-of date are indexed
        against the same periods.
        """

        if self.calendar is not None:
            return self
        return replace(self, calendar=self.resolve_calendar(as_of))


@dataclass(frozen=True)
class LifecycleReport:
    """Result of one lifecycle classification run.

    Attributes
    ----------
    config:
        Classification parameters used.
    classified:
        Every reportable event with its lifecycle label.
    aggregates:
        Totals per (period, segment, label).
    ranked:
        Aggregates ranked by total value within each period.
    stats:
        Extraction counters (exclusions and reporting gaps).
    """

    config: ClassificationConfig
    classified: list[ClassifiedEvent]
    aggregates: list[AggregateRow]
    ranked: list[RankedRow[AggregateRow]]
    stats: ExtractionStats


def extract_events(
    snapshot: RetailSnapshot,
    policy: ExclusionPolicy | None = None,
    segment_fn: SegmentFn | None = None,
    granularity: PeriodGranularity = PeriodGranularity.MONTH,
) -> tuple[list[PurchaseEvent], ExtractionStats]:
    """Extract reportable events and index them at ``granularity``."""

    extractor = PurchaseEventExtractor(
        snapshot.headers,
        snapshot.lines,
        snapshot.taxonomy,
        policy=policy,
        segment_fn=segment_fn,
    )
    events = list(
        index_events(extractor.extract(), snapshot.resolve_calendar(), granularity)
    )
    return events, extractor.stats


def rank_aggregates(aggregates: Sequence[AggregateRow]) -> list[RankedRow[AggregateRow]]:
    """Rank aggregate rows by total value within each period."""

    periods = sorted({row.period for row in aggregates})
    return rank_and_share(
        aggregates,
        metric=lambda row: row.total_value,
        partition=lambda row: row.period,
        tie_key=lambda row: (row.segment or "", LABEL_ORDER[row.label]),
        partition_order=periods,
    )


def build_lifecycle_report(
    snapshot: RetailSnapshot,
    config: ClassificationConfig | None = None,
    policy: ExclusionPolicy | None = None,
    segment_fn: SegmentFn | None = channel_segment,
    report_periods: Iterable[int] | None = None,
) -> LifecycleReport:
    """Classify, aggregate and rank lifecycle activity.

    Parameters
    ----------
    snapshot:
        Input records.
    config:
        Classification parameters; defaults to monthly, per-segment.
    policy:
        Exclusion policy; defaults to :class:`ExclusionPolicy` defaults.
    segment_fn:
        Segment rule; defaults to Retail/Direct. Pass None for a
        total-business view.
    report_periods:
        Restrict the output to these periods. Classification still sees the
        full history, so early periods of the window are labelled correctly.

    Examples
    --------
    >>> report = build_lifecycle_report(snapshot, report_periods=[24289])
    >>> [row.as_dict() for row in report.aggregates]
    """

    config = config or ClassificationConfig()
    events, stats = extract_events(snapshot, policy, segment_fn, config.granularity)
    logger.info(
        f"Extracted {len(events)} {config.granularity.value}-indexed events "
        f"from {stats.lines_seen} lines"
    )

    classified = classify_events(events, config)
    if report_periods is not None:
        wanted = set(report_periods)
        classified = [item for item in classified if item.period in wanted]

    aggregates = aggregate_classified(classified)
    ranked = rank_aggregates(aggregates)
    return LifecycleReport(
        config=config,
        classified=classified,
        aggregates=aggregates,
        ranked=ranked,
        stats=stats,
    )


def build_new_customer_report(
    snapshot: RetailSnapshot,
    as_of: date,
    window: int = 52,
    granularity: PeriodGranularity = PeriodGranularity.WEEK,
    policy: ExclusionPolicy | None = None,
) -> frozenset[str]:
    """Identities whose first purchase falls in the rolling window before ``as_of``.

    The window is the ``window`` calendar periods strictly before the period
    containing ``as_of``. Without a fiscal calendar, the derived calendar
    is extended to ``as_of``.
    """

    snapshot = snapshot.covering(as_of)
    periods = snapshot.resolve_calendar().rolling_window(as_of, window, granularity)
    if not periods:
        logger.warning(f"No {granularity.value}s before {as_of.isoformat()} in the calendar")
        return frozenset()

    events, _ = extract_events(snapshot, policy, None, granularity)
    new_identities = new_identities_in_window(events, periods)
    logger.info(
        f"{len(new_identities)} new customers in the {window} {granularity.value}s "
        f"before {as_of.isoformat()}"
    )
    return new_identities


def build_top_customers_report(
    snapshot: RetailSnapshot,
    rules: Sequence[QualificationRule],
    limit: int = DEFAULT_TOP_CUSTOMERS,
    policy: ExclusionPolicy | None = None,
    granularity: PeriodGranularity = PeriodGranularity.YEAR,
) -> list[RankedRow[IdentitySummary]]:
    """Rank customers that satisfy every qualification rule.

    Rule periods are read at ``granularity`` (fiscal years by default).
    """

    events, _ = extract_events(snapshot, policy, None, granularity)
    return top_identities(events, rules, limit=limit)


def acquisition_years(
    snapshot: RetailSnapshot, calendar: FiscalCalendar | None = None
) -> dict[str, int]:
    """Acquisition year per identity, fiscal when the calendar covers the date."""

    years: dict[str, int] = {}
    for identity, acquired in snapshot.acquisitions.items():
        if calendar is not None and acquired in calendar:
            years[identity] = calendar.period_of(acquired, PeriodGranularity.YEAR)
        else:
            years[identity] = acquired.year
    return years


def build_class_report(
    snapshot: RetailSnapshot,
    analysis_year: int,
    category: str | None = None,
    top_n: int = DEFAULT_TOP_N,
    policy: ExclusionPolicy | None = None,
) -> list[ClassTenureMetrics]:
    """Rank classes by sales for New and Existing customers of ``analysis_year``."""

    calendar = snapshot.resolve_calendar()
    events, _ = extract_events(snapshot, policy, None, PeriodGranularity.YEAR)
    summaries = summarise_class_tenure(
        events,
        acquisition_years(snapshot, calendar),
        analysis_year,
        category=category,
        calendar=calendar,
    )
    return rank_class_tenure(summaries, top_n=top_n)
