"""Customer lifecycle classification over period-indexed purchase events.

Every (identity, segment, period) with activity receives exactly one label:

- **New**: the period is the identity's first active period.
- **Retained**: the identity was active within the retention window just
  before the period (by default, the immediately preceding period).
- **Reactivated**: the identity came back after a long enough run of
  inactive periods.
- **Unclassified**: none of the above; a boundary or missing-data signal.
- **Anonymous**: the order carries no identity.

The checks run in that order, so a first purchase is always New even
though it trivially has no activity in the previous period.

Quick Start
-----------
>>> from datetime import date
>>> from decimal import Decimal
>>> from customer_lifecycle.foundation.events import PurchaseEvent
>>> events = [
...     PurchaseEvent("a@x.com", "O1", "1", date(2024, 1, 1), Decimal("10"), 1, period=10),
...     PurchaseEvent("a@x.com", "O2", "1", date(2024, 2, 1), Decimal("15"), 1, period=11),
... ]
>>> [c.label.value for c in classify_events(events)]
['New', 'Retained']
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from customer_lifecycle.foundation.calendar import (
    ActivityHistory,
    PeriodGranularity,
    build_activity_history,
    is_dense,
)
from customer_lifecycle.foundation.events import PurchaseEvent

logger = logging.getLogger(__name__)


class LifecycleLabel(str, Enum):
    """Lifecycle label assigned to a purchase event."""

    NEW = "New"
    RETAINED = "Retained"
    REACTIVATED = "Reactivated"
    UNCLASSIFIED = "Unclassified"
    ANONYMOUS = "Anonymous"


LABEL_ORDER: dict[LifecycleLabel, int] = {
    label: position for position, label in enumerate(LifecycleLabel)
}


@dataclass(frozen=True)
class ClassificationConfig:
    """Parameters of one lifecycle classification run.

    Attributes
    ----------
    granularity:
        Period granularity the events were indexed at.
    retention_window:
        Number of periods before the current one that count as "recent".
        Activity anywhere in ``[P - retention_window, P - 1]`` makes the
        identity Retained in period ``P``.
    reactivation_gap:
        Minimum number of consecutive inactive periods immediately before
        ``P`` for the identity to count as Reactivated. Must be at least
        ``retention_window``. Setting it equal to ``retention_window`` makes
        every returning identity either Retained or Reactivated; the default
        of 2 leaves a single skipped period Unclassified.
    shared_history:
        Track first purchase and history per identity across all segments
        instead of independently per segment.
    """

    granularity: PeriodGranularity = PeriodGranularity.MONTH
    retention_window: int = 1
    reactivation_gap: int = 2
    shared_history: bool = False

    def __post_init__(self) -> None:
        if self.retention_window < 1:
            raise ValueError(
                f"retention_window must be at least 1: {self.retention_window}"
            )
        if self.reactivation_gap < self.retention_window:
            raise ValueError(
                f"reactivation_gap ({self.reactivation_gap}) cannot be smaller than "
                f"retention_window ({self.retention_window})"
            )


@dataclass(frozen=True)
class ClassifiedEvent:
    """A purchase event annotated with its lifecycle label."""

    event: PurchaseEvent
    label: LifecycleLabel

    @property
    def identity(self) -> str | None:
        return self.event.identity

    @property
    def order_id(self) -> str:
        return self.event.order_id

    @property
    def period(self) -> int:
        # Classification only accepts indexed events
        return self.event.period  # type: ignore[return-value]

    @property
    def segment(self) -> str | None:
        return self.event.segment

    @property
    def amount(self) -> Decimal:
        return self.event.amount

    @property
    def quantity(self) -> int:
        return self.event.quantity

    @property
    def order_date(self) -> date:
        return self.event.order_date


def classify_period(
    history: ActivityHistory,
    identity: str,
    segment: str | None,
    period: int,
    config: ClassificationConfig,
) -> LifecycleLabel:
    """Label one active (identity, segment, period) against its history."""

    if period == history.first_period(identity, segment):
        return LifecycleLabel.NEW

    previous = history.previous_active(identity, segment, period)
    if previous is None:
        return LifecycleLabel.UNCLASSIFIED

    inactive_periods = period - previous - 1
    if inactive_periods < config.retention_window:
        return LifecycleLabel.RETAINED
    if inactive_periods >= config.reactivation_gap:
        return LifecycleLabel.REACTIVATED
    return LifecycleLabel.UNCLASSIFIED


def classify_activity(
    history: ActivityHistory, config: ClassificationConfig
) -> dict[tuple[str, str | None, int], LifecycleLabel]:
    """Label every active period recorded in ``history``.

    Keys are ``(identity, segment, period)``; with shared history the
    segment in the key is None.
    """

    labels: dict[tuple[str, str | None, int], LifecycleLabel] = {}
    for identity, segment in history.keys():
        for period in history.periods(identity, segment):
            labels[(identity, segment, period)] = classify_period(
                history, identity, segment, period, config
            )
    return labels


def classify_events(
    events: Iterable[PurchaseEvent],
    config: ClassificationConfig | None = None,
) -> list[ClassifiedEvent]:
    """Assign a lifecycle label to every period-indexed purchase event.

    Parameters
    ----------
    events:
        Purchase events with ``period`` populated (see
        :func:`customer_lifecycle.foundation.calendar.index_events`).
    config:
        Classification parameters; defaults to :class:`ClassificationConfig`.

    Returns
    -------
    list[ClassifiedEvent]
        One classified event per input event, in input order.

    Raises
    ------
    ValueError
        If any event has no period.
    """

    config = config or ClassificationConfig()
    materialised = list(events)
    unindexed = [event.order_id for event in materialised if event.period is None]
    if unindexed:
        raise ValueError(
            f"{len(unindexed)} events have no period (first orders: {unindexed[:5]}); "
            "index events against a fiscal calendar before classifying"
        )
    history = build_activity_history(materialised, shared_history=config.shared_history)

    active_periods = {event.period for event in materialised if event.period is not None}
    if not is_dense(active_periods):
        logger.warning(
            f"Active {config.granularity.value} ordinals are not contiguous "
            f"({min(active_periods)}..{max(active_periods)}, {len(active_periods)} distinct); "
            "gaps in the calendar may surface as Unclassified rows"
        )

    cache: dict[tuple[str, str | None, int], LifecycleLabel] = {}
    classified: list[ClassifiedEvent] = []
    for event in materialised:
        if event.identity is None:
            classified.append(ClassifiedEvent(event, LifecycleLabel.ANONYMOUS))
            continue
        key = (event.identity, event.segment, event.period)
        label = cache.get(key)
        if label is None:
            label = classify_period(
                history, event.identity, event.segment, event.period, config
            )
            cache[key] = label
        classified.append(ClassifiedEvent(event, label))

    logger.info(
        f"Classified {len(classified)} events for "
        f"{len(history.keys())} identity histories"
    )
    return classified


def new_identities_in_window(
    events: Iterable[PurchaseEvent],
    window_periods: Iterable[int],
) -> frozenset[str]:
    """Return identities whose first purchase falls in the rolling window.

    ``window_periods`` is the period selection, usually
    :meth:`customer_lifecycle.foundation.calendar.FiscalCalendar.rolling_window`.
    First purchases are taken across all segments so a customer is never
    counted twice.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> events = [
    ...     PurchaseEvent("a@x.com", "O1", "1", date(2024, 1, 1), Decimal("10"), 1, period=40),
    ...     PurchaseEvent("b@x.com", "O2", "1", date(2024, 1, 1), Decimal("10"), 1, period=60),
    ... ]
    >>> sorted(new_identities_in_window(events, range(50, 61)))
    ['b@x.com']
    """

    window = frozenset(window_periods)
    if not window:
        raise ValueError("window_periods must not be empty")

    first_periods: dict[str, int] = {}
    for event in events:
        if event.identity is None or event.period is None:
            continue
        current = first_periods.get(event.identity)
        if current is None or event.period < current:
            first_periods[event.identity] = event.period

    return frozenset(
        identity for identity, first in first_periods.items() if first in window
    )


def label_counts(
    classified: Sequence[ClassifiedEvent],
) -> dict[tuple[int, LifecycleLabel], int]:
    """Count distinct identities per (period, label), ignoring segments."""

    identities: dict[tuple[int, LifecycleLabel], set[str]] = {}
    for item in classified:
        if item.identity is None:
            continue
        identities.setdefault((item.period, item.label), set()).add(item.identity)
    ordered = sorted(identities, key=lambda key: (key[0], LABEL_ORDER[key[1]]))
    return {key: len(identities[key]) for key in ordered}
