"""Rank and share analytics over aggregated result sets.

Implements the window-function pattern used by every "top N" report:
competition rank, dense rank, share of the partition total and the
cumulative share (Pareto curve) within each partition. Works on any row
type; callers supply how to read the metric, the partition and the
tie-break key.

Quick Start
-----------
>>> from decimal import Decimal
>>> classes = [("Knife Skills", Decimal("100")), ("Pasta", Decimal("100")), ("Baking", Decimal("50"))]
>>> ranked = rank_and_share(classes, metric=lambda row: row[1], tie_key=lambda row: row[0])
>>> [(r.item[0], r.rank, r.dense_rank, float(r.cumulative_share)) for r in ranked]
[('Knife Skills', 1, 1, 0.4), ('Pasta', 1, 1, 0.8), ('Baking', 3, 2, 1.0)]
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Generic, Hashable, Iterable, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_TOP_N = 10


def to_decimal(value: Decimal | int | float) -> Decimal:
    """Convert a metric to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected numeric metric, got {type(value)}")
    return Decimal(str(value))


@dataclass(frozen=True)
class RankedRow(Generic[T]):
    """A row extended with ranking and share analytics.

    Attributes
    ----------
    item:
        The original row.
    partition:
        Partition key the row was ranked within (None for a global ranking).
    metric:
        Metric value the ranking is based on.
    partition_total:
        Sum of the metric over the partition.
    row_number:
        1-based position in descending metric order, ties broken by the
        tie key (or input order).
    rank:
        Competition rank: ties share a rank and the next distinct value
        skips by the size of the tie group.
    dense_rank:
        Ties share a rank and the next distinct value increments by 1.
    share:
        ``metric / partition_total``; 0 when the partition total is 0.
    cumulative_share:
        Running metric sum up to and including this row divided by the
        partition total; 0 when the partition total is 0.
    """

    item: T
    partition: Hashable | None
    metric: Decimal
    partition_total: Decimal
    row_number: int
    rank: int
    dense_rank: int
    share: Decimal
    cumulative_share: Decimal

    def __post_init__(self) -> None:
        if self.rank < 1 or self.dense_rank < 1 or self.row_number < 1:
            raise ValueError(
                f"Ranks are 1-based: rank={self.rank}, dense_rank={self.dense_rank}, "
                f"row_number={self.row_number}"
            )
        if self.dense_rank > self.rank:
            raise ValueError(
                f"dense_rank ({self.dense_rank}) cannot exceed rank ({self.rank})"
            )


def _partition_sort_key(
    partition: Hashable | None, priority: dict[Hashable, int]
) -> tuple[int, int, str]:
    if partition in priority:
        return (0, priority[partition], "")
    return (1, 0, "" if partition is None else str(partition))


def rank_and_share(
    rows: Iterable[T],
    metric: Callable[[T], Decimal | int | float],
    partition: Callable[[T], Hashable | None] | None = None,
    tie_key: Callable[[T], Any] | None = None,
    partition_order: Sequence[Hashable] | None = None,
) -> list[RankedRow[T]]:
    """Rank rows by a metric within partitions and compute share analytics.

    Parameters
    ----------
    rows:
        Rows to rank.
    metric:
        Returns the numeric metric of a row.
    partition:
        Returns the partition key of a row; None ranks all rows globally.
    tie_key:
        Secondary ascending sort key for equal metrics (e.g. the identity or
        class name). Without it, ties keep their input order.
    partition_order:
        Partitions listed here come first in this order (e.g.
        ``("All", "New", "Existing")``); others follow sorted by name.

    Returns
    -------
    list[RankedRow]
        Ordered by partition priority, then rank ascending.
    """

    priority = {key: position for position, key in enumerate(partition_order or ())}

    groups: dict[Hashable | None, list[tuple[int, T, Decimal]]] = {}
    for index, row in enumerate(rows):
        key = partition(row) if partition is not None else None
        groups.setdefault(key, []).append((index, row, to_decimal(metric(row))))

    ranked: list[RankedRow[T]] = []
    for key in sorted(groups, key=lambda k: _partition_sort_key(k, priority)):
        members = groups[key]
        if tie_key is not None:
            members.sort(key=lambda member: (-member[2], tie_key(member[1])))
        else:
            members.sort(key=lambda member: (-member[2], member[0]))

        total = sum((member[2] for member in members), Decimal("0"))
        running = Decimal("0")
        previous: Decimal | None = None
        rank = 0
        dense_rank = 0
        for position, (_, row, value) in enumerate(members, start=1):
            if previous is None or value != previous:
                rank = position
                dense_rank += 1
                previous = value
            running += value
            if total == 0:
                share = Decimal("0")
                cumulative = Decimal("0")
            else:
                share = value / total
                cumulative = running / total
            ranked.append(
                RankedRow(
                    item=row,
                    partition=key,
                    metric=value,
                    partition_total=total,
                    row_number=position,
                    rank=rank,
                    dense_rank=dense_rank,
                    share=share,
                    cumulative_share=cumulative,
                )
            )
    return ranked


def flag_top(rank: int, n: int = DEFAULT_TOP_N) -> str:
    """Return ``"Top N"`` for ranks within the first ``n``, else ``"Other"``."""
    if n < 1:
        raise ValueError(f"n must be positive: {n}")
    return f"Top {n}" if rank <= n else "Other"
