"""Purchase event extraction from raw order, line and taxonomy records.

The extractor is the single place where warehouse rows become analytical
events. It applies the exclusion policy (marketplace channels, gift cards,
internal identities), resolves mirrored in-store pickup orders to one
enriched identity and keeps identity-less rows for the Anonymous path.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Iterator, Sequence

from customer_lifecycle.foundation.identity import IdentityResolver
from customer_lifecycle.foundation.records import (
    OrderHeader,
    OrderLine,
    TaxonomyEntry,
    normalise_identity,
)

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_CHANNELS = ("amazon", "amzbopis")
DEFAULT_EXCLUDED_CATEGORIES = ("GIFT CERTIFICATES",)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class PurchaseEvent:
    """One purchased order line after filtering and identity resolution.

    ``period`` stays None until the event is indexed against a fiscal
    calendar. Events without an identity are Anonymous and never enter any
    identity's activity history.
    """

    identity: str | None
    order_id: str
    line_id: str
    order_date: date
    amount: Decimal
    quantity: int
    segment: str | None = None
    period: int | None = None
    product_id: str = ""
    category: str | None = None
    class_name: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None


@dataclass(frozen=True)
class ExclusionPolicy:
    """Rules deciding which orders and lines are reportable.

    Attributes
    ----------
    excluded_channels:
        Substrings matched case-insensitively against each line's channel
        and line type. One matching line excludes its whole order.
    excluded_categories:
        Category names excluded at line level (case-insensitive exact or
        substring match).
    excluded_identity_patterns:
        Substrings that disqualify an identity (internal domains, marketplace
        relay addresses).
    excluded_identities:
        Exact identities to drop.
    drop_invalid_identities:
        Drop events whose identity is not a syntactically valid e-mail.
    include_cancelled:
        Keep cancelled lines.
    include_returns:
        Keep return lines; their (negative) amounts reduce sums.
    positive_amounts_only:
        Drop lines with a non-positive amount.
    """

    excluded_channels: tuple[str, ...] = DEFAULT_EXCLUDED_CHANNELS
    excluded_categories: tuple[str, ...] = DEFAULT_EXCLUDED_CATEGORIES
    excluded_identity_patterns: tuple[str, ...] = ()
    excluded_identities: frozenset[str] = field(default_factory=frozenset)
    drop_invalid_identities: bool = False
    include_cancelled: bool = False
    include_returns: bool = True
    positive_amounts_only: bool = False

    def __post_init__(self) -> None:
        # Normalise once so matching stays a plain substring test
        object.__setattr__(
            self, "excluded_channels", tuple(c.lower() for c in self.excluded_channels)
        )
        object.__setattr__(
            self,
            "excluded_categories",
            tuple(c.lower() for c in self.excluded_categories),
        )
        object.__setattr__(
            self,
            "excluded_identity_patterns",
            tuple(p.lower() for p in self.excluded_identity_patterns),
        )
        object.__setattr__(
            self,
            "excluded_identities",
            frozenset(
                identity
                for identity in (normalise_identity(i) for i in self.excluded_identities)
                if identity is not None
            ),
        )

    def excludes_channel(self, line: OrderLine) -> bool:
        channel = line.channel.lower()
        line_type = line.line_type.lower()
        return any(
            pattern in channel or pattern in line_type
            for pattern in self.excluded_channels
        )

    def excludes_category(self, category: str) -> bool:
        name = category.lower()
        return any(
            pattern == name or pattern in name for pattern in self.excluded_categories
        )

    def excludes_identity(self, identity: str) -> bool:
        if identity in self.excluded_identities:
            return True
        if any(pattern in identity for pattern in self.excluded_identity_patterns):
            return True
        if self.drop_invalid_identities and not EMAIL_PATTERN.match(identity):
            return True
        return False

    def excludes_line(self, line: OrderLine) -> bool:
        if line.is_cancelled and not self.include_cancelled:
            return True
        if line.is_return and not self.include_returns:
            return True
        if self.positive_amounts_only and line.amount <= 0:
            return True
        return False


def channel_segment(header: OrderHeader) -> str | None:
    """Classify an order into the Retail or Direct sales channel.

    Online orders, any pickup-in-store order and ship-from-store orders are
    Direct; remaining store orders are Retail.
    """

    source = header.source.lower()
    order_type = header.order_type.lower()
    if source == "oroms" or "bopis" in order_type or order_type == "ship_from_store":
        return "Direct"
    if source == "xcenter":
        return "Retail"
    return None


@dataclass
class ExtractionStats:
    """Counters describing what an extraction run kept and dropped."""

    lines_seen: int = 0
    events_emitted: int = 0
    anonymous_events: int = 0
    duplicate_lines: int = 0
    orders_excluded_by_channel: int = 0
    lines_excluded_by_channel: int = 0
    lines_excluded_by_category: int = 0
    lines_excluded_by_identity: int = 0
    lines_excluded_by_status: int = 0
    lines_without_header: int = 0
    lines_without_taxonomy: int = 0
    amount_without_taxonomy: Decimal = Decimal("0")
    mirrored_orders_suppressed: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "lines_seen": self.lines_seen,
            "events_emitted": self.events_emitted,
            "anonymous_events": self.anonymous_events,
            "duplicate_lines": self.duplicate_lines,
            "orders_excluded_by_channel": self.orders_excluded_by_channel,
            "lines_excluded_by_channel": self.lines_excluded_by_channel,
            "lines_excluded_by_category": self.lines_excluded_by_category,
            "lines_excluded_by_identity": self.lines_excluded_by_identity,
            "lines_excluded_by_status": self.lines_excluded_by_status,
            "lines_without_header": self.lines_without_header,
            "lines_without_taxonomy": self.lines_without_taxonomy,
            "amount_without_taxonomy": str(self.amount_without_taxonomy),
            "mirrored_orders_suppressed": self.mirrored_orders_suppressed,
        }


SegmentFn = Callable[[OrderHeader], "str | None"]


class PurchaseEventExtractor:
    """Turn raw warehouse records into a stream of purchase events.

    Parameters
    ----------
    headers:
        Order header records. They are indexed in memory because every line
        joins back to its header.
    lines:
        Order line records. May be any re-iterable sequence; each call to
        :meth:`extract` walks it again.
    taxonomy:
        Product taxonomy records used for category exclusion and class names.
    policy:
        Exclusion policy; defaults to :class:`ExclusionPolicy` defaults.
    segment_fn:
        Callable returning the segment for an order header, or None for a
        total-business view.
    keep_uncategorized:
        Emit lines without a taxonomy match with ``category=None`` instead
        of dropping them.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> headers = [OrderHeader("O1", "a@x.com", "oroms", "ecommerce", date(2024, 1, 5))]
    >>> lines = [OrderLine("O1", "1", "SKU1", 1, Decimal("20"), channel="web")]
    >>> taxonomy = [TaxonomyEntry("SKU1", "COOKWARE")]
    >>> events = list(PurchaseEventExtractor(headers, lines, taxonomy).extract())
    >>> events[0].identity, events[0].amount
    ('a@x.com', Decimal('20'))
    """

    def __init__(
        self,
        headers: Iterable[OrderHeader],
        lines: Sequence[OrderLine],
        taxonomy: Iterable[TaxonomyEntry],
        policy: ExclusionPolicy | None = None,
        segment_fn: SegmentFn | None = None,
        keep_uncategorized: bool = False,
    ):
        self.policy = policy or ExclusionPolicy()
        self.segment_fn = segment_fn
        self.keep_uncategorized = keep_uncategorized
        self.lines = lines
        self.taxonomy = {entry.product_id: entry for entry in taxonomy}
        self.resolver = IdentityResolver(headers)
        self.stats = ExtractionStats()

    def extract(self) -> Iterator[PurchaseEvent]:
        """Yield purchase events; a fresh pass over the source on every call."""

        self.stats = ExtractionStats()
        stats = self.stats
        stats.mirrored_orders_suppressed = len(self.resolver.suppressed_orders)
        excluded_orders = self._orders_excluded_by_channel()
        stats.orders_excluded_by_channel = len(excluded_orders)

        seen: set[tuple[str, str]] = set()
        for line in self.lines:
            stats.lines_seen += 1
            line_key = (line.order_id, line.line_id)
            if line_key in seen:
                stats.duplicate_lines += 1
                continue
            seen.add(line_key)

            if line.order_id in excluded_orders:
                stats.lines_excluded_by_channel += 1
                continue
            if line.order_id in self.resolver.suppressed_orders:
                continue

            header = self.resolver.header(line.order_id)
            if header is None:
                stats.lines_without_header += 1
                continue

            if self.policy.excludes_line(line):
                stats.lines_excluded_by_status += 1
                continue

            entry = self.taxonomy.get(line.product_id)
            if entry is None:
                stats.lines_without_taxonomy += 1
                stats.amount_without_taxonomy += line.amount
                if not self.keep_uncategorized:
                    continue
            elif self.policy.excludes_category(entry.category):
                stats.lines_excluded_by_category += 1
                continue

            identity = self.resolver.identity_for(line.order_id)
            if identity is not None and self.policy.excludes_identity(identity):
                stats.lines_excluded_by_identity += 1
                continue

            event = PurchaseEvent(
                identity=identity,
                order_id=line.order_id,
                line_id=line.line_id,
                order_date=header.order_date,
                amount=line.amount,
                quantity=line.quantity,
                segment=self.segment_fn(header) if self.segment_fn else None,
                product_id=line.product_id,
                category=entry.category if entry is not None else None,
                class_name=entry.class_name if entry is not None else None,
            )
            stats.events_emitted += 1
            if identity is None:
                stats.anonymous_events += 1
            yield event

        if stats.lines_without_taxonomy:
            logger.warning(
                f"{stats.lines_without_taxonomy} lines worth {stats.amount_without_taxonomy} "
                "have no taxonomy entry"
                + (" and were kept as uncategorized" if self.keep_uncategorized else "")
            )
        logger.info(
            f"Extracted {stats.events_emitted} purchase events from {stats.lines_seen} "
            f"lines ({stats.anonymous_events} anonymous, "
            f"{stats.orders_excluded_by_channel} orders excluded by channel)"
        )

    def _orders_excluded_by_channel(self) -> set[str]:
        return {
            line.order_id for line in self.lines if self.policy.excludes_channel(line)
        }
