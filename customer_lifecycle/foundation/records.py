"""Raw warehouse records consumed by the purchase event extractor.

These mirror the minimum columns every report reads from the order header,
order line and merchandising taxonomy tables. ``from_mapping`` accepts the
plain dictionaries produced by a JSON snapshot or a warehouse cursor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    raise TypeError(f"Expected a date, datetime or ISO string, got {type(value)}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() in {"Y", "YES", "TRUE", "1"}
    return bool(value)


def normalise_identity(value: Any) -> str | None:
    """Return a trimmed, lower-cased identity or None when absent."""
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


@dataclass(frozen=True)
class OrderHeader:
    """Order header as reported by a source system.

    Attributes
    ----------
    order_id:
        Transaction identifier shared by all lines of the order.
    identity:
        Purchasing party key (an e-mail address); None for anonymous orders.
    source:
        Source system tag, e.g. ``"xcenter"`` (stores) or ``"oroms"`` (online).
    order_type:
        Order type tag, e.g. ``"in_store_sale"``, ``"bopis"``, ``"ecommerce"``.
    order_date:
        Date the order was placed.
    linked_order_id:
        Order id of the mirrored record in another source system, if any.
    """

    order_id: str
    identity: str | None
    source: str
    order_type: str
    order_date: date
    linked_order_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity", normalise_identity(self.identity))

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "OrderHeader":
        linked = record.get("linked_order_id")
        return cls(
            order_id=str(record["order_id"]),
            identity=record.get("identity"),
            source=str(record.get("source") or ""),
            order_type=str(record.get("order_type") or ""),
            order_date=_to_date(record["order_date"]),
            linked_order_id=str(linked) if linked not in (None, "") else None,
        )


@dataclass(frozen=True)
class OrderLine:
    """Order line carrying product, channel and monetary detail."""

    order_id: str
    line_id: str
    product_id: str
    quantity: int
    amount: Decimal
    channel: str = ""
    line_type: str = ""
    is_return: bool = False
    is_cancelled: bool = False
    is_backordered: bool = False

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "OrderLine":
        return cls(
            order_id=str(record["order_id"]),
            line_id=str(record["line_id"]),
            product_id=str(record.get("product_id", "")),
            quantity=int(record.get("quantity", 0) or 0),
            amount=Decimal(str(record.get("amount", 0) or 0)),
            channel=str(record.get("channel") or ""),
            line_type=str(record.get("line_type") or ""),
            is_return=_to_bool(record.get("is_return", False)),
            is_cancelled=_to_bool(record.get("is_cancelled", False)),
            is_backordered=_to_bool(record.get("is_backordered", False)),
        )


@dataclass(frozen=True)
class TaxonomyEntry:
    """Merchandising taxonomy for a product."""

    product_id: str
    category: str
    class_name: str | None = None

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "TaxonomyEntry":
        class_name = record.get("class_name")
        return cls(
            product_id=str(record["product_id"]),
            category=str(record["category"]),
            class_name=str(class_name) if class_name is not None else None,
        )

