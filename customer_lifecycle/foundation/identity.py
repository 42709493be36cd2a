"""Identity resolution across mirrored source systems.

An in-store pickup order is recorded twice: once by the store system when
the customer collects it, and once by the online order system where it was
placed. Only the online record reliably carries the customer's e-mail. The
resolver merges such pairs into one enriched order so the transaction is
attributed to the right identity and counted once.
"""

from __future__ import annotations

import logging
from typing import Iterable

from customer_lifecycle.foundation.records import OrderHeader

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Resolve the purchasing identity of every order.

    Parameters
    ----------
    headers:
        Order headers from all source systems.
    primary_source:
        Source system whose pickup orders are enriched (the store system).
    linked_source:
        Source system holding the mirrored online order.
    link_order_type:
        Order type fragment that marks a pickup order on both sides.

    Notes
    -----
    The merge is a fixed-priority coalesce: the primary record's identity
    wins when present, otherwise the linked record's identity is used. When
    both are present and differ the primary value is kept and the conflict
    is counted in :attr:`conflicts`; resolution never fails.
    """

    def __init__(
        self,
        headers: Iterable[OrderHeader],
        primary_source: str = "xcenter",
        linked_source: str = "oroms",
        link_order_type: str = "bopis",
    ):
        self.primary_source = primary_source.lower()
        self.linked_source = linked_source.lower()
        self.link_order_type = link_order_type.lower()
        self.conflicts = 0
        self.duplicate_headers = 0

        self._headers: dict[str, OrderHeader] = {}
        for header in headers:
            existing = self._headers.get(header.order_id)
            if existing is None:
                self._headers[header.order_id] = header
                continue
            # Same order reported twice: keep the first record, fill a missing identity
            self.duplicate_headers += 1
            if existing.identity is None and header.identity is not None:
                self._headers[header.order_id] = OrderHeader(
                    order_id=existing.order_id,
                    identity=header.identity,
                    source=existing.source,
                    order_type=existing.order_type,
                    order_date=existing.order_date,
                    linked_order_id=existing.linked_order_id,
                )

        self._identities: dict[str, str | None] = {}
        self.suppressed_orders: set[str] = set()
        self._resolve()

    def _is_primary_pickup(self, header: OrderHeader) -> bool:
        return (
            header.source.lower() == self.primary_source
            and self.link_order_type in header.order_type.lower()
            and header.linked_order_id is not None
        )

    def _is_linked_pickup(self, header: OrderHeader) -> bool:
        return (
            header.source.lower() == self.linked_source
            and self.link_order_type in header.order_type.lower()
        )

    def _resolve(self) -> None:
        for order_id, header in self._headers.items():
            identity = header.identity
            if self._is_primary_pickup(header):
                linked = self._headers.get(header.linked_order_id)
                if linked is not None and self._is_linked_pickup(linked):
                    if (
                        identity is not None
                        and linked.identity is not None
                        and identity != linked.identity
                    ):
                        self.conflicts += 1
                    identity = identity if identity is not None else linked.identity
                    self.suppressed_orders.add(linked.order_id)
            self._identities[order_id] = identity

        # A suppressed order never also acts as a primary record
        for order_id in self.suppressed_orders:
            self._identities.pop(order_id, None)

        if self.conflicts:
            logger.warning(
                f"{self.conflicts} mirrored orders carry different identities; "
                f"kept the {self.primary_source} value"
            )
        if self.suppressed_orders:
            logger.info(
                f"Merged {len(self.suppressed_orders)} mirrored "
                f"{self.linked_source} pickup orders into {self.primary_source} orders"
            )

    def header(self, order_id: str) -> OrderHeader | None:
        return self._headers.get(order_id)

    def identity_for(self, order_id: str) -> str | None:
        """Return the resolved identity for an order, None when anonymous."""
        return self._identities.get(order_id)
