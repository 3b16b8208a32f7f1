"""Fulfillment and escrow status vocabularies.

Both status sets are closed: anything read back from storage that is not a
member raises ``DataIntegrityError`` instead of being coerced for display.
The transition tables here are the only place the item graph is defined.
"""
from __future__ import annotations

from typing import Iterable

from consign.errors import DataIntegrityError


class ItemStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    AWAITING_PICKUP = "AWAITING_PICKUP"
    IN_WAREHOUSE = "IN_WAREHOUSE"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    HAPPY_PATH = (
        PENDING,
        PROCESSING,
        AWAITING_PICKUP,
        IN_WAREHOUSE,
        OUT_FOR_DELIVERY,
        DELIVERED,
    )
    ALL = HAPPY_PATH + (CANCELLED, REFUNDED)

    VOIDED = {CANCELLED, REFUNDED}
    CANCELLABLE = {PENDING, PROCESSING}

    ALLOWED = {
        PENDING: {PROCESSING, CANCELLED, REFUNDED},
        PROCESSING: {AWAITING_PICKUP, CANCELLED, REFUNDED},
        AWAITING_PICKUP: {IN_WAREHOUSE, REFUNDED},
        IN_WAREHOUSE: {OUT_FOR_DELIVERY, REFUNDED},
        OUT_FOR_DELIVERY: {DELIVERED, REFUNDED},
        # Post-delivery refund is further bounded by the dispute window.
        DELIVERED: {REFUNDED},
        CANCELLED: set(),
        REFUNDED: set(),
    }


class EscrowStatus:
    HOLDING = "HOLDING"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"

    ALL = (HOLDING, RELEASED, REFUNDED, CANCELLED)
    FINAL = {RELEASED, REFUNDED, CANCELLED}

    ALLOWED = {
        HOLDING: {RELEASED, REFUNDED, CANCELLED},
        RELEASED: set(),
        REFUNDED: set(),
        CANCELLED: set(),
    }


def parse_item_status(value: str | None) -> str:
    status = (value or "").strip().upper()
    if status not in ItemStatus.ALL:
        raise DataIntegrityError(f"Unrecognized order item status {value!r}")
    return status


def parse_escrow_status(value: str | None) -> str:
    status = (value or "").strip().upper()
    if status not in EscrowStatus.ALL:
        raise DataIntegrityError(f"Unrecognized escrow status {value!r}")
    return status


def can_transition(current: str, target: str) -> bool:
    return parse_item_status(target) in ItemStatus.ALLOWED[parse_item_status(current)]


def rank(status: str) -> int:
    return ItemStatus.HAPPY_PATH.index(parse_item_status(status))


def derive_order_status(statuses: Iterable[str]) -> str:
    """Weakest-link status of an order from the statuses of its lines.

    * every line DELIVERED -> DELIVERED
    * every line CANCELLED/REFUNDED -> REFUNDED if any was refunded, else CANCELLED
    * otherwise voided lines are ignored and the least advanced remaining
      line decides.
    """
    parsed = [parse_item_status(s) for s in statuses]
    if not parsed:
        raise DataIntegrityError("Order has no items")

    if all(s in ItemStatus.VOIDED for s in parsed):
        if ItemStatus.REFUNDED in parsed:
            return ItemStatus.REFUNDED
        return ItemStatus.CANCELLED

    live = [s for s in parsed if s not in ItemStatus.VOIDED]
    return min(live, key=rank)


def derive_escrow_status(statuses: Iterable[str]) -> str:
    parsed = [parse_escrow_status(s) for s in statuses]
    if not parsed:
        raise DataIntegrityError("Order has no escrow records")
    for candidate in (EscrowStatus.HOLDING, EscrowStatus.RELEASED, EscrowStatus.REFUNDED):
        if candidate in parsed:
            return candidate
    return EscrowStatus.CANCELLED
