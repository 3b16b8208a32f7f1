"""Escrow ledger: the only code allowed to move held funds.

Functions here work inside the caller's transaction (see
``locking.transition_scope``); they flush so that version conflicts surface
before any payment instruction leaves the process, but never commit.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime

from consign.errors import (
    AlreadyFinalized,
    AlreadyReleased,
    NotEligibleForRelease,
    NotFound,
    StateConflict,
)
from consign.extensions import db
from consign.integrations.common import call_gateway
from consign.integrations.payments.factory import get_payments_provider
from consign.models import EscrowRecord, EscrowTransition, OrderItem, User
from consign.services.locking import flush_or_conflict, load_for_update
from consign.services.order_status import EscrowStatus, ItemStatus

logger = logging.getLogger(__name__)


def _parse_actor(actor) -> tuple[str, int | None]:
    if isinstance(actor, User):
        return actor.normalized_role, int(actor.id)
    if isinstance(actor, dict):
        actor_type = str(actor.get("type") or "system")
        actor_id_raw = actor.get("id")
        try:
            actor_id = int(actor_id_raw) if actor_id_raw is not None else None
        except (TypeError, ValueError):
            actor_id = None
        return actor_type, actor_id
    return "system", None


def _record_transition(
    record: EscrowRecord,
    from_status: str,
    to_status: str,
    *,
    actor=None,
    reason: str = "",
    metadata: dict | None = None,
) -> EscrowTransition:
    actor_type, actor_id = _parse_actor(actor)
    row = EscrowTransition(
        escrow_id=int(record.id),
        order_item_id=int(record.order_item_id),
        from_status=from_status,
        to_status=to_status,
        actor_type=actor_type[:32],
        actor_id=actor_id,
        reason=(reason or "")[:240],
        metadata_json=json.dumps(metadata or {})[:4000],
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    logger.info(
        "escrow_transition escrow_id=%s item_id=%s %s->%s actor=%s:%s",
        record.id,
        record.order_item_id,
        from_status or "-",
        to_status,
        actor_type,
        actor_id,
    )
    return row


def _load(order_item_id: int) -> EscrowRecord:
    record = (
        db.session.query(EscrowRecord)
        .filter(EscrowRecord.order_item_id == int(order_item_id))
        .with_for_update()
        .populate_existing()
        .first()
    )
    if record is None:
        raise NotFound(f"No escrow record for order item #{int(order_item_id)}")
    return record


def payout_reference(record: EscrowRecord) -> str:
    """Stable per escrow; doubles as the gateway's idempotency key."""
    return f"escrow:{int(record.id)}:payout"


def hold(item: OrderItem, *, held_minor: int, fee_minor: int, fee_bps: int = 0) -> EscrowRecord:
    """Open the escrow for a freshly created line. Amounts are fixed from here on."""
    now = datetime.utcnow()
    record = EscrowRecord(
        item=item,
        held_minor=int(held_minor),
        platform_fee_minor=int(fee_minor),
        seller_payout_minor=int(held_minor) - int(fee_minor),
        fee_bps=int(fee_bps),
        status=EscrowStatus.HOLDING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(record)
    db.session.flush()
    _record_transition(record, "", EscrowStatus.HOLDING, reason="checkout")
    return record


def stamp_delivered(order_item_id: int, *, when: datetime, actor=None) -> EscrowRecord:
    """Delivery is a physical fact; the money stays HOLDING until a release."""
    record = _load(order_item_id)
    record.delivered_at = when
    record.updated_at = when
    _record_transition(record, record.status, record.status, actor=actor, reason="delivered")
    return record


def release(order_item_id: int, released_by: User, *, expected_version: int | None = None) -> EscrowRecord:
    record = _load(order_item_id)
    if expected_version is not None and int(record.version) != int(expected_version):
        raise StateConflict()

    current = record.checked_status
    if current == EscrowStatus.RELEASED:
        raise AlreadyReleased()
    if current != EscrowStatus.HOLDING:
        raise NotEligibleForRelease(f"Escrow is {current.lower()}; only held funds can be released")

    item = load_for_update(OrderItem, record.order_item_id, label="Order item")
    if item.checked_status != ItemStatus.DELIVERED:
        raise NotEligibleForRelease(
            f"Item is {item.status.lower().replace('_', ' ')}; escrow is released only after delivery"
        )

    now = datetime.utcnow()
    record.status = EscrowStatus.RELEASED
    record.released_at = now
    record.released_by = int(released_by.id)
    record.updated_at = now
    _record_transition(
        record,
        EscrowStatus.HOLDING,
        EscrowStatus.RELEASED,
        actor=released_by,
        metadata={"payout_minor": int(record.seller_payout_minor), "fee_minor": int(record.platform_fee_minor)},
    )
    # The version-guarded UPDATE must win before money moves.
    flush_or_conflict()

    # The payout goes out before the caller commits. If that commit fails the
    # record stays HOLDING and a later release repeats the instruction under
    # the same reference, which the gateway treats as the same transfer.
    provider = get_payments_provider()
    result = call_gateway(
        "seller payout",
        provider.payout,
        reference=payout_reference(record),
        amount_minor=int(record.seller_payout_minor),
        payee_id=int(item.seller_id),
        metadata={
            "order_item_id": int(item.id),
            "order_id": int(item.order_id),
            "recipient_code": item.seller.payout_recipient_code or "",
            "reason": f"Escrow release for order #{int(item.order_id)}",
        },
    )
    record.payout_reference = (result.reference or "")[:128]
    return record


def _return_to_buyer(order_item_id: int, actor, *, target: str, reason: str) -> EscrowRecord:
    record = _load(order_item_id)
    current = record.checked_status
    if current != EscrowStatus.HOLDING:
        raise AlreadyFinalized(f"Escrow already {current.lower()}")

    item = record.item
    now = datetime.utcnow()
    record.status = target
    record.refunded_at = now
    record.refunded_by = int(actor.id) if isinstance(actor, User) else None
    record.updated_at = now
    _record_transition(
        record,
        EscrowStatus.HOLDING,
        target,
        actor=actor,
        reason=reason,
        metadata={"refund_minor": int(record.held_minor)},
    )
    flush_or_conflict()

    provider = get_payments_provider()
    result = call_gateway(
        "buyer refund",
        provider.refund,
        reference=f"escrow:{int(record.id)}:{target.lower()}",
        amount_minor=int(record.held_minor),
        payer_id=int(item.order.buyer_id),
        original_reference=item.order.payment_reference,
        metadata={"order_item_id": int(item.id), "reason": reason},
    )
    record.refund_reference = (result.reference or "")[:128]
    return record


def refund(order_item_id: int, refunded_by: User, *, reason: str = "") -> EscrowRecord:
    return _return_to_buyer(order_item_id, refunded_by, target=EscrowStatus.REFUNDED, reason=reason or "refund")


def cancel(order_item_id: int, cancelled_by: User | None = None, *, reason: str = "") -> EscrowRecord:
    return _return_to_buyer(order_item_id, cancelled_by, target=EscrowStatus.CANCELLED, reason=reason or "cancellation")


def history(order_item_id: int) -> list[EscrowTransition]:
    return (
        EscrowTransition.query.filter_by(order_item_id=int(order_item_id))
        .order_by(EscrowTransition.id.asc())
        .all()
    )
