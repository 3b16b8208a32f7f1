from __future__ import annotations

import logging
import math
from datetime import datetime

from flask import current_app
from sqlalchemy.orm import aliased, contains_eager, selectinload

from consign.errors import Forbidden, NotFound, ValidationError
from consign.extensions import db
from consign.models import EscrowRecord, Order, OrderItem, User
from consign.services import escrow_service, fulfillment_service
from consign.services.locking import transition_scope
from consign.services.order_status import EscrowStatus, ItemStatus
from consign.utils.commission import money_minor_to_major

logger = logging.getLogger(__name__)


def _require_admin(user: User | None) -> User:
    if user is None or user.normalized_role != "admin":
        raise Forbidden("Administrator role required")
    return user


def _clamp_page(page, size) -> tuple[int, int]:
    max_size = int(current_app.config.get("AWAITING_RELEASE_MAX_PAGE_SIZE", 100))
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        size = int(size)
    except (TypeError, ValueError):
        size = 20
    return max(1, page), max(1, min(size, max_size))


def _queue_row(record: EscrowRecord, buyer: User, seller: User) -> dict:
    item = record.item
    order = item.order
    return {
        "transaction_id": int(record.id),
        "version": int(record.version or 0),
        "order_id": int(order.id),
        "order_item_id": int(item.id),
        "product_title": item.product_title or "",
        "product_image_url": item.product_image_url or "",
        "buyer": buyer.to_public_dict(),
        "seller": seller.to_public_dict(),
        "held": money_minor_to_major(record.held_minor),
        "platform_fee": money_minor_to_major(record.platform_fee_minor),
        "seller_payout": money_minor_to_major(record.seller_payout_minor),
        "fee_bps": int(record.fee_bps or 0),
        "delivered_at": record.delivered_at.isoformat() if record.delivered_at else None,
        "ordered_at": order.created_at.isoformat() if order.created_at else None,
    }


def _ledger_query():
    """Escrow records with their line, order, buyer and seller in one round trip."""
    buyer = aliased(User)
    seller = aliased(User)
    return (
        db.session.query(EscrowRecord, buyer, seller)
        .join(EscrowRecord.item)
        .join(OrderItem.order)
        .join(buyer, buyer.id == Order.buyer_id)
        .join(seller, seller.id == OrderItem.seller_id)
        .options(contains_eager(EscrowRecord.item).contains_eager(OrderItem.order))
    )


def _page_of(q, page: int, size: int, row, *order_by) -> dict:
    total = q.order_by(None).count()
    rows = q.order_by(*order_by).offset((page - 1) * size).limit(size).all()
    return {
        "items": [row(record, b, s) for record, b, s in rows],
        "page": page,
        "size": size,
        "total": int(total),
        "pages": int(math.ceil(total / size)) if total else 0,
    }


def list_awaiting_release(page=1, size=20) -> dict:
    """Delivered lines whose money is still held, newest delivery first."""
    page, size = _clamp_page(page, size)
    q = (
        _ledger_query()
        .filter(EscrowRecord.status == EscrowStatus.HOLDING)
        .filter(OrderItem.status == ItemStatus.DELIVERED)
    )
    return _page_of(q, page, size, _queue_row, EscrowRecord.delivered_at.desc(), EscrowRecord.id.desc())


def _transaction_row(record: EscrowRecord, buyer: User, seller: User) -> dict:
    row = _queue_row(record, buyer, seller)
    row.update(
        {
            "status": record.checked_status,
            "item_status": record.item.checked_status,
            "released_at": record.released_at.isoformat() if record.released_at else None,
            "refunded_at": record.refunded_at.isoformat() if record.refunded_at else None,
            "payout_reference": record.payout_reference or "",
            "refund_reference": record.refund_reference or "",
        }
    )
    return row


def list_transactions(page=1, size=20, status: str | None = None) -> dict:
    """Every escrow record, newest first, optionally narrowed to one escrow status."""
    page, size = _clamp_page(page, size)
    q = _ledger_query()
    if status:
        wanted = (status or "").strip().upper()
        if wanted not in EscrowStatus.ALL:
            raise ValidationError(f"Unknown escrow status filter {status!r}")
        q = q.filter(EscrowRecord.status == wanted)
    return _page_of(q, page, size, _transaction_row, EscrowRecord.created_at.desc(), EscrowRecord.id.desc())


class Problem:
    RELEASE_OVERDUE = "RELEASE_OVERDUE"
    HELD_FOR_VOIDED_ITEM = "HELD_FOR_VOIDED_ITEM"
    RELEASED_BEFORE_DELIVERY = "RELEASED_BEFORE_DELIVERY"
    MISSING_GATEWAY_REFERENCE = "MISSING_GATEWAY_REFERENCE"


def _overdue_cutoff() -> datetime:
    return datetime.utcnow() - fulfillment_service.dispute_window()


def _problem_of(record: EscrowRecord) -> str:
    escrow_status = record.checked_status
    item_status = record.item.checked_status
    if escrow_status == EscrowStatus.HOLDING and item_status in ItemStatus.VOIDED:
        return Problem.HELD_FOR_VOIDED_ITEM
    if escrow_status == EscrowStatus.RELEASED and item_status != ItemStatus.DELIVERED:
        return Problem.RELEASED_BEFORE_DELIVERY
    if escrow_status == EscrowStatus.HOLDING:
        return Problem.RELEASE_OVERDUE
    return Problem.MISSING_GATEWAY_REFERENCE


def list_problem_transactions(page=1, size=20) -> dict:
    """Records an administrator has to look at by hand.

    * delivered, held past the dispute window and still not released
    * held although the line was cancelled or refunded
    * released although the line was never delivered
    * finalized without the gateway reference of the money movement
    """
    page, size = _clamp_page(page, size)
    cutoff = _overdue_cutoff()
    no_payout_ref = db.or_(EscrowRecord.payout_reference.is_(None), EscrowRecord.payout_reference == "")
    no_refund_ref = db.or_(EscrowRecord.refund_reference.is_(None), EscrowRecord.refund_reference == "")
    q = _ledger_query().filter(
        db.or_(
            db.and_(
                EscrowRecord.status == EscrowStatus.HOLDING,
                OrderItem.status == ItemStatus.DELIVERED,
                EscrowRecord.delivered_at < cutoff,
            ),
            db.and_(
                EscrowRecord.status == EscrowStatus.HOLDING,
                OrderItem.status.in_(sorted(ItemStatus.VOIDED)),
            ),
            db.and_(
                EscrowRecord.status == EscrowStatus.RELEASED,
                db.or_(OrderItem.status != ItemStatus.DELIVERED, no_payout_ref),
            ),
            db.and_(
                EscrowRecord.status.in_([EscrowStatus.REFUNDED, EscrowStatus.CANCELLED]),
                no_refund_ref,
            ),
        )
    )

    def _row(record: EscrowRecord, buyer: User, seller: User) -> dict:
        row = _transaction_row(record, buyer, seller)
        row["problem"] = _problem_of(record)
        return row

    return _page_of(q, page, size, _row, EscrowRecord.updated_at.asc(), EscrowRecord.id.asc())


def list_orders_for_admin(page=1, size=20, status: str | None = None) -> dict:
    """All orders, newest first, optionally by derived order status.

    Order status is not stored, so the status filter runs on the derived
    value. A candidate must have at least one line in the wanted status,
    which narrows the rows loaded.
    """
    page, size = _clamp_page(page, size)
    q = Order.query.options(
        selectinload(Order.buyer),
        selectinload(Order.items).selectinload(OrderItem.escrow),
    )
    wanted = fulfillment_service.parse_status_filter(status) if status else None
    if wanted:
        q = q.filter(Order.items.any(OrderItem.status == wanted))
    orders = q.order_by(Order.created_at.desc(), Order.id.desc()).all()
    if wanted:
        orders = [o for o in orders if o.status == wanted]

    total = len(orders)
    window = orders[(page - 1) * size:page * size]
    items = []
    for order in window:
        row = order.to_dict(include_items=False)
        row["buyer"] = order.buyer.to_public_dict()
        row["item_count"] = len(order.items)
        items.append(row)
    return {
        "items": items,
        "page": page,
        "size": size,
        "total": total,
        "pages": int(math.ceil(total / size)) if total else 0,
    }


def _record_by_transaction(transaction_id) -> EscrowRecord:
    try:
        tx_id = int(transaction_id)
    except (TypeError, ValueError):
        raise NotFound("Transaction not found")
    record = db.session.get(EscrowRecord, tx_id)
    if record is None:
        raise NotFound(f"Transaction #{tx_id} not found")
    return record


def release_by_admin(transaction_id, admin: User, expected_version: int | None = None) -> EscrowRecord:
    """Pay the seller for one delivered line, attributed to ``admin``.

    ``expected_version`` is the record version the administrator was looking
    at; a mismatch means someone else acted first.
    """
    _require_admin(admin)
    order_item_id = int(_record_by_transaction(transaction_id).order_item_id)
    with transition_scope():
        record = escrow_service.release(order_item_id, admin, expected_version=expected_version)
    logger.info(
        "escrow_released_by_admin tx=%s item_id=%s admin_id=%s payout_minor=%s ref=%s",
        record.id,
        record.order_item_id,
        admin.id,
        record.seller_payout_minor,
        record.payout_reference,
    )
    return record


def refund_by_admin(transaction_id, admin: User, reason: str = "") -> EscrowRecord:
    _require_admin(admin)
    record = _record_by_transaction(transaction_id)
    fulfillment_service.refund_item(int(record.order_item_id), admin, reason=reason)
    db.session.refresh(record)
    logger.info(
        "escrow_refunded_by_admin tx=%s item_id=%s admin_id=%s refund_minor=%s",
        record.id,
        record.order_item_id,
        admin.id,
        record.held_minor,
    )
    return record
