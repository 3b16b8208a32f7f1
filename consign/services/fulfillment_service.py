from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta

from flask import current_app

from consign.errors import Forbidden, InvalidTransition, MissingProof, NotFound, ValidationError
from consign.extensions import db
from consign.models import DeliveryProof, Order, OrderItem, OrderItemTransition, User
from consign.services import escrow_service
from consign.services.locking import load_for_update, transition_scope
from consign.services.order_status import ItemStatus, parse_item_status

logger = logging.getLogger(__name__)

_HUMAN = {
    ItemStatus.PENDING: "pending",
    ItemStatus.PROCESSING: "processing",
    ItemStatus.AWAITING_PICKUP: "awaiting pickup",
    ItemStatus.IN_WAREHOUSE: "in the warehouse",
    ItemStatus.OUT_FOR_DELIVERY: "out for delivery",
    ItemStatus.DELIVERED: "delivered",
    ItemStatus.CANCELLED: "cancelled",
    ItemStatus.REFUNDED: "refunded",
}


def human_status(status: str) -> str:
    return _HUMAN.get(status, status.lower())


def _require_role(user: User | None, *roles: str) -> User:
    if user is None or user.normalized_role not in roles:
        raise Forbidden(f"Requires role: {' or '.join(roles)}")
    return user


def _require_seller_of(item: OrderItem, user: User | None) -> User:
    _require_role(user, "seller")
    if int(item.seller_id) != int(user.id):
        raise Forbidden("Only the seller of this item can do that")
    return user


def normalize_photos(photos) -> list[str]:
    if photos is None:
        return []
    if not isinstance(photos, (list, tuple)):
        raise ValidationError("photos must be a list of image references")
    cleaned = []
    for p in photos:
        if not isinstance(p, str) or not p.strip():
            raise ValidationError("Each photo must be a non-empty image reference")
        cleaned.append(p.strip()[:1024])
    return cleaned


def record_item_transition(item: OrderItem, target: str, *, actor: User | None, reason: str = "") -> OrderItemTransition:
    """Apply one edge of the item graph and write its audit row.

    Never collapses steps: ``target`` must be directly reachable from the
    item's current status.
    """
    current = item.checked_status
    target = parse_item_status(target)
    if target not in ItemStatus.ALLOWED[current]:
        raise InvalidTransition(f"Item is {human_status(current)} and cannot become {human_status(target)}")

    now = datetime.utcnow()
    row = OrderItemTransition(
        order_item_id=int(item.id),
        from_status=current,
        to_status=target,
        actor_id=int(actor.id) if actor is not None else None,
        actor_role=actor.normalized_role if actor is not None else "system",
        reason=(reason or "")[:240],
        created_at=now,
    )
    item.status = target
    item.updated_at = now
    db.session.add(row)
    db.session.add(item)
    logger.info(
        "order_item_transition item_id=%s order_id=%s %s->%s actor=%s",
        item.id,
        item.order_id,
        current,
        target,
        actor.id if actor is not None else "system",
    )
    return row


def _expect(item: OrderItem, status: str) -> None:
    current = item.checked_status
    if current != status:
        raise InvalidTransition(f"This item is not {human_status(status)} (currently {human_status(current)})")


def _advance(item_id: int, expected: str, target: str, actor: User, *, authorize, reason: str = "", before=None) -> OrderItem:
    with transition_scope():
        item = load_for_update(OrderItem, item_id, label="Order item")
        authorize(item, actor)
        _expect(item, expected)
        if before is not None:
            before(item)
        record_item_transition(item, target, actor=actor, reason=reason)
    return item


def mark_processing(item_id: int, seller: User) -> OrderItem:
    return _advance(item_id, ItemStatus.PENDING, ItemStatus.PROCESSING, seller, authorize=lambda i, u: _require_seller_of(i, u), reason="seller accepted")


def request_pickup(item_id: int, seller: User) -> OrderItem:
    return _advance(
        item_id,
        ItemStatus.PROCESSING,
        ItemStatus.AWAITING_PICKUP,
        seller,
        authorize=lambda i, u: _require_seller_of(i, u),
        reason="pickup requested",
    )


def confirm_pickup(item_id: int, courier: User, photos) -> OrderItem:
    """Courier collected the item from the seller and brought it to the warehouse."""
    _require_role(courier, "shipper")
    cleaned = normalize_photos(photos)

    def _attach_proof(item: OrderItem) -> None:
        if not cleaned:
            raise MissingProof("Please take at least one photo as proof of pickup")
        db.session.add(
            DeliveryProof(
                order_item_id=int(item.id),
                kind=DeliveryProof.KIND_PICKUP,
                photo_urls_json=json.dumps(cleaned),
                submitted_by=int(courier.id),
                submitted_at=datetime.utcnow(),
            )
        )

    return _advance(
        item_id,
        ItemStatus.AWAITING_PICKUP,
        ItemStatus.IN_WAREHOUSE,
        courier,
        authorize=lambda i, u: None,
        reason="received at warehouse",
        before=_attach_proof,
    )


def dispatch_item(item_id: int, courier: User) -> OrderItem:
    _require_role(courier, "shipper")

    def _assign(item: OrderItem) -> None:
        item.courier_id = int(courier.id)

    return _advance(
        item_id,
        ItemStatus.IN_WAREHOUSE,
        ItemStatus.OUT_FOR_DELIVERY,
        courier,
        authorize=lambda i, u: None,
        reason="dispatched for delivery",
        before=_assign,
    )


def _authorize_cancel(item: OrderItem, actor: User | None) -> None:
    if actor is None:
        raise Forbidden()
    role = actor.normalized_role
    if role == "admin":
        return
    if int(item.order.buyer_id) == int(actor.id) or int(item.seller_id) == int(actor.id):
        return
    raise Forbidden("Only the buyer, the seller or an administrator can cancel this item")


def _cancel_in_scope(item: OrderItem, actor: User, reason: str) -> None:
    current = item.checked_status
    if current not in ItemStatus.CANCELLABLE:
        raise InvalidTransition(
            f"Item is {human_status(current)}; cancellation is only possible before pickup is requested"
        )
    record_item_transition(item, ItemStatus.CANCELLED, actor=actor, reason=reason or "cancelled")
    escrow_service.cancel(int(item.id), actor, reason=reason)


def cancel_item(item_id: int, actor: User, reason: str = "") -> OrderItem:
    with transition_scope():
        item = load_for_update(OrderItem, item_id, label="Order item")
        _authorize_cancel(item, actor)
        _cancel_in_scope(item, actor, reason)
    return item


def cancel_order(order_id: int, actor: User, reason: str = "") -> Order:
    """Cancel every line of an order, or none of them."""
    with transition_scope():
        order = load_for_update(Order, order_id, label="Order")
        items = [load_for_update(OrderItem, i.id, label="Order item") for i in order.items]
        for item in items:
            _authorize_cancel(item, actor)
        for item in items:
            _cancel_in_scope(item, actor, reason)
    return order


def dispute_window() -> timedelta:
    return timedelta(days=int(current_app.config.get("DISPUTE_WINDOW_DAYS", 7)))


def refund_item(item_id: int, admin: User, reason: str = "") -> OrderItem:
    """Manual administrator override; after delivery only within the dispute window."""
    _require_role(admin, "admin")
    with transition_scope():
        item = load_for_update(OrderItem, item_id, label="Order item")
        current = item.checked_status
        if current in ItemStatus.VOIDED:
            raise InvalidTransition(f"Item is already {human_status(current)}")
        if current == ItemStatus.DELIVERED:
            delivered_at = item.escrow.delivered_at if item.escrow is not None else None
            if delivered_at is None or datetime.utcnow() - delivered_at > dispute_window():
                raise InvalidTransition("The dispute window for this delivered item has closed")
        record_item_transition(item, ItemStatus.REFUNDED, actor=admin, reason=reason or "refunded")
        escrow_service.refund(int(item.id), admin, reason=reason)
    return item


def list_pickup_items_for_courier(courier_id: int) -> list[OrderItem]:
    """Work board for one shipper: open pickups plus what they currently carry."""
    carrying = db.and_(
        OrderItem.status.in_([ItemStatus.IN_WAREHOUSE, ItemStatus.OUT_FOR_DELIVERY]),
        db.or_(OrderItem.courier_id.is_(None), OrderItem.courier_id == int(courier_id)),
    )
    return (
        OrderItem.query.filter(db.or_(OrderItem.status == ItemStatus.AWAITING_PICKUP, carrying))
        .order_by(OrderItem.updated_at.asc(), OrderItem.id.asc())
        .all()
    )


def list_items_by_status(status: str, courier_id: int | None = None) -> list[OrderItem]:
    wanted = parse_status_filter(status)
    q = OrderItem.query.filter(OrderItem.status == wanted)
    if courier_id is not None:
        q = q.filter(OrderItem.courier_id == int(courier_id))
    return q.order_by(OrderItem.updated_at.asc(), OrderItem.id.asc()).all()


def parse_status_filter(status: str | None) -> str:
    wanted = (status or "").strip().upper()
    if wanted not in ItemStatus.ALL:
        raise ValidationError(f"Unknown status filter {status!r}")
    return wanted


def item_history(item_id: int) -> list[OrderItemTransition]:
    if db.session.get(OrderItem, int(item_id)) is None:
        raise NotFound(f"Order item #{int(item_id)} not found")
    return (
        OrderItemTransition.query.filter_by(order_item_id=int(item_id))
        .order_by(OrderItemTransition.id.asc())
        .all()
    )
