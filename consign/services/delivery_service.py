from __future__ import annotations

import json
import logging
from datetime import datetime

from consign.errors import Forbidden, InvalidTransition, MissingProof
from consign.extensions import db
from consign.models import DeliveryProof, OrderItem, User
from consign.services import escrow_service
from consign.services.fulfillment_service import human_status, normalize_photos, record_item_transition
from consign.services.locking import load_for_update, transition_scope
from consign.services.order_status import ItemStatus

logger = logging.getLogger(__name__)


def confirm_delivery(order_item_id: int, courier: User, photos) -> DeliveryProof:
    """Courier attests the hand-over to the buyer.

    The item becomes DELIVERED and the escrow gets its delivered-at stamp,
    which puts it in the administrators' release queue. Escrow status is left
    HOLDING: releasing money is a separate, admin-attested step.
    """
    if courier is None or courier.normalized_role != "shipper":
        raise Forbidden("Only shippers can confirm deliveries")

    with transition_scope():
        item = load_for_update(OrderItem, order_item_id, label="Order item")
        current = item.checked_status
        if current != ItemStatus.OUT_FOR_DELIVERY:
            raise InvalidTransition(f"This item is not out for delivery (currently {human_status(current)})")
        if item.courier_id is not None and int(item.courier_id) != int(courier.id):
            raise Forbidden("This item was dispatched to another courier")

        cleaned = normalize_photos(photos)
        if not cleaned:
            raise MissingProof("Please take at least one photo as proof of delivery")

        now = datetime.utcnow()
        proof = DeliveryProof(
            order_item_id=int(item.id),
            kind=DeliveryProof.KIND_DELIVERY,
            photo_urls_json=json.dumps(cleaned),
            submitted_by=int(courier.id),
            submitted_at=now,
        )
        db.session.add(proof)
        record_item_transition(item, ItemStatus.DELIVERED, actor=courier, reason="delivered with photo proof")
        escrow_service.stamp_delivered(int(item.id), when=now, actor=courier)

    logger.info(
        "delivery_confirmed item_id=%s order_id=%s courier_id=%s photos=%s",
        item.id,
        item.order_id,
        courier.id,
        len(cleaned),
    )
    return proof


def latest_proof(order_item_id: int, kind: str = DeliveryProof.KIND_DELIVERY) -> DeliveryProof | None:
    return (
        DeliveryProof.query.filter_by(order_item_id=int(order_item_id), kind=kind)
        .order_by(DeliveryProof.id.desc())
        .first()
    )
