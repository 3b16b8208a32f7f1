from __future__ import annotations

from datetime import datetime
import json

from consign.extensions import db
from consign.services.order_status import (
    EscrowStatus,
    ItemStatus,
    derive_escrow_status,
    derive_order_status,
    parse_escrow_status,
    parse_item_status,
)
from consign.utils.commission import money_minor_to_major


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Copy taken at checkout; later address edits never reach the order.
    shipping_address_json = db.Column(db.Text, nullable=False, default="{}")

    payment_method = db.Column(db.String(16), nullable=False)
    payment_reference = db.Column(db.String(128), nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)

    items_total_minor = db.Column(db.BigInteger, nullable=False, default=0)
    shipping_total_minor = db.Column(db.BigInteger, nullable=False, default=0)
    platform_fee_total_minor = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    buyer = db.relationship("User", foreign_keys=[buyer_id])
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="save-update, merge",
    )

    @property
    def status(self) -> str:
        return derive_order_status(i.status for i in self.items)

    @property
    def escrow_status(self) -> str:
        return derive_escrow_status(i.escrow.status for i in self.items if i.escrow is not None)

    @property
    def grand_total_minor(self) -> int:
        return int(self.items_total_minor or 0) + int(self.shipping_total_minor or 0)

    def shipping_address(self) -> dict:
        try:
            parsed = json.loads(self.shipping_address_json or "{}")
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def to_dict(self, include_items: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "buyer_id": int(self.buyer_id),
            "status": self.status,
            "escrow_status": self.escrow_status,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference or "",
            "notes": self.notes or "",
            "shipping_address": self.shipping_address(),
            "items_total": money_minor_to_major(self.items_total_minor),
            "shipping_total": money_minor_to_major(self.shipping_total_minor),
            "platform_fee_total": money_minor_to_major(self.platform_fee_total_minor),
            "grand_total": money_minor_to_major(self.grand_total_minor),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            payload["items"] = [i.to_dict() for i in self.items]
        return payload


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Product snapshot at purchase time
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_title = db.Column(db.String(160), nullable=False, default="")
    product_image_url = db.Column(db.String(1024), nullable=True)
    product_condition = db.Column(db.String(32), nullable=True)
    product_category = db.Column(db.String(64), nullable=True)

    price_minor = db.Column(db.BigInteger, nullable=False, default=0)
    shipping_fee_minor = db.Column(db.BigInteger, nullable=False, default=0)

    status = db.Column(db.String(24), nullable=False, default=ItemStatus.PENDING, index=True)
    notes = db.Column(db.String(500), nullable=True)

    # Shipper who dispatched the item for delivery
    courier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    order = db.relationship("Order", back_populates="items")
    seller = db.relationship("User", foreign_keys=[seller_id])
    escrow = db.relationship("EscrowRecord", back_populates="item", uselist=False)
    proofs = db.relationship("DeliveryProof", back_populates="item", order_by="DeliveryProof.id")

    @property
    def checked_status(self) -> str:
        return parse_item_status(self.status)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "seller_id": int(self.seller_id),
            "product": {
                "id": int(self.product_id),
                "title": self.product_title or "",
                "image_url": self.product_image_url or "",
                "condition": self.product_condition or "",
                "category": self.product_category or "",
            },
            "price": money_minor_to_major(self.price_minor),
            "shipping_fee": money_minor_to_major(self.shipping_fee_minor),
            "status": self.checked_status,
            "notes": self.notes or "",
            "courier_id": int(self.courier_id) if self.courier_id is not None else None,
            "escrow": self.escrow.to_dict() if self.escrow is not None else None,
            "version": int(self.version or 0),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class EscrowRecord(db.Model):
    """One per order line; shown to administrators as a "transaction"."""

    __tablename__ = "escrow_records"

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, unique=True)

    held_minor = db.Column(db.BigInteger, nullable=False)
    platform_fee_minor = db.Column(db.BigInteger, nullable=False)
    seller_payout_minor = db.Column(db.BigInteger, nullable=False)
    fee_bps = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=EscrowStatus.HOLDING, index=True)

    delivered_at = db.Column(db.DateTime, nullable=True, index=True)
    released_at = db.Column(db.DateTime, nullable=True)
    released_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    refunded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    payout_reference = db.Column(db.String(128), nullable=True)
    refund_reference = db.Column(db.String(128), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    item = db.relationship("OrderItem", back_populates="escrow")

    @property
    def checked_status(self) -> str:
        return parse_escrow_status(self.status)

    def to_dict(self) -> dict:
        return {
            "transaction_id": int(self.id),
            "order_item_id": int(self.order_item_id),
            "status": self.checked_status,
            "held": money_minor_to_major(self.held_minor),
            "platform_fee": money_minor_to_major(self.platform_fee_minor),
            "seller_payout": money_minor_to_major(self.seller_payout_minor),
            "fee_bps": int(self.fee_bps or 0),
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "released_at": self.released_at.isoformat() if self.released_at else None,
            "released_by": int(self.released_by) if self.released_by is not None else None,
            "refunded_at": self.refunded_at.isoformat() if self.refunded_at else None,
            "payout_reference": self.payout_reference or "",
            "refund_reference": self.refund_reference or "",
            "version": int(self.version or 0),
        }


class DeliveryProof(db.Model):
    __tablename__ = "delivery_proofs"

    KIND_PICKUP = "PICKUP"
    KIND_DELIVERY = "DELIVERY"

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, default=KIND_DELIVERY)
    photo_urls_json = db.Column(db.Text, nullable=False)
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    item = db.relationship("OrderItem", back_populates="proofs")

    def photo_urls(self) -> list[str]:
        try:
            parsed = json.loads(self.photo_urls_json or "[]")
        except ValueError:
            return []
        return [str(p) for p in parsed] if isinstance(parsed, list) else []

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_item_id": int(self.order_item_id),
            "kind": self.kind,
            "photos": self.photo_urls(),
            "submitted_by": int(self.submitted_by),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


class OrderItemTransition(db.Model):
    __tablename__ = "order_item_transitions"

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    from_status = db.Column(db.String(24), nullable=False, default="")
    to_status = db.Column(db.String(24), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(32), nullable=False, default="system")
    reason = db.Column(db.String(240), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_item_id": int(self.order_item_id),
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "actor_role": self.actor_role or "",
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
