from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime

from flask import current_app

from consign.errors import (
    EmptyCart,
    Forbidden,
    InvalidAddress,
    NotFound,
    ProductUnavailable,
    ValidationError,
)
from consign.extensions import db
from consign.integrations.common import call_gateway
from consign.integrations.payments.factory import get_payments_provider
from consign.models import Address, Listing, ListingStatus, Order, OrderItem, OrderItemTransition, User
from consign.services import escrow_service
from consign.services.fulfillment_service import parse_status_filter
from consign.services.locking import transition_scope
from consign.services.order_status import ItemStatus
from consign.utils.commission import compute_sale_split_minor

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("COD", "STRIPE_CARD")


def _parse_cart(items) -> list[dict]:
    if not items:
        raise EmptyCart()
    if not isinstance(items, (list, tuple)):
        raise ValidationError("items must be a list")
    parsed = []
    seen = set()
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object with a productId")
        pid = raw.get("productId", raw.get("product_id"))
        try:
            pid = int(pid)
        except (TypeError, ValueError):
            raise ValidationError("Each item needs a numeric productId")
        if pid in seen:
            raise ValidationError(f"Product #{pid} appears more than once in the cart")
        seen.add(pid)
        notes = raw.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be text")
        parsed.append({"product_id": pid, "notes": (notes or "").strip()[:500] or None})
    return parsed


def _checkout_listing(product_id: int, buyer: User) -> Listing:
    listing = db.session.get(Listing, int(product_id))
    if listing is None:
        raise ProductUnavailable(f"Product #{int(product_id)} does not exist", details={"product_id": int(product_id)})
    if int(listing.seller_id) == int(buyer.id):
        raise ProductUnavailable("You cannot buy your own listing", details={"product_id": int(product_id)})
    reason = listing.unavailable_reason()
    if reason:
        raise ProductUnavailable(reason, details={"product_id": int(product_id), "status": listing.status})
    return listing


def create_order(
    buyer: User,
    shipping_address_id,
    items,
    payment_method: str,
    notes: str | None = None,
    payment_reference: str | None = None,
) -> Order:
    """Checkout: one order, one line and one held escrow per product.

    Card orders carry the reference the buyer paid under at the gateway's
    hosted checkout; capture verifies that charge covers the grand total.
    Cash-on-delivery orders are registered with the gateway without a charge.
    All or nothing: if the payment step fails nothing is persisted.
    """
    if buyer is None:
        raise Forbidden()
    cart = _parse_cart(items)
    method = (payment_method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of {', '.join(PAYMENT_METHODS)}")

    paid_reference = (payment_reference or "").strip() if isinstance(payment_reference, str) else ""
    if method == "COD":
        paid_reference = ""
    elif not paid_reference:
        raise ValidationError("paymentReference is required for card payments")
    elif len(paid_reference) > 128:
        raise ValidationError("paymentReference is too long")

    try:
        address_id = int(shipping_address_id)
    except (TypeError, ValueError):
        raise InvalidAddress("shippingAddressId is required")

    shipping_fee_minor = int(current_app.config.get("SHIPPING_FEE_MINOR", 0))

    with transition_scope():
        address = db.session.get(Address, address_id)
        if address is None or int(address.user_id) != int(buyer.id):
            raise InvalidAddress()

        listings = [_checkout_listing(entry["product_id"], buyer) for entry in cart]

        now = datetime.utcnow()
        order = Order(
            buyer_id=int(buyer.id),
            shipping_address_json=json.dumps(address.snapshot()),
            payment_method=method,
            notes=(notes or "").strip()[:500] or None,
            created_at=now,
        )
        db.session.add(order)
        db.session.flush()

        items_total = 0
        fee_total = 0
        for entry, listing in zip(cart, listings):
            seller = db.session.get(User, int(listing.seller_id))
            split = compute_sale_split_minor(
                price_minor=int(listing.price_minor),
                fee_tier=seller.fee_tier if seller is not None else None,
            )
            item = OrderItem(
                order=order,
                seller_id=int(listing.seller_id),
                product_id=int(listing.id),
                product_title=listing.title,
                product_image_url=listing.image_url,
                product_condition=listing.condition,
                product_category=listing.category,
                price_minor=split["held_minor"],
                shipping_fee_minor=shipping_fee_minor,
                status=ItemStatus.PENDING,
                notes=entry["notes"],
                created_at=now,
                updated_at=now,
            )
            db.session.add(item)
            db.session.flush()
            db.session.add(
                OrderItemTransition(
                    order_item_id=int(item.id),
                    from_status="",
                    to_status=ItemStatus.PENDING,
                    actor_id=int(buyer.id),
                    actor_role=buyer.normalized_role,
                    reason="checkout",
                    created_at=now,
                )
            )
            escrow_service.hold(
                item,
                held_minor=split["held_minor"],
                fee_minor=split["fee_minor"],
                fee_bps=split["fee_bps"],
            )
            listing.status = ListingStatus.SOLD
            items_total += split["held_minor"]
            fee_total += split["fee_minor"]

        order.items_total_minor = items_total
        order.shipping_total_minor = shipping_fee_minor * len(cart)
        order.platform_fee_total_minor = fee_total
        # Listings flip to SOLD under their version guard before any charge.
        db.session.flush()

        provider = get_payments_provider()
        if method == "COD":
            result = call_gateway(
                "cash on delivery",
                provider.register_cod,
                reference=f"cod:{int(order.id)}:{uuid.uuid4().hex[:12]}",
                amount_minor=order.grand_total_minor,
                payer_id=int(buyer.id),
                metadata={"order_id": int(order.id), "items": len(cart)},
            )
        else:
            result = call_gateway(
                "payment capture",
                provider.capture,
                reference=paid_reference,
                amount_minor=order.grand_total_minor,
                payer_id=int(buyer.id),
                method=method,
                metadata={"order_id": int(order.id), "items": len(cart)},
            )
        stored_reference = (result.reference or "")[:128]
        # One verified charge pays for one order only.
        reused = (
            Order.query.filter(Order.payment_reference == stored_reference, Order.id != int(order.id))
            .first()
        )
        if reused is not None:
            raise ValidationError("This payment reference was already used for another order")
        order.payment_reference = stored_reference

    logger.info(
        "order_created order_id=%s buyer_id=%s items=%s total_minor=%s method=%s",
        order.id,
        buyer.id,
        len(cart),
        order.grand_total_minor,
        method,
    )
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFound(f"Order #{int(order_id)} not found")
    return order


def get_order_detail(order_id: int, requesting_user: User) -> dict:
    """Read-only view grouped by seller.

    The buyer sees every line; a seller involved in the order sees only their
    own lines. Anyone else is refused.
    """
    order = get_order(order_id)
    if requesting_user is None:
        raise Forbidden()
    uid = int(requesting_user.id)
    is_buyer = int(order.buyer_id) == uid
    seller_ids = {int(i.seller_id) for i in order.items}
    if not is_buyer and uid not in seller_ids:
        raise Forbidden("Only the buyer or a seller in this order can view it")

    visible = order.items if is_buyer else [i for i in order.items if int(i.seller_id) == uid]
    groups: dict[int, dict] = {}
    for item in visible:
        group = groups.get(int(item.seller_id))
        if group is None:
            group = {"seller": item.seller.to_public_dict(), "items": []}
            groups[int(item.seller_id)] = group
        group["items"].append(item.to_dict())

    payload = order.to_dict(include_items=False)
    payload["viewer"] = "buyer" if is_buyer else "seller"
    payload["buyer"] = order.buyer.to_public_dict()
    payload["sellers"] = list(groups.values())
    return payload


def list_buyer_orders(buyer: User) -> list[Order]:
    return Order.query.filter_by(buyer_id=int(buyer.id)).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_seller_items(seller: User, status: str | None = None) -> list[OrderItem]:
    q = OrderItem.query.filter_by(seller_id=int(seller.id))
    if status:
        q = q.filter(OrderItem.status == parse_status_filter(status))
    return q.order_by(OrderItem.created_at.desc(), OrderItem.id.desc()).all()
