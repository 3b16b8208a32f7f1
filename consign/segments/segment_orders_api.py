from __future__ import annotations

from flask import Blueprint, jsonify, request

from consign.errors import Forbidden
from consign.services import fulfillment_service, order_service
from consign.utils.jwt_utils import require_user

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_seller():
    u = require_user()
    if u.normalized_role != "seller":
        raise Forbidden("Seller account required")
    return u


@orders_bp.post("/orders")
def create_order():
    u = require_user()
    if u.normalized_role not in ("buyer", "seller"):
        raise Forbidden("Only marketplace accounts can place orders")
    data = _payload()
    order = order_service.create_order(
        u,
        data.get("shippingAddressId", data.get("shipping_address_id")),
        data.get("items"),
        data.get("paymentMethod", data.get("payment_method")),
        notes=data.get("notes"),
        payment_reference=data.get("paymentReference", data.get("payment_reference")),
    )
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/orders/my")
def my_orders():
    u = require_user()
    orders = order_service.list_buyer_orders(u)
    return jsonify({"ok": True, "items": [o.to_dict(include_items=False) for o in orders]}), 200


@orders_bp.get("/orders/<int:order_id>")
def get_order(order_id: int):
    u = require_user()
    return jsonify({"ok": True, "order": order_service.get_order_detail(order_id, u)}), 200


@orders_bp.post("/orders/<int:order_id>/cancel")
def cancel_order(order_id: int):
    u = require_user()
    reason = (_payload().get("reason") or "").strip()
    order = fulfillment_service.cancel_order(order_id, u, reason=reason)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/order-items/<int:item_id>/cancel")
def cancel_item(item_id: int):
    u = require_user()
    reason = (_payload().get("reason") or "").strip()
    item = fulfillment_service.cancel_item(item_id, u, reason=reason)
    return jsonify({"ok": True, "item": item.to_dict(), "order_status": item.order.status}), 200


@orders_bp.get("/seller/items")
def seller_items():
    u = _require_seller()
    items = order_service.list_seller_items(u, status=request.args.get("status"))
    return jsonify({"ok": True, "items": [i.to_dict() for i in items]}), 200


@orders_bp.post("/seller/items/<int:item_id>/process")
def seller_process(item_id: int):
    u = _require_seller()
    item = fulfillment_service.mark_processing(item_id, u)
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.post("/seller/items/<int:item_id>/request-pickup")
def seller_request_pickup(item_id: int):
    u = _require_seller()
    item = fulfillment_service.request_pickup(item_id, u)
    return jsonify({"ok": True, "item": item.to_dict()}), 200
