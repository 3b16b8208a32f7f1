from __future__ import annotations

from flask import Blueprint, jsonify, request

from consign.errors import Forbidden
from consign.services import delivery_service, fulfillment_service
from consign.utils.jwt_utils import require_user

logistics_bp = Blueprint("logistics_bp", __name__, url_prefix="/api/shipper")


def _require_shipper():
    u = require_user()
    if u.normalized_role != "shipper":
        raise Forbidden("Shipper account required")
    return u


def _photos() -> list:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return []
    return data.get("photos") or []


@logistics_bp.get("/pickups")
def pickups():
    u = _require_shipper()
    items = fulfillment_service.list_pickup_items_for_courier(int(u.id))
    return jsonify({"ok": True, "items": [i.to_dict() for i in items]}), 200


@logistics_bp.get("/items")
def items_by_status():
    u = _require_shipper()
    mine = (request.args.get("mine") or "").strip() == "1"
    items = fulfillment_service.list_items_by_status(
        request.args.get("status"),
        courier_id=int(u.id) if mine else None,
    )
    return jsonify({"ok": True, "items": [i.to_dict() for i in items]}), 200


@logistics_bp.post("/items/<int:item_id>/confirm-pickup")
def confirm_pickup(item_id: int):
    u = _require_shipper()
    item = fulfillment_service.confirm_pickup(item_id, u, _photos())
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@logistics_bp.post("/items/<int:item_id>/dispatch")
def dispatch(item_id: int):
    u = _require_shipper()
    item = fulfillment_service.dispatch_item(item_id, u)
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@logistics_bp.post("/items/<int:item_id>/confirm-delivery")
def confirm_delivery(item_id: int):
    u = _require_shipper()
    proof = delivery_service.confirm_delivery(item_id, u, _photos())
    return jsonify({"ok": True, "proof": proof.to_dict(), "item": proof.item.to_dict()}), 200
