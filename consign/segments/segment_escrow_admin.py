from __future__ import annotations

from flask import Blueprint, jsonify, request

from consign.errors import Forbidden, ValidationError
from consign.services import admin_release_service, escrow_service, fulfillment_service
from consign.utils.jwt_utils import require_user

escrow_admin_bp = Blueprint("escrow_admin_bp", __name__, url_prefix="/api/admin")


def _require_admin():
    u = require_user()
    if u.normalized_role != "admin":
        raise Forbidden("Administrator role required")
    return u


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@escrow_admin_bp.get("/escrow/awaiting-release")
def awaiting_release():
    _require_admin()
    page = admin_release_service.list_awaiting_release(
        page=request.args.get("page", 1),
        size=request.args.get("size", 20),
    )
    return jsonify({"ok": True, **page}), 200


@escrow_admin_bp.get("/escrow/transactions")
def transactions():
    _require_admin()
    page = admin_release_service.list_transactions(
        page=request.args.get("page", 1),
        size=request.args.get("size", 20),
        status=request.args.get("status"),
    )
    return jsonify({"ok": True, **page}), 200


@escrow_admin_bp.get("/escrow/problems")
def problem_transactions():
    _require_admin()
    page = admin_release_service.list_problem_transactions(
        page=request.args.get("page", 1),
        size=request.args.get("size", 20),
    )
    return jsonify({"ok": True, **page}), 200


@escrow_admin_bp.get("/orders")
def all_orders():
    _require_admin()
    page = admin_release_service.list_orders_for_admin(
        page=request.args.get("page", 1),
        size=request.args.get("size", 20),
        status=request.args.get("status"),
    )
    return jsonify({"ok": True, **page}), 200


@escrow_admin_bp.post("/escrow/<int:transaction_id>/release")
def release(transaction_id: int):
    admin = _require_admin()
    raw_version = _payload().get("version")
    expected_version = None
    if raw_version is not None:
        try:
            expected_version = int(raw_version)
        except (TypeError, ValueError):
            raise ValidationError("version must be an integer")
    record = admin_release_service.release_by_admin(transaction_id, admin, expected_version=expected_version)
    return jsonify({"ok": True, "transaction": record.to_dict()}), 200


@escrow_admin_bp.post("/escrow/<int:transaction_id>/refund")
def refund(transaction_id: int):
    admin = _require_admin()
    reason = (_payload().get("reason") or "").strip()
    record = admin_release_service.refund_by_admin(transaction_id, admin, reason=reason)
    return jsonify({"ok": True, "transaction": record.to_dict()}), 200


@escrow_admin_bp.get("/order-items/<int:item_id>/history")
def item_history(item_id: int):
    _require_admin()
    return jsonify(
        {
            "ok": True,
            "item": [t.to_dict() for t in fulfillment_service.item_history(item_id)],
            "escrow": [t.to_dict() for t in escrow_service.history(item_id)],
        }
    ), 200
