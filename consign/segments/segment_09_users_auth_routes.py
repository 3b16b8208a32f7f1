from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from consign.errors import Unauthorized, ValidationError
from consign.models import User
from consign.utils.jwt_utils import create_token, require_user

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        raise ValidationError("Email and password are required")

    u = User.query.filter_by(email=email).first()
    if u is None or not u.check_password(password):
        current_app.logger.info("login_failed email=%s", email)
        raise Unauthorized("Invalid email or password")

    token = create_token(int(u.id))
    current_app.logger.info("login_ok user_id=%s role=%s", u.id, u.normalized_role)
    return jsonify({"ok": True, "token": token, "user": u.to_dict()}), 200


@auth_bp.get("/me")
def me():
    u = require_user()
    return jsonify({"ok": True, "user": u.to_dict()}), 200
