import time
import logging
from typing import Optional, Dict, Any, Tuple

import jwt
from flask import current_app, g, request

from consign.errors import Unauthorized
from consign.extensions import db

logger = logging.getLogger(__name__)


def _secret() -> str:
    return current_app.config.get("SECRET_KEY") or "dev-secret"


def create_token(user_id: int, ttl_seconds: int = 60 * 60 * 24 * 7) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.PyJWTError:
        return None


def parse_auth_header(auth_header: str) -> Tuple[Optional[str], Optional[str]]:
    if not auth_header:
        return None, None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1], "bearer"
    return None, None


def get_bearer_token(auth_header: str) -> Optional[str]:
    token, _scheme = parse_auth_header(auth_header)
    return token


def current_user():
    """User behind the request's bearer token, or None."""
    from consign.models import User

    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, uid)
    if user is not None:
        g.auth_user_id = int(user.id)
        g.auth_role = user.normalized_role
    return user


def require_user():
    user = current_user()
    if user is None:
        raise Unauthorized()
    return user
