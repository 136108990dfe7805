"""Current user identity, resolved from the signed session cookie.

Issuing the session (sign-in) lives outside this service; here we only read
what the session middleware already verified.
"""
from typing import Optional

from fastapi import Request

from watchshop.errors import not_authenticated


def session_user_id(request: Request) -> Optional[int]:
    raw = request.session.get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def get_current_user_id(request: Request) -> int:
    """FastAPI dependency: the caller's user id or NOT_AUTHENTICATED."""
    user_id = session_user_id(request)
    if not user_id:
        raise not_authenticated()
    return user_id


def session_actor(request: Request) -> str:
    # how status changes are attributed in the order status log
    role = (request.session.get("role") or "").strip().lower() or "unknown"
    user_id = session_user_id(request)
    return "{0}:{1}".format(role, user_id) if user_id else role
