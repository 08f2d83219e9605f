from __future__ import annotations
import datetime
import secrets
from fastapi import Request
from .exceptions import ServiceError
from . import state
from .. import storage


def issue_token(user_id: str) -> str:
    """Create and persist a new session token for ``user_id``."""
    token = secrets.token_hex(16)
    storage.insert_token(token, user_id)
    return token


def require_auth(authorization: str | None = None, request: Request | None = None) -> str:
    """Validate token from the ``Authorization`` header and return the user id."""

    header = authorization
    if request is not None and not header:
        header = request.headers.get("Authorization")

    if not header or not header.startswith("Bearer "):
        raise ServiceError("auth.invalidToken", 401)

    token = header[7:]

    info = storage.get_token(token)
    if not info:
        raise ServiceError("auth.invalidToken", 401)
    user_id, ts = info
    if datetime.datetime.utcnow() - ts > state.TOKEN_TTL:
        storage.delete_token(token)
        raise ServiceError("auth.tokenExpired", 401)
    return user_id


def logout(authorization: str | None) -> None:
    if authorization and authorization.startswith("Bearer "):
        storage.delete_token(authorization[7:])
