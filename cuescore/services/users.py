from __future__ import annotations

import logging
import re
import secrets
from uuid import uuid4

from passlib.context import CryptContext

from .exceptions import ServiceError
from .helpers import backend_errors
from .auth import issue_token
from . import state
from .. import storage
from ..models import User

logger = logging.getLogger(__name__)

secret_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

USERNAME_MIN = 3
USERNAME_MAX = 20
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def validate_username(name: str) -> str:
    """Return the trimmed username or raise ``ServiceError``."""
    name = (name or "").strip()
    if len(name) < USERNAME_MIN:
        raise ServiceError("login.usernameTooShort", 400)
    if len(name) > USERNAME_MAX:
        raise ServiceError("login.usernameTooLong", 400)
    if not _USERNAME_RE.match(name):
        raise ServiceError("login.usernameInvalid", 400)
    return name


def check_username_available(name: str) -> bool:
    return storage.find_user_by_name(name.strip().lower()) is None


def register_user(display_name: str, email: str | None = None) -> tuple[User, str, str]:
    """Anonymous sign-in: create an account with a unique username.

    Returns the user, a session token and the sign-in secret. Only a hash of
    the secret is stored, so it cannot be shown again.
    """
    name = validate_username(display_name)
    if not check_username_available(name):
        raise ServiceError("login.usernameTaken", 400)
    secret = secrets.token_urlsafe(16)
    user = User(
        user_id=uuid4().hex,
        display_name=name,
        email=email,
        secret_hash=secret_context.hash(secret),
    )
    with backend_errors("login.usernameSaveError", "register user"):
        storage.create_user(user)
        token = issue_token(user.user_id)
    logger.info("Registered user %s (%s)", user.user_id, user.display_name)
    return user, token, secret


def check_secret(user: User, secret: str) -> bool:
    if not user.secret_hash or not secret:
        return False
    try:
        return secret_context.verify(secret, user.secret_hash)
    except ValueError:
        logger.warning("Unreadable sign-in secret hash for user %s", user.user_id)
        return False


def sign_in(user_id: str, secret: str) -> str:
    user = storage.get_user(user_id)
    if not user or not check_secret(user, secret):
        raise ServiceError("login.invalidCredentials", 401)
    with backend_errors("login.signInError", "sign in"):
        return issue_token(user.user_id)


def search_users(query: str, exclude: str | None = None, limit: int = 20) -> list[User]:
    """Prefix search on usernames; short queries return nothing."""
    prefix = (query or "").strip().lower()
    if len(prefix) < state.SEARCH_MIN_LENGTH:
        return []
    users = storage.search_users_by_prefix(prefix, limit=limit + 1)
    return [u for u in users if u.user_id != exclude][:limit]


__all__ = [
    "validate_username",
    "check_username_available",
    "register_user",
    "check_secret",
    "sign_in",
    "search_users",
]
