from __future__ import annotations

import logging
from contextlib import contextmanager

from .exceptions import ServiceError
from .. import storage
from ..models import User, Group, GroupMember

logger = logging.getLogger(__name__)


def get_user_or_404(user_id: str) -> User:
    user = storage.get_user(user_id)
    if not user:
        raise ServiceError("home.userNotFound", 404)
    return user


def get_group_or_404(group_id: str) -> Group:
    group = storage.get_group(group_id)
    if not group:
        raise ServiceError("group.notFound", 404)
    return group


def require_member(group: Group, user_id: str) -> GroupMember | None:
    """Ensure ``user_id`` belongs to ``group`` and return its membership record."""
    member = storage.get_group_member(group.group_id, user_id)
    if not member and user_id not in group.member_ids:
        raise ServiceError("group.notMember", 403)
    return member


@contextmanager
def backend_errors(error_key: str, operation: str):
    """Log storage failures and surface them as a generic ``error_key``."""
    try:
        yield
    except storage.DB_ERRORS as exc:
        logger.exception("%s failed", operation)
        raise ServiceError(error_key, 500) from exc
