from __future__ import annotations

import datetime
import logging
from uuid import uuid4

from .exceptions import ServiceError, ConflictError
from .helpers import get_user_or_404, backend_errors
from .. import storage
from ..models import Friend, FriendRequest, FriendStats, Match
from ..rankings import get_group_1v1_matches_with_friend, period_cutoff

logger = logging.getLogger(__name__)

STATS_PERIODS = ("day", "week", "month", "year", "all")


def send_friend_request(from_user_id: str, to_user_id: str) -> FriendRequest:
    """Create a pending request unless the pair is already connected."""
    if from_user_id == to_user_id:
        raise ServiceError("home.cannotAddSelf", 400)
    sender = get_user_or_404(from_user_id)
    recipient = get_user_or_404(to_user_id)

    if storage.get_friend_edge(from_user_id, to_user_id) or storage.get_friend_edge(
        to_user_id, from_user_id
    ):
        raise ServiceError("home.alreadyFriends", 400, name=recipient.display_name)
    if storage.list_friend_requests(from_user_id=from_user_id, to_user_id=to_user_id):
        raise ServiceError("home.requestAlreadySent", 400, name=recipient.display_name)

    request = FriendRequest(
        id=uuid4().hex,
        from_user_id=sender.user_id,
        from_user_name=sender.display_name,
        to_user_id=recipient.user_id,
        to_user_name=recipient.display_name,
    )
    with backend_errors("home.sendRequestError", "send friend request"):
        storage.create_friend_request(request)
    logger.info("Friend request %s: %s -> %s", request.id, from_user_id, to_user_id)
    return request


def list_incoming_requests(user_id: str) -> list[FriendRequest]:
    return storage.list_friend_requests(to_user_id=user_id)


def list_sent_requests(user_id: str) -> list[FriendRequest]:
    return storage.list_friend_requests(from_user_id=user_id)


def list_friends(user_id: str) -> list[Friend]:
    return storage.list_friends(user_id)


def _load_pending(request_id: str) -> FriendRequest:
    request = storage.get_friend_request(request_id)
    if not request:
        raise ServiceError("home.requestMissingError", 404)
    if request.status != "pending":
        raise ConflictError("home.requestNotPendingError")
    return request


def accept_friend_request(request_id: str, user_id: str) -> list[Friend]:
    """Accept a pending request and return the friend edges created.

    Missing edges are created in the same batch that deletes the request, so
    re-running after a partial failure only adds what is still absent. When
    another client resolves the request first the batch is discarded and
    ``home.requestMissingError`` is raised.
    """
    request = _load_pending(request_id)
    if request.to_user_id != user_id:
        raise ServiceError("home.requestNotRecipient", 403)

    directions = (
        (request.to_user_id, request.to_user_name, request.from_user_id, request.from_user_name),
        (request.from_user_id, request.from_user_name, request.to_user_id, request.to_user_name),
    )
    created: list[Friend] = []
    with backend_errors("common.unexpectedError", "accept friend request"):
        with storage.transaction() as conn:
            if not storage.delete_friend_request(request.id, conn=conn, only_pending=True):
                logger.warning("Friend request %s resolved concurrently", request.id)
                raise ServiceError("home.requestMissingError", 404)
            for uid, uname, fid, fname in directions:
                if storage.get_friend_edge(uid, fid, conn=conn):
                    continue
                edge = Friend(
                    id=uuid4().hex,
                    user_id=uid,
                    user_name=uname,
                    friend_id=fid,
                    friend_name=fname,
                )
                storage.create_friend(edge, conn=conn)
                created.append(edge)
    logger.info(
        "Accepted friend request %s (%d new edges)", request.id, len(created)
    )
    return created


def reject_friend_request(request_id: str, user_id: str) -> None:
    request = _load_pending(request_id)
    if request.to_user_id != user_id:
        raise ServiceError("home.requestNotRecipient", 403)
    _discard_request(request, "reject friend request")


def cancel_friend_request(request_id: str, user_id: str) -> None:
    """Withdraw a request the caller sent."""
    request = _load_pending(request_id)
    if request.from_user_id != user_id:
        raise ServiceError("home.requestNotSender", 403)
    _discard_request(request, "cancel friend request")


def _discard_request(request: FriendRequest, operation: str) -> None:
    with backend_errors("common.unexpectedError", operation):
        removed = storage.delete_friend_request(request.id, only_pending=True)
    if not removed:
        logger.warning("Friend request %s resolved concurrently", request.id)
        raise ServiceError("home.requestMissingError", 404)
    logger.info("Removed friend request %s", request.id)


# --- 1:1 matches -------------------------------------------------------------

def record_friend_match(
    user_id: str,
    friend_id: str,
    winner_id: str,
    date: datetime.date,
    today: datetime.date | None = None,
) -> Match:
    edge = storage.get_friend_edge(user_id, friend_id)
    if not edge:
        raise ServiceError("friend.notFriends", 403)
    if winner_id not in (user_id, friend_id):
        raise ServiceError("friend.invalidWinner", 400)
    if date > (today or datetime.date.today()):
        raise ServiceError("friend.futureDate", 400)

    names = {user_id: edge.user_name, friend_id: edge.friend_name}
    match = Match(
        id=uuid4().hex,
        player1_id=user_id,
        player1_name=edge.user_name,
        player2_id=friend_id,
        player2_name=edge.friend_name,
        winner_id=winner_id,
        winner_name=names[winner_id],
        date=date,
        created_by=user_id,
    )
    with backend_errors("friend.saveMatchError", "record friend match"):
        storage.create_match(match)
    logger.info("Recorded match %s between %s and %s", match.id, user_id, friend_id)
    return match


def list_friend_matches(user_id: str, friend_id: str) -> list[Match]:
    return storage.list_matches_between(user_id, friend_id)


def delete_friend_match(match_id: str, user_id: str) -> None:
    match = storage.get_match(match_id)
    if not match:
        raise ServiceError("friend.matchNotFound", 404)
    if match.created_by != user_id:
        raise ServiceError("friend.deleteMatchUnauthorized", 403)
    with backend_errors("friend.deleteMatchError", "delete friend match"):
        storage.delete_match(match_id)
    logger.info("Deleted match %s", match_id)


def _shared_group_ids(user_id: str, friend_id: str) -> list[str]:
    mine = {m.group_id for m in storage.list_user_memberships(user_id)}
    return [m.group_id for m in storage.list_user_memberships(friend_id) if m.group_id in mine]


def friend_stats(
    user_id: str,
    friend_id: str,
    include_groups: bool = False,
    today: datetime.date | None = None,
) -> dict[str, FriendStats]:
    """Wins/losses of ``user_id`` against ``friend_id`` for every period.

    With ``include_groups`` the strictly 1v1 matches of every group the
    two players share are added to the direct matches.
    """
    matches = storage.list_matches_between(user_id, friend_id)
    group_matches = []
    if include_groups:
        for group_id in _shared_group_ids(user_id, friend_id):
            group_matches.extend(storage.list_group_matches(group_id))

    result: dict[str, FriendStats] = {}
    for period in STATS_PERIODS:
        cutoff = period_cutoff(period, today)
        window = [m for m in matches if cutoff is None or m.date >= cutoff]
        wins = sum(1 for m in window if m.winner_id == user_id)
        losses = sum(1 for m in window if m.winner_id == friend_id)
        stats = FriendStats(wins=wins, losses=losses, total=wins + losses)
        if group_matches:
            extra = get_group_1v1_matches_with_friend(group_matches, user_id, friend_id, cutoff)
            stats.wins += extra.wins
            stats.losses += extra.losses
            stats.total += extra.total
        result[period] = stats
    return result


__all__ = [
    "send_friend_request",
    "list_incoming_requests",
    "list_sent_requests",
    "list_friends",
    "accept_friend_request",
    "reject_friend_request",
    "cancel_friend_request",
    "record_friend_match",
    "list_friend_matches",
    "delete_friend_match",
    "friend_stats",
    "STATS_PERIODS",
]
