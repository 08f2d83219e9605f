from __future__ import annotations

import datetime
import logging
from typing import Callable, Sequence, TypeVar
from uuid import uuid4

from .exceptions import ServiceError, ConflictError
from .helpers import get_group_or_404, get_user_or_404, require_member, backend_errors
from .. import storage
from ..config import get_batch_limit
from ..models import (
    Group,
    GroupMember,
    GroupMatch,
    GroupPreference,
    GroupRanking,
    GuestPlayer,
    GUEST_PREFIX,
    PERIOD_VIEWS,
    DEFAULT_VIEW,
    SORT_POINTS,
    TEAM_A,
    TEAM_B,
    guest_player_id,
)
from ..rankings import (
    SORT_MODES,
    calculate_group_rankings,
    calculate_match_points,
    period_cutoff,
)
from ..subscriptions import Subscription

logger = logging.getLogger(__name__)

GROUP_NAME_MAX = 50
RANKING_VIEWS = PERIOD_VIEWS + ("all",)

# Dependent collections drained before the group document itself
DELETION_ORDER = (
    "groupMembers",
    "groupMatches",
    "userGroupPreferences",
    "unregisteredGroupUsers",
)

T = TypeVar("T")


def _commit_batches(
    items: Sequence[T],
    write: Callable[[Sequence[T], object], None],
    label: str,
) -> int:
    """Apply ``write`` to ``items`` in separately committed, capped batches."""
    limit = get_batch_limit()
    done = 0
    for start in range(0, len(items), limit):
        chunk = items[start:start + limit]
        with storage.transaction() as conn:
            write(chunk, conn)
        done += len(chunk)
        logger.info("%s: committed %d/%d", label, done, len(items))
    return done


# --- groups and members --------------------------------------------------------

def create_group(owner_id: str, name: str) -> Group:
    """Create a group owned by ``owner_id``, who becomes its first member."""
    name = (name or "").strip()
    if not name:
        raise ServiceError("groups.nameRequired", 400)
    if len(name) > GROUP_NAME_MAX:
        raise ServiceError("groups.nameTooLong", 400, max=GROUP_NAME_MAX)
    owner = get_user_or_404(owner_id)

    group = Group(
        group_id=uuid4().hex,
        name=name,
        created_by=owner.user_id,
        member_ids=[owner.user_id],
    )
    member = GroupMember(
        id=uuid4().hex,
        group_id=group.group_id,
        user_id=owner.user_id,
        user_name=owner.display_name,
    )
    with backend_errors("groups.createError", "create group"):
        with storage.transaction() as conn:
            storage.create_group(group, conn=conn)
            storage.create_group_member(member, conn=conn)
    logger.info("Created group %s (%s) for %s", group.group_id, group.name, owner_id)
    return group


def list_user_groups(user_id: str) -> list[Group]:
    """Return the groups ``user_id`` belongs to, most recently joined first."""
    groups = []
    for membership in storage.list_user_memberships(user_id):
        group = storage.get_group(membership.group_id)
        if group:
            groups.append(group)
    return groups


def group_roster(group: Group) -> dict[str, str]:
    """Map every player id that can appear in a match to its display name.

    Registered members come first in joining order, then guests that are not
    linked yet under their ``unregistered_`` id.
    """
    roster: dict[str, str] = {}
    for member in storage.list_group_members(group.group_id):
        roster.setdefault(member.user_id, member.user_name)
    for uid in group.member_ids:
        if uid not in roster:
            user = storage.get_user(uid)
            roster[uid] = user.display_name if user else uid
    for guest in storage.list_guests(group.group_id):
        if not guest.linked_to_user_id:
            roster[guest.player_id] = guest.name
    return roster


def get_group_detail(group_id: str, user_id: str) -> dict:
    group = get_group_or_404(group_id)
    require_member(group, user_id)
    return {
        "group": group,
        "members": storage.list_group_members(group_id),
        "guests": [g for g in storage.list_guests(group_id) if not g.linked_to_user_id],
        "matches": storage.list_group_matches(group_id),
    }


def add_group_member(group_id: str, actor_id: str, user_id: str) -> GroupMember:
    group = get_group_or_404(group_id)
    require_member(group, actor_id)
    user = get_user_or_404(user_id)
    if user_id in group.member_ids or storage.get_group_member(group_id, user_id):
        raise ServiceError("group.alreadyMember", 400, name=user.display_name)

    member = GroupMember(
        id=uuid4().hex,
        group_id=group_id,
        user_id=user.user_id,
        user_name=user.display_name,
    )
    with backend_errors("group.addMemberError", "add group member"):
        with storage.transaction() as conn:
            storage.create_group_member(member, conn=conn)
            storage.add_group_member_id(group_id, user.user_id, conn=conn)
    logger.info("Added %s to group %s", user_id, group_id)
    return member


def create_guest(group_id: str, actor_id: str, name: str) -> GuestPlayer:
    """Create a guest player whose name is unique within the group."""
    group = get_group_or_404(group_id)
    require_member(group, actor_id)
    name = (name or "").strip()
    if not name:
        raise ServiceError("group.unregisteredNameRequired", 400)
    existing = {g.name.strip().lower() for g in storage.list_guests(group_id)}
    if name.lower() in existing:
        raise ServiceError("group.unregisteredNameExists", 400)

    guest = GuestPlayer(id=uuid4().hex, group_id=group_id, name=name, created_by=actor_id)
    with backend_errors("group.createUnregisteredError", "create guest"):
        storage.create_guest(guest)
    logger.info("Created guest %s (%s) in group %s", guest.id, name, group_id)
    return guest


# --- group matches -------------------------------------------------------------

def preview_match_points(team_a_size: int, team_b_size: int, winning_team: str) -> int:
    """Points the winners would earn, as shown before a match is saved."""
    if winning_team not in (TEAM_A, TEAM_B):
        raise ServiceError("group.invalidWinningTeam", 400)
    if team_a_size < 1 or team_b_size < 1:
        raise ServiceError("group.emptyTeam", 400)
    return calculate_match_points(team_a_size, team_b_size, winning_team)


def record_group_match(
    group_id: str,
    actor_id: str,
    team_a: Sequence[str],
    team_b: Sequence[str],
    winning_team: str,
    date: datetime.date,
    today: datetime.date | None = None,
) -> GroupMatch:
    group = get_group_or_404(group_id)
    require_member(group, actor_id)

    team_a = list(dict.fromkeys(team_a))
    team_b = list(dict.fromkeys(team_b))
    if not team_a or not team_b:
        raise ServiceError("group.emptyTeam", 400)
    if set(team_a) & set(team_b):
        raise ServiceError("group.overlappingTeams", 400)
    if winning_team not in (TEAM_A, TEAM_B):
        raise ServiceError("group.invalidWinningTeam", 400)
    if date > (today or datetime.date.today()):
        raise ServiceError("group.futureDate", 400)

    roster = group_roster(group)
    for pid in team_a + team_b:
        if pid not in roster:
            raise ServiceError("group.unknownPlayer", 400, id=pid)

    match = GroupMatch(
        id=uuid4().hex,
        group_id=group_id,
        team_a=team_a,
        team_b=team_b,
        team_a_names=[roster[pid] for pid in team_a],
        team_b_names=[roster[pid] for pid in team_b],
        winning_team=winning_team,
        date=date,
        created_by=actor_id,
        points_awarded=calculate_match_points(len(team_a), len(team_b), winning_team),
    )
    with backend_errors("group.saveMatchError", "record group match"):
        storage.create_group_match(match)
    logger.info(
        "Recorded group match %s in %s (%d vs %d, winner %s)",
        match.id,
        group_id,
        len(team_a),
        len(team_b),
        winning_team,
    )
    return match


def delete_group_match(group_id: str, match_id: str, user_id: str) -> None:
    match = storage.get_group_match(match_id)
    if not match or match.group_id != group_id:
        raise ServiceError("group.matchNotFound", 404)
    if match.created_by != user_id:
        raise ServiceError("group.deleteMatchUnauthorized", 403)
    with backend_errors("group.deleteMatchError", "delete group match"):
        storage.delete_group_match(match_id)
    logger.info("Deleted group match %s", match_id)


# --- rankings ----------------------------------------------------------------------

def _check_ranking_args(view: str, sort_by: str) -> None:
    if view not in RANKING_VIEWS:
        raise ServiceError("group.invalidView", 400)
    if sort_by not in SORT_MODES:
        raise ServiceError("group.invalidSort", 400)


def group_rankings(
    group_id: str,
    view: str = DEFAULT_VIEW,
    sort_by: str = SORT_POINTS,
    user_id: str | None = None,
    today: datetime.date | None = None,
) -> list[GroupRanking]:
    """Rank the group's roster over the period ``view``.

    When ``user_id`` is given the caller must belong to the group.
    """
    _check_ranking_args(view, sort_by)
    group = get_group_or_404(group_id)
    if user_id is not None:
        require_member(group, user_id)
    return calculate_group_rankings(
        storage.list_group_matches(group_id),
        group_roster(group),
        period_cutoff(view, today),
        sort_by,
    )


def watch_group_rankings(
    group_id: str,
    view: str = DEFAULT_VIEW,
    sort_by: str = SORT_POINTS,
    interval: float = 1.0,
) -> Subscription[list[GroupRanking]]:
    """Subscribe to the group's ranking; a new snapshot on every change."""
    _check_ranking_args(view, sort_by)
    get_group_or_404(group_id)
    return Subscription(
        lambda: group_rankings(group_id, view, sort_by),
        interval=interval,
        name=f"rankings:{group_id}",
    )


def get_preferred_view(user_id: str, group_id: str) -> str:
    group = get_group_or_404(group_id)
    require_member(group, user_id)
    pref = storage.get_preference(user_id, group_id)
    return pref.preferred_view if pref else DEFAULT_VIEW


def set_preferred_view(user_id: str, group_id: str, view: str) -> GroupPreference:
    if view not in PERIOD_VIEWS:
        raise ServiceError("group.invalidView", 400)
    group = get_group_or_404(group_id)
    require_member(group, user_id)
    pref = GroupPreference(user_id=user_id, group_id=group_id, preferred_view=view)
    with backend_errors("common.unexpectedError", "set preferred view"):
        storage.set_preference(pref)
    return pref


# --- roster consistency sagas --------------------------------------------------

def delete_group(group_id: str, user_id: str) -> dict[str, int]:
    """Delete a group and everything that belongs to it.

    Only the owner may do this. Each dependent collection is drained in
    capped batches before the group document is removed, so an interrupted
    run can simply be repeated. Returns the number of documents removed per
    collection.
    """
    group = get_group_or_404(group_id)
    if group.created_by != user_id:
        raise ServiceError("group.deleteGroupUnauthorized", 403)

    removed: dict[str, int] = {}

    def drain(collection: str) -> Callable[[Sequence[str], object], None]:
        def write(ids: Sequence[str], conn) -> None:
            storage.delete_documents(collection, ids, conn=conn)

        return write

    with backend_errors("group.deleteGroupError", "delete group"):
        for collection in DELETION_ORDER:
            ids = storage.list_group_document_ids(collection, group_id)
            removed[collection] = _commit_batches(
                ids, drain(collection), f"delete group {group_id}: {collection}"
            )
        storage.delete_group(group_id)
    logger.info("Deleted group %s: %s", group_id, removed)
    return removed


def _replace_player(
    ids: Sequence[str],
    names: Sequence[str],
    old_id: str,
    new_id: str,
    new_name: str,
) -> tuple[list[str], list[str]]:
    """Swap ``old_id`` for ``new_id`` keeping ids unique and names aligned."""
    out_ids: list[str] = []
    out_names: list[str] = []
    for index, pid in enumerate(ids):
        name = names[index] if index < len(names) else ""
        if pid == old_id:
            pid, name = new_id, new_name
        if pid in out_ids:
            continue
        out_ids.append(pid)
        out_names.append(name)
    return out_ids, out_names


def relink_match(match: GroupMatch, guest_pid: str, user_id: str, user_name: str) -> GroupMatch:
    """Return ``match`` with ``guest_pid`` replaced by the registered player.

    When the registered player already has a place of their own in the
    match, the guest's slot is dropped instead, so teams stay disjoint.
    The result can have an empty team; ``link_guest`` refuses such links.
    """
    if user_id in match.team_a and guest_pid in match.team_b:
        drop_a, drop_b = False, True
    elif user_id in match.team_b and guest_pid in match.team_a:
        drop_a, drop_b = True, False
    else:
        drop_a = drop_b = False

    def rewrite(ids, names, drop):
        if drop:
            kept = [(p, n) for p, n in zip(ids, names) if p != guest_pid]
            return [p for p, _ in kept], [n for _, n in kept]
        return _replace_player(ids, names, guest_pid, user_id, user_name)

    team_a, team_a_names = rewrite(match.team_a, match.team_a_names, drop_a)
    team_b, team_b_names = rewrite(match.team_b, match.team_b_names, drop_b)
    return GroupMatch(
        id=match.id,
        group_id=match.group_id,
        team_a=team_a,
        team_b=team_b,
        team_a_names=team_a_names,
        team_b_names=team_b_names,
        winning_team=match.winning_team,
        date=match.date,
        created_by=match.created_by,
        points_awarded=match.points_awarded,
        created_at=match.created_at,
        all_player_ids=list(dict.fromkeys(team_a + team_b)),
    )


def link_guest(group_id: str, actor_id: str, guest_id: str, user_id: str) -> int:
    """Merge a guest player into a registered user.

    Every match of the group that references the guest is rewritten to the
    registered id in capped batches. Afterwards one batch removes the guest
    entry and adds the user to the group if needed. Returns the number of
    matches rewritten.
    """
    group = get_group_or_404(group_id)
    require_member(group, actor_id)

    raw_id = guest_id[len(GUEST_PREFIX):] if guest_id.startswith(GUEST_PREFIX) else guest_id
    guest = storage.get_guest(raw_id)
    if not guest or guest.group_id != group_id:
        raise ServiceError("group.guestNotFound", 404)
    if guest.linked_to_user_id:
        raise ConflictError("group.guestAlreadyLinked")
    user = get_user_or_404(user_id)
    guest_pid = guest_player_id(guest.id)

    affected = [
        relink_match(m, guest_pid, user.user_id, user.display_name)
        for m in storage.list_group_matches(group_id)
        if guest_pid in m.team_a or guest_pid in m.team_b or guest_pid in m.all_player_ids
    ]
    if any(not m.team_a or not m.team_b for m in affected):
        raise ConflictError("group.linkEmptiesTeam", name=user.display_name)

    def write(chunk: Sequence[GroupMatch], conn) -> None:
        for match in chunk:
            storage.update_group_match(match, conn=conn)

    with backend_errors("group.linkUserError", "link guest"):
        rewritten = _commit_batches(affected, write, f"link {guest_pid} -> {user.user_id}")
        with storage.transaction() as conn:
            storage.delete_guest(guest.id, conn=conn)
            if not storage.get_group_member(group_id, user.user_id, conn=conn):
                storage.create_group_member(
                    GroupMember(
                        id=uuid4().hex,
                        group_id=group_id,
                        user_id=user.user_id,
                        user_name=user.display_name,
                    ),
                    conn=conn,
                )
            storage.add_group_member_id(group_id, user.user_id, conn=conn)
    logger.info(
        "Linked guest %s to %s in group %s (%d matches)",
        guest_pid,
        user.user_id,
        group_id,
        rewritten,
    )
    return rewritten


__all__ = [
    "create_group",
    "list_user_groups",
    "group_roster",
    "get_group_detail",
    "add_group_member",
    "create_guest",
    "preview_match_points",
    "record_group_match",
    "delete_group_match",
    "group_rankings",
    "watch_group_rankings",
    "get_preferred_view",
    "set_preferred_view",
    "delete_group",
    "relink_match",
    "link_guest",
    "RANKING_VIEWS",
]
