from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import List, Optional

# Guest ids share the roster/team id space with registered user ids
GUEST_PREFIX = "unregistered_"

TEAM_A = "A"
TEAM_B = "B"

PERIOD_VIEWS = ("day", "week", "month", "year")
DEFAULT_VIEW = "week"

SORT_POINTS = "points"
SORT_WIN_PERCENTAGE = "win_percentage"


def guest_player_id(guest_id: str) -> str:
    """Return the namespaced id used for a guest inside teams and rosters."""
    if guest_id.startswith(GUEST_PREFIX):
        return guest_id
    return f"{GUEST_PREFIX}{guest_id}"


def is_guest_id(player_id: str) -> bool:
    return player_id.startswith(GUEST_PREFIX)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class User:
    """A registered account."""

    user_id: str
    display_name: str
    email: Optional[str] = None
    created_at: datetime.datetime = field(default_factory=_now)
    secret_hash: Optional[str] = None

    @property
    def display_name_lower(self) -> str:
        return self.display_name.strip().lower()


@dataclass
class FriendRequest:
    id: str
    from_user_id: str
    from_user_name: str
    to_user_id: str
    to_user_name: str
    status: str = "pending"
    created_at: datetime.datetime = field(default_factory=_now)


@dataclass
class Friend:
    """One direction of a friendship: ``user_id`` sees ``friend_id``."""

    id: str
    user_id: str
    user_name: str
    friend_id: str
    friend_name: str
    added_at: datetime.datetime = field(default_factory=_now)


@dataclass
class Match:
    """A 1:1 match between two friends."""

    id: str
    player1_id: str
    player1_name: str
    player2_id: str
    player2_name: str
    winner_id: str
    winner_name: str
    date: datetime.date
    created_by: str
    created_at: datetime.datetime = field(default_factory=_now)

    @property
    def players(self) -> list[str]:
        return [self.player1_id, self.player2_id]


@dataclass
class Group:
    group_id: str
    name: str
    created_by: str
    created_at: datetime.datetime = field(default_factory=_now)
    member_ids: List[str] = field(default_factory=list)


@dataclass
class GroupMember:
    id: str
    group_id: str
    user_id: str
    user_name: str
    joined_at: datetime.datetime = field(default_factory=_now)


@dataclass
class GroupMatch:
    id: str
    group_id: str
    team_a: List[str]
    team_b: List[str]
    team_a_names: List[str]
    team_b_names: List[str]
    winning_team: str
    date: datetime.date
    created_by: str
    points_awarded: int
    created_at: datetime.datetime = field(default_factory=_now)
    # flat participant list used for membership filtering
    all_player_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.all_player_ids:
            self.all_player_ids = list(dict.fromkeys([*self.team_a, *self.team_b]))


@dataclass
class GuestPlayer:
    """A group-scoped player without an account."""

    id: str
    group_id: str
    name: str
    created_by: str
    created_at: datetime.datetime = field(default_factory=_now)
    linked_to_user_id: Optional[str] = None
    linked_at: Optional[datetime.datetime] = None

    @property
    def player_id(self) -> str:
        return guest_player_id(self.id)


@dataclass
class GroupPreference:
    user_id: str
    group_id: str
    preferred_view: str = DEFAULT_VIEW
    last_updated: datetime.datetime = field(default_factory=_now)

    @property
    def id(self) -> str:
        return f"{self.user_id}_{self.group_id}"


# Derived values, never stored

@dataclass
class GroupRanking:
    user_id: str
    user_name: str
    points: int = 0
    matches_played: int = 0
    matches_won: int = 0
    win_percentage: int = 0


@dataclass
class FriendStats:
    wins: int = 0
    losses: int = 0
    total: int = 0
