from __future__ import annotations

import datetime
from typing import Iterable, Mapping, Sequence

from .models import (
    GroupMatch,
    GroupRanking,
    FriendStats,
    TEAM_A,
    TEAM_B,
    SORT_POINTS,
    SORT_WIN_PERCENTAGE,
)

SORT_MODES = (SORT_POINTS, SORT_WIN_PERCENTAGE)


def calculate_match_points(team_a_size: int, team_b_size: int, winning_team: str) -> int:
    """Return the points each winner earns: the size of the losing team."""
    if winning_team == TEAM_A:
        return team_b_size
    return team_a_size


def win_percentage(won: int, played: int) -> int:
    """Return ``round(100 * won / played)`` with halves rounded up."""
    if played <= 0:
        return 0
    return (200 * won + played) // (2 * played)


def period_cutoff(view: str, today: datetime.date | None = None) -> datetime.date | None:
    """Return the first day included in ``view``.

    ``day``, ``week`` (starting Monday), ``month`` and ``year`` map to the
    start of the current period; ``all`` (or anything else) means no cutoff.
    """
    today = today or datetime.date.today()
    if view == "day":
        return today
    if view == "week":
        return today - datetime.timedelta(days=today.weekday())
    if view == "month":
        return today.replace(day=1)
    if view == "year":
        return today.replace(month=1, day=1)
    return None


def _in_window(match: GroupMatch, cutoff: datetime.date | None) -> bool:
    return cutoff is None or match.date >= cutoff


def filter_matches(
    matches: Iterable[GroupMatch], cutoff: datetime.date | None = None
) -> list[GroupMatch]:
    return [m for m in matches if _in_window(m, cutoff)]


def _name_key(name: str) -> tuple[str, str]:
    return (name.casefold(), name)


def calculate_group_rankings(
    matches: Sequence[GroupMatch],
    roster: Mapping[str, str],
    cutoff: datetime.date | None = None,
    sort_by: str = SORT_POINTS,
) -> list[GroupRanking]:
    """Fold ``matches`` into one :class:`GroupRanking` per roster id.

    ``roster`` maps player ids (registered and ``unregistered_`` guests) to
    display names. Ids missing from the roster are ignored, and each player
    is counted at most once per match.
    """
    if sort_by not in SORT_MODES:
        raise ValueError(f"unknown sort mode: {sort_by}")

    stats = {
        pid: GroupRanking(user_id=pid, user_name=name)
        for pid, name in roster.items()
    }

    for match in filter_matches(matches, cutoff):
        seen: set[str] = set()
        for team, players in ((TEAM_A, match.team_a), (TEAM_B, match.team_b)):
            won = match.winning_team == team
            for pid in players:
                if pid in seen:
                    continue
                seen.add(pid)
                entry = stats.get(pid)
                if entry is None:
                    continue
                entry.matches_played += 1
                if won:
                    entry.matches_won += 1
                    entry.points += match.points_awarded

    for entry in stats.values():
        entry.win_percentage = win_percentage(entry.matches_won, entry.matches_played)

    if sort_by == SORT_WIN_PERCENTAGE:
        key = lambda r: (-r.win_percentage, -r.matches_played, _name_key(r.user_name))
    else:
        key = lambda r: (-r.points, -r.matches_won, _name_key(r.user_name))
    return sorted(stats.values(), key=key)


def get_group_1v1_matches_with_friend(
    matches: Iterable[GroupMatch],
    user_id: str,
    friend_id: str,
    cutoff: datetime.date | None = None,
) -> FriendStats:
    """Count strictly one-versus-one group matches between two players."""
    result = FriendStats()
    for match in filter_matches(matches, cutoff):
        team_a = list(dict.fromkeys(match.team_a))
        team_b = list(dict.fromkeys(match.team_b))
        if len(team_a) != 1 or len(team_b) != 1:
            continue
        if team_a[0] == user_id and team_b[0] == friend_id:
            side = TEAM_A
        elif team_b[0] == user_id and team_a[0] == friend_id:
            side = TEAM_B
        else:
            continue
        result.total += 1
        if match.winning_team == side:
            result.wins += 1
        else:
            result.losses += 1
    return result


__all__ = [
    "calculate_match_points",
    "calculate_group_rankings",
    "get_group_1v1_matches_with_friend",
    "period_cutoff",
    "filter_matches",
    "win_percentage",
]
