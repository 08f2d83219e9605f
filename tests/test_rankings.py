import datetime
import pytest

from cuescore.models import GroupMatch
from cuescore.rankings import (
    calculate_match_points,
    calculate_group_rankings,
    filter_matches,
    get_group_1v1_matches_with_friend,
    period_cutoff,
    win_percentage,
)

TODAY = datetime.date(2024, 5, 15)


def _match(team_a, team_b, winning_team="A", points=None, date=TODAY, mid="m"):
    if points is None:
        points = calculate_match_points(len(set(team_a)), len(set(team_b)), winning_team)
    return GroupMatch(
        id=mid,
        group_id="g1",
        team_a=list(team_a),
        team_b=list(team_b),
        team_a_names=[p.upper() for p in team_a],
        team_b_names=[p.upper() for p in team_b],
        winning_team=winning_team,
        date=date,
        created_by="p1",
        points_awarded=points,
    )


def _as_tuples(rankings):
    return [
        (r.user_name, r.points, r.matches_played, r.matches_won, r.win_percentage)
        for r in rankings
    ]


@pytest.mark.parametrize("m,n", [(1, 1), (1, 3), (4, 2), (5, 7)])
def test_points_symmetry(m, n):
    assert calculate_match_points(m, n, "A") == n
    assert calculate_match_points(m, n, "B") == m


def test_basic_win():
    roster = {"p1": "Alice", "p2": "Bob"}
    matches = [_match(["p1"], ["p2"], "A", points=1)]
    result = calculate_group_rankings(matches, roster)
    assert _as_tuples(result) == [("Alice", 1, 1, 1, 100), ("Bob", 0, 1, 0, 0)]


def test_uneven_teams_award_losing_team_size():
    assert calculate_match_points(4, 2, "B") == 4
    roster = {p: p.upper() for p in ("a1", "a2", "a3", "a4", "b1", "b2")}
    match = _match(["a1", "a2", "a3", "a4"], ["b1", "b2"], "B")
    assert match.points_awarded == 4
    by_id = {r.user_id: r for r in calculate_group_rankings([match], roster)}
    assert by_id["b1"].points == 4 and by_id["b2"].points == 4
    for pid in ("a1", "a2", "a3", "a4"):
        assert by_id[pid].points == 0
        assert by_id[pid].matches_played == 1


def test_rankings_deterministic_and_inputs_untouched():
    roster = {"p1": "Alice", "p2": "Bob", "p3": "carl"}
    matches = [
        _match(["p1"], ["p2"], "A", mid="m1"),
        _match(["p2", "p3"], ["p1"], "A", mid="m2"),
    ]
    snapshot = [(m.team_a[:], m.team_b[:], m.points_awarded) for m in matches]
    first = calculate_group_rankings(matches, roster)
    second = calculate_group_rankings(matches, roster)
    assert first == second
    assert first is not second
    assert [(m.team_a, m.team_b, m.points_awarded) for m in matches] == snapshot
    assert roster == {"p1": "Alice", "p2": "Bob", "p3": "carl"}


def test_every_roster_id_appears_once():
    roster = {"p1": "Alice", "p2": "Bob", "unregistered_g1": "Guest", "p4": "Idle"}
    matches = [_match(["p1", "unregistered_g1"], ["p2"], "B")]
    result = calculate_group_rankings(matches, roster)
    ids = [r.user_id for r in result]
    assert sorted(ids) == sorted(roster)
    idle = next(r for r in result if r.user_id == "p4")
    assert (idle.points, idle.matches_played, idle.matches_won, idle.win_percentage) == (0, 0, 0, 0)


def test_empty_roster_gives_empty_result():
    assert calculate_group_rankings([_match(["p1"], ["p2"])], {}) == []


def test_duplicate_id_in_team_counted_once():
    roster = {"p1": "Alice", "p2": "Bob"}
    matches = [_match(["p1", "p1"], ["p2"], "A", points=1)]
    result = {r.user_id: r for r in calculate_group_rankings(matches, roster)}
    assert result["p1"].matches_played == 1
    assert result["p1"].matches_won == 1
    assert result["p1"].points == 1


def test_unknown_ids_are_ignored():
    roster = {"p1": "Alice"}
    matches = [_match(["p1"], ["ghost"], "B", points=1)]
    result = calculate_group_rankings(matches, roster)
    assert _as_tuples(result) == [("Alice", 0, 1, 0, 0)]


def test_points_awarded_trusted_as_stored():
    roster = {"p1": "Alice", "p2": "Bob"}
    matches = [_match(["p1"], ["p2"], "A", points=7)]
    assert calculate_group_rankings(matches, roster)[0].points == 7


def test_cutoff_monotonicity():
    dates = [TODAY - datetime.timedelta(days=d) for d in (0, 1, 3, 10, 40, 400)]
    matches = [_match(["p1"], ["p2"], date=d, mid=str(i)) for i, d in enumerate(dates)]
    cutoffs = [None] + sorted(dates)
    counts = [len(filter_matches(matches, c)) for c in cutoffs]
    assert counts == sorted(counts, reverse=True)

    roster = {"p1": "Alice", "p2": "Bob"}
    t1, t2 = TODAY - datetime.timedelta(days=30), TODAY - datetime.timedelta(days=2)
    played_t1 = calculate_group_rankings(matches, roster, t1)[0].matches_played
    played_t2 = calculate_group_rankings(matches, roster, t2)[0].matches_played
    assert played_t2 <= played_t1


def test_points_mode_tie_breaks():
    roster = {"p1": "Zed", "p2": "Amy", "p3": "x1", "p4": "x2", "p5": "x3"}
    matches = [
        # Zed: one win worth two points
        _match(["p1"], ["p3", "p4"], "A", mid="m1"),
        # Amy: two wins worth one point each
        _match(["p2"], ["p5"], "A", mid="m2"),
        _match(["p2"], ["p5"], "A", mid="m3"),
    ]
    result = calculate_group_rankings(matches, roster)
    assert [r.user_name for r in result[:2]] == ["Amy", "Zed"]


def test_name_tie_break_is_case_insensitive():
    roster = {"p1": "bob", "p2": "Alice", "p3": "Carl"}
    result = calculate_group_rankings([], roster)
    assert [r.user_name for r in result] == ["Alice", "bob", "Carl"]


def test_win_percentage_mode():
    roster = {"p1": "Alice", "p2": "Bob", "p3": "Carl"}
    matches = [
        _match(["p1"], ["p2"], "A", mid="m1"),
        _match(["p1"], ["p2"], "B", mid="m2"),
        _match(["p3"], ["p2"], "A", mid="m3"),
    ]
    result = calculate_group_rankings(matches, roster, sort_by="win_percentage")
    # Carl 100%, Alice 50% (2 played), Bob 33% (3 played)
    assert _as_tuples(result) == [
        ("Carl", 1, 1, 1, 100),
        ("Alice", 1, 2, 1, 50),
        ("Bob", 1, 3, 1, 33),
    ]


def test_win_percentage_ties_prefer_more_matches():
    roster = {"p1": "Alice", "p2": "Bob", "p3": "Carl", "p4": "Dora"}
    matches = [
        _match(["p1"], ["p3"], "A", mid="m1"),
        _match(["p2"], ["p4"], "A", mid="m2"),
        _match(["p2"], ["p4"], "A", mid="m3"),
    ]
    result = calculate_group_rankings(matches, roster, sort_by="win_percentage")
    assert [r.user_name for r in result[:2]] == ["Bob", "Alice"]


def test_unknown_sort_mode_rejected():
    with pytest.raises(ValueError):
        calculate_group_rankings([], {"p1": "Alice"}, sort_by="elo")


@pytest.mark.parametrize(
    "won,played,expected",
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 2, 50), (3, 3, 100)],
)
def test_win_percentage_rounding(won, played, expected):
    assert win_percentage(won, played) == expected


def test_period_cutoffs():
    assert period_cutoff("day", TODAY) == TODAY
    assert period_cutoff("week", TODAY) == datetime.date(2024, 5, 13)
    assert period_cutoff("month", TODAY) == datetime.date(2024, 5, 1)
    assert period_cutoff("year", TODAY) == datetime.date(2024, 1, 1)
    assert period_cutoff("all", TODAY) is None
    # Sunday still belongs to the week that started on Monday
    assert period_cutoff("week", datetime.date(2024, 5, 19)) == datetime.date(2024, 5, 13)


def test_head_to_head_counts_only_one_versus_one():
    matches = [
        _match(["u"], ["f"], "A", mid="m1"),
        _match(["f"], ["u"], "A", mid="m2"),
        _match(["f"], ["u"], "B", mid="m3"),
        _match(["u", "x"], ["f"], "A", mid="m4"),
        _match(["u"], ["x"], "A", mid="m5"),
        _match(["u"], ["f"], "A", date=TODAY - datetime.timedelta(days=60), mid="m6"),
    ]
    stats = get_group_1v1_matches_with_friend(matches, "u", "f")
    assert (stats.wins, stats.losses, stats.total) == (3, 1, 4)

    recent = get_group_1v1_matches_with_friend(
        matches, "u", "f", TODAY - datetime.timedelta(days=7)
    )
    assert (recent.wins, recent.losses, recent.total) == (2, 1, 3)

    mirror = get_group_1v1_matches_with_friend(matches, "f", "u")
    assert (mirror.wins, mirror.losses, mirror.total) == (1, 3, 4)
