import datetime
import math
import sqlite3
from contextlib import contextmanager

import pytest

import cuescore.storage as storage
from cuescore.services import groups as group_service
from cuescore.services.exceptions import ServiceError

TODAY = datetime.date(2024, 5, 15)


@pytest.fixture
def users(make_user):
    return {name: make_user(name) for name in ("alice", "bob", "carol")}


@pytest.fixture
def group(users):
    g = group_service.create_group(users["alice"].user_id, "  Friday Pool  ")
    group_service.add_group_member(g.group_id, users["alice"].user_id, users["bob"].user_id)
    return storage.get_group(g.group_id)


@pytest.fixture
def count_batches(monkeypatch):
    calls = []
    real = storage.transaction

    @contextmanager
    def counting():
        calls.append(1)
        with real() as conn:
            yield conn

    monkeypatch.setattr(storage, "transaction", counting)
    return calls


def _record(group, actor, team_a, team_b, winner="A", date=TODAY):
    return group_service.record_group_match(
        group.group_id, actor, team_a, team_b, winner, date, today=TODAY
    )


def test_create_group(users):
    alice = users["alice"]
    g = group_service.create_group(alice.user_id, "  Friday Pool  ")
    assert g.name == "Friday Pool"
    assert g.member_ids == [alice.user_id]
    members = storage.list_group_members(g.group_id)
    assert [(m.user_id, m.user_name) for m in members] == [(alice.user_id, "alice")]
    assert [x.group_id for x in group_service.list_user_groups(alice.user_id)] == [g.group_id]


def test_create_group_name_rules(users):
    alice = users["alice"]
    with pytest.raises(ServiceError) as exc:
        group_service.create_group(alice.user_id, "   ")
    assert exc.value.message == "groups.nameRequired"
    with pytest.raises(ServiceError) as exc:
        group_service.create_group(alice.user_id, "x" * 51)
    assert exc.value.message == "groups.nameTooLong"
    assert exc.value.values == {"max": 50}
    assert group_service.create_group(alice.user_id, "x" * 50).name == "x" * 50


def test_add_member_rules(users, group):
    carol = users["carol"]
    with pytest.raises(ServiceError) as exc:
        group_service.add_group_member(group.group_id, carol.user_id, carol.user_id)
    assert exc.value.message == "group.notMember"
    with pytest.raises(ServiceError) as exc:
        group_service.add_group_member(group.group_id, users["alice"].user_id, users["bob"].user_id)
    assert exc.value.message == "group.alreadyMember"
    group_service.add_group_member(group.group_id, users["bob"].user_id, carol.user_id)
    assert storage.get_group(group.group_id).member_ids == [
        users["alice"].user_id,
        users["bob"].user_id,
        carol.user_id,
    ]


def test_guest_names_unique_case_insensitive(users, group):
    alice = users["alice"].user_id
    guest = group_service.create_guest(group.group_id, alice, "  Mario ")
    assert guest.name == "Mario"
    assert guest.player_id == f"unregistered_{guest.id}"
    with pytest.raises(ServiceError) as exc:
        group_service.create_guest(group.group_id, alice, "mario")
    assert exc.value.message == "group.unregisteredNameExists"
    with pytest.raises(ServiceError) as exc:
        group_service.create_guest(group.group_id, alice, "  ")
    assert exc.value.message == "group.unregisteredNameRequired"

    other = group_service.create_group(alice, "Other")
    group_service.create_guest(other.group_id, alice, "Mario")


def test_record_match_computes_points_and_names(users, group):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    guests = [group_service.create_guest(group.group_id, alice, f"G{i}") for i in range(4)]
    team_a = [g.player_id for g in guests]
    match = _record(group, alice, team_a, [alice, bob], "B")
    assert match.points_awarded == 4
    assert match.team_a_names == ["G0", "G1", "G2", "G3"]
    assert match.team_b_names == ["alice", "bob"]
    assert match.all_player_ids == team_a + [alice, bob]

    stored = storage.get_group_match(match.id)
    assert stored.team_a == team_a
    assert stored.date == TODAY

    ranking = {r.user_id: r for r in group_service.group_rankings(group.group_id, "all")}
    assert ranking[alice].points == 4 and ranking[bob].points == 4
    assert all(ranking[pid].points == 0 for pid in team_a)


def test_record_match_validation(users, group):
    alice, bob, carol = (users[n].user_id for n in ("alice", "bob", "carol"))
    cases = [
        (([], [bob], "A", TODAY), "group.emptyTeam"),
        (([alice], [alice, bob], "A", TODAY), "group.overlappingTeams"),
        (([alice], [bob], "C", TODAY), "group.invalidWinningTeam"),
        (([alice], [bob], "A", TODAY + datetime.timedelta(days=1)), "group.futureDate"),
        (([alice], [carol], "A", TODAY), "group.unknownPlayer"),
    ]
    for (team_a, team_b, winner, date), key in cases:
        with pytest.raises(ServiceError) as exc:
            group_service.record_group_match(
                group.group_id, alice, team_a, team_b, winner, date, today=TODAY
            )
        assert exc.value.message == key
    with pytest.raises(ServiceError) as exc:
        _record(group, carol, [alice], [bob])
    assert exc.value.status_code == 403
    assert storage.list_group_matches(group.group_id) == []


def test_points_preview_uses_same_rule():
    assert group_service.preview_match_points(4, 2, "B") == 4
    assert group_service.preview_match_points(4, 2, "A") == 2
    with pytest.raises(ServiceError):
        group_service.preview_match_points(0, 2, "A")


def test_delete_group_match_creator_only(users, group):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    match = _record(group, alice, [alice], [bob])
    with pytest.raises(ServiceError) as exc:
        group_service.delete_group_match(group.group_id, match.id, bob)
    assert exc.value.message == "group.deleteMatchUnauthorized"
    group_service.delete_group_match(group.group_id, match.id, alice)
    assert storage.get_group_match(match.id) is None


def test_rankings_views_and_preferences(users, group):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    _record(group, alice, [alice], [bob], date=TODAY)
    _record(group, alice, [bob], [alice], date=datetime.date(2024, 3, 1))

    week = group_service.group_rankings(group.group_id, "week", today=TODAY)
    assert [(r.user_id, r.points) for r in week] == [(alice, 1), (bob, 0)]
    year = group_service.group_rankings(group.group_id, "year", "win_percentage", today=TODAY)
    assert [r.win_percentage for r in year] == [50, 50]

    with pytest.raises(ServiceError) as exc:
        group_service.group_rankings(group.group_id, "decade")
    assert exc.value.message == "group.invalidView"
    with pytest.raises(ServiceError) as exc:
        group_service.group_rankings(group.group_id, "week", "elo")
    assert exc.value.message == "group.invalidSort"

    assert group_service.get_preferred_view(bob, group.group_id) == "week"
    group_service.set_preferred_view(bob, group.group_id, "month")
    group_service.set_preferred_view(bob, group.group_id, "year")
    assert group_service.get_preferred_view(bob, group.group_id) == "year"
    with pytest.raises(ServiceError) as exc:
        group_service.get_preferred_view(users["carol"].user_id, group.group_id)
    assert exc.value.message == "group.notMember"
    with pytest.raises(ServiceError):
        group_service.set_preferred_view(bob, group.group_id, "all")


def test_watch_rankings_yields_changes(users, group):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    with group_service.watch_group_rankings(group.group_id, "all", interval=0) as sub:
        stream = iter(sub)
        first = next(stream)
        assert [r.points for r in first] == [0, 0]
        _record(group, alice, [alice], [bob])
        second = next(stream)
        assert [(r.user_id, r.points) for r in second] == [(alice, 1), (bob, 0)]
    assert sub.closed


def test_delete_group_requires_owner(users, group):
    with pytest.raises(ServiceError) as exc:
        group_service.delete_group(group.group_id, users["bob"].user_id)
    assert exc.value.message == "group.deleteGroupUnauthorized"
    assert exc.value.status_code == 403
    assert storage.get_group(group.group_id) is not None
    assert len(storage.list_group_members(group.group_id)) == 2


def test_delete_group_drains_every_collection_in_batches(users, group, monkeypatch, count_batches):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    for _ in range(5):
        _record(group, alice, [alice], [bob])
    for name in ("G1", "G2", "G3"):
        group_service.create_guest(group.group_id, alice, name)
    group_service.set_preferred_view(bob, group.group_id, "month")

    monkeypatch.setenv("BATCH_LIMIT", "2")
    sizes = {
        c: len(storage.list_group_document_ids(c, group.group_id))
        for c in group_service.DELETION_ORDER
    }
    assert sizes == {
        "groupMembers": 2,
        "groupMatches": 5,
        "userGroupPreferences": 1,
        "unregisteredGroupUsers": 3,
    }

    real_delete_group = storage.delete_group

    def delete_group_last(group_id, conn=None):
        for collection in group_service.DELETION_ORDER:
            assert storage.list_group_document_ids(collection, group_id) == []
        real_delete_group(group_id, conn=conn)

    monkeypatch.setattr(storage, "delete_group", delete_group_last)
    count_batches.clear()
    removed = group_service.delete_group(group.group_id, alice)

    assert removed == sizes
    assert len(count_batches) == sum(math.ceil(n / 2) for n in sizes.values())
    assert storage.get_group(group.group_id) is None
    assert group_service.list_user_groups(bob) == []


def test_delete_group_can_be_rerun_after_failure(users, group, monkeypatch):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    _record(group, alice, [alice], [bob])
    group_service.create_guest(group.group_id, alice, "G1")
    real_delete = storage.delete_documents

    def failing(collection, ids, conn=None):
        if collection == "unregisteredGroupUsers":
            raise sqlite3.OperationalError("disk I/O error")
        real_delete(collection, ids, conn=conn)

    monkeypatch.setattr(storage, "delete_documents", failing)
    with pytest.raises(ServiceError) as exc:
        group_service.delete_group(group.group_id, alice)
    assert exc.value.message == "group.deleteGroupError"
    assert exc.value.status_code == 500
    # earlier passes stay committed, the group itself survives
    assert storage.list_group_matches(group.group_id) == []
    assert storage.get_group(group.group_id) is not None

    monkeypatch.setattr(storage, "delete_documents", real_delete)
    removed = group_service.delete_group(group.group_id, alice)
    assert removed["groupMatches"] == 0
    assert removed["unregisteredGroupUsers"] == 1
    assert storage.get_group(group.group_id) is None


def test_link_guest_rewrites_matches(users, group):
    alice, bob, carol = (users[n].user_id for n in ("alice", "bob", "carol"))
    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    match = _record(group, alice, [guest.player_id], [bob], "A")

    assert group_service.link_guest(group.group_id, alice, guest.id, carol) == 1

    stored = storage.get_group_match(match.id)
    assert stored.team_a == [carol]
    assert stored.team_a_names == ["carol"]
    assert guest.player_id not in stored.all_player_ids
    assert stored.all_player_ids == [carol, bob]
    assert stored.points_awarded == match.points_awarded
    assert storage.get_guest(guest.id) is None
    assert carol in storage.get_group(group.group_id).member_ids
    assert storage.get_group_member(group.group_id, carol) is not None

    ranking = {r.user_id: r for r in group_service.group_rankings(group.group_id, "all")}
    assert guest.player_id not in ranking
    assert ranking[carol].matches_won == 1

    with pytest.raises(ServiceError) as exc:
        _record(group, alice, [guest.player_id], [bob])
    assert exc.value.message == "group.unknownPlayer"


def test_link_guest_deduplicates_existing_member(users, group):
    alice, bob, carol = (users[n].user_id for n in ("alice", "bob", "carol"))
    group_service.add_group_member(group.group_id, alice, carol)
    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    same_team = _record(group, alice, [guest.player_id, carol], [bob], "A")
    other_team = _record(group, alice, [guest.player_id, alice], [carol], "B")

    assert group_service.link_guest(group.group_id, alice, guest.player_id, carol) == 2

    first = storage.get_group_match(same_team.id)
    assert first.team_a == [carol]
    assert first.team_a_names == ["carol"]
    assert first.all_player_ids == [carol, bob]

    second = storage.get_group_match(other_team.id)
    assert second.team_a == [alice]
    assert second.team_b == [carol]
    assert second.all_player_ids == [alice, carol]

    members = [m for m in storage.list_group_members(group.group_id) if m.user_id == carol]
    assert len(members) == 1
    assert storage.get_group(group.group_id).member_ids.count(carol) == 1


def test_link_guest_batches_and_retry(users, group, monkeypatch, count_batches):
    alice, bob, carol = (users[n].user_id for n in ("alice", "bob", "carol"))
    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    for _ in range(5):
        _record(group, alice, [guest.player_id], [bob])
    _record(group, alice, [alice], [bob])

    monkeypatch.setenv("BATCH_LIMIT", "2")
    real_delete_guest = storage.delete_guest

    def failing(guest_id, conn=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(storage, "delete_guest", failing)
    count_batches.clear()
    with pytest.raises(ServiceError) as exc:
        group_service.link_guest(group.group_id, alice, guest.id, carol)
    assert exc.value.message == "group.linkUserError"
    # three rewrite batches committed, the final batch rolled back
    assert len(count_batches) == 4
    assert all(guest.player_id not in m.all_player_ids for m in storage.list_group_matches(group.group_id))
    assert storage.get_guest(guest.id) is not None
    assert carol not in storage.get_group(group.group_id).member_ids

    monkeypatch.setattr(storage, "delete_guest", real_delete_guest)
    assert group_service.link_guest(group.group_id, alice, guest.id, carol) == 0
    assert storage.get_guest(guest.id) is None
    assert carol in storage.get_group(group.group_id).member_ids
    ranking = {r.user_id: r for r in group_service.group_rankings(group.group_id, "all")}
    assert ranking[carol].matches_won == 5


def test_link_guest_refuses_to_leave_a_team_empty(users, group, count_batches):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    shared = _record(group, alice, [guest.player_id, bob], [alice], "A")
    alone = _record(group, alice, [alice], [guest.player_id], "B")

    count_batches.clear()
    with pytest.raises(ServiceError) as exc:
        group_service.link_guest(group.group_id, alice, guest.id, alice)
    assert exc.value.status_code == 409
    assert exc.value.message == "group.linkEmptiesTeam"
    assert count_batches == []

    assert storage.get_group_match(alone.id).team_b == [guest.player_id]
    assert storage.get_group_match(shared.id).team_a == [guest.player_id, bob]
    assert storage.get_guest(guest.id) is not None
    for match in storage.list_group_matches(group.group_id):
        assert match.team_a and match.team_b


def test_link_guest_errors(users, group):
    alice, carol = users["alice"].user_id, users["carol"].user_id
    other = group_service.create_group(alice, "Other")
    foreign = group_service.create_guest(other.group_id, alice, "Guesty")
    with pytest.raises(ServiceError) as exc:
        group_service.link_guest(group.group_id, alice, foreign.id, carol)
    assert exc.value.message == "group.guestNotFound"

    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    with pytest.raises(ServiceError) as exc:
        group_service.link_guest(group.group_id, alice, guest.id, "nobody")
    assert exc.value.status_code == 404
    assert storage.get_guest(guest.id) is not None


def test_relink_match_is_pure(users, group):
    alice, bob = users["alice"].user_id, users["bob"].user_id
    guest = group_service.create_guest(group.group_id, alice, "Guesty")
    match = _record(group, alice, [guest.player_id], [bob])
    updated = group_service.relink_match(match, guest.player_id, alice, "alice")
    assert updated.team_a == [alice]
    assert match.team_a == [guest.player_id]
