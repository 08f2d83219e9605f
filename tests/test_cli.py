import datetime
import pytest

from cuescore import cli
from cuescore.services import groups as group_service


def test_cli_register_create_and_rank(capsys, make_user):
    cli.main(["register_user", "alice"])
    uid = capsys.readouterr().out.split()[0]

    cli.main(["create_group", uid, "Club"])
    gid = capsys.readouterr().out.strip()

    bob = make_user("bob")
    group_service.add_group_member(gid, uid, bob.user_id)
    group_service.record_group_match(gid, uid, [bob.user_id], [uid], "A", datetime.date.today())

    cli.main(["rankings", gid, "--view", "all"])
    lines = capsys.readouterr().out.splitlines()
    assert "bob" in lines[0] and "1 pts" in lines[0]
    assert "alice" in lines[1]


def test_cli_watch_rankings_stops_after_count(capsys, make_user):
    alice = make_user("alice")
    group = group_service.create_group(alice.user_id, "Club")
    cli.main(["watch_rankings", group.group_id, "--interval", "0", "--count", "1"])
    assert "alice" in capsys.readouterr().out


def test_cli_link_and_delete(capsys, make_user):
    alice, carol = make_user("alice"), make_user("carol")
    group = group_service.create_group(alice.user_id, "Club")
    guest = group_service.create_guest(group.group_id, alice.user_id, "Mario")
    group_service.record_group_match(
        group.group_id, alice.user_id, [guest.player_id], [alice.user_id], "A", datetime.date.today()
    )
    cli.main(["link_guest", group.group_id, alice.user_id, guest.id, carol.user_id])
    assert "1 matches updated" in capsys.readouterr().out

    cli.main(["delete_group", group.group_id, alice.user_id])
    out = capsys.readouterr().out
    assert "groupMembers: 2" in out
    assert "groupMatches: 1" in out


def test_cli_reports_translated_errors(capsys, make_user):
    alice, bob = make_user("alice"), make_user("bob")
    group = group_service.create_group(alice.user_id, "Club")
    with pytest.raises(SystemExit):
        cli.main(["--lang", "it", "delete_group", group.group_id, bob.user_id])
    assert "Solo l'admin" in capsys.readouterr().err
