"""Unit tests for auth/groups.py -- groups, memberships, and the group policy.

Covers:
- create_group enrolls the creator as group admin and provisions groups/<id>/
- Duplicate names, unknown creators, duplicate and missing memberships
- Unknown member roles collapse to reader
- has_group_permission: admin short-circuit, per-role actions, non-members
- remove_member writes the audit line
- ensure_creator_membership repairs a group left without its creator
"""

import pytest

from auth.engine import AuthEngine
from auth.errors import GroupExists, GroupNotFound, UserAlreadyInGroup, UserNotFound, UserNotInGroup
from auth.roles import GroupRole


@pytest.fixture
def eng(engine: AuthEngine, people):
    return engine.groups.create_group("eng", "Engineering", "alice")


def test_creator_is_group_admin(engine: AuthEngine, eng) -> None:
    assert eng.created_by == "alice"
    assert engine.groups.get_member_role(eng.id, "alice") is GroupRole.ADMIN
    assert engine.groups.has_group_permission("alice", eng.id, "manage")
    assert engine.groups.group_storage_path(eng.id).is_dir()
    assert engine.groups.group_storage_path(eng.id) == engine.storage_dir / "groups" / eng.id


def test_duplicate_group_name(engine: AuthEngine, eng) -> None:
    with pytest.raises(GroupExists):
        engine.groups.create_group("eng", "again", "bob")
    assert len(engine.groups.list_groups()) == 1


def test_unknown_creator(engine: AuthEngine, people) -> None:
    with pytest.raises(UserNotFound):
        engine.groups.create_group("ghosts", "", "casper")
    assert engine.groups.list_groups() == []


def test_reader_scenario(engine: AuthEngine, eng) -> None:
    engine.groups.add_member(eng.id, "bob", "reader", "alice")
    assert engine.groups.has_group_permission("bob", eng.id, "read")
    assert not engine.groups.has_group_permission("bob", eng.id, "write")
    assert not engine.groups.has_group_permission("bob", eng.id, "manage")
    assert not engine.groups.has_group_permission("carol", eng.id, "read")


def test_contributor_can_upload_but_not_manage(engine: AuthEngine, eng) -> None:
    engine.groups.add_member(eng.id, "bob", GroupRole.CONTRIBUTOR, "alice")
    assert engine.groups.has_group_permission("bob", eng.id, "upload")
    assert not engine.groups.has_group_permission("bob", eng.id, "delete")


def test_unknown_role_becomes_reader(engine: AuthEngine, eng) -> None:
    member = engine.groups.add_member(eng.id, "bob", "overlord", "alice")
    assert member.role is GroupRole.READER
    assert engine.groups.get_member_role(eng.id, "bob") is GroupRole.READER


def test_add_member_twice(engine: AuthEngine, eng) -> None:
    engine.groups.add_member(eng.id, "bob", "reader", "alice")
    with pytest.raises(UserAlreadyInGroup):
        engine.groups.add_member(eng.id, "bob", "admin", "alice")
    assert engine.groups.get_member_role(eng.id, "bob") is GroupRole.READER


def test_add_unknown_user_or_group(engine: AuthEngine, eng) -> None:
    with pytest.raises(UserNotFound):
        engine.groups.add_member(eng.id, "casper", "reader", "alice")
    with pytest.raises(GroupNotFound):
        engine.groups.add_member("no-such-group", "bob", "reader", "alice")


def test_remove_member(engine: AuthEngine, eng, caplog) -> None:
    engine.groups.add_member(eng.id, "bob", "reader", "alice")
    with caplog.at_level("INFO", logger="lunatransfer.audit"):
        engine.groups.remove_member(eng.id, "bob", "alice")
    assert engine.groups.get_member_role(eng.id, "bob") is None
    assert "User bob was removed from group eng by alice" in caplog.text
    with pytest.raises(UserNotInGroup):
        engine.groups.remove_member(eng.id, "bob", "alice")


def test_list_members_and_groups_for_user(engine: AuthEngine, eng) -> None:
    sales = engine.groups.create_group("sales", "", "bob")
    engine.groups.add_member(eng.id, "bob", "reader", "alice")
    assert sorted(m.username for m in engine.groups.list_members(eng.id)) == ["alice", "bob"]
    assert sorted(g.name for g in engine.groups.list_groups_for_user("bob")) == ["eng", "sales"]
    assert [g.id for g in engine.groups.list_groups_for_user("alice")] == [eng.id]
    assert sales.id != eng.id
    with pytest.raises(GroupNotFound):
        engine.groups.list_members("no-such-group")


def test_global_admin_short_circuits(engine: AuthEngine, eng) -> None:
    assert engine.groups.has_group_permission("root", eng.id, "delete")
    # Admin passes even before the group lookup.
    assert engine.groups.has_group_permission("root", "no-such-group", "manage")


def test_unknown_group_raises_for_non_admin(engine: AuthEngine, eng) -> None:
    with pytest.raises(GroupNotFound):
        engine.groups.has_group_permission("bob", "no-such-group", "read")


def test_unknown_action_denied(engine: AuthEngine, eng) -> None:
    assert not engine.groups.has_group_permission("alice", eng.id, "teleport")


def test_ensure_creator_membership(engine: AuthEngine, eng) -> None:
    assert engine.groups.ensure_creator_membership(eng.id) is False
    engine.groups.remove_member(eng.id, "alice", "root")
    assert engine.groups.ensure_creator_membership(eng.id) is True
    assert engine.groups.get_member_role(eng.id, "alice") is GroupRole.ADMIN
    assert engine.groups.ensure_creator_membership(eng.id) is False
