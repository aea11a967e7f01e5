"""Tests for auth/engine.py -- component wiring and the delete_user cascade.

Covers:
- delete_user removes memberships, owned rules, and created shares
- Groups created by the deleted user survive
- Every collection reloads field-for-field in a fresh engine
- The persisted blacklist lives in the data directory
"""

from pathlib import Path

import pytest

from auth.engine import AuthEngine, CascadeReport
from auth.errors import InvalidToken, UserNotFound


def test_delete_user_cascade(engine: AuthEngine, people) -> None:
    eng = engine.groups.create_group("eng", "", "alice")
    sales = engine.groups.create_group("sales", "", "bob")
    engine.groups.add_member(sales.id, "alice", "contributor", "bob")
    engine.access.set_file_access("alice/a.txt", "alice", False, [eng.id])
    engine.access.set_file_access("bob/b.txt", "bob", True)
    engine.sharing.share_file("alice/a.txt", "", sales.id, "alice")
    engine.sharing.share_file("bob/b.txt", "", eng.id, "bob")

    report = engine.delete_user("alice")

    assert report == CascadeReport(memberships=2, access_rules=1, shares=1)
    assert not engine.users.user_exists("alice")
    assert engine.groups.list_groups_for_user("alice") == []
    assert [g.name for g in engine.groups.list_groups()] == ["eng", "sales"]
    assert [s.shared_by for s in engine.sharing.list_shares()] == ["bob"]
    assert engine.access.get_file_access("bob/b.txt").owner == "bob"


def test_delete_unknown_user(engine: AuthEngine) -> None:
    with pytest.raises(UserNotFound):
        engine.delete_user("ghost")


def test_collections_reload_field_for_field(tmp_path: Path, engine: AuthEngine, engine_factory, people) -> None:
    eng = engine.groups.create_group("eng", "Engineering", "alice")
    engine.groups.add_member(eng.id, "bob", "reader", "alice")
    engine.access.set_file_access("alice/a.txt", "alice", True, [eng.id])
    sales = engine.groups.create_group("sales", "", "carol")
    engine.sharing.share_file(f"groups/{eng.id}/x", eng.id, sales.id, "alice", "read_write")

    fresh = engine_factory(tmp_path)
    assert fresh.users.list_users() == engine.users.list_users()
    assert fresh.groups.list_groups() == engine.groups.list_groups()
    assert fresh.groups.list_members(eng.id) == engine.groups.list_members(eng.id)
    assert fresh.access.get_file_access("alice/a.txt") == engine.access.get_file_access("alice/a.txt")
    assert fresh.sharing.list_shares() == engine.sharing.list_shares()


def test_persisted_blacklist_file(tmp_path: Path, engine_factory) -> None:
    durable = engine_factory(tmp_path / "durable", persist_blacklist=True)
    durable.users.create_user("dave", "Passw0rd123")
    token = durable.tokens.issue("dave", "user")
    durable.tokens.revoke(token)
    assert (durable.data_dir / "blacklist.json").exists()

    with pytest.raises(InvalidToken):
        engine_factory(tmp_path / "durable", persist_blacklist=True).tokens.validate(token)
