"""Unit tests for auth/access.py -- FileAccess rules and the personal-tree decision.

Covers:
- Decision order: admin, missing rule, owner, public, rule-group member
- Exact, case-sensitive path matching (no prefix inheritance)
- set_file_access replaces a rule wholesale
- Stale group ids in a rule match nobody
- Removal helpers
"""

import pytest

from auth.engine import AuthEngine
from auth.errors import NoAccessRuleDefined


@pytest.fixture
def eng(engine: AuthEngine, people):
    group = engine.groups.create_group("eng", "", "alice")
    engine.groups.add_member(group.id, "bob", "reader", "alice")
    return group


def test_group_rule_scenario(engine: AuthEngine, eng) -> None:
    engine.access.set_file_access("alice/report.pdf", "alice", False, [eng.id])
    assert engine.access.has_file_access("alice", "alice/report.pdf")
    assert engine.access.has_file_access("bob", "alice/report.pdf")
    assert not engine.access.has_file_access("carol", "alice/report.pdf")
    assert engine.access.has_file_access("root", "alice/report.pdf")


def test_no_rule_denies_everyone_but_admin(engine: AuthEngine, people) -> None:
    assert not engine.access.has_file_access("alice", "alice/unruled.txt")
    assert engine.access.has_file_access("root", "alice/unruled.txt")
    assert engine.access.has_file_access("root", "carol/anything")
    with pytest.raises(NoAccessRuleDefined):
        engine.access.get_file_access("alice/unruled.txt")


def test_public_rule(engine: AuthEngine, people) -> None:
    engine.access.set_file_access("alice/readme.md", "alice", True)
    assert engine.access.has_file_access("carol", "alice/readme.md")


def test_exact_case_sensitive_match(engine: AuthEngine, people) -> None:
    engine.access.set_file_access("alice/docs", "alice", True)
    assert not engine.access.has_file_access("bob", "alice/docs/inner.txt")
    assert not engine.access.has_file_access("bob", "alice/Docs")


def test_set_replaces_wholesale(engine: AuthEngine, eng) -> None:
    engine.access.set_file_access("alice/report.pdf", "alice", True, [eng.id])
    rule = engine.access.set_file_access("alice/report.pdf", "alice", False)
    assert rule.group_ids == []
    stored = engine.access.get_file_access("alice/report.pdf")
    assert stored.is_public is False
    assert stored.group_ids == []
    assert not engine.access.has_file_access("bob", "alice/report.pdf")


def test_duplicate_group_ids_collapse(engine: AuthEngine, eng) -> None:
    rule = engine.access.set_file_access("alice/a.txt", "alice", False, [eng.id, eng.id])
    assert rule.group_ids == [eng.id]


def test_stale_group_id_matches_nobody(engine: AuthEngine, people) -> None:
    engine.access.set_file_access("alice/a.txt", "alice", False, ["deleted-group"])
    assert not engine.access.has_file_access("bob", "alice/a.txt")
    assert engine.access.has_file_access("alice", "alice/a.txt")


def test_remove_file_access(engine: AuthEngine, people) -> None:
    engine.access.set_file_access("alice/a.txt", "alice", True)
    assert engine.access.remove_file_access("alice/a.txt") is True
    assert engine.access.remove_file_access("alice/a.txt") is False
    assert not engine.access.has_file_access("bob", "alice/a.txt")


def test_remove_rules_owned_by(engine: AuthEngine, people) -> None:
    engine.access.set_file_access("alice/a.txt", "alice", True)
    engine.access.set_file_access("alice/b.txt", "alice", True)
    engine.access.set_file_access("bob/c.txt", "bob", True)
    assert engine.access.remove_rules_owned_by("alice") == 2
    assert engine.access.get_file_access("bob/c.txt").owner == "bob"
