"""Unit tests for auth/roles.py -- role coercion and the fixed permission policy.

Covers:
- Unknown role/permission input collapses to the least-privileged value
- Group action table (read / write / upload / manage / delete / unknown)
- Global role permission table and the is_admin / is_user helpers
"""

import pytest

from auth.roles import GlobalRole, GroupRole, SharePermission, group_role_allows, is_admin, is_user, role_has_permission


class TestCoercion:
    @pytest.mark.parametrize("raw", ["superuser", "", None, "ADMIN", 3])
    def test_unknown_group_role_becomes_reader(self, raw) -> None:
        assert GroupRole.coerce(raw) is GroupRole.READER

    @pytest.mark.parametrize("raw", ["root", "", None, "Admin"])
    def test_unknown_global_role_becomes_guest(self, raw) -> None:
        assert GlobalRole.coerce(raw) is GlobalRole.GUEST

    @pytest.mark.parametrize("raw", ["write", "rw", "", None, "READ_WRITE"])
    def test_unknown_share_permission_becomes_read(self, raw) -> None:
        assert SharePermission.coerce(raw) is SharePermission.READ

    def test_known_values_pass_through(self) -> None:
        assert GroupRole.coerce("contributor") is GroupRole.CONTRIBUTOR
        assert GlobalRole.coerce("admin") is GlobalRole.ADMIN
        assert SharePermission.coerce("read_write") is SharePermission.READ_WRITE
        assert GroupRole.coerce(GroupRole.ADMIN) is GroupRole.ADMIN


class TestGroupPolicy:
    def test_read_allowed_for_every_role(self) -> None:
        assert all(group_role_allows(role, "read") for role in GroupRole)

    @pytest.mark.parametrize("action", ["write", "upload"])
    def test_write_needs_contributor_or_admin(self, action: str) -> None:
        assert group_role_allows(GroupRole.ADMIN, action)
        assert group_role_allows(GroupRole.CONTRIBUTOR, action)
        assert not group_role_allows(GroupRole.READER, action)

    @pytest.mark.parametrize("action", ["manage", "delete"])
    def test_manage_needs_admin(self, action: str) -> None:
        assert group_role_allows(GroupRole.ADMIN, action)
        assert not group_role_allows(GroupRole.CONTRIBUTOR, action)
        assert not group_role_allows(GroupRole.READER, action)

    def test_unknown_action_is_denied(self) -> None:
        assert not group_role_allows(GroupRole.ADMIN, "teleport")


class TestGlobalPolicy:
    def test_admin_wildcard(self) -> None:
        assert role_has_permission("admin", "anything", "whatever")

    def test_user_file_permissions(self) -> None:
        assert role_has_permission("user", "read", "files")
        assert role_has_permission("user", "delete", "files")
        assert not role_has_permission("user", "read", "users")

    def test_guest_has_nothing(self) -> None:
        assert not role_has_permission("guest", "read", "files")
        assert not role_has_permission("nonsense", "read", "files")

    def test_helpers(self) -> None:
        assert is_admin("admin") and not is_admin("user")
        assert is_user("admin") and is_user("user") and not is_user("guest")
