"""Unit tests for auth/store.py -- the Credential Store.

Covers:
- create_user: digest not plaintext, fresh API key, role coercion, conflicts
- Password strength and username validation
- authenticate: same error for unknown user and wrong password; last_login stamp
- rotate_credential: old key stops resolving, new key resolves
- delete_user: record and key removed, storage removed best-effort
- Index is rebuilt from disk (a second store sees the first one's writes)
"""

from pathlib import Path

import pytest

from auth.errors import InvalidCredentials, InvalidUsername, UserExists, UserNotFound, WeakPassword
from auth.roles import GlobalRole
from auth.store import UserStore


@pytest.fixture
def store(tmp_path: Path) -> UserStore:
    return UserStore(data_dir=tmp_path / "data", storage_dir=tmp_path / "storage")


class TestCreateUser:
    def test_stores_digest_not_plaintext(self, store: UserStore, tmp_path: Path) -> None:
        user, api_key = store.create_user("alice", "Passw0rd123", "alice@example.com", "user")
        assert user.password_hash != "Passw0rd123"
        assert user.password_hash.startswith("$2")
        assert "Passw0rd123" not in (tmp_path / "data" / "users.json").read_text()
        assert len(api_key) == 64
        assert store.get_user_by_api_key(api_key).username == "alice"

    def test_provisions_storage(self, store: UserStore, tmp_path: Path) -> None:
        store.create_user("alice", "Passw0rd123")
        assert (tmp_path / "storage" / "alice").is_dir()

    def test_duplicate_raises_user_exists(self, store: UserStore) -> None:
        store.create_user("alice", "Passw0rd123")
        with pytest.raises(UserExists):
            store.create_user("alice", "Other1234")
        assert len(store.list_users()) == 1

    def test_unknown_role_becomes_guest(self, store: UserStore) -> None:
        user, _ = store.create_user("alice", "Passw0rd123", role="superuser")
        assert user.role is GlobalRole.GUEST

    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678", "x" * 80 + "1"])
    def test_weak_password_rejected(self, store: UserStore, password: str) -> None:
        with pytest.raises(WeakPassword):
            store.create_user("alice", password)
        assert not store.user_exists("alice")

    @pytest.mark.parametrize("username", ["ab", "a/b", "../etc", "with space", "x" * 33, "alice\n"])
    def test_invalid_username_rejected(self, store: UserStore, username: str) -> None:
        with pytest.raises(InvalidUsername):
            store.create_user(username, "Passw0rd123")


class TestAuthenticate:
    def test_success_returns_user_and_key_and_stamps_login(self, store: UserStore) -> None:
        _, api_key = store.create_user("alice", "Passw0rd123")
        assert store.get_user("alice").last_login is None
        user, key = store.authenticate("alice", "Passw0rd123")
        assert user.username == "alice"
        assert key == api_key
        assert store.get_user("alice").last_login is not None

    def test_wrong_password_and_unknown_user_same_error(self, store: UserStore) -> None:
        store.create_user("alice", "Passw0rd123")
        with pytest.raises(InvalidCredentials) as wrong:
            store.authenticate("alice", "Wrong12345")
        with pytest.raises(InvalidCredentials) as unknown:
            store.authenticate("mallory", "Passw0rd123")
        assert str(wrong.value) == str(unknown.value)


class TestRotateCredential:
    def test_old_key_invalidated(self, store: UserStore) -> None:
        _, old_key = store.create_user("alice", "Passw0rd123")
        new_key = store.rotate_credential("alice")
        assert new_key != old_key
        assert store.get_user_by_api_key(old_key) is None
        assert store.get_user_by_api_key(new_key).username == "alice"

    def test_unknown_user(self, store: UserStore) -> None:
        with pytest.raises(UserNotFound):
            store.rotate_credential("ghost")


class TestDeleteUser:
    def test_removes_record_key_and_storage(self, store: UserStore, tmp_path: Path) -> None:
        _, key = store.create_user("alice", "Passw0rd123")
        (tmp_path / "storage" / "alice" / "report.pdf").write_text("data")
        store.delete_user("alice")
        assert not store.user_exists("alice")
        assert store.get_user_by_api_key(key) is None
        assert not (tmp_path / "storage" / "alice").exists()

    def test_storage_failure_is_not_fatal(self, store: UserStore, tmp_path: Path, monkeypatch) -> None:
        store.create_user("alice", "Passw0rd123")

        def boom(path):
            raise OSError("disk on fire")

        monkeypatch.setattr("auth.store.shutil.rmtree", boom)
        store.delete_user("alice")
        assert not store.user_exists("alice")

    def test_unknown_user(self, store: UserStore) -> None:
        with pytest.raises(UserNotFound):
            store.delete_user("ghost")


def test_second_store_sees_persisted_users(store: UserStore, tmp_path: Path) -> None:
    user, key = store.create_user("alice", "Passw0rd123", "alice@example.com", "admin")
    reloaded = UserStore(data_dir=tmp_path / "data", storage_dir=tmp_path / "storage")
    again = reloaded.get_user("alice")
    assert again == user
    assert reloaded.get_user_by_api_key(key).username == "alice"
    assert reloaded.is_admin("alice")
