"""
Tests for SessionKeyStore and FileKeyStorage.

Tests cover:
- Persist → simulated reload → restore round-trip
- Idempotent restore and failure on empty or corrupted storage
- Logout clearing memory and both durable entries
- In-memory fallback when the key cannot be exported
- Login/signup flows and the sign-up → re-login scenario
"""
import base64
import os

import pytest

from flowhaven_session.data import SessionData
from flowhaven_session.vault.config import (
    SESSION_KEY_STORAGE,
    SESSION_SALT_STORAGE,
    VaultConfig,
)
from flowhaven_session.vault.crypto import (
    KEY_LENGTH,
    SymmetricKey,
    decrypt,
    encrypt,
    salt_from_base64,
)
from flowhaven_session.vault.session_key import KeyState, SessionKeyStore
from flowhaven_session.vault.storage import FileKeyStorage


@pytest.fixture
def storage():
    return {}


@pytest.fixture
def store(storage):
    return SessionKeyStore(storage)


class SaltWriteFails(dict):
    def __setitem__(self, name, value):
        if name == SESSION_SALT_STORAGE:
            raise OSError("disk full")
        super().__setitem__(name, value)


class TestSetAndRestore:

    async def test_set_session_key_persists_pair(self, store, storage, key, salt):
        await store.set_session_key(key, salt)
        assert store.has_session_key()
        assert store.state is KeyState.KEYED
        assert base64.b64decode(storage[SESSION_KEY_STORAGE]) == key.export()
        assert base64.b64decode(storage[SESSION_SALT_STORAGE]) == salt

    async def test_restore_after_reload(self, store, storage, key, salt):
        await store.set_session_key(key, salt)
        blob = encrypt("Buy milk", key)

        reloaded = SessionKeyStore(storage)
        assert reloaded.has_session_key() is False
        assert await reloaded.restore_session_key() is True
        assert reloaded.get_session_key() == key
        assert decrypt(blob, reloaded.get_session_key()) == "Buy milk"
        assert reloaded.persisted_salt() == salt

    async def test_restore_is_idempotent(self, store, key, salt):
        await store.set_session_key(key, salt)
        resident = store.get_session_key()
        assert await store.restore_session_key() is True
        assert store.get_session_key() is resident

    async def test_restore_empty_storage(self, store):
        assert await store.restore_session_key() is False
        assert store.state is KeyState.UNINITIALIZED

    async def test_restore_corrupted_storage(self, storage):
        storage[SESSION_KEY_STORAGE] = "%%% not base64 %%%"
        assert await SessionKeyStore(storage).restore_session_key() is False

    async def test_restore_wrong_key_length(self, storage):
        storage[SESSION_KEY_STORAGE] = base64.b64encode(b"\x01" * 8).decode()
        assert await SessionKeyStore(storage).restore_session_key() is False

    async def test_non_exportable_key_stays_in_memory(self, store, storage, salt):
        handle = SymmetricKey(os.urandom(KEY_LENGTH), exportable=False)
        await store.set_session_key(handle, salt)
        assert store.has_session_key()
        assert SESSION_KEY_STORAGE not in storage

    async def test_failed_salt_write_leaves_no_half_pair(self, key, salt):
        storage = SaltWriteFails()
        store = SessionKeyStore(storage)
        await store.set_session_key(key, salt)
        assert store.get_session_key() == key
        assert storage == {}
        assert await SessionKeyStore(storage).restore_session_key() is False

    async def test_custom_storage_names(self, storage, key, salt):
        config = VaultConfig(key_storage_name="k", salt_storage_name="s")
        await SessionKeyStore(storage, config).set_session_key(key, salt)
        assert set(storage) == {"k", "s"}


class TestClear:

    async def test_clear_session_key(self, store, storage, key, salt):
        await store.set_session_key(key, salt)
        store.clear_session_key()
        assert store.has_session_key() is False
        assert store.state is KeyState.CLEARED
        assert SESSION_KEY_STORAGE not in storage
        assert SESSION_SALT_STORAGE not in storage
        assert await store.restore_session_key() is False

    async def test_clear_without_key(self, store):
        store.clear_session_key()
        assert store.has_session_key() is False

    async def test_other_entries_untouched(self, store, storage, key, salt):
        storage["theme"] = "dark"
        await store.set_session_key(key, salt)
        store.clear_session_key()
        assert storage == {"theme": "dark"}


class TestFileKeyStorage:

    async def test_survives_restart(self, tmp_path, key, salt):
        path = tmp_path / "keys.json"
        await SessionKeyStore(FileKeyStorage(path)).set_session_key(key, salt)

        restarted = SessionKeyStore(FileKeyStorage(path))
        assert await restarted.restore_session_key() is True
        assert restarted.get_session_key() == key

    async def test_clear_erases_file_entries(self, tmp_path, key, salt):
        path = tmp_path / "keys.json"
        store = SessionKeyStore(FileKeyStorage(path))
        await store.set_session_key(key, salt)
        store.clear_session_key()
        assert len(FileKeyStorage(path)) == 0

    def test_corrupted_file_starts_empty(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_bytes(b"{not json")
        assert dict(FileKeyStorage(path)) == {}

    def test_file_permissions(self, tmp_path):
        path = tmp_path / "nested" / "keys.json"
        storage = FileKeyStorage(path)
        storage["a"] = "b"
        assert path.exists()
        assert (path.stat().st_mode & 0o777) == 0o600

    async def test_config_key_file(self, tmp_path, key, salt):
        config = VaultConfig(key_file=str(tmp_path / "k.json"))
        store = SessionKeyStore(config=config)
        assert isinstance(store.storage, FileKeyStorage)
        await store.set_session_key(key, salt)
        assert (tmp_path / "k.json").exists()


class TestSessionDataStorage:

    async def test_key_scoped_to_session(self, key, salt):
        session = SessionData(identity="user-1")
        await SessionKeyStore(session).set_session_key(key, salt)
        assert SESSION_KEY_STORAGE in session.session_data()

        restored = SessionData.decode(session.encode())
        store = SessionKeyStore(restored)
        assert await store.restore_session_key() is True
        assert store.get_session_key() == key


class TestLoginFlows:

    async def test_signup_then_login(self):
        """Sign up, write a field, log in again elsewhere, read it back."""
        signup = SessionKeyStore({})
        salt_b64 = await signup.provision("correcthorse123")
        assert len(salt_from_base64(salt_b64)) == 16
        blob = encrypt("Buy milk", signup.get_session_key())

        login = SessionKeyStore({})
        await login.unlock("correcthorse123", salt_b64)
        assert decrypt(blob, login.get_session_key()) == "Buy milk"

    async def test_login_wrong_password(self):
        signup = SessionKeyStore({})
        salt_b64 = await signup.provision("correcthorse123")
        login = SessionKeyStore({})
        await login.unlock("wrong password", salt_b64)
        assert login.get_session_key() != signup.get_session_key()

    async def test_unlock_bad_salt(self, store):
        with pytest.raises(ValueError):
            await store.unlock("pw", "c2hvcnQ=")
        assert store.has_session_key() is False


class TestVaultConfig:

    def test_defaults(self):
        config = VaultConfig()
        assert config.pbkdf2_iterations == 100_000
        assert config.key_storage_name == SESSION_KEY_STORAGE

    def test_iterations_floor(self):
        with pytest.raises(ValueError):
            VaultConfig(pbkdf2_iterations=10)

    def test_distinct_storage_names(self):
        with pytest.raises(ValueError):
            VaultConfig(key_storage_name="x", salt_storage_name="x")

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULT_PBKDF2_ITERATIONS", "200000")
        monkeypatch.setenv("VAULT_KEY_FILE", str(tmp_path / "keys.json"))
        config = VaultConfig.from_env()
        assert config.pbkdf2_iterations == 200_000
        assert config.key_file == str(tmp_path / "keys.json")
