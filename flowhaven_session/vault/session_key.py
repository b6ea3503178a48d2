"""
SessionKeyStore — Holder of the current session encryption key.

Provides the public API for session key management:
- ``set_session_key(key, salt)`` — install a key and persist it durably
- ``restore_session_key()`` — recover the persisted key after a restart
- ``clear_session_key()`` — drop the key from memory and durable storage
- ``has_session_key()`` / ``get_session_key()`` — presence check and access
- ``unlock(password, salt)`` / ``provision(password)`` — login and signup flows

One store is created per authenticated session and injected into every
component that encrypts or decrypts fields.

Security Note:
    Never log key material. The exported key sits in durable storage until
    ``clear_session_key()`` runs; logout must always call it.
"""
import asyncio
import base64
import binascii
import logging
from collections.abc import MutableMapping
from enum import Enum
from typing import Optional

from .crypto import (
    SymmetricKey,
    derive_key,
    generate_salt,
    salt_from_base64,
)
from .config import VaultConfig
from .storage import FileKeyStorage

logger = logging.getLogger("flowhaven.vault")


class KeyState(str, Enum):
    UNINITIALIZED = "uninitialized"
    KEYED = "keyed"
    CLEARED = "cleared"


class SessionKeyStore:
    """Session-scoped key holder backed by durable string storage.

    ``storage`` is any ``MutableMapping[str, str]``: a plain dict, a
    :class:`FileKeyStorage`, or the user's ``SessionData``.
    """

    def __init__(
        self,
        storage: Optional[MutableMapping[str, str]] = None,
        config: Optional[VaultConfig] = None,
    ):
        self._config = config or VaultConfig()
        if storage is None:
            storage = (
                FileKeyStorage(self._config.key_file)
                if self._config.key_file else {}
            )
        self._storage = storage
        self._key: Optional[SymmetricKey] = None
        self._state = KeyState.UNINITIALIZED

    @property
    def state(self) -> KeyState:
        return self._state

    @property
    def storage(self) -> MutableMapping[str, str]:
        return self._storage

    @property
    def config(self) -> VaultConfig:
        return self._config

    def _discard_persisted(self) -> None:
        """Erase the key and salt entries together."""
        for name in (self._config.key_storage_name, self._config.salt_storage_name):
            try:
                self._storage.pop(name, None)
            except Exception as err:
                logger.error("Failed to erase %s from key storage: %s", name, err)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_session_key(self, key: SymmetricKey, salt: bytes) -> None:
        """Install ``key`` as current and persist it with its salt.

        If the key cannot be exported or stored, it still works in memory
        for the lifetime of this store.
        """
        self._key = key
        self._state = KeyState.KEYED
        try:
            b64_key = base64.b64encode(key.export()).decode("ascii")
            b64_salt = base64.b64encode(salt).decode("ascii")
            self._storage[self._config.key_storage_name] = b64_key
            self._storage[self._config.salt_storage_name] = b64_salt
        except Exception as err:
            logger.warning(
                "Session key kept in memory only, persistence failed: %s", err,
            )
            self._discard_persisted()
            return
        logger.debug("Session key installed and persisted")

    async def restore_session_key(self) -> bool:
        """Recover the persisted key if none is resident.

        Must complete before the first decrypt of a session.

        Returns:
            True if a key is resident afterwards, False otherwise.
        """
        if self._key is not None:
            return True
        b64_key = self._storage.get(self._config.key_storage_name)
        if not b64_key:
            return False
        try:
            raw = base64.b64decode(b64_key, validate=True)
            key = SymmetricKey.import_raw(raw)
        except (binascii.Error, ValueError) as err:
            logger.warning("Persisted session key is unusable: %s", err)
            return False
        self._key = key
        self._state = KeyState.KEYED
        logger.debug("Session key restored from durable storage")
        return True

    def clear_session_key(self) -> None:
        """Drop the in-memory key and erase both persisted entries."""
        self._key = None
        self._state = KeyState.CLEARED
        self._discard_persisted()
        logger.debug("Session key cleared")

    def has_session_key(self) -> bool:
        return self._key is not None

    def get_session_key(self) -> Optional[SymmetricKey]:
        return self._key

    def persisted_salt(self) -> Optional[bytes]:
        """Return the salt persisted alongside the key, if any."""
        b64_salt = self._storage.get(self._config.salt_storage_name)
        if not b64_salt:
            return None
        try:
            return salt_from_base64(b64_salt)
        except ValueError as err:
            logger.warning("Persisted salt is unusable: %s", err)
            return None

    # ------------------------------------------------------------------
    # Login / signup
    # ------------------------------------------------------------------

    async def unlock(self, password: str, salt_b64: str) -> SymmetricKey:
        """Derive the key from the password and profile salt, then install it.

        Derivation runs in a worker thread to keep the event loop free.

        Args:
            password: User password.
            salt_b64: The profile's ``encryption_salt``.

        Returns:
            The installed key.
        """
        salt = salt_from_base64(salt_b64)
        key = await asyncio.to_thread(
            derive_key, password, salt, self._config.pbkdf2_iterations,
        )
        await self.set_session_key(key, salt)
        return key

    async def provision(self, password: str) -> str:
        """Create the key material for a new account.

        Returns:
            Base64 salt to store on the profile as ``encryption_salt``.
        """
        salt_b64 = generate_salt()
        await self.unlock(password, salt_b64)
        logger.info("Encryption salt provisioned for new account")
        return salt_b64

    def __repr__(self) -> str:
        return f"<SessionKeyStore state={self._state.value}>"
