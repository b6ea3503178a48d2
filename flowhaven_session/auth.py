"""
AuthController — owns the session key store for one signed-in user.

Ties the vault to the account lifecycle:
- ``signup(password)`` provisions a salt and key, returns the salt for the profile
- ``login(password, encryption_salt)`` derives and installs the key
- ``start()`` recovers a persisted key; it must finish before any decrypt
- ``logout()`` clears the key material and the user session
"""
import logging
from collections.abc import MutableMapping
from typing import Optional

from .data import SessionData
from .vault.codec import FieldCodec
from .vault.config import VaultConfig
from .vault.session_key import SessionKeyStore

logger = logging.getLogger("flowhaven.vault")


class AuthController:
    def __init__(
        self,
        storage: Optional[MutableMapping[str, str]] = None,
        config: Optional[VaultConfig] = None,
        session: Optional[SessionData] = None,
    ):
        self.session = session
        self.store = SessionKeyStore(storage, config)
        self.codec = FieldCodec(self.store)

    async def start(self) -> FieldCodec:
        """Recover the session key, then hand out the codec.

        Awaiting this before the first ``decrypt_field`` guarantees fields
        are not rendered as ciphertext.
        """
        restored = await self.store.restore_session_key()
        if not restored:
            logger.warning("No persisted session key, re-login required to decrypt")
        return self.codec

    async def signup(self, password: str) -> str:
        """Returns the base64 ``encryption_salt`` to store on the new profile."""
        return await self.store.provision(password)

    async def login(self, password: str, encryption_salt: str) -> None:
        await self.store.unlock(password, encryption_salt)

    def logout(self) -> None:
        self.store.clear_session_key()
        if self.session is not None:
            self.session.invalidate()
        logger.info("User logged out, key material cleared")
