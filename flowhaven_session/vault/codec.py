"""
FieldCodec — Encrypt and decrypt single fields with the session key.

The codec never raises on a missing key or a bad ciphertext. It hands back
the input unchanged, tagged as ``degraded`` with a reason, so one bad field
cannot break a whole record list. Rows written before encryption was
enabled keep reading as plaintext.

Security Note:
    A ``no-key`` degradation on encrypt means plaintext is being written.
    Every degradation is logged at WARNING and counted in ``stats``.
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..exceptions import DecryptionError, KeyUnavailable
from .crypto import SymmetricKey, encrypt, decrypt
from .session_key import SessionKeyStore

logger = logging.getLogger("flowhaven.vault")

REASON_NO_KEY = "no-key"
REASON_DECRYPT_FAILED = "decrypt-failed"


class FieldStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


class FieldResult(BaseModel):
    """Outcome of a field encrypt/decrypt."""

    value: str
    status: FieldStatus = FieldStatus.OK
    reason: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.status is FieldStatus.OK

    @classmethod
    def degraded(cls, value: str, reason: str) -> "FieldResult":
        return cls(value=value, status=FieldStatus.DEGRADED, reason=reason)


class FieldCodec:
    """Field-level encryption using the key held by a SessionKeyStore."""

    def __init__(self, store: SessionKeyStore):
        self._store = store
        self.stats = {"encrypted": 0, "decrypted": 0, "degraded": 0}

    @property
    def store(self) -> SessionKeyStore:
        return self._store

    async def _resolve_key(self) -> Optional[SymmetricKey]:
        if not self._store.has_session_key():
            await self._store.restore_session_key()
        return self._store.get_session_key()

    def _degrade(self, value: str, reason: str, operation: str) -> FieldResult:
        self.stats["degraded"] += 1
        logger.warning("%s: field passed through unchanged (%s)", operation, reason)
        return FieldResult.degraded(value, reason)

    async def require_key(self) -> SymmetricKey:
        """Return the session key, recovering it if needed.

        Raises:
            KeyUnavailable: If no key is resident or recoverable.
        """
        key = await self._resolve_key()
        if key is None:
            raise KeyUnavailable("No session key available, re-login required")
        return key

    async def encrypt(self, value: str) -> FieldResult:
        key = await self._resolve_key()
        if key is None:
            return self._degrade(value, REASON_NO_KEY, "encrypt_field")
        blob = encrypt(value, key)
        self.stats["encrypted"] += 1
        return FieldResult(value=blob)

    async def decrypt(self, value: str) -> FieldResult:
        key = await self._resolve_key()
        if key is None:
            return self._degrade(value, REASON_NO_KEY, "decrypt_field")
        try:
            plaintext = decrypt(value, key)
        except DecryptionError as err:
            logger.debug("decrypt_field failed: %s", err)
            return self._degrade(value, REASON_DECRYPT_FAILED, "decrypt_field")
        self.stats["decrypted"] += 1
        return FieldResult(value=plaintext)

    async def encrypt_field(self, value: str) -> str:
        """Encrypt ``value``, or return it unchanged if no key is available."""
        return (await self.encrypt(value)).value

    async def decrypt_field(self, value: str) -> str:
        """Decrypt ``value``, or return it unchanged on any failure."""
        return (await self.decrypt(value)).value
