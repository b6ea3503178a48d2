"""
Vault Crypto Core — Password-based key derivation and field encryption.

Implements client-held, field-level encryption for user content:
- Key derivation: PBKDF2-HMAC-SHA256(password, profile salt) → AES-256 key
- Field cipher: AES-GCM → base64([salt 16B][nonce 12B][ciphertext + tag 16B])

The wire format is stable: every stored encrypted column depends on it.

Security Note:
    Never log plaintext, ciphertext or key material.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import hmac
import base64
import binascii
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError, KeyExportError

logger = logging.getLogger("flowhaven.vault")

PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 16  # per-user and per-value salt
NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TAG_LENGTH = 16  # GCM tag

_HEADER_SIZE = SALT_LENGTH + NONCE_SIZE


class SymmetricKey:
    """Opaque AES-256-GCM key handle.

    Key bytes are only reachable through :meth:`export`, and only when the
    handle was created exportable.
    """

    __slots__ = ("_raw", "_cipher", "_exportable")

    def __init__(self, raw: bytes, exportable: bool = False):
        if len(raw) != KEY_LENGTH:
            raise ValueError(
                f"Key must be exactly {KEY_LENGTH} bytes, got {len(raw)}"
            )
        self._raw = bytes(raw)
        self._cipher = AESGCM(self._raw)
        self._exportable = exportable

    @classmethod
    def import_raw(cls, raw: bytes, exportable: bool = True) -> "SymmetricKey":
        """Rebuild a key handle from previously exported bytes."""
        return cls(raw, exportable=exportable)

    @property
    def exportable(self) -> bool:
        return self._exportable

    @property
    def cipher(self) -> AESGCM:
        return self._cipher

    def export(self) -> bytes:
        """Return the raw key bytes.

        Raises:
            KeyExportError: If the key was not created exportable.
        """
        if not self._exportable:
            raise KeyExportError("Key is not exportable")
        return self._raw

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymmetricKey):
            return NotImplemented
        return hmac.compare_digest(self._raw, other._raw)

    def __repr__(self) -> str:
        return f"<SymmetricKey AES-256-GCM exportable={self._exportable}>"


# ---------------------------------------------------------------------------
# Salt helpers
# ---------------------------------------------------------------------------

def generate_salt() -> str:
    """Generate a new 16-byte user salt, base64-encoded.

    Created once at signup and stored on the user profile as
    ``encryption_salt``.
    """
    return base64.b64encode(os.urandom(SALT_LENGTH)).decode("ascii")


def salt_from_base64(value: str) -> bytes:
    """Decode a profile salt.

    Raises:
        ValueError: If the value is not base64 or not 16 bytes long.
    """
    try:
        salt = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"Invalid salt encoding: {err}") from err
    if len(salt) != SALT_LENGTH:
        raise ValueError(
            f"Salt must decode to exactly {SALT_LENGTH} bytes, got {len(salt)}"
        )
    return salt


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> SymmetricKey:
    """Derive an exportable AES-256 key from a password using PBKDF2-SHA256.

    Deterministic for a fixed (password, salt, iterations).

    Args:
        password: User password.
        salt: 16-byte per-user salt.
        iterations: PBKDF2 rounds, never below ``PBKDF2_ITERATIONS``.

    Returns:
        Exportable key handle.

    Raises:
        ValueError: On a bad salt, password or iteration count.
    """
    if not isinstance(password, str):
        raise ValueError("Password must be a string")
    if len(salt) != SALT_LENGTH:
        raise ValueError(
            f"Salt must be exactly {SALT_LENGTH} bytes, got {len(salt)}"
        )
    if iterations < PBKDF2_ITERATIONS:
        raise ValueError(
            f"PBKDF2 iterations must be at least {PBKDF2_ITERATIONS}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return SymmetricKey(kdf.derive(password.encode("utf-8")), exportable=True)


# ---------------------------------------------------------------------------
# Field cipher
# ---------------------------------------------------------------------------

def encrypt(plaintext: str, key: SymmetricKey) -> str:
    """Encrypt a text field.

    Format: base64([salt 16B][nonce 12B][encrypted_payload + GCM_tag 16B]).
    Salt and nonce are fresh on every call.

    Args:
        plaintext: Text to encrypt.
        key: Session key.

    Returns:
        Base64 text blob.
    """
    nonce = os.urandom(NONCE_SIZE)
    salt = os.urandom(SALT_LENGTH)
    ct = key.cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(salt + nonce + ct).decode("ascii")


def decrypt(blob: str, key: SymmetricKey) -> str:
    """Decrypt a text field produced by :func:`encrypt`.

    Args:
        blob: Base64 text blob.
        key: Session key.

    Returns:
        Decrypted text.

    Raises:
        DecryptionError: On bad encoding, short blob, tag mismatch
            (wrong key or tampering), or non UTF-8 payload.
    """
    try:
        packed = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as err:
        raise DecryptionError(f"Invalid ciphertext encoding: {err}") from err
    _min = _HEADER_SIZE + TAG_LENGTH
    if len(packed) < _min:
        raise DecryptionError(
            f"Ciphertext too short: {len(packed)} bytes (minimum {_min})"
        )
    nonce = packed[SALT_LENGTH:_HEADER_SIZE]
    ct = packed[_HEADER_SIZE:]
    try:
        data = key.cipher.decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise DecryptionError("Authentication tag mismatch") from err
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecryptionError("Decrypted payload is not valid UTF-8") from err
