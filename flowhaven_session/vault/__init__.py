"""Session Vault — Client-held field encryption bound to a user session.

Security Note (Threat Model):
    The session key lives in process memory and, exported, in durable
    storage until logout. Anyone able to read that storage can decrypt the
    user's fields. This is an accepted limitation; logout must clear it.
"""

from .crypto import (
    SymmetricKey,
    derive_key,
    encrypt,
    decrypt,
    generate_salt,
    salt_from_base64,
)
from .config import VaultConfig
from .storage import FileKeyStorage
from .session_key import SessionKeyStore, KeyState
from .codec import FieldCodec, FieldResult, FieldStatus

__all__ = [
    "SymmetricKey",
    "derive_key",
    "encrypt",
    "decrypt",
    "generate_salt",
    "salt_from_base64",
    "VaultConfig",
    "FileKeyStorage",
    "SessionKeyStore",
    "KeyState",
    "FieldCodec",
    "FieldResult",
    "FieldStatus",
]
