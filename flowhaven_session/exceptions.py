"""Exceptions raised by the FlowHaven vault."""


class VaultError(Exception):
    """Base class for vault errors."""


class DecryptionError(VaultError):
    """A field cannot be decrypted (wrong key, corrupted or tampered blob)."""


class KeyExportError(VaultError):
    """The key handle was not created exportable."""


class KeyUnavailable(VaultError):
    """No session key is resident and none could be recovered."""
