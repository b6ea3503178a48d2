"""
Tests for the vault crypto core.

Tests cover:
- Field round-trip for empty, multi-byte and large strings
- Non-deterministic encryption and the packed wire format
- Rejection of wrong keys, tampered and malformed blobs
- PBKDF2 derivation determinism and salt separation
- Key handle export rules and salt helpers
"""
import base64
import os

import pytest

from flowhaven_session.exceptions import DecryptionError, KeyExportError
from flowhaven_session.vault.crypto import (
    KEY_LENGTH,
    NONCE_SIZE,
    SALT_LENGTH,
    TAG_LENGTH,
    SymmetricKey,
    decrypt,
    derive_key,
    encrypt,
    generate_salt,
    salt_from_base64,
)

PASSWORD = "correcthorse123"


class TestRoundTrip:
    """decrypt(encrypt(x, k), k) == x."""

    @pytest.mark.parametrize("plaintext", [
        "",
        "Buy milk",
        "Café ☕ naïve résumé",
        "🎯🔥 goals for 2026 🚀",
        "日本語のメモ",
        "line one\nline two\ttabbed",
    ])
    def test_roundtrip(self, key, plaintext):
        assert decrypt(encrypt(plaintext, key), key) == plaintext

    def test_roundtrip_large(self, key):
        plaintext = "journal entry ✍️ " * 1000
        assert len(plaintext.encode("utf-8")) > 10_000
        assert decrypt(encrypt(plaintext, key), key) == plaintext

    def test_ciphertext_scales_with_plaintext(self, key):
        short = base64.b64decode(encrypt("a", key))
        long = base64.b64decode(encrypt("a" * 5000, key))
        assert len(long) - len(short) == 4999


class TestWireFormat:

    def test_layout(self, key):
        plaintext = "Buy milk"
        packed = base64.b64decode(encrypt(plaintext, key))
        assert len(packed) == SALT_LENGTH + NONCE_SIZE + len(plaintext) + TAG_LENGTH

    def test_output_is_ascii_text(self, key):
        blob = encrypt("hello", key)
        assert isinstance(blob, str)
        blob.encode("ascii")

    def test_non_deterministic(self, key):
        first = encrypt("same value", key)
        second = encrypt("same value", key)
        assert first != second
        p1 = base64.b64decode(first)
        p2 = base64.b64decode(second)
        assert p1[:SALT_LENGTH] != p2[:SALT_LENGTH]
        assert p1[SALT_LENGTH:SALT_LENGTH + NONCE_SIZE] != p2[SALT_LENGTH:SALT_LENGTH + NONCE_SIZE]


class TestDecryptFailures:

    def test_wrong_key(self, key, other_key):
        with pytest.raises(DecryptionError):
            decrypt(encrypt("secret", key), other_key)

    def test_tampered_ciphertext(self, key):
        packed = bytearray(base64.b64decode(encrypt("secret", key)))
        packed[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt(base64.b64encode(bytes(packed)).decode(), key)

    def test_tampered_nonce(self, key):
        packed = bytearray(base64.b64decode(encrypt("secret", key)))
        packed[SALT_LENGTH] ^= 0xFF
        with pytest.raises(DecryptionError):
            decrypt(base64.b64encode(bytes(packed)).decode(), key)

    def test_invalid_base64(self, key):
        with pytest.raises(DecryptionError):
            decrypt("not base64 !!", key)

    def test_too_short(self, key):
        with pytest.raises(DecryptionError):
            decrypt(base64.b64encode(b"x" * 20).decode(), key)

    def test_plaintext_value(self, key):
        with pytest.raises(DecryptionError):
            decrypt("Buy milk", key)


class TestKeyDerivation:

    def test_deterministic(self, key, salt):
        again = derive_key(PASSWORD, salt)
        assert again == key
        assert decrypt(encrypt("interchangeable", key), again) == "interchangeable"

    def test_different_salt(self, key):
        assert derive_key(PASSWORD, os.urandom(SALT_LENGTH)) != key

    def test_different_password(self, key, salt):
        assert derive_key("correcthorse124", salt) != key

    def test_derived_key_is_exportable(self, key):
        assert key.exportable is True
        assert len(key.export()) == KEY_LENGTH

    def test_bad_salt_length(self):
        with pytest.raises(ValueError):
            derive_key(PASSWORD, b"short")

    def test_low_iterations_rejected(self, salt):
        with pytest.raises(ValueError):
            derive_key(PASSWORD, salt, iterations=1000)

    def test_non_string_password(self, salt):
        with pytest.raises(ValueError):
            derive_key(b"bytes", salt)


class TestSymmetricKey:

    def test_repr_hides_material(self, key):
        raw = key.export()
        assert raw.hex() not in repr(key)
        assert "SymmetricKey" in repr(key)

    def test_non_exportable(self):
        handle = SymmetricKey(os.urandom(KEY_LENGTH))
        with pytest.raises(KeyExportError):
            handle.export()

    def test_import_raw(self, key):
        imported = SymmetricKey.import_raw(key.export())
        assert imported == key
        assert decrypt(encrypt("x", key), imported) == "x"

    def test_import_wrong_length(self):
        with pytest.raises(ValueError):
            SymmetricKey.import_raw(b"\x00" * 16)


class TestSalt:

    def test_generate_salt(self):
        salt = generate_salt()
        assert len(salt_from_base64(salt)) == SALT_LENGTH
        assert generate_salt() != salt

    def test_salt_from_base64_wrong_length(self):
        with pytest.raises(ValueError):
            salt_from_base64(base64.b64encode(b"12345").decode())

    def test_salt_from_base64_invalid(self):
        with pytest.raises(ValueError):
            salt_from_base64("***")
