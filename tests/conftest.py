import os

import pytest

from flowhaven_session.vault.crypto import derive_key

PASSWORD = "correcthorse123"


@pytest.fixture(scope="session")
def salt() -> bytes:
    return os.urandom(16)


@pytest.fixture(scope="session")
def key(salt):
    """Derived once: PBKDF2 at full strength is slow on purpose."""
    return derive_key(PASSWORD, salt)


@pytest.fixture(scope="session")
def other_key():
    return derive_key("a different password", os.urandom(16))
