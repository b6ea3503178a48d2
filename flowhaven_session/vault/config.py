"""
Vault Configuration — Key derivation and key persistence settings.

Reads optional overrides from environment variables:
    VAULT_PBKDF2_ITERATIONS = <integer, minimum 100000>
    VAULT_KEY_FILE = <path to the durable key storage file>

Security Note:
    Never log key material. Only log storage names and file locations.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .crypto import PBKDF2_ITERATIONS

logger = logging.getLogger("flowhaven.vault")

SESSION_KEY_STORAGE = "__ft_sk"
SESSION_SALT_STORAGE = "__ft_ss"


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    pbkdf2_iterations: int = Field(default=PBKDF2_ITERATIONS, ge=PBKDF2_ITERATIONS)
    key_storage_name: str = Field(default=SESSION_KEY_STORAGE, min_length=1)
    salt_storage_name: str = Field(default=SESSION_SALT_STORAGE, min_length=1)
    key_file: Optional[str] = None

    @field_validator("key_file")
    @classmethod
    def validate_key_file(cls, v: Optional[str]) -> Optional[str]:
        """Expand user home in the key file path."""
        if v:
            return os.path.expanduser(v)
        return None

    @model_validator(mode="after")
    def validate_storage_names(self) -> "VaultConfig":
        """Key and salt must live under distinct storage names."""
        if self.key_storage_name == self.salt_storage_name:
            raise ValueError(
                "key_storage_name and salt_storage_name must differ "
                f"(both are {self.key_storage_name!r})"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        iterations = int(
            os.environ.get("VAULT_PBKDF2_ITERATIONS", PBKDF2_ITERATIONS)
        )
        key_file = os.environ.get("VAULT_KEY_FILE")
        logger.debug(
            "Vault config from env: iterations=%d key_file=%s",
            iterations, key_file,
        )
        return cls(pbkdf2_iterations=iterations, key_file=key_file)
