"""
Vault Configuration - validated settings built once at process start.

Reads ``VAULT_*`` environment variables (optionally from a ``.env`` file)
into a ``VaultConfig`` that is passed explicitly into the crypto engine,
token issuer and request layer. Nothing in the core reads the environment.

Security Note:
    Never log the JWT secret. ``VaultConfig.__repr__`` masks it.
"""
import os
import secrets
import logging
from datetime import timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_PREFIX = "VAULT_"

_SUPPORTED_JWT_ALGORITHMS = ("HS256", "HS384", "HS512")
_SUPPORTED_CIPHERS = ("chacha20", "aesgcm")
_SUPPORTED_LOG_FORMATS = ("json", "console")


def generate_jwt_secret() -> str:
    """Generate a random signing secret for operators to put in VAULT_JWT_SECRET."""
    return secrets.token_urlsafe(48)


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    jwt_secret: str = Field(min_length=32)
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="vaultfactory", min_length=1)
    access_token_expire_minutes: int = Field(default=60, ge=1, le=1440)
    refresh_token_expire_days: int = Field(default=30, ge=1, le=365)

    argon2_memory_cost: int = Field(default=64 * 1024, ge=8)
    argon2_time_cost: int = Field(default=3, ge=1)
    argon2_parallelism: int = Field(default=2, ge=1, le=64)
    argon2_salt_len: int = Field(default=16, ge=16)
    argon2_hash_len: int = Field(default=32, ge=16)

    cipher_backend: str = Field(default="chacha20")

    database_path: Path = Field(default=Path("data/vault.db"))
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    request_timeout: float = Field(default=30.0, gt=0)
    session_sweep_interval: int = Field(default=3600, ge=0)

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    audit_log_dir: Optional[Path] = None

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        v = v.upper()
        if v not in _SUPPORTED_JWT_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm: {v}")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        v = v.lower()
        if v not in _SUPPORTED_CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in _SUPPORTED_LOG_FORMATS:
            raise ValueError(f"Unsupported log format: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return v

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{name}={'***' if name == 'jwt_secret' else repr(value)}"
            for name, value in self
        )
        return f"VaultConfig({fields})"

    __str__ = __repr__

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "VaultConfig":
        """Create VaultConfig from ``VAULT_*`` environment variables.

        Args:
            env_file: Optional path to a ``.env`` file loaded first. Values
                already present in the environment win.

        Returns:
            Populated VaultConfig instance.

        Raises:
            RuntimeError: If VAULT_JWT_SECRET is not set.
            pydantic.ValidationError: If any value is out of range.
        """
        load_dotenv(dotenv_path=env_file, override=False)

        if not os.environ.get(f"{_ENV_PREFIX}JWT_SECRET"):
            raise RuntimeError(
                "VAULT_JWT_SECRET environment variable is not set. "
                "Generate one with vaultfactory.core.config.generate_jwt_secret()"
            )

        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        config = cls(**values)
        logger.debug(
            "Loaded config: db=%s cipher=%s access_ttl=%dm refresh_ttl=%dd",
            config.database_path, config.cipher_backend,
            config.access_token_expire_minutes, config.refresh_token_expire_days,
        )
        return config
