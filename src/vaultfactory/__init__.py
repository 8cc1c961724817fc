# vaultfactory - Main Package
#
# Encrypted personal data vault: user accounts with Argon2id passwords,
# JWT access tokens with rotating refresh sessions, and per-item
# envelope-encrypted secrets with a version trail and incremental sync.

__version__ = "0.1.0"
__description__ = "Encrypted personal data vault service"

from .core import (
    EventSeverity,
    EventType,
    VaultConfig,
    VaultError,
)

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "VaultConfig",
    "VaultError",
]
