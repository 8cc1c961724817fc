# Core Module - Shared Utilities
#
# Core module provides shared functionality across vaultfactory modules:
# - Error taxonomy
# - Input validation
# - Configuration
# - Logging & audit trail

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_logging,
)
from .config import VaultConfig, generate_jwt_secret
from .errors import (
    AccessDeniedError,
    AuthError,
    ConflictError,
    CryptoError,
    NotFoundError,
    PartialWriteError,
    StoreError,
    ValidationError,
    VaultError,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_logging",
    # Configuration
    "VaultConfig",
    "generate_jwt_secret",
    # Errors
    "VaultError",
    "ValidationError",
    "ConflictError",
    "AuthError",
    "AccessDeniedError",
    "NotFoundError",
    "CryptoError",
    "StoreError",
    "PartialWriteError",
]
