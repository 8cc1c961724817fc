# Core - Error Taxonomy
#
# Closed set of exceptions raised by the vault core and its stores.
# The core never maps these to transport status codes; the request
# layer (api/main.py) owns that mapping.

from typing import Optional


class VaultError(Exception):
    """Base exception for every vaultfactory error."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(VaultError):
    """Raised when input is malformed (missing field, bad length, bad type)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(VaultError):
    """Raised when a unique key already exists (e.g. email registered)."""


class AuthError(VaultError):
    """Raised for bad credentials and invalid or expired tokens.

    ``message`` is safe to show clients; ``reason`` carries the verifier's
    detail for audit records only.
    """

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class AccessDeniedError(VaultError):
    """Raised when an authenticated user touches a resource it does not own."""


class NotFoundError(VaultError):
    """Raised when the requested resource does not exist."""


class CryptoError(VaultError):
    """Raised when encryption, decryption or hashing fails.

    Never retried: the same key/ciphertext pair cannot succeed later.
    """


class StoreError(VaultError):
    """Raised when a persistence collaborator fails."""


class PartialWriteError(StoreError):
    """Raised when the second write of a two-row operation fails.

    The first write is NOT rolled back. ``completed`` names the write that
    persisted and ``entity_id`` the row it touched, so operators can find
    and repair the drift.
    """

    def __init__(self, message: str, entity_id: str, completed: str):
        super().__init__(message)
        self.entity_id = entity_id
        self.completed = completed
