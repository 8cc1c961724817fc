"""Authentication: credential checks, session lifecycle and access tokens."""

from .auth_manager import AuthManager
from .tokens import AccessClaims, TokenIssuer

__all__ = ["AuthManager", "AccessClaims", "TokenIssuer"]
