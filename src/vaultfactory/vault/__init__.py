"""Encrypted data items: crypto engine and owner-scoped item manager."""

from .encryption import CryptoEngine
from .vault_manager import VaultManager

__all__ = ["CryptoEngine", "VaultManager"]
