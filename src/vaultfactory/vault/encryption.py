# Vault - Crypto Engine
#
# Password hashing (Argon2id, self-describing encoded string)
# Per-item envelope encryption (ChaCha20-Poly1305 or AES-256-GCM)
# Random key generation from the OS CSPRNG
#
# Security Note:
#     Never log plaintext, keys or ciphertext values.

import os

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..core.errors import CryptoError

_CIPHERS = {
    "chacha20": ChaCha20Poly1305,
    "aesgcm": AESGCM,
}


class CryptoEngine:
    """
    Hashes passwords and encrypts item payloads.

    Flow:
    1. Registration: hash_password() stores an Argon2id encoded hash
    2. Login: verify_password() re-derives with the embedded parameters
    3. Item create: generate_key() once per item, encrypt() the payload
    4. Item read/update: decrypt()/encrypt() under the same item key

    Ciphertext layout: [nonce 12B][encrypted_payload + tag 16B]
    """

    KEY_LENGTH = 32  # 256-bit item keys
    NONCE_LENGTH = 12  # 96-bit nonce (both AEADs)
    TAG_LENGTH = 16

    def __init__(
        self,
        memory_cost: int = 64 * 1024,
        time_cost: int = 3,
        parallelism: int = 2,
        salt_len: int = 16,
        hash_len: int = 32,
        cipher_backend: str = "chacha20",
    ):
        """
        Args:
            memory_cost: Argon2 memory in KiB
            time_cost: Argon2 iterations
            parallelism: Argon2 lanes
            salt_len: Random salt bytes per hash (min 16)
            hash_len: Derived key bytes
            cipher_backend: "chacha20" (ChaCha20-Poly1305) or "aesgcm" (AES-256-GCM)
        """
        if salt_len < 16:
            raise ValueError("salt_len must be at least 16 bytes")
        if cipher_backend not in _CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}")

        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
            type=Type.ID,
        )
        self._cipher_cls = _CIPHERS[cipher_backend]
        self.cipher_backend = cipher_backend

    @classmethod
    def from_config(cls, config) -> "CryptoEngine":
        """Build an engine from a VaultConfig."""
        return cls(
            memory_cost=config.argon2_memory_cost,
            time_cost=config.argon2_time_cost,
            parallelism=config.argon2_parallelism,
            salt_len=config.argon2_salt_len,
            hash_len=config.argon2_hash_len,
            cipher_backend=config.cipher_backend,
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        """
        Hash a password with Argon2id and a fresh random salt.

        Returns:
            ``$argon2id$v=19$m=<mem>,t=<iter>,p=<par>$<b64 salt>$<b64 hash>``

        Raises:
            CryptoError: If hashing fails (e.g. no randomness available)
        """
        try:
            return self._hasher.hash(password)
        except (HashingError, OSError) as exc:
            raise CryptoError("failed to hash password") from exc

    def verify_password(self, password: str, encoded_hash: str) -> bool:
        """
        Check a password against an encoded hash.

        Cost parameters and salt come from ``encoded_hash`` itself and the
        digest comparison is constant-time. Malformed hashes (wrong field
        count, unknown version, bad base64) verify as False.
        """
        try:
            return self._hasher.verify(encoded_hash, password)
        except (VerificationError, InvalidHashError, UnicodeError):
            return False

    def needs_rehash(self, encoded_hash: str) -> bool:
        """True if ``encoded_hash`` was made with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(encoded_hash)
        except (InvalidHashError, ValueError, UnicodeError):
            return True

    # ------------------------------------------------------------------
    # Keys and payloads
    # ------------------------------------------------------------------

    def generate_key(self) -> bytes:
        """Generate a random 256-bit item key."""
        try:
            return os.urandom(self.KEY_LENGTH)
        except NotImplementedError as exc:
            raise CryptoError("no secure random source available") from exc

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        """
        Encrypt a payload under an item key.

        A fresh random nonce is generated per call and prepended to the
        output, so ciphertext is self-contained.

        Raises:
            CryptoError: If the key is malformed
        """
        try:
            cipher = self._cipher_cls(key)
            nonce = os.urandom(self.NONCE_LENGTH)
            return nonce + cipher.encrypt(nonce, bytes(plaintext), None)
        except (ValueError, TypeError) as exc:
            raise CryptoError("failed to encrypt payload") from exc

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        """
        Decrypt a payload produced by encrypt().

        Raises:
            CryptoError: If the input is shorter than the nonce, the key is
                malformed, or authentication fails (wrong key, tampered data)
        """
        if ciphertext is None or len(ciphertext) < self.NONCE_LENGTH:
            raise CryptoError("ciphertext too short")

        nonce = ciphertext[:self.NONCE_LENGTH]
        body = ciphertext[self.NONCE_LENGTH:]
        try:
            cipher = self._cipher_cls(key)
            return cipher.decrypt(nonce, body, None)
        except InvalidTag as exc:
            raise CryptoError("failed to decrypt payload: authentication failed") from exc
        except (ValueError, TypeError) as exc:
            raise CryptoError("failed to decrypt payload") from exc
