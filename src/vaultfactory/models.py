"""
Domain records for vaultfactory.

Plain dataclasses only. Table/column mapping lives in the store adapters
under ``vaultfactory.db``; the core never sees it.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class DataType(str, Enum):
    """Kinds of secret a DataItem can hold."""
    LOGIN_PASSWORD = "login_password"
    TEXT_DATA = "text_data"
    BINARY_DATA = "binary_data"
    BANK_CARD = "bank_card"


@dataclass
class User:
    """
    Registered account.

    Attributes:
        id: UUID string
        email: Unique login name
        password_hash: Encoded Argon2id hash (never the password)
        created_at: Registration timestamp
        updated_at: Last account-level change
    """
    email: str
    password_hash: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Session:
    """
    Live authentication grant identified by an opaque refresh token.

    Attributes:
        id: UUID string
        user_id: Owning user
        refresh_token: Opaque random token (unique across sessions)
        expires_at: After this instant the refresh token is rejected
    """
    user_id: str
    refresh_token: str
    expires_at: datetime
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class DataItem:
    """
    Encrypted secret owned by one user.

    ``item_key`` is generated at creation and never rotated. ``version``
    starts at 1 and grows by exactly one per content update. Listing and
    sync results carry ``encrypted_payload`` and ``item_key`` as None.
    """
    user_id: str
    type: DataType
    name: str
    metadata: str
    encrypted_payload: Optional[bytes]
    item_key: Optional[bytes]
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 1

    def without_secrets(self) -> "DataItem":
        """Copy with the payload and key stripped."""
        return replace(self, encrypted_payload=None, item_key=None)


@dataclass(frozen=True)
class DataVersion:
    """Append-only audit row written on every create/update of a DataItem."""
    data_id: str
    version: int
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
