"""
Store contracts (repositories) consumed by the auth and vault cores.

Each store is an abstract base class with async methods so that a
caller-imposed timeout or cancellation reaches every call. Concrete
adapters live in ``sqlite_store`` and ``memory_store``.

Contract shared by all adapters:
- Absent rows are reported as ``None`` (getters) or ``False`` (update/delete)
- Unique-key violations raise ``ConflictError``
- Any other backend failure raises ``StoreError``
- Each method is atomic for the single row it touches
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..models import DataItem, DataType, DataVersion, Session, User


class UserStore(ABC):
    """User records."""

    @abstractmethod
    async def create(self, user: User) -> None:
        """Persist a new user. Raises ConflictError if the email is taken."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def update(self, user: User) -> bool:
        """Overwrite email, password hash and updated_at. False if missing."""


class SessionStore(ABC):
    """Session records keyed by opaque refresh token."""

    @abstractmethod
    async def create(self, session: Session) -> None:
        ...

    @abstractmethod
    async def get_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def get_by_user_id(self, user_id: str) -> List[Session]:
        ...

    @abstractmethod
    async def update(
        self,
        session: Session,
        expected_refresh_token: Optional[str] = None,
    ) -> bool:
        """
        Overwrite refresh_token, expires_at and updated_at of a session.

        Args:
            session: New row values (matched by ``session.id``)
            expected_refresh_token: If given, the write only happens when the
                stored token still equals it (atomic compare-and-swap)

        Returns:
            True if the row was written, False if it is gone or the
            stored token no longer matches
        """

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_by_user_id(self, user_id: str) -> int:
        """Delete every session of a user. Returns the number removed."""

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Delete sessions with ``expires_at < now``. Returns the number removed."""


class DataItemStore(ABC):
    """Encrypted item records. Listings are ordered by updated_at."""

    @abstractmethod
    async def create(self, item: DataItem) -> None:
        ...

    @abstractmethod
    async def get_by_id(self, data_id: str) -> Optional[DataItem]:
        ...

    @abstractmethod
    async def get_by_user_id(self, user_id: str) -> List[DataItem]:
        """Items of a user, most recently updated first."""

    @abstractmethod
    async def get_by_user_id_and_type(
        self, user_id: str, data_type: DataType
    ) -> List[DataItem]:
        """Items of a user with one type, most recently updated first."""

    @abstractmethod
    async def update(self, item: DataItem) -> bool:
        """Overwrite mutable columns of an item. False if missing."""

    @abstractmethod
    async def delete(self, data_id: str) -> bool:
        ...

    @abstractmethod
    async def get_updated_since(
        self, user_id: str, since: datetime
    ) -> List[DataItem]:
        """Items of a user with ``updated_at > since``, oldest change first."""


class DataVersionStore(ABC):
    """Append-only version history."""

    @abstractmethod
    async def create(self, version: DataVersion) -> None:
        ...

    @abstractmethod
    async def get_by_data_id(self, data_id: str) -> List[DataVersion]:
        """Version rows of an item, ascending by version."""

    @abstractmethod
    async def get_latest_version(self, data_id: str) -> Optional[DataVersion]:
        ...
