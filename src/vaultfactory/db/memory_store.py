"""
In-memory store adapters.

Same contracts as the SQLite adapters, backed by dicts behind a
``threading.Lock``. Used for tests and for embedding the cores without a
database file. Rows are copied on the way in and out so callers can never
mutate stored state by accident.
"""

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..core.errors import ConflictError
from ..models import DataItem, DataType, DataVersion, Session, User
from .repositories import DataItemStore, DataVersionStore, SessionStore, UserStore


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MemoryUserStore(UserStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, User] = {}

    async def create(self, user: User) -> None:
        with self._lock:
            if user.id in self._rows or any(
                u.email == user.email for u in self._rows.values()
            ):
                raise ConflictError(f"user with email {user.email} already exists")
            self._rows[user.id] = replace(user)

    async def get_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            for user in self._rows.values():
                if user.email == email:
                    return replace(user)
        return None

    async def get_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._rows.get(user_id)
            return replace(user) if user else None

    async def update(self, user: User) -> bool:
        with self._lock:
            if user.id not in self._rows:
                return False
            self._rows[user.id] = replace(user)
            return True


class MemorySessionStore(SessionStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, Session] = {}

    async def create(self, session: Session) -> None:
        with self._lock:
            if session.id in self._rows or any(
                s.refresh_token == session.refresh_token for s in self._rows.values()
            ):
                raise ConflictError("session already exists")
            self._rows[session.id] = replace(session)

    async def get_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        with self._lock:
            for session in self._rows.values():
                if session.refresh_token == refresh_token:
                    return replace(session)
        return None

    async def get_by_user_id(self, user_id: str) -> List[Session]:
        with self._lock:
            rows = [replace(s) for s in self._rows.values() if s.user_id == user_id]
        return sorted(rows, key=lambda s: s.created_at)

    async def update(
        self,
        session: Session,
        expected_refresh_token: Optional[str] = None,
    ) -> bool:
        with self._lock:
            current = self._rows.get(session.id)
            if current is None:
                return False
            if (
                expected_refresh_token is not None
                and current.refresh_token != expected_refresh_token
            ):
                return False
            self._rows[session.id] = replace(
                current,
                refresh_token=session.refresh_token,
                expires_at=session.expires_at,
                updated_at=session.updated_at,
            )
            return True

    async def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._rows.pop(session_id, None) is not None

    async def delete_by_user_id(self, user_id: str) -> int:
        with self._lock:
            doomed = [sid for sid, s in self._rows.items() if s.user_id == user_id]
            for sid in doomed:
                del self._rows[sid]
            return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        now = _aware(now)
        with self._lock:
            doomed = [sid for sid, s in self._rows.items() if s.expires_at < now]
            for sid in doomed:
                del self._rows[sid]
            return len(doomed)


class MemoryDataItemStore(DataItemStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, DataItem] = {}

    async def create(self, item: DataItem) -> None:
        with self._lock:
            if item.id in self._rows:
                raise ConflictError(f"data item {item.id} already exists")
            self._rows[item.id] = replace(item)

    async def get_by_id(self, data_id: str) -> Optional[DataItem]:
        with self._lock:
            item = self._rows.get(data_id)
            return replace(item) if item else None

    async def get_by_user_id(self, user_id: str) -> List[DataItem]:
        rows = self._select(lambda i: i.user_id == user_id)
        return sorted(rows, key=lambda i: i.updated_at, reverse=True)

    async def get_by_user_id_and_type(
        self, user_id: str, data_type: DataType
    ) -> List[DataItem]:
        data_type = DataType(data_type)
        rows = self._select(lambda i: i.user_id == user_id and i.type == data_type)
        return sorted(rows, key=lambda i: i.updated_at, reverse=True)

    async def get_updated_since(
        self, user_id: str, since: datetime
    ) -> List[DataItem]:
        since = _aware(since)
        rows = self._select(lambda i: i.user_id == user_id and i.updated_at > since)
        return sorted(rows, key=lambda i: i.updated_at)

    async def update(self, item: DataItem) -> bool:
        with self._lock:
            if item.id not in self._rows:
                return False
            self._rows[item.id] = replace(item)
            return True

    async def delete(self, data_id: str) -> bool:
        with self._lock:
            return self._rows.pop(data_id, None) is not None

    def _select(self, predicate) -> List[DataItem]:
        with self._lock:
            return [replace(i) for i in self._rows.values() if predicate(i)]


class MemoryDataVersionStore(DataVersionStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: List[DataVersion] = []

    async def create(self, version: DataVersion) -> None:
        with self._lock:
            self._rows.append(version)

    async def get_by_data_id(self, data_id: str) -> List[DataVersion]:
        with self._lock:
            rows = [v for v in self._rows if v.data_id == data_id]
        return sorted(rows, key=lambda v: v.version)

    async def get_latest_version(self, data_id: str) -> Optional[DataVersion]:
        rows = await self.get_by_data_id(data_id)
        return rows[-1] if rows else None


class MemoryStores:
    """Factory bundling the four in-memory adapters."""

    def __init__(self):
        self.users = MemoryUserStore()
        self.sessions = MemorySessionStore()
        self.items = MemoryDataItemStore()
        self.versions = MemoryDataVersionStore()
