"""
SQLite store adapters.

One adapter per store contract in ``repositories``. Each call opens a
short-lived WAL connection (see ``connection.Database``) inside a worker
thread via ``asyncio.to_thread`` so the event loop never blocks on disk.

Row-level atomicity is all the cores rely on; the refresh-token rotation
uses ``UPDATE ... WHERE id = ? AND refresh_token = ?`` as its
compare-and-swap.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from ..core.errors import ConflictError, StoreError
from ..models import DataItem, DataType, DataVersion, Session, User
from .connection import Database
from .migrations import initialize_schema
from .repositories import DataItemStore, DataVersionStore, SessionStore, UserStore

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _ts(value: datetime) -> str:
    """Fixed-width UTC text; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class _SQLiteRepository:
    """Shared plumbing: thread offload and sqlite3 error translation."""

    def __init__(self, db: Database):
        self.db = db

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(self._guarded, fn, *args)

    @staticmethod
    def _guarded(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc).upper():
                raise ConflictError(f"unique constraint violated: {exc}") from exc
            raise StoreError(f"integrity error: {exc}") from exc
        except sqlite3.Error as exc:
            logger.error("SQLite operation failed: %s", exc)
            raise StoreError(f"database error: {exc}") from exc


class SQLiteUserStore(_SQLiteRepository, UserStore):
    """User data access object."""

    async def create(self, user: User) -> None:
        def _insert():
            with self.db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO users (id, email, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user.id, user.email, user.password_hash,
                     _ts(user.created_at), _ts(user.updated_at)),
                )
        await self._run(_insert)
        logger.info("User created: %s", user.id)

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._run(self._fetch_one, "email", email)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return await self._run(self._fetch_one, "id", user_id)

    async def update(self, user: User) -> bool:
        def _update():
            with self.db.connection() as conn:
                cursor = conn.execute(
                    "UPDATE users SET email = ?, password_hash = ?, updated_at = ? WHERE id = ?",
                    (user.email, user.password_hash, _ts(user.updated_at), user.id),
                )
                return cursor.rowcount > 0
        return await self._run(_update)

    def _fetch_one(self, column: str, value: str) -> Optional[User]:
        with self.db.connection() as conn:
            row = conn.execute(
                f"SELECT * FROM users WHERE {column} = ?", (value,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )


class SQLiteSessionStore(_SQLiteRepository, SessionStore):
    """Session data access object."""

    async def create(self, session: Session) -> None:
        def _insert():
            with self.db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO user_sessions
                    (id, user_id, refresh_token, expires_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (session.id, session.user_id, session.refresh_token,
                     _ts(session.expires_at), _ts(session.created_at),
                     _ts(session.updated_at)),
                )
        await self._run(_insert)
        logger.debug("Session created for user %s", session.user_id)

    async def get_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        def _select():
            with self.db.connection() as conn:
                row = conn.execute(
                    "SELECT * FROM user_sessions WHERE refresh_token = ?",
                    (refresh_token,),
                ).fetchone()
            return self._row_to_session(row) if row else None
        return await self._run(_select)

    async def get_by_user_id(self, user_id: str) -> List[Session]:
        def _select():
            with self.db.connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM user_sessions WHERE user_id = ? ORDER BY created_at",
                    (user_id,),
                ).fetchall()
            return [self._row_to_session(r) for r in rows]
        return await self._run(_select)

    async def update(
        self,
        session: Session,
        expected_refresh_token: Optional[str] = None,
    ) -> bool:
        sql = (
            "UPDATE user_sessions SET refresh_token = ?, expires_at = ?, updated_at = ? "
            "WHERE id = ?"
        )
        params = [session.refresh_token, _ts(session.expires_at),
                  _ts(session.updated_at), session.id]
        if expected_refresh_token is not None:
            sql += " AND refresh_token = ?"
            params.append(expected_refresh_token)

        def _update():
            with self.db.connection() as conn:
                return conn.execute(sql, params).rowcount > 0
        return await self._run(_update)

    async def delete(self, session_id: str) -> bool:
        def _delete():
            with self.db.connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM user_sessions WHERE id = ?", (session_id,)
                )
                return cursor.rowcount > 0
        return await self._run(_delete)

    async def delete_by_user_id(self, user_id: str) -> int:
        def _delete():
            with self.db.connection() as conn:
                return conn.execute(
                    "DELETE FROM user_sessions WHERE user_id = ?", (user_id,)
                ).rowcount
        return await self._run(_delete)

    async def delete_expired(self, now: datetime) -> int:
        def _delete():
            with self.db.connection() as conn:
                return conn.execute(
                    "DELETE FROM user_sessions WHERE expires_at < ?", (_ts(now),)
                ).rowcount
        removed = await self._run(_delete)
        if removed:
            logger.info("Removed %d expired session(s)", removed)
        return removed

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            refresh_token=row["refresh_token"],
            expires_at=_parse_ts(row["expires_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )


class SQLiteDataItemStore(_SQLiteRepository, DataItemStore):
    """Encrypted item data access object. Only ciphertext reaches disk."""

    async def create(self, item: DataItem) -> None:
        def _insert():
            with self.db.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO data_items
                    (id, user_id, type, name, metadata, encrypted_payload, item_key,
                     created_at, updated_at, version)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (item.id, item.user_id, item.type.value, item.name, item.metadata,
                     item.encrypted_payload, item.item_key,
                     _ts(item.created_at), _ts(item.updated_at), item.version),
                )
        await self._run(_insert)
        logger.info("Data item created: %s (user %s)", item.id, item.user_id)

    async def get_by_id(self, data_id: str) -> Optional[DataItem]:
        def _select():
            with self.db.connection() as conn:
                row = conn.execute(
                    "SELECT * FROM data_items WHERE id = ?", (data_id,)
                ).fetchone()
            return self._row_to_item(row) if row else None
        return await self._run(_select)

    async def get_by_user_id(self, user_id: str) -> List[DataItem]:
        return await self._run(
            self._select_many,
            "WHERE user_id = ? ORDER BY updated_at DESC",
            (user_id,),
        )

    async def get_by_user_id_and_type(
        self, user_id: str, data_type: DataType
    ) -> List[DataItem]:
        return await self._run(
            self._select_many,
            "WHERE user_id = ? AND type = ? ORDER BY updated_at DESC",
            (user_id, DataType(data_type).value),
        )

    async def get_updated_since(
        self, user_id: str, since: datetime
    ) -> List[DataItem]:
        return await self._run(
            self._select_many,
            "WHERE user_id = ? AND updated_at > ? ORDER BY updated_at ASC",
            (user_id, _ts(since)),
        )

    async def update(self, item: DataItem) -> bool:
        def _update():
            with self.db.connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE data_items
                    SET name = ?, metadata = ?, encrypted_payload = ?,
                        updated_at = ?, version = ?
                    WHERE id = ?
                    """,
                    (item.name, item.metadata, item.encrypted_payload,
                     _ts(item.updated_at), item.version, item.id),
                )
                return cursor.rowcount > 0
        return await self._run(_update)

    async def delete(self, data_id: str) -> bool:
        def _delete():
            with self.db.connection() as conn:
                return conn.execute(
                    "DELETE FROM data_items WHERE id = ?", (data_id,)
                ).rowcount > 0
        deleted = await self._run(_delete)
        if deleted:
            logger.info("Data item deleted: %s", data_id)
        return deleted

    def _select_many(self, clause: str, params: tuple) -> List[DataItem]:
        with self.db.connection() as conn:
            rows = conn.execute(f"SELECT * FROM data_items {clause}", params).fetchall()
        return [self._row_to_item(r) for r in rows]

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> DataItem:
        return DataItem(
            id=row["id"],
            user_id=row["user_id"],
            type=DataType(row["type"]),
            name=row["name"],
            metadata=row["metadata"],
            encrypted_payload=bytes(row["encrypted_payload"]),
            item_key=bytes(row["item_key"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            version=row["version"],
        )


class SQLiteDataVersionStore(_SQLiteRepository, DataVersionStore):
    """Version history data access object (insert and read only)."""

    async def create(self, version: DataVersion) -> None:
        def _insert():
            with self.db.connection() as conn:
                conn.execute(
                    "INSERT INTO data_versions (id, data_id, version, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (version.id, version.data_id, version.version,
                     _ts(version.created_at)),
                )
        await self._run(_insert)

    async def get_by_data_id(self, data_id: str) -> List[DataVersion]:
        def _select():
            with self.db.connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM data_versions WHERE data_id = ? ORDER BY version ASC",
                    (data_id,),
                ).fetchall()
            return [self._row_to_version(r) for r in rows]
        return await self._run(_select)

    async def get_latest_version(self, data_id: str) -> Optional[DataVersion]:
        def _select():
            with self.db.connection() as conn:
                row = conn.execute(
                    "SELECT * FROM data_versions WHERE data_id = ? "
                    "ORDER BY version DESC LIMIT 1",
                    (data_id,),
                ).fetchone()
            return self._row_to_version(row) if row else None
        return await self._run(_select)

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> DataVersion:
        return DataVersion(
            id=row["id"],
            data_id=row["data_id"],
            version=row["version"],
            created_at=_parse_ts(row["created_at"]),
        )


class SQLiteStores:
    """
    Factory bundling the four SQLite adapters over one database file.

    Usage:
        stores = SQLiteStores("data/vault.db")
        user = await stores.users.get_by_email("a@x.com")
    """

    def __init__(self, path):
        self.db = Database(path)
        initialize_schema(self.db)
        self.users = SQLiteUserStore(self.db)
        self.sessions = SQLiteSessionStore(self.db)
        self.items = SQLiteDataItemStore(self.db)
        self.versions = SQLiteDataVersionStore(self.db)
