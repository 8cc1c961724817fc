"""
Database schema initialization.

Creates tables and indexes idempotently. Timestamps are stored as
fixed-width ISO-8601 UTC text so that lexical order equals time order.
"""

import logging

from .connection import Database

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id              TEXT PRIMARY KEY,
        email           TEXT NOT NULL UNIQUE,
        password_hash   TEXT NOT NULL,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_sessions (
        id              TEXT PRIMARY KEY,
        user_id         TEXT NOT NULL,
        refresh_token   TEXT NOT NULL UNIQUE,
        expires_at      TEXT NOT NULL,
        created_at      TEXT NOT NULL,
        updated_at      TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON user_sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON user_sessions(expires_at)",
    """
    CREATE TABLE IF NOT EXISTS data_items (
        id                  TEXT PRIMARY KEY,
        user_id             TEXT NOT NULL,
        type                TEXT NOT NULL,
        name                TEXT NOT NULL,
        metadata            TEXT NOT NULL DEFAULT '',
        encrypted_payload   BLOB NOT NULL,
        item_key            BLOB NOT NULL,
        created_at          TEXT NOT NULL,
        updated_at          TEXT NOT NULL,
        version             INTEGER NOT NULL DEFAULT 1
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_data_user_updated ON data_items(user_id, updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_data_user_type ON data_items(user_id, type)",
    # No FK to data_items: version history outlives deleted items.
    """
    CREATE TABLE IF NOT EXISTS data_versions (
        id          TEXT PRIMARY KEY,
        data_id     TEXT NOT NULL,
        version     INTEGER NOT NULL,
        created_at  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_versions_data_id ON data_versions(data_id, version)",
]


def initialize_schema(db: Database) -> None:
    """
    Create all tables and indexes if they do not exist.

    Args:
        db: Database instance
    """
    with db.connection() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)
    logger.info("Database schema initialized at %s", db.path)
