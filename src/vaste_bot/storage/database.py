"""SQLite database connection manager with schema migration."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from vaste_bot.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS agents (
    id                  TEXT    PRIMARY KEY,
    owner_id            TEXT    NOT NULL,
    name                TEXT    NOT NULL,
    welcome_message     TEXT    NOT NULL,
    system_prompt       TEXT    NOT NULL,
    temperature         REAL    NOT NULL CHECK(temperature BETWEEN 0 AND 1),
    header_color        TEXT,
    accent_color        TEXT,
    background_color    TEXT,
    profile_image       TEXT,
    collect_user_info   INTEGER NOT NULL DEFAULT 0,
    form_fields_json    TEXT    NOT NULL DEFAULT '[]',
    created_at          INTEGER NOT NULL,
    updated_at          INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_agents_owner ON agents(owner_id);

CREATE TABLE IF NOT EXISTS chat_sessions (
    id              TEXT    PRIMARY KEY,
    agent_id        TEXT    NOT NULL,
    user_id         TEXT    NOT NULL,
    metadata_json   TEXT    NOT NULL DEFAULT '{}',
    last_active     INTEGER NOT NULL,
    created_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_agent ON chat_sessions(agent_id, created_at);

CREATE TABLE IF NOT EXISTS chat_messages (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    id              TEXT    NOT NULL UNIQUE,
    session_id      TEXT    NOT NULL,
    role            TEXT    NOT NULL CHECK(role IN ('user','assistant','system')),
    content         TEXT    NOT NULL,
    metadata_json   TEXT    NOT NULL DEFAULT '{}',
    created_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON chat_messages(session_id, created_at, seq);

CREATE TABLE IF NOT EXISTS knowledge_entries (
    id              TEXT    PRIMARY KEY,
    agent_id        TEXT    NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
    user_id         TEXT    NOT NULL,
    input           TEXT    NOT NULL,
    output          TEXT    NOT NULL,
    metadata_json   TEXT    NOT NULL DEFAULT '{}',
    created_at      INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_knowledge_agent ON knowledge_entries(agent_id, created_at);

CREATE TABLE IF NOT EXISTS bot_configs (
    id                  TEXT    PRIMARY KEY,
    agent_id            TEXT    NOT NULL,
    bot_token           TEXT    NOT NULL,
    client_id           TEXT    NOT NULL,
    guild_id            TEXT,
    is_active           INTEGER NOT NULL DEFAULT 1,
    status              TEXT    NOT NULL DEFAULT 'stopped',
    last_seen           INTEGER,
    created_at          INTEGER NOT NULL,
    updated_at          INTEGER NOT NULL,
    lock_holder         TEXT,
    lock_expires_at     INTEGER,
    lock_version        INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_bot_configs_active ON bot_configs(is_active, updated_at);
"""


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and run migrations."""
        if self._conn is not None:
            return
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.execute("PRAGMA busy_timeout=5000")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
