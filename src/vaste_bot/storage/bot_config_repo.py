"""Bot configuration repository, including the lease columns used for runner locking.

Each lock mutation is a single conditional UPDATE ... RETURNING statement, so the
check and the write happen atomically inside SQLite's write lock, also across
processes sharing the database file. lock_version is bumped on every successful
mutation and doubles as a fencing token.
"""

from __future__ import annotations

from typing import Optional

from vaste_bot.core.ids import new_id, now_ms
from vaste_bot.storage.database import Database
from vaste_bot.storage.models import BotConfig


class BotConfigRepository:
    def __init__(self, db: Database):
        self._db = db

    async def create(
        self,
        agent_id: str,
        bot_token: str,
        client_id: str,
        guild_id: Optional[str] = None,
    ) -> BotConfig:
        now = now_ms()
        config = BotConfig(
            id=new_id(),
            agent_id=agent_id,
            bot_token=bot_token,
            client_id=client_id,
            guild_id=guild_id,
            is_active=True,
            status="stopped",
            created_at=now,
            updated_at=now,
        )
        await self._db.conn.execute(
            """INSERT INTO bot_configs
               (id, agent_id, bot_token, client_id, guild_id, is_active, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)""",
            (
                config.id,
                config.agent_id,
                config.bot_token,
                config.client_id,
                config.guild_id,
                config.status,
                config.created_at,
                config.updated_at,
            ),
        )
        await self._db.conn.commit()
        return config

    async def get(self, config_id: str) -> BotConfig | None:
        cursor = await self._db.conn.execute("SELECT * FROM bot_configs WHERE id = ?", (config_id,))
        row = await cursor.fetchone()
        return self._row_to_config(row) if row else None

    async def list_active(self) -> list[BotConfig]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM bot_configs WHERE is_active = 1 ORDER BY updated_at DESC"
        )
        return [self._row_to_config(row) for row in await cursor.fetchall()]

    async def set_active(self, config_id: str, active: bool) -> bool:
        cursor = await self._db.conn.execute(
            "UPDATE bot_configs SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(active), now_ms(), config_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount == 1

    async def update_status(
        self, config_id: str, status: str, last_seen: Optional[int] = None
    ) -> bool:
        """Record runner-reported status. Does not touch updated_at (that orders config edits)."""
        cursor = await self._db.conn.execute(
            "UPDATE bot_configs SET status = ?, last_seen = COALESCE(?, last_seen) WHERE id = ?",
            (status, last_seen, config_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount == 1

    async def try_claim(
        self, config_id: str, holder: str, now: int, expires_at: int
    ) -> int | None:
        """Take the lock if free, already ours, or expired. Returns the new version or None."""
        return await self._lock_update(
            """UPDATE bot_configs
               SET lock_holder = ?, lock_expires_at = ?, lock_version = lock_version + 1
               WHERE id = ?
                 AND (lock_holder IS NULL OR lock_holder = ?
                      OR lock_expires_at IS NULL OR lock_expires_at < ?)
               RETURNING lock_version""",
            (holder, expires_at, config_id, holder, now),
        )

    async def try_renew(
        self, config_id: str, holder: str, now: int, expires_at: int
    ) -> int | None:
        """Extend the lock only while *holder* owns it and it has not expired."""
        return await self._lock_update(
            """UPDATE bot_configs
               SET lock_expires_at = ?, lock_version = lock_version + 1
               WHERE id = ? AND lock_holder = ? AND lock_expires_at >= ?
               RETURNING lock_version""",
            (expires_at, config_id, holder, now),
        )

    async def try_release(self, config_id: str, holder: str) -> int | None:
        return await self._lock_update(
            """UPDATE bot_configs
               SET lock_holder = NULL, lock_expires_at = NULL, lock_version = lock_version + 1
               WHERE id = ? AND lock_holder = ?
               RETURNING lock_version""",
            (config_id, holder),
        )

    async def _lock_update(self, sql: str, params: tuple) -> int | None:
        cursor = await self._db.conn.execute(sql, params)
        rows = await cursor.fetchall()
        await self._db.conn.commit()
        return rows[0][0] if rows else None

    @staticmethod
    def _row_to_config(row) -> BotConfig:
        return BotConfig(
            id=row["id"],
            agent_id=row["agent_id"],
            bot_token=row["bot_token"],
            client_id=row["client_id"],
            guild_id=row["guild_id"],
            is_active=bool(row["is_active"]),
            status=row["status"],
            last_seen=row["last_seen"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            lock_holder=row["lock_holder"],
            lock_expires_at=row["lock_expires_at"],
            lock_version=row["lock_version"],
        )
