"""Knowledge entry repository."""

from __future__ import annotations

import json

from vaste_bot.storage.database import Database
from vaste_bot.storage.models import KnowledgeEntry

DEFAULT_LIMIT = 10


class KnowledgeRepository:
    def __init__(self, db: Database):
        self._db = db

    async def insert(self, entry: KnowledgeEntry) -> None:
        await self._db.conn.execute(
            """INSERT INTO knowledge_entries (id, agent_id, user_id, input, output, metadata_json, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                entry.id,
                entry.agent_id,
                entry.user_id,
                entry.input,
                entry.output,
                json.dumps(entry.metadata),
                entry.created_at,
            ),
        )
        await self._db.conn.commit()

    async def recent(self, agent_id: str, limit: int | None = None) -> list[KnowledgeEntry]:
        """Most recent entries first, at most *limit* (default 10 when not positive)."""
        if not isinstance(limit, int) or limit <= 0:
            limit = DEFAULT_LIMIT
        cursor = await self._db.conn.execute(
            """SELECT * FROM knowledge_entries WHERE agent_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT ?""",
            (agent_id, limit),
        )
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    async def get(self, entry_id: str) -> KnowledgeEntry | None:
        cursor = await self._db.conn.execute(
            "SELECT * FROM knowledge_entries WHERE id = ?", (entry_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def delete(self, entry_id: str) -> int:
        cursor = await self._db.conn.execute(
            "DELETE FROM knowledge_entries WHERE id = ?", (entry_id,)
        )
        await self._db.conn.commit()
        return cursor.rowcount

    async def count(self, agent_id: str) -> int:
        cursor = await self._db.conn.execute(
            "SELECT COUNT(*) FROM knowledge_entries WHERE agent_id = ?", (agent_id,)
        )
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_entry(row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            input=row["input"],
            output=row["output"],
            metadata=json.loads(row["metadata_json"]),
            created_at=row["created_at"],
        )
