"""Chat session and message repository."""

from __future__ import annotations

import json
from typing import Any

from vaste_bot.core.ids import new_id, now_ms
from vaste_bot.storage.database import Database
from vaste_bot.storage.models import ChatMessage, ChatSession


class SessionRepository:
    """Sessions plus their append-only message log."""

    def __init__(self, db: Database):
        self._db = db

    async def create_session(
        self, agent_id: str, user_id: str, metadata: dict[str, Any] | None = None
    ) -> ChatSession:
        now = now_ms()
        session = ChatSession(
            id=new_id(),
            agent_id=agent_id,
            user_id=user_id,
            metadata=metadata or {},
            last_active=now,
            created_at=now,
        )
        await self._db.conn.execute(
            """INSERT INTO chat_sessions (id, agent_id, user_id, metadata_json, last_active, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                session.id,
                session.agent_id,
                session.user_id,
                json.dumps(session.metadata),
                session.last_active,
                session.created_at,
            ),
        )
        await self._db.conn.commit()
        return session

    async def get_session(self, session_id: str) -> ChatSession | None:
        cursor = await self._db.conn.execute(
            "SELECT * FROM chat_sessions WHERE id = ?", (session_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_session(row) if row else None

    async def list_sessions(self, agent_id: str) -> list[ChatSession]:
        """Sessions for an agent, newest first."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM chat_sessions WHERE agent_id = ? ORDER BY created_at DESC",
            (agent_id,),
        )
        return [self._row_to_session(row) for row in await cursor.fetchall()]

    async def touch(self, session_id: str) -> None:
        """Bump last_active; concurrent turns are last-write-wins."""
        await self._db.conn.execute(
            "UPDATE chat_sessions SET last_active = ? WHERE id = ?", (now_ms(), session_id)
        )
        await self._db.conn.commit()

    async def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChatMessage:
        """Append a message. created_at never goes below the session's latest message."""
        message_id = new_id()
        await self._db.conn.execute(
            """INSERT INTO chat_messages (id, session_id, role, content, metadata_json, created_at)
               VALUES (?, ?, ?, ?, ?, MAX(?, COALESCE(
                   (SELECT MAX(created_at) FROM chat_messages WHERE session_id = ?), 0)))""",
            (message_id, session_id, role, content, json.dumps(metadata or {}), now_ms(), session_id),
        )
        await self._db.conn.commit()
        cursor = await self._db.conn.execute(
            "SELECT * FROM chat_messages WHERE id = ?", (message_id,)
        )
        return self._row_to_message(await cursor.fetchone())

    async def get_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Messages in insertion order."""
        sql = "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY created_at ASC, seq ASC"
        params: tuple[Any, ...] = (session_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        cursor = await self._db.conn.execute(sql, params)
        return [self._row_to_message(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_session(row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            metadata=json.loads(row["metadata_json"]),
            last_active=row["last_active"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_message(row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"],
            metadata=json.loads(row["metadata_json"]),
            created_at=row["created_at"],
        )
