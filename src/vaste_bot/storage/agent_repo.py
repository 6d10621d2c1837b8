"""Agent repository."""

from __future__ import annotations

import json

from vaste_bot.storage.database import Database
from vaste_bot.storage.models import Agent

_UPDATABLE = (
    "name",
    "welcome_message",
    "system_prompt",
    "temperature",
    "header_color",
    "accent_color",
    "background_color",
    "profile_image",
    "collect_user_info",
    "form_fields",
)


class AgentRepository:
    def __init__(self, db: Database):
        self._db = db

    async def insert(self, agent: Agent) -> None:
        await self._db.conn.execute(
            """INSERT INTO agents
               (id, owner_id, name, welcome_message, system_prompt, temperature,
                header_color, accent_color, background_color, profile_image,
                collect_user_info, form_fields_json, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                agent.id,
                agent.owner_id,
                agent.name,
                agent.welcome_message,
                agent.system_prompt,
                agent.temperature,
                agent.header_color,
                agent.accent_color,
                agent.background_color,
                agent.profile_image,
                int(agent.collect_user_info),
                json.dumps(agent.form_fields),
                agent.created_at,
                agent.updated_at,
            ),
        )
        await self._db.conn.commit()

    async def get(self, agent_id: str) -> Agent | None:
        cursor = await self._db.conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,))
        row = await cursor.fetchone()
        return self._row_to_agent(row) if row else None

    async def list_by_owner(self, owner_id: str) -> list[Agent]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM agents WHERE owner_id = ? ORDER BY created_at DESC",
            (owner_id,),
        )
        return [self._row_to_agent(row) for row in await cursor.fetchall()]

    async def update(self, agent: Agent) -> None:
        """Write every mutable field of *agent* back in place."""
        assignments = ", ".join(
            f"{'form_fields_json' if name == 'form_fields' else name} = ?" for name in _UPDATABLE
        )
        values = []
        for name in _UPDATABLE:
            value = getattr(agent, name)
            if name == "form_fields":
                value = json.dumps(value)
            elif name == "collect_user_info":
                value = int(value)
            values.append(value)
        await self._db.conn.execute(
            f"UPDATE agents SET {assignments}, updated_at = ? WHERE id = ?",
            (*values, agent.updated_at, agent.id),
        )
        await self._db.conn.commit()

    async def delete(self, agent_id: str) -> int:
        """Delete an agent; knowledge entries go with it via ON DELETE CASCADE."""
        cursor = await self._db.conn.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
        await self._db.conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_agent(row) -> Agent:
        return Agent(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            welcome_message=row["welcome_message"],
            system_prompt=row["system_prompt"],
            temperature=row["temperature"],
            header_color=row["header_color"],
            accent_color=row["accent_color"],
            background_color=row["background_color"],
            profile_image=row["profile_image"],
            collect_user_info=bool(row["collect_user_info"]),
            form_fields=json.loads(row["form_fields_json"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
