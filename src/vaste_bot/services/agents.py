"""Agent management: create with defaults, owner-checked update and delete."""

from __future__ import annotations

from typing import Any, Optional

from vaste_bot.core.ids import new_id, now_ms, parse_id
from vaste_bot.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from vaste_bot.log import get_logger
from vaste_bot.storage.agent_repo import AgentRepository
from vaste_bot.storage.models import Agent

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
DEFAULT_HEADER_COLOR = "#3B82F6"
DEFAULT_ACCENT_COLOR = "#00D4FF"
DEFAULT_BACKGROUND_COLOR = "#FFFFFF"


def _clamp(temperature: float) -> float:
    return min(max(float(temperature), 0.0), 1.0)


def validate_form_fields(fields: Any) -> None:
    if not isinstance(fields, list):
        raise InvalidInputError("Form fields must be an array")
    for field in fields:
        field_id = field.get("id") if isinstance(field, dict) else None
        if not field_id or not isinstance(field_id, str):
            raise InvalidInputError("Each form field must have a valid ID")
        for key in ("type", "label"):
            if not field.get(key) or not isinstance(field[key], str):
                raise InvalidInputError(f"Field {field_id} is missing a valid {key}")
        if not isinstance(field.get("required"), bool):
            raise InvalidInputError(f"Field {field_id} must specify if it's required")


class AgentService:
    def __init__(self, agents: AgentRepository):
        self._agents = agents

    async def create_agent(
        self,
        owner_id: str,
        name: str,
        welcome_message: str = "",
        system_prompt: str = "",
        temperature: float = 0.7,
        header_color: str = "",
        accent_color: str = "",
        background_color: str = "",
        profile_image: Optional[str] = None,
        collect_user_info: bool = False,
        form_fields: list[dict[str, Any]] | None = None,
    ) -> Agent:
        if not owner_id:
            raise InvalidInputError("owner_id is required")
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Agent name is required")
        if collect_user_info and form_fields:
            validate_form_fields(form_fields)

        now = now_ms()
        agent = Agent(
            id=new_id(),
            owner_id=owner_id,
            name=name,
            welcome_message=welcome_message or f"👋 Hi there! I'm {name}. How can I help you today?",
            system_prompt=system_prompt or DEFAULT_SYSTEM_PROMPT,
            temperature=_clamp(temperature),
            header_color=header_color or DEFAULT_HEADER_COLOR,
            accent_color=accent_color or DEFAULT_ACCENT_COLOR,
            background_color=background_color or DEFAULT_BACKGROUND_COLOR,
            profile_image=profile_image or None,
            collect_user_info=bool(collect_user_info),
            form_fields=form_fields or [],
            created_at=now,
            updated_at=now,
        )
        await self._agents.insert(agent)
        logger.info("agent_created", agent_id=agent.id, owner_id=owner_id)
        return agent

    async def update_agent(self, owner_id: str, agent_id: str, **changes: Any) -> Agent:
        agent = await self._owned(owner_id, agent_id)
        for key, value in changes.items():
            if not hasattr(agent, key) or key in ("id", "owner_id", "created_at", "updated_at"):
                raise InvalidInputError(f"Unknown or immutable agent field: {key}")
            setattr(agent, key, value)
        if not agent.name.strip():
            raise InvalidInputError("Agent name is required")
        if "form_fields" in changes:
            validate_form_fields(agent.form_fields)
        agent.temperature = _clamp(agent.temperature)
        agent.updated_at = now_ms()
        await self._agents.update(agent)
        logger.info("agent_updated", agent_id=agent.id, fields=sorted(changes))
        return agent

    async def delete_agent(self, owner_id: str, agent_id: str) -> None:
        """Delete an agent and, by cascade, its knowledge entries."""
        agent = await self._owned(owner_id, agent_id)
        await self._agents.delete(agent.id)
        logger.info("agent_deleted", agent_id=agent.id)

    async def _owned(self, owner_id: str, agent_id: str) -> Agent:
        agent_id = parse_id(agent_id, "agentId")
        agent = await self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        if agent.owner_id != owner_id:
            raise PermissionDeniedError("Not authorized to modify this agent")
        return agent
