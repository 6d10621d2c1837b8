"""Widget session/chat protocol: anonymous sessions and single request/response turns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from vaste_bot.ai.client import AIClient
from vaste_bot.ai.conversation import build_messages, build_system_prompt
from vaste_bot.core.ids import parse_id
from vaste_bot.core.types import WIDGET_USER_ID, Role
from vaste_bot.errors import GenerationFailedError, InvalidInputError, NotFoundError, SessionMismatchError
from vaste_bot.log import get_logger
from vaste_bot.storage.agent_repo import AgentRepository
from vaste_bot.storage.knowledge_repo import KnowledgeRepository
from vaste_bot.storage.models import Agent, ChatMessage, ChatSession
from vaste_bot.storage.session_repo import SessionRepository

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """What an anonymous visitor may see of an agent. Never carries the owner id."""

    id: str
    name: str
    welcome_message: str
    system_prompt: str
    temperature: float
    header_color: Optional[str] = None
    accent_color: Optional[str] = None
    background_color: Optional[str] = None
    profile_image: Optional[str] = None

    @classmethod
    def from_agent(cls, agent: Agent) -> AgentProfile:
        return cls(
            id=agent.id,
            name=agent.name,
            welcome_message=agent.welcome_message,
            system_prompt=agent.system_prompt,
            temperature=agent.temperature,
            header_color=agent.header_color,
            accent_color=agent.accent_color,
            background_color=agent.background_color,
            profile_image=agent.profile_image,
        )


@dataclass(frozen=True, slots=True)
class SessionStart:
    session_id: str
    agent: AgentProfile


@dataclass(frozen=True, slots=True)
class ChatReply:
    reply: str
    session_id: str
    fallback: bool = False


class WidgetSessionService:
    """Turns an agent id into a stateful chat session and runs one turn at a time.

    Within a session the user message is stored before the model is called and
    the reply after, so a crash mid-call never loses the user's turn. Provider
    failures degrade to a fallback reply instead of an error.
    """

    def __init__(
        self,
        agents: AgentRepository,
        sessions: SessionRepository,
        knowledge: KnowledgeRepository,
        ai_client: AIClient,
        model: str = "",
        knowledge_limit: int = 20,
        history_limit: int = 20,
        fallback_reply: str = "Sorry, I had trouble generating a response.",
    ):
        self._agents = agents
        self._sessions = sessions
        self._knowledge = knowledge
        self._ai_client = ai_client
        self._model = model
        self._knowledge_limit = knowledge_limit
        self._history_limit = history_limit
        self._fallback_reply = fallback_reply

    async def create_session(
        self, agent_id: Any, metadata: dict[str, Any] | None = None
    ) -> SessionStart:
        agent_id = parse_id(agent_id, "agentId")
        agent = await self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)

        session = await self._sessions.create_session(
            agent_id=agent.id,
            user_id=WIDGET_USER_ID,
            metadata=metadata,
        )
        logger.info("session_created", session_id=session.id, agent_id=agent.id)
        return SessionStart(session_id=session.id, agent=AgentProfile.from_agent(agent))

    async def chat(
        self,
        session_id: Any,
        agent_id: Any,
        message: str,
        history: list[dict[str, Any]] | None = None,
    ) -> ChatReply:
        session_id = parse_id(session_id, "sessionId")
        agent_id = parse_id(agent_id, "agentId")
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError("message is required")

        session = await self._sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        if session.agent_id != agent_id:
            logger.warning("session_mismatch", session_id=session_id, agent_id=agent_id)
            raise SessionMismatchError(session_id, agent_id)

        agent = await self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)

        entries = await self._knowledge.recent(agent_id, limit=self._knowledge_limit)
        system = build_system_prompt(agent.system_prompt, entries)

        await self._sessions.append_message(session_id, Role.USER.value, message)

        messages = build_messages(system, history, message, self._history_limit)
        fallback = False
        try:
            response = await self._ai_client.complete(
                messages, temperature=agent.temperature, model=self._model
            )
            reply = response.text
        except GenerationFailedError as e:
            logger.warning("generation_failed", session_id=session_id, error=e.message)
            reply = self._fallback_reply
            fallback = True

        await self._sessions.append_message(
            session_id, Role.ASSISTANT.value, reply, metadata={"fallback": True} if fallback else None
        )
        await self._sessions.touch(session_id)
        logger.info(
            "chat_turn_completed",
            session_id=session_id,
            agent_id=agent_id,
            knowledge_entries=len(entries),
            fallback=fallback,
        )
        return ChatReply(reply=reply, session_id=session_id, fallback=fallback)

    async def get_messages(self, session_id: Any) -> list[ChatMessage]:
        session_id = parse_id(session_id, "sessionId")
        if await self._sessions.get_session(session_id) is None:
            raise NotFoundError("Session", session_id)
        return await self._sessions.get_messages(session_id)

    async def list_sessions(self, agent_id: Any) -> list[ChatSession]:
        """An agent's chat sessions, newest first."""
        agent_id = parse_id(agent_id, "agentId")
        if await self._agents.get(agent_id) is None:
            raise NotFoundError("Agent", agent_id)
        return await self._sessions.list_sessions(agent_id)
