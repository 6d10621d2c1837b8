"""Service-level tests for widget sessions and chat turns."""

import pytest
import pytest_asyncio

from vaste_bot.ai.client import AIClient, AIResponse
from vaste_bot.errors import GenerationFailedError, InvalidIdError, InvalidInputError, NotFoundError
from vaste_bot.services.widget_session import WidgetSessionService


class RecordingClient(AIClient):
    """Captures the messages it is asked to complete."""

    def __init__(self, reply: str = "hello!", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.calls: list[dict] = []

    @property
    def backend_name(self) -> str:
        return "recording"

    async def complete(self, messages, temperature=0.7, model=""):
        self.calls.append({"messages": messages, "temperature": temperature, "model": model})
        if self.fail:
            raise GenerationFailedError("provider down")
        return AIResponse(text=self.reply)


@pytest.fixture
def ai():
    return RecordingClient()


@pytest.fixture
def service(vaste, ai):
    return WidgetSessionService(
        agents=vaste.agent_repo,
        sessions=vaste.session_repo,
        knowledge=vaste.knowledge_repo,
        ai_client=ai,
        model="test-model",
        knowledge_limit=2,
        history_limit=2,
    )


@pytest_asyncio.fixture
async def session_id(service, agent):
    return (await service.create_session(agent.id)).session_id


class TestChatPrompt:
    @pytest.mark.asyncio
    async def test_system_prompt_and_new_turn(self, service, ai, agent, session_id):
        result = await service.chat(session_id, agent.id, "hi")

        assert result.reply == "hello!"
        assert not result.fallback
        call = ai.calls[0]
        assert call["model"] == "test-model"
        assert call["temperature"] == agent.temperature
        assert call["messages"][0] == {"role": "system", "content": "You are a helpful AI assistant."}
        assert call["messages"][-1] == {"role": "user", "content": "hi"}

    @pytest.mark.asyncio
    async def test_recent_knowledge_is_injected_newest_first(self, vaste, service, ai, agent, session_id):
        for i in range(3):
            await vaste.knowledge.add_entry(agent.id, agent.owner_id, f"label-{i}", f"fact {i}")

        await service.chat(session_id, agent.id, "hi")

        system = ai.calls[0]["messages"][0]["content"]
        assert system == (
            "You are a helpful AI assistant.\n\n"
            "Knowledge Base (most recent first):\n"
            "- label-2: fact 2\n"
            "- label-1: fact 1"
        )

    @pytest.mark.asyncio
    async def test_history_is_filtered_and_truncated(self, service, ai, agent, session_id):
        history = [
            {"role": "user", "content": "old"},
            {"role": "robot", "content": "ignored"},
            {"role": "assistant", "content": "middle"},
            {"role": "user", "content": 42},
            {"role": "user", "content": "recent"},
        ]

        await service.chat(session_id, agent.id, "now", history)

        assert ai.calls[0]["messages"][1:] == [
            {"role": "assistant", "content": "middle"},
            {"role": "user", "content": "recent"},
            {"role": "user", "content": "now"},
        ]

    @pytest.mark.asyncio
    async def test_zero_temperature_is_kept(self, vaste, service, ai):
        cold = await vaste.agents.create_agent(owner_id="owner-1", name="Cold", temperature=0.0)
        started = await service.create_session(cold.id)

        await service.chat(started.session_id, cold.id, "hi")

        assert ai.calls[0]["temperature"] == 0.0


class TestChatFailures:
    @pytest.mark.asyncio
    async def test_provider_failure_degrades_to_fallback(self, vaste, service, ai, agent, session_id):
        ai.fail = True

        result = await service.chat(session_id, agent.id, "hi")

        assert result.fallback
        assert result.reply == "Sorry, I had trouble generating a response."
        messages = await vaste.widget.get_messages(session_id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].metadata == {"fallback": True}

    @pytest.mark.asyncio
    async def test_message_must_not_be_blank(self, service, agent, session_id):
        with pytest.raises(InvalidInputError):
            await service.chat(session_id, agent.id, "   ")

    @pytest.mark.asyncio
    async def test_ids_are_validated_before_lookup(self, service, agent):
        with pytest.raises(InvalidIdError):
            await service.chat("short", agent.id, "hi")
        with pytest.raises(NotFoundError):
            await service.chat("e" * 32, agent.id, "hi")

    @pytest.mark.asyncio
    async def test_deleted_agent_is_not_found(self, vaste, service, agent, session_id):
        await vaste.agents.delete_agent(agent.owner_id, agent.id)

        with pytest.raises(NotFoundError):
            await service.chat(session_id, agent.id, "hi")


class TestMessageOrdering:
    @pytest.mark.asyncio
    async def test_timestamps_never_decrease(self, vaste, service, agent, session_id):
        for i in range(5):
            await service.chat(session_id, agent.id, f"m{i}")

        messages = await vaste.widget.get_messages(session_id)
        stamps = [m.created_at for m in messages]
        assert stamps == sorted(stamps)
        assert [m.content for m in messages if m.role == "user"] == [f"m{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_last_active_is_bumped(self, vaste, service, agent, session_id):
        before = await vaste.session_repo.get_session(session_id)

        await service.chat(session_id, agent.id, "hi")

        after = await vaste.session_repo.get_session(session_id)
        assert after.last_active >= before.last_active


class TestSessionListing:
    @pytest.mark.asyncio
    async def test_lists_only_the_agents_sessions(self, vaste, service, agent):
        other = await vaste.agents.create_agent(owner_id="owner-2", name="Other")
        first = (await service.create_session(agent.id)).session_id
        second = (await service.create_session(agent.id)).session_id
        await service.create_session(other.id)

        sessions = await service.list_sessions(agent.id)

        assert {s.id for s in sessions} == {first, second}
        assert all(s.user_id == "widget-user" for s in sessions)

    @pytest.mark.asyncio
    async def test_unknown_agent_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.list_sessions("f" * 32)
        with pytest.raises(InvalidIdError):
            await service.list_sessions("nope")
