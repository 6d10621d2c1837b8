"""Agent management and knowledge ingestion."""

import httpx
import pytest

from vaste_bot.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from vaste_bot.services.knowledge import KnowledgeService, html_to_text


class TestAgentService:
    @pytest.mark.asyncio
    async def test_defaults_are_applied(self, vaste):
        agent = await vaste.agents.create_agent(owner_id="u1", name="  Sam  ", temperature=3.0)

        assert agent.name == "Sam"
        assert agent.system_prompt == "You are a helpful AI assistant."
        assert agent.welcome_message == "👋 Hi there! I'm Sam. How can I help you today?"
        assert (agent.header_color, agent.accent_color, agent.background_color) == (
            "#3B82F6",
            "#00D4FF",
            "#FFFFFF",
        )
        assert agent.temperature == 1.0

    @pytest.mark.asyncio
    async def test_blank_name_is_rejected(self, vaste):
        with pytest.raises(InvalidInputError):
            await vaste.agents.create_agent(owner_id="u1", name="   ")

    @pytest.mark.asyncio
    async def test_only_owner_may_update(self, vaste, agent):
        with pytest.raises(PermissionDeniedError):
            await vaste.agents.update_agent("intruder", agent.id, name="Hacked")

        updated = await vaste.agents.update_agent(agent.owner_id, agent.id, name="Renamed", temperature=-1)
        assert updated.name == "Renamed"
        assert updated.temperature == 0.0

    @pytest.mark.asyncio
    async def test_delete_cascades_to_knowledge(self, vaste, agent):
        await vaste.knowledge.add_entry(agent.id, agent.owner_id, "faq", "we open at 9")

        await vaste.agents.delete_agent(agent.owner_id, agent.id)

        assert await vaste.agent_repo.get(agent.id) is None
        assert await vaste.knowledge_repo.count(agent.id) == 0


class TestKnowledge:
    def test_html_to_text(self):
        html = (
            "<html><head><style>p{color:red}</style><script>alert(1)</script></head>"
            "<body><p>Fish&nbsp;&amp;&nbsp;chips</p>\n\n<p>&lt;fresh&gt;</p></body></html>"
        )

        assert html_to_text(html) == "Fish & chips <fresh>"

    def test_html_to_text_decodes_entities_and_drops_comments(self):
        html = (
            "<p>Tom&#39;s &quot;caf&eacute;&quot; &copy; 2024</p>"
            "<!-- if a > b --><noscript>enable js</noscript>"
        )

        assert html_to_text(html) == "Tom's \"café\" © 2024"

    def test_html_to_text_is_capped(self):
        html = "<p>" + "word " * 50_000 + "</p>"

        assert len(html_to_text(html)) == 200_000

    @pytest.mark.asyncio
    async def test_url_extraction(self, vaste, agent):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers["user-agent"]
            return httpx.Response(200, html="<h1>Opening hours</h1><p>9 to 5</p>")

        service = KnowledgeService(vaste.agent_repo, vaste.knowledge_repo, transport=httpx.MockTransport(handler))

        entry = await service.extract_from_url(agent.id, agent.owner_id, "https://shop.example/hours")

        assert entry.input == "url:https://shop.example/hours"
        assert entry.output == "Opening hours 9 to 5"
        assert seen["user_agent"] == "VasteBot/1.0"

    @pytest.mark.asyncio
    async def test_failed_fetch_is_invalid_input(self, vaste, agent):
        service = KnowledgeService(
            vaste.agent_repo,
            vaste.knowledge_repo,
            transport=httpx.MockTransport(lambda request: httpx.Response(404, text="gone")),
        )

        with pytest.raises(InvalidInputError):
            await service.extract_from_url(agent.id, agent.owner_id, "https://shop.example/missing")

    @pytest.mark.asyncio
    async def test_file_import(self, vaste, agent, tmp_path):
        path = tmp_path / "faq.txt"
        path.write_text("Returns within 30 days.", encoding="utf-8")

        entry = await vaste.knowledge.add_file(agent.id, agent.owner_id, path)

        assert entry.input == "file:faq.txt"
        assert entry.output == "Returns within 30 days."

    @pytest.mark.asyncio
    async def test_knowledge_requires_owner_and_agent(self, vaste, agent):
        with pytest.raises(PermissionDeniedError):
            await vaste.knowledge.add_entry(agent.id, "intruder", "faq", "text")
        with pytest.raises(NotFoundError):
            await vaste.knowledge.add_entry("f" * 32, agent.owner_id, "faq", "text")

    @pytest.mark.asyncio
    async def test_recent_limit_defaults_when_not_positive(self, vaste, agent):
        for i in range(12):
            await vaste.knowledge.add_entry(agent.id, agent.owner_id, f"k{i}", "v")

        assert len(await vaste.knowledge_repo.recent(agent.id, limit=0)) == 10
        assert len(await vaste.knowledge_repo.recent(agent.id, limit=5)) == 5
