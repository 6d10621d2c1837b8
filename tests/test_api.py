"""HTTP-level tests for the widget and coordination protocols."""

import pytest
from httpx import AsyncClient

WIDGET_PREFIXES = ["", "/chat/widget", "/api/chat/widget"]
AUTH = {"x-backend-key": "test-backend-key"}


async def _start_session(client: AsyncClient, agent_id: str, prefix: str = "/api/chat/widget") -> str:
    res = await client.post(f"{prefix}/session", json={"agentId": agent_id})
    assert res.status_code == 200, res.text
    return res.json()["sessionId"]


class TestWidgetSession:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("prefix", WIDGET_PREFIXES)
    async def test_session_returns_public_agent(self, vaste, client, agent, prefix):
        """Every mount point starts a session and exposes the agent's public profile."""
        res = await client.post(f"{prefix}/session", json={"agentId": agent.id})

        assert res.status_code == 200
        body = res.json()
        assert len(body["sessionId"]) == 32
        assert body["agent"]["id"] == agent.id
        stored = await vaste.agent_repo.get(agent.id)
        assert body["agent"]["name"] == stored.name == "Helper"
        assert body["agent"]["systemPrompt"] == stored.system_prompt
        assert body["agent"]["temperature"] == stored.temperature
        assert body["agent"]["welcomeMessage"] == "👋 Hi there! I'm Helper. How can I help you today?"
        assert body["agent"]["headerColor"] == "#3B82F6"
        assert "ownerId" not in body["agent"]
        assert res.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_unknown_agent_is_404(self, client):
        res = await client.post("/api/chat/widget/session", json={"agentId": "a" * 32})

        assert res.status_code == 404
        assert res.json() == {"error": "Agent not found"}
        assert res.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_malformed_agent_id_is_400(self, client):
        res = await client.post("/api/chat/widget/session", json={"agentId": "not-an-id"})

        assert res.status_code == 400
        assert res.json() == {"error": "Invalid agentId format"}

    @pytest.mark.asyncio
    async def test_quoted_agent_id_is_accepted(self, client, agent):
        """One layer of wrapping quotes is stripped from ids."""
        res = await client.post("/api/chat/widget/session", json={"agentId": f'"{agent.id}"'})

        assert res.status_code == 200
        assert res.json()["agent"]["id"] == agent.id

    @pytest.mark.asyncio
    async def test_missing_agent_id_is_400(self, client):
        res = await client.post("/api/chat/widget/session", json={})

        assert res.status_code == 400
        assert "agentId" in res.json()["error"]

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, client):
        res = await client.post(
            "/api/chat/widget/session",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert res.status_code == 400
        assert "error" in res.json()

    @pytest.mark.asyncio
    async def test_session_records_client_metadata(self, client, vaste, agent):
        res = await client.post(
            "/api/chat/widget/session",
            json={"agentId": agent.id},
            headers={"user-agent": "pytest-agent", "x-forwarded-for": "203.0.113.7, 10.0.0.1"},
        )

        session = await vaste.session_repo.get_session(res.json()["sessionId"])
        assert session.user_id == "widget-user"
        assert session.metadata == {"userAgent": "pytest-agent", "ip": "203.0.113.7"}


class TestWidgetChat:
    @pytest.mark.asyncio
    async def test_stub_reply_echoes_message(self, client, agent):
        session_id = await _start_session(client, agent.id)

        res = await client.post(
            "/api/chat/widget/chat",
            json={"sessionId": session_id, "agentId": agent.id, "message": "hi"},
        )

        assert res.status_code == 200
        assert res.json() == {"reply": "AI (stub): hi", "sessionId": session_id}
        assert res.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_turns_are_persisted_in_order(self, client, vaste, agent):
        session_id = await _start_session(client, agent.id)
        for text in ("one", "two"):
            await client.post(
                "/chat/widget/chat",
                json={"sessionId": session_id, "agentId": agent.id, "message": text},
            )

        messages = await vaste.widget.get_messages(session_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "one"),
            ("assistant", "AI (stub): one"),
            ("user", "two"),
            ("assistant", "AI (stub): two"),
        ]

    @pytest.mark.asyncio
    async def test_session_replayed_against_other_agent_is_403(self, client, vaste, agent):
        other = await vaste.agents.create_agent(owner_id="owner-2", name="Other")
        session_id = await _start_session(client, agent.id)

        res = await client.post(
            "/api/chat/widget/chat",
            json={"sessionId": session_id, "agentId": other.id, "message": "hi"},
        )

        assert res.status_code == 403
        assert await vaste.widget.get_messages(session_id) == []

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, client, agent):
        res = await client.post(
            "/api/chat/widget/chat",
            json={"sessionId": "b" * 32, "agentId": agent.id, "message": "hi"},
        )

        assert res.status_code == 404
        assert res.json() == {"error": "Session not found"}

    @pytest.mark.asyncio
    async def test_empty_message_is_400(self, client, agent):
        session_id = await _start_session(client, agent.id)

        res = await client.post(
            "/api/chat/widget/chat",
            json={"sessionId": session_id, "agentId": agent.id, "message": ""},
        )

        assert res.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/chat/widget/session", "/api/chat/widget/chat", "/session", "/chat"])
    async def test_preflight_is_204_with_cors(self, client, path):
        res = await client.options(path)

        assert res.status_code == 204
        assert res.headers["access-control-allow-origin"] == "*"
        assert res.headers["access-control-allow-headers"] == "Content-Type, Authorization"
        assert res.headers["access-control-allow-methods"] == "POST, OPTIONS"


class TestHealthAndEmbed:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    async def test_health(self, client, path):
        res = await client.get(path)

        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_embed_script_and_page(self, client):
        script = await client.get("/widget.js")
        page = await client.get("/widget")

        assert script.status_code == 200
        assert "data-bot-id" in script.text
        assert "widget:close" in script.text
        assert page.status_code == 200
        assert "widget:close" in page.text


class TestCoordination:
    @pytest.mark.asyncio
    async def test_missing_or_wrong_key_is_401(self, client):
        assert (await client.get("/discord/bot/activeConfigs")).status_code == 401
        res = await client.get("/discord/bot/activeConfigs", headers={"x-backend-key": "nope"})
        assert res.status_code == 401
        assert res.json() == {"error": "Unauthorized"}

    @pytest.mark.asyncio
    async def test_empty_configured_key_rejects_everything(self, client, vaste):
        vaste.config.server.backend_key = ""

        res = await client.get("/discord/bot/activeConfigs", headers={"x-backend-key": ""})

        assert res.status_code == 401

    @pytest.mark.asyncio
    async def test_active_configs_shape(self, client, vaste, agent):
        config = await vaste.bot_configs.connect(agent.id, "token-1", "client-1", "guild-1")
        inactive = await vaste.bot_configs.connect(agent.id, "token-2", "client-2")
        await vaste.bot_configs.set_active(inactive.id, False)

        res = await client.get("/discord/bot/activeConfigs", headers=AUTH)

        assert res.status_code == 200
        assert res.json() == [
            {
                "_id": config.id,
                "agentId": agent.id,
                "botToken": "token-1",
                "clientId": "client-1",
                "guildId": "guild-1",
                "updatedAt": config.updated_at,
            }
        ]

    @pytest.mark.asyncio
    async def test_claim_renew_release_round(self, client, vaste, agent):
        config = await vaste.bot_configs.connect(agent.id, "token-1", "client-1")
        body = {"configId": config.id, "instanceId": "runner-a", "ttlMs": 60000}

        claimed = (await client.post("/discord/bot/claim", json=body, headers=AUTH)).json()
        denied = (
            await client.post("/discord/bot/claim", json={**body, "instanceId": "runner-b"}, headers=AUTH)
        ).json()
        renewed = (await client.post("/discord/bot/renew", json=body, headers=AUTH)).json()
        released = await client.post(
            "/discord/bot/release", json={"configId": config.id, "instanceId": "runner-a"}, headers=AUTH
        )

        assert claimed["ok"] is True and claimed["reason"] == "claimed"
        assert denied == {
            "ok": False,
            "reason": "held_by_other",
            "holder": "runner-a",
            "expiresAt": claimed["expiresAt"],
            "fencingToken": None,
        }
        assert renewed["ok"] is True
        assert renewed["fencingToken"] > claimed["fencingToken"]
        assert released.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_lost_lease_is_an_outcome_not_an_error(self, client, vaste, agent):
        config = await vaste.bot_configs.connect(agent.id, "token-1", "client-1")
        await vaste.locks.claim(config.id, "runner-b", 60000)

        res = await client.post(
            "/discord/bot/renew",
            json={"configId": config.id, "instanceId": "runner-a", "ttlMs": 60000},
            headers=AUTH,
        )

        assert res.status_code == 200
        assert res.json()["ok"] is False
        assert res.json()["reason"] == "lease_lost"
        assert res.json()["holder"] == "runner-b"

    @pytest.mark.asyncio
    async def test_claim_unknown_config(self, client):
        res = await client.post(
            "/discord/bot/claim",
            json={"configId": "c" * 32, "instanceId": "runner-a", "ttlMs": 1000},
            headers=AUTH,
        )

        assert res.status_code == 200
        assert res.json()["ok"] is False
        assert res.json()["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_400(self, client, vaste, agent):
        config = await vaste.bot_configs.connect(agent.id, "token-1", "client-1")

        res = await client.post(
            "/discord/bot/claim",
            json={"configId": config.id, "instanceId": "runner-a", "ttlMs": 0},
            headers=AUTH,
        )

        assert res.status_code == 400

    @pytest.mark.asyncio
    async def test_update_status(self, client, vaste, agent):
        config = await vaste.bot_configs.connect(agent.id, "token-1", "client-1")

        ok = await client.post(
            "/discord/bot/updateStatus",
            json={"configId": config.id, "status": "running", "lastSeen": 1234},
            headers=AUTH,
        )
        missing = await client.post(
            "/discord/bot/updateStatus",
            json={"configId": "d" * 32, "status": "running"},
            headers=AUTH,
        )
        bogus = await client.post(
            "/discord/bot/updateStatus",
            json={"configId": config.id, "status": "dancing"},
            headers=AUTH,
        )

        assert ok.json() == {"ok": True}
        stored = await vaste.bot_config_repo.get(config.id)
        assert stored.status == "running"
        assert stored.last_seen == 1234
        assert missing.status_code == 404
        assert bogus.status_code == 400
