"""Shared fixtures: a fresh SQLite store per test and an in-process API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from vaste_bot.ai.client import StubClient
from vaste_bot.api.main import create_app
from vaste_bot.app import VasteApp
from vaste_bot.config import AppConfig

BACKEND_KEY = "test-backend-key"


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        data_dir=str(tmp_path),
        storage={"db_path": str(tmp_path / "vaste_bot.db")},
        ai={"backend": "stub"},
        server={"backend_key": BACKEND_KEY},
        runner={
            "base_url": "http://test",
            "backend_key": BACKEND_KEY,
            "instance_id": "runner-a",
            "heartbeat_interval": 20,
            "lock_ttl_ms": 60000,
        },
    )


@pytest_asyncio.fixture
async def vaste(app_config):
    """A started application on a temporary database."""
    app = VasteApp(app_config, ai_client=StubClient())
    await app.start()
    yield app
    await app.stop()


@pytest_asyncio.fixture
async def agent(vaste):
    return await vaste.agents.create_agent(owner_id="owner-1", name="Helper")


@pytest.fixture
def api(vaste):
    # ASGITransport does not run the lifespan; the vaste fixture already started the app
    return create_app(vaste)


@pytest_asyncio.fixture
async def client(api):
    transport = ASGITransport(app=api)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
