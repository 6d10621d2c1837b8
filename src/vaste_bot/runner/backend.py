"""HTTP client for the coordination and session/chat protocols, used by the bot runner."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from vaste_bot.config import RunnerConfig
from vaste_bot.errors import CoordinationError, NotFoundError
from vaste_bot.log import get_logger
from vaste_bot.protocol import (
    ActiveBotConfig,
    ChatResponse,
    LockRequest,
    LockResponse,
    ReleaseRequest,
    SessionResponse,
    StatusRequest,
)

logger = get_logger(__name__)

_active_configs = TypeAdapter(list[ActiveBotConfig])


class BackendClient:
    """Talks to the API server on behalf of one runner instance.

    Every call is bounded by the configured request timeout. Non-2xx answers
    and transport failures raise CoordinationError; 404 raises NotFoundError.
    """

    def __init__(self, config: RunnerConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout,
            transport=transport,
            headers={"x-backend-key": config.backend_key},
        )

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        try:
            res = await self._client.request(method, path, json=body)
        except httpx.TimeoutException as e:
            logger.warning("backend_timeout", path=path)
            raise CoordinationError(f"Backend request timed out: {path}") from e
        except httpx.HTTPError as e:
            logger.warning("backend_transport_error", path=path, error=str(e))
            raise CoordinationError(f"Backend request failed: {path}: {e}") from e

        if res.status_code == 404:
            raise NotFoundError("Resource", path)
        if res.status_code >= 400:
            error = _error_message(res)
            logger.warning("backend_error", path=path, status=res.status_code, error=error)
            raise CoordinationError(
                f"Backend error {res.status_code} on {path}: {error}", status_code=res.status_code
            )
        try:
            return res.json()
        except ValueError as e:
            raise CoordinationError(f"Malformed backend response on {path}") from e

    async def _post(self, path: str, model: Any) -> Any:
        return await self._request("POST", path, model.model_dump(by_alias=True, exclude_none=True))

    # --- coordination ---

    async def active_configs(self) -> list[ActiveBotConfig]:
        data = await self._request("GET", "/discord/bot/activeConfigs")
        try:
            return _active_configs.validate_python(data)
        except ValidationError as e:
            raise CoordinationError("Malformed activeConfigs response") from e

    async def claim(self, config_id: str, instance_id: str, ttl_ms: int) -> LockResponse:
        data = await self._post(
            "/discord/bot/claim", LockRequest(config_id=config_id, instance_id=instance_id, ttl_ms=ttl_ms)
        )
        return _parse(LockResponse, data)

    async def renew(self, config_id: str, instance_id: str, ttl_ms: int) -> LockResponse:
        data = await self._post(
            "/discord/bot/renew", LockRequest(config_id=config_id, instance_id=instance_id, ttl_ms=ttl_ms)
        )
        return _parse(LockResponse, data)

    async def release(self, config_id: str, instance_id: str) -> bool:
        data = await self._post(
            "/discord/bot/release", ReleaseRequest(config_id=config_id, instance_id=instance_id)
        )
        return bool(data.get("ok")) if isinstance(data, dict) else False

    async def update_status(self, config_id: str, status: str, last_seen: int | None = None) -> None:
        await self._post(
            "/discord/bot/updateStatus",
            StatusRequest(config_id=config_id, status=status, last_seen=last_seen),
        )

    # --- session/chat ---

    async def create_session(self, agent_id: str) -> SessionResponse:
        data = await self._request("POST", "/chat/widget/session", {"agentId": agent_id})
        return _parse(SessionResponse, data)

    async def chat(
        self,
        session_id: str,
        agent_id: str,
        message: str,
        history: list[dict[str, str]] | None = None,
    ) -> ChatResponse:
        body = {
            "sessionId": session_id,
            "agentId": agent_id,
            "message": message,
            "history": history or [],
        }
        data = await self._request("POST", "/chat/widget/chat", body)
        return _parse(ChatResponse, data)

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse(model: Any, data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise CoordinationError(f"Malformed backend response for {model.__name__}") from e


def _error_message(res: httpx.Response) -> str:
    try:
        data = res.json()
    except ValueError:
        return res.text[:200]
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return res.text[:200]
