"""AI client abstraction with OpenRouter, Anthropic API and offline stub backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from vaste_bot.config import DEFAULT_MODELS, AIConfig
from vaste_bot.core.types import Role
from vaste_bot.errors import GenerationFailedError, InvalidInputError
from vaste_bot.log import get_logger

logger = get_logger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass
class AIResponse:
    """Unified response from any AI backend."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw: Any = None  # Backend-specific raw response


def validate_messages(messages: list[dict[str, str]]) -> None:
    """Messages must be role/content pairs ending in a user turn."""
    if not messages:
        raise InvalidInputError("At least one message is required")
    roles = {r.value for r in Role}
    for msg in messages:
        if msg.get("role") not in roles or not isinstance(msg.get("content"), str):
            raise InvalidInputError("Malformed message", details={"role": msg.get("role")})
    if messages[-1]["role"] != Role.USER:
        raise InvalidInputError("Last message must be from user")


def _clamp_temperature(temperature: float) -> float:
    return min(max(float(temperature), 0.0), 1.0)


class AIClient(ABC):
    """Abstract base class for AI backends."""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        model: str = "",
    ) -> AIResponse:
        """Return the assistant reply for *messages*.

        Raises InvalidInputError for malformed input and GenerationFailedError
        for anything that goes wrong on the provider side.
        """
        ...

    @property
    @abstractmethod
    def backend_name(self) -> str:
        ...

    async def close(self) -> None:
        """Release network resources."""


class StubClient(AIClient):
    """Deterministic echo used when no provider credential is configured."""

    @property
    def backend_name(self) -> str:
        return "stub"

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        model: str = "",
    ) -> AIResponse:
        validate_messages(messages)
        return AIResponse(text=f"AI (stub): {messages[-1]['content']}")


class OpenRouterClient(AIClient):
    """OpenAI-compatible chat completions over httpx (OpenRouter by default)."""

    def __init__(self, config: AIConfig, transport: httpx.AsyncBaseTransport | None = None):
        self._default_model = config.model or DEFAULT_MODELS["openrouter"]
        self._max_tokens = config.max_tokens
        self._timeout = config.timeout
        self._client = httpx.AsyncClient(
            base_url=config.base_url or OPENROUTER_BASE_URL,
            timeout=config.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "HTTP-Referer": config.site_url,
                "X-Title": config.app_title,
            },
        )

    @property
    def backend_name(self) -> str:
        return "openrouter"

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        model: str = "",
    ) -> AIResponse:
        validate_messages(messages)
        model = model or self._default_model
        payload = {
            "model": model,
            "temperature": _clamp_temperature(temperature),
            "max_tokens": self._max_tokens,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }

        logger.debug("api_request", backend="openrouter", model=model, message_count=len(messages))
        try:
            res = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            logger.error("api_timeout", backend="openrouter", timeout=self._timeout)
            raise GenerationFailedError(f"Provider timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            logger.error("api_transport_error", backend="openrouter", error=str(e))
            raise GenerationFailedError(f"Provider request failed: {e}") from e

        if res.status_code >= 400:
            logger.error("api_error", backend="openrouter", status=res.status_code, body=res.text[:200])
            raise GenerationFailedError(
                f"Provider error {res.status_code}", details={"status_code": res.status_code}
            )

        try:
            data = res.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationFailedError("Malformed completion response") from e
        if not isinstance(content, str) or not content:
            raise GenerationFailedError("No content in completion")

        usage = data.get("usage") or {}
        logger.debug(
            "api_response",
            backend="openrouter",
            model=model,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
        return AIResponse(
            text=content,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            raw=data,
        )

    async def close(self) -> None:
        await self._client.aclose()


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AIConfig):
        import anthropic

        self._anthropic = anthropic
        self._default_model = config.model or DEFAULT_MODELS["anthropic"]
        self._max_tokens = config.max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=1,
            timeout=config.timeout,
        )

    @property
    def backend_name(self) -> str:
        return "anthropic"

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        model: str = "",
    ) -> AIResponse:
        validate_messages(messages)
        model = model or self._default_model
        system = "\n\n".join(m["content"] for m in messages if m["role"] == Role.SYSTEM)
        turns = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != Role.SYSTEM
        ]

        logger.debug("api_request", backend="anthropic", model=model, message_count=len(turns))
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                system=system,
                messages=turns,
                temperature=_clamp_temperature(temperature),
            )
        except self._anthropic.APIError as e:
            logger.error("api_error", backend="anthropic", error=str(e))
            raise GenerationFailedError(f"Provider request failed: {e}") from e

        text = "".join(b.text for b in response.content if b.type == "text")
        if not text:
            raise GenerationFailedError("No content in completion")
        logger.debug(
            "api_response",
            backend="anthropic",
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return AIResponse(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            raw=response,
        )

    async def close(self) -> None:
        await self._client.close()


def create_ai_client(config: AIConfig) -> AIClient:
    """Create an AI client for the configured backend; no API key means the stub."""
    match config.backend:
        case "stub":
            return StubClient()
        case "openrouter" | "anthropic" if not config.api_key:
            logger.warning("ai_client_stub_fallback", backend=config.backend, reason="no_api_key")
            return StubClient()
        case "openrouter":
            return OpenRouterClient(config)
        case "anthropic":
            return AnthropicClient(config)
        case _:
            raise ValueError(f"Unknown AI backend: {config.backend}")
