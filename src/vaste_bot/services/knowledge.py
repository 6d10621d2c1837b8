"""Knowledge base ingestion: raw text, local files and fetched web pages."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Comment

from vaste_bot.core.ids import new_id, now_ms, parse_id
from vaste_bot.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from vaste_bot.log import get_logger
from vaste_bot.storage.agent_repo import AgentRepository
from vaste_bot.storage.knowledge_repo import KnowledgeRepository
from vaste_bot.storage.models import KnowledgeEntry

logger = get_logger(__name__)

MAX_OUTPUT_LEN = 200_000
FETCH_TIMEOUT = 10.0
USER_AGENT = "VasteBot/1.0"

_WS_RE = re.compile(r"\s+")
_NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]


def html_to_text(html: str) -> str:
    """Visible page text: non-content tags and comments dropped, entities decoded, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NON_CONTENT_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    text = soup.get_text(separator=" ", strip=True)
    return _WS_RE.sub(" ", text).strip()[:MAX_OUTPUT_LEN]


class KnowledgeService:
    def __init__(
        self,
        agents: AgentRepository,
        knowledge: KnowledgeRepository,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._agents = agents
        self._knowledge = knowledge
        self._transport = transport

    async def add_entry(
        self,
        agent_id: str,
        user_id: str,
        input: str,
        output: str,
        metadata: dict[str, Any] | None = None,
    ) -> KnowledgeEntry:
        agent_id = parse_id(agent_id, "agentId")
        agent = await self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        if agent.owner_id != user_id:
            raise PermissionDeniedError("Not authorized to add knowledge to this agent")
        if not input or not output:
            raise InvalidInputError("Knowledge entries need both an input label and output text")
        entry = KnowledgeEntry(
            id=new_id(),
            agent_id=agent_id,
            user_id=user_id,
            input=input,
            output=output[:MAX_OUTPUT_LEN],
            metadata=metadata or {},
            created_at=now_ms(),
        )
        await self._knowledge.insert(entry)
        logger.info("knowledge_added", agent_id=agent_id, entry_id=entry.id, label=input, length=len(entry.output))
        return entry

    async def add_file(self, agent_id: str, user_id: str, path: str | Path) -> KnowledgeEntry:
        path = Path(path)
        text = path.read_text(encoding="utf-8", errors="replace")
        return await self.add_entry(
            agent_id,
            user_id,
            input=f"file:{path.name}",
            output=text,
            metadata={"length": min(len(text), MAX_OUTPUT_LEN)},
        )

    async def extract_from_url(self, agent_id: str, user_id: str, url: str) -> KnowledgeEntry:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidInputError("Invalid URL", details={"url": url})

        async with httpx.AsyncClient(
            timeout=FETCH_TIMEOUT,
            transport=self._transport,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            try:
                res = await client.get(url)
            except httpx.HTTPError as e:
                raise InvalidInputError(f"Fetch failed: {e}", details={"url": url}) from e

        if res.status_code >= 400:
            raise InvalidInputError(
                f"Fetch failed {res.status_code}: {res.text[:200]}", details={"url": url}
            )

        extracted = html_to_text(res.text)[:MAX_OUTPUT_LEN]
        return await self.add_entry(
            agent_id,
            user_id,
            input=f"url:{url}",
            output=extracted,
            metadata={"contentType": res.headers.get("content-type", ""), "length": len(extracted)},
        )
