"""Assemble model input: system prompt, knowledge context, caller history, new turn."""

from __future__ import annotations

from typing import Any, Iterable

from vaste_bot.core.types import Role
from vaste_bot.storage.models import KnowledgeEntry

KNOWLEDGE_HEADER = "Knowledge Base (most recent first):"


def build_knowledge_section(entries: Iterable[KnowledgeEntry]) -> str:
    """Render knowledge entries as one block appended to the system prompt.

    Returns an empty string when there is nothing to inject.
    """
    lines = [f"- {entry.input}: {entry.output}" for entry in entries]
    if not lines:
        return ""
    return f"\n\n{KNOWLEDGE_HEADER}\n" + "\n".join(lines)


def build_system_prompt(system_prompt: str, entries: Iterable[KnowledgeEntry]) -> str:
    return f"{system_prompt}{build_knowledge_section(entries)}"


def build_messages(
    system: str,
    history: list[dict[str, Any]] | None,
    message: str,
    history_limit: int = 20,
) -> list[dict[str, str]]:
    """Convert caller-supplied history into provider messages.

    Only well-formed role/content pairs survive, and only the most recent
    *history_limit* of them. The new user message always comes last.
    """
    roles = {r.value for r in Role}
    turns = [
        {"role": item["role"], "content": item["content"]}
        for item in history or []
        if isinstance(item, dict)
        and item.get("role") in roles
        and isinstance(item.get("content"), str)
    ]
    turns = turns[-history_limit:] if history_limit > 0 else []

    return [
        {"role": Role.SYSTEM.value, "content": system},
        *turns,
        {"role": Role.USER.value, "content": message},
    ]
