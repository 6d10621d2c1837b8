"""Widget session/chat protocol routes.

Mounted at several prefixes so embeds built against any of the historical
paths keep working. Every response carries permissive CORS headers.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from vaste_bot.api.deps import CORS_HEADERS, cors_json, get_vaste
from vaste_bot.app import VasteApp
from vaste_bot.protocol import AgentPublic, ChatRequest, ChatResponse, SessionRequest, SessionResponse

router = APIRouter(tags=["widget"])


def _client_metadata(request: Request) -> dict[str, str]:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else "")
    return {"userAgent": request.headers.get("user-agent", ""), "ip": ip}


@router.options("/session")
@router.options("/chat")
async def preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)


@router.post("/session", response_model=SessionResponse)
async def create_session(
    body: SessionRequest,
    request: Request,
    vaste: VasteApp = Depends(get_vaste),
):
    """Start an anonymous chat session for an agent and return its public profile."""
    started = await vaste.widget.create_session(body.agent_id, metadata=_client_metadata(request))
    payload = SessionResponse(
        session_id=started.session_id,
        agent=AgentPublic.model_validate(started.agent, from_attributes=True),
    )
    return cors_json(payload.model_dump(by_alias=True))


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, vaste: VasteApp = Depends(get_vaste)):
    """Run one chat turn in an existing session."""
    history = [item.model_dump() for item in body.history]
    result = await vaste.widget.chat(body.session_id, body.agent_id, body.message, history)
    payload = ChatResponse(reply=result.reply, session_id=result.session_id)
    return cors_json(payload.model_dump(by_alias=True))
