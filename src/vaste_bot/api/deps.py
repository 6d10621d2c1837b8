"""Shared FastAPI dependencies and response helpers."""

from __future__ import annotations

import hmac
from typing import Any, Optional

from fastapi import Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from vaste_bot.app import VasteApp

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def get_vaste(request: Request) -> VasteApp:
    return request.app.state.vaste


def cors_json(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


def verify_backend_key(
    request: Request,
    x_backend_key: Optional[str] = Header(default=None),
) -> None:
    """Reject coordination calls without the shared backend key. An empty configured key rejects all."""
    expected = get_vaste(request).config.server.backend_key
    if not expected or not x_backend_key or not hmac.compare_digest(expected, x_backend_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
