"""FastAPI application: widget protocol, bot-runner coordination, health and embed assets."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vaste_bot.api import discord_bot, widget
from vaste_bot.api.deps import CORS_HEADERS
from vaste_bot.app import VasteApp
from vaste_bot.errors import (
    ConfigurationError,
    CoordinationError,
    GenerationFailedError,
    InvalidIdError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    SessionMismatchError,
    VasteError,
)
from vaste_bot.log import get_logger

logger = get_logger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

WIDGET_PREFIXES = ("", "/chat/widget", "/api/chat/widget")

_STATUS_BY_ERROR: list[tuple[type[VasteError], int]] = [
    (InvalidIdError, 400),
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (SessionMismatchError, 403),
    (PermissionDeniedError, 403),
    (GenerationFailedError, 502),
    (CoordinationError, 502),
    (ConfigurationError, 500),
]


def status_for(exc: VasteError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=CORS_HEADERS)


def create_app(vaste: VasteApp) -> FastAPI:
    """Build the API around an application instance. The lifespan starts and stops it."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await vaste.start()
        try:
            yield
        finally:
            await vaste.stop()

    app = FastAPI(title="Vaste Chatbot API", version="0.1.0", lifespan=lifespan)
    app.state.vaste = vaste

    @app.exception_handler(VasteError)
    async def vaste_error_handler(request: Request, exc: VasteError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        else:
            logger.info("request_rejected", path=request.url.path, status=status_code, error=exc.message)
        return _error(status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error.get("loc", ()) if loc != "body")
            message = error.get("msg", "Validation error")
            problems.append(f"{field}: {message}" if field else message)
        return _error(400, "Invalid request: " + "; ".join(problems))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    for prefix in WIDGET_PREFIXES:
        app.include_router(widget.router, prefix=prefix)
    app.include_router(discord_bot.router)

    @app.get("/health", tags=["health"])
    @app.get("/api/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    @app.get("/widget.js", include_in_schema=False)
    async def widget_script():
        return FileResponse(STATIC_DIR / "widget.js", media_type="application/javascript")

    @app.get("/widget", include_in_schema=False)
    async def widget_page():
        return FileResponse(STATIC_DIR / "widget.html", media_type="text/html")

    return app
