"""Bot-runner coordination routes: active configs, lease claim/renew/release, status."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from vaste_bot.api.deps import get_vaste, verify_backend_key
from vaste_bot.app import VasteApp
from vaste_bot.core.types import BotStatus
from vaste_bot.errors import InvalidInputError
from vaste_bot.log import get_logger
from vaste_bot.protocol import (
    Ack,
    ActiveBotConfig,
    LockRequest,
    LockResponse,
    ReleaseRequest,
    StatusRequest,
)
from vaste_bot.services.lock import LockResult

logger = get_logger(__name__)

router = APIRouter(
    prefix="/discord/bot",
    tags=["discord-bot"],
    dependencies=[Depends(verify_backend_key)],
)


def _lock_response(result: LockResult) -> LockResponse:
    return LockResponse(
        ok=result.ok,
        reason=result.reason,
        holder=result.holder,
        expires_at=result.expires_at,
        fencing_token=result.fencing_token,
    )


@router.get("/activeConfigs", response_model=list[ActiveBotConfig])
async def active_configs(vaste: VasteApp = Depends(get_vaste)):
    configs = await vaste.bot_configs.active_configs()
    return [
        ActiveBotConfig(
            id=c.id,
            agent_id=c.agent_id,
            bot_token=c.bot_token,
            client_id=c.client_id,
            guild_id=c.guild_id,
            updated_at=c.updated_at,
        )
        for c in configs
    ]


@router.post("/claim", response_model=LockResponse)
async def claim(body: LockRequest, vaste: VasteApp = Depends(get_vaste)):
    return _lock_response(await vaste.locks.claim(body.config_id, body.instance_id, body.ttl_ms))


@router.post("/renew", response_model=LockResponse)
async def renew(body: LockRequest, vaste: VasteApp = Depends(get_vaste)):
    return _lock_response(await vaste.locks.renew(body.config_id, body.instance_id, body.ttl_ms))


@router.post("/release", response_model=Ack)
async def release(body: ReleaseRequest, vaste: VasteApp = Depends(get_vaste)):
    return Ack(ok=await vaste.locks.release(body.config_id, body.instance_id))


@router.post("/updateStatus", response_model=Ack)
async def update_status(body: StatusRequest, vaste: VasteApp = Depends(get_vaste)):
    try:
        bot_status = BotStatus(body.status)
    except ValueError as e:
        raise InvalidInputError(f"Unknown status: {body.status}") from e
    await vaste.bot_configs.update_status(body.config_id, bot_status.value, body.last_seen)
    logger.info("bot_status_reported", config_id=body.config_id, status=bot_status.value)
    return Ack()
