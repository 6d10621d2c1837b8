"""Lease-based distributed lock over bot configurations.

A lease is a (holder, expiry) pair stored on the resource row. At most one
unexpired holder exists per resource; an expired lease is free for anyone to
take, so a crashed holder is reclaimed without a separate failure detector.
Holders must renew well inside the TTL (e.g. every 30s against 60s) to survive
one missed renewal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from vaste_bot.core.ids import now_ms
from vaste_bot.errors import InvalidInputError
from vaste_bot.log import get_logger
from vaste_bot.storage.bot_config_repo import BotConfigRepository

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LockResult:
    ok: bool
    reason: str  # claimed | renewed | held_by_other | lease_lost | not_found
    holder: Optional[str] = None
    expires_at: Optional[int] = None
    fencing_token: Optional[int] = None


class DistributedLockService:
    """Mutual exclusion for a named resource using the shared store as the only medium."""

    def __init__(self, configs: BotConfigRepository, clock: Callable[[], int] = now_ms):
        self._configs = configs
        self._clock = clock

    async def claim(self, resource_id: str, holder_id: str, ttl_ms: int) -> LockResult:
        """Take the lease if it is free, expired, or already ours."""
        _check_ttl(ttl_ms)
        now = self._clock()
        expires_at = now + ttl_ms
        version = await self._configs.try_claim(resource_id, holder_id, now, expires_at)
        if version is not None:
            logger.debug("lock_claimed", resource_id=resource_id, holder=holder_id, expires_at=expires_at)
            return LockResult(True, "claimed", holder_id, expires_at, version)

        current = await self._configs.get(resource_id)
        if current is None:
            return LockResult(False, "not_found")
        logger.debug(
            "lock_denied",
            resource_id=resource_id,
            holder=holder_id,
            current_holder=current.lock_holder,
        )
        return LockResult(False, "held_by_other", current.lock_holder, current.lock_expires_at)

    async def renew(self, resource_id: str, holder_id: str, ttl_ms: int) -> LockResult:
        """Extend our unexpired lease. Any failure means the lease is lost."""
        _check_ttl(ttl_ms)
        now = self._clock()
        expires_at = now + ttl_ms
        version = await self._configs.try_renew(resource_id, holder_id, now, expires_at)
        if version is not None:
            return LockResult(True, "renewed", holder_id, expires_at, version)

        current = await self._configs.get(resource_id)
        if current is None:
            return LockResult(False, "not_found")
        logger.info(
            "lease_lost",
            resource_id=resource_id,
            holder=holder_id,
            current_holder=current.lock_holder,
        )
        return LockResult(False, "lease_lost", current.lock_holder, current.lock_expires_at)

    async def release(self, resource_id: str, holder_id: str) -> bool:
        """Clear the lease if we hold it. Never raises."""
        try:
            released = await self._configs.try_release(resource_id, holder_id) is not None
        except Exception as e:
            logger.warning("lock_release_failed", resource_id=resource_id, error=str(e))
            return False
        if released:
            logger.debug("lock_released", resource_id=resource_id, holder=holder_id)
        return released


def _check_ttl(ttl_ms: int) -> None:
    if not isinstance(ttl_ms, int) or ttl_ms <= 0:
        raise InvalidInputError("ttlMs must be a positive integer", details={"ttl_ms": ttl_ms})
