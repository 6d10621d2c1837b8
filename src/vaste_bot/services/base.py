"""Lifecycle contract for long-running components, plus ordered shutdown."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from vaste_bot.log import get_logger

logger = get_logger(__name__)


class Service(ABC):
    """A component an orchestrator starts once and stops once.

    ``stop`` must be idempotent and safe after a failed or skipped ``start``.
    """

    @property
    @abstractmethod
    def service_name(self) -> str:
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


async def stop_services(services: Iterable[Service]) -> list[str]:
    """Stop each service in the given order, continuing past failures.

    Returns the names of services whose stop raised.
    """
    failed = []
    for service in services:
        try:
            await service.stop()
        except Exception as e:
            logger.error("service_stop_failed", service=service.service_name, error=str(e))
            failed.append(service.service_name)
    return failed
