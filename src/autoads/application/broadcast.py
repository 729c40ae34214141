"""Broadcast sequencial de anúncios para grupos.

Envios um a um, com atraso fixo entre eles (não após o último), cada envio
passando pelo limiter de API. Falha em um grupo é logada e contada, nunca
interrompe os demais.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from autoads.application.group_directory import GroupDirectory
from autoads.domain.protocols.transport import ChatTransport
from autoads.infra.ephemeral_tracker import EphemeralTracker
from autoads.infra.rate_limiter import RateLimiter
from autoads.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class BroadcastContent:
    """Conteúdo de um slot (texto, imagem opcional, TTL opcional)."""

    text: str
    image: bytes | None = None
    ttl_minutes: int | None = None


@dataclass(slots=True)
class BroadcastResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    tracked: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.sent + self.failed + self.skipped


class BroadcastService:
    def __init__(
        self,
        directory: GroupDirectory,
        transport: ChatTransport,
        limiter: RateLimiter,
        *,
        tracker: EphemeralTracker | None = None,
        send_delay_seconds: float = 2.0,
        skip_announce_groups: bool = False,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._directory = directory
        self._transport = transport
        self._limiter = limiter
        self._tracker = tracker
        self._delay = send_delay_seconds
        self._skip_announce = skip_announce_groups
        self._sleep = sleep or asyncio.sleep

    async def _should_skip(self, group_id: str) -> bool:
        """Consulta metadados; falha na consulta não impede o envio."""
        try:
            metadata = await self._directory.get_metadata(group_id)
        except Exception as exc:
            logger.warning("broadcast_metadata_unavailable", extra={"error": str(exc)})
            return False
        return self._skip_announce and metadata.is_announce

    async def _send(self, group_id: str, content: BroadcastContent) -> str | None:
        if content.image is not None:
            image = content.image
            return await self._limiter.execute(
                lambda: self._transport.send_image(group_id, image, content.text),
                "broadcast_image",
            )
        return await self._limiter.execute(
            lambda: self._transport.send_text(group_id, content.text),
            "broadcast_text",
        )

    async def broadcast(
        self,
        content: BroadcastContent,
        group_ids: list[str] | None = None,
    ) -> BroadcastResult:
        groups = group_ids if group_ids is not None else await self._directory.list_groups()
        result = BroadcastResult()
        if not groups:
            logger.warning("broadcast_no_groups")
            return result

        logger.info("broadcast_started", extra={"groups": len(groups)})
        for index, group_id in enumerate(groups):
            if await self._should_skip(group_id):
                result.skipped += 1
                continue

            try:
                handle = await self._send(group_id, content)
            except Exception as exc:
                result.failed += 1
                result.errors[group_id] = str(exc)
                logger.error("broadcast_send_failed", extra={"error": str(exc)})
            else:
                result.sent += 1
                if content.ttl_minutes is not None and handle and self._tracker is not None:
                    await self._tracker.track_ad(group_id, handle, content.ttl_minutes)
                    result.tracked += 1

            if index < len(groups) - 1:
                await self._sleep(self._delay)

        logger.info(
            "broadcast_finished",
            extra={"sent": result.sent, "failed": result.failed, "skipped": result.skipped},
        )
        return result
