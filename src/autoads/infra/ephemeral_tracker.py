"""Rastreador de anúncios efêmeros (apagar após TTL).

Lista completa persistida em um único documento JSON: lida inteira na
inicialização e regravada inteira a cada mudança. Deleções que falham são
consideradas resolvidas e descartadas (sem laço de retry).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from autoads.domain.protocols.transport import ChatTransport
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings
    from autoads.infra.rate_limiter import RateLimiter

logger: logging.Logger = get_logger(__name__)

DEFAULT_TTL_MINUTES = 120


def _now() -> datetime:
    return datetime.now(tz=UTC)


class EphemeralRecord(BaseModel):
    """Mensagem enviada que deve ser apagada após ttl_minutes."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    channel_id: str
    handle: str
    sent_at: datetime = Field(default_factory=_now)
    ttl_minutes: int = Field(DEFAULT_TTL_MINUTES, ge=0)

    @property
    def expires_at(self) -> datetime:
        return self.sent_at + timedelta(minutes=self.ttl_minutes)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


_RECORDS_ADAPTER = TypeAdapter(list[EphemeralRecord])


class EphemeralTracker:
    """Persistência e reconciliação de registros efêmeros."""

    def __init__(
        self,
        path: str | Path,
        *,
        transport: ChatTransport | None = None,
        limiter: RateLimiter | None = None,
        default_ttl_minutes: int = DEFAULT_TTL_MINUTES,
        cleanup_interval_seconds: float = 300.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._transport = transport
        self._limiter = limiter
        self._default_ttl = default_ttl_minutes
        self._interval = cleanup_interval_seconds
        self._clock = clock or _now
        self._task: asyncio.Task[None] | None = None
        self._save_lock = asyncio.Lock()
        self._records: list[EphemeralRecord] = self._load()

    @property
    def records(self) -> list[EphemeralRecord]:
        return list(self._records)

    def set_transport(self, transport: ChatTransport) -> None:
        self._transport = transport

    def _load(self) -> list[EphemeralRecord]:
        if not self._path.exists():
            return []
        try:
            records = _RECORDS_ADAPTER.validate_json(self._path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.error(
                "ephemeral_ads_load_failed",
                extra={"path": str(self._path), "error": str(exc)},
            )
            return []
        logger.info("ephemeral_ads_loaded", extra={"count": len(records)})
        return records

    def _write(self, data: bytes) -> None:
        """Grava a lista inteira (arquivo temporário + replace)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, self._path)

    async def _save(self) -> None:
        """Serializa no loop e grava em thread, uma gravação por vez."""
        data = _RECORDS_ADAPTER.dump_json(self._records, indent=2)
        async with self._save_lock:
            await asyncio.to_thread(self._write, data)

    async def track_ad(
        self, channel_id: str, handle: str, ttl_minutes: int | None = None
    ) -> EphemeralRecord:
        """Registra mensagem para deleção futura e persiste."""
        record = EphemeralRecord(
            channel_id=channel_id,
            handle=handle,
            sent_at=self._clock(),
            ttl_minutes=self._default_ttl if ttl_minutes is None else ttl_minutes,
        )
        self._records.append(record)
        await self._save()
        logger.info(
            "ephemeral_ad_tracked",
            extra={"record_id": record.id, "ttl_minutes": record.ttl_minutes},
        )
        return record

    async def _delete(self, transport: ChatTransport, record: EphemeralRecord) -> None:

        async def call() -> None:
            await transport.delete_message(record.channel_id, record.handle)

        if self._limiter is not None:
            await self._limiter.execute(call, "ephemeral_delete")
        else:
            await call()

    async def run_cleanup(self) -> int:
        """Apaga registros expirados; retorna quantos foram reconciliados."""
        transport = self._transport
        if transport is None:
            logger.warning("ephemeral_cleanup_skipped_no_transport")
            return 0

        now = self._clock()
        expired = [r for r in self._records if r.is_expired(now)]
        if not expired:
            return 0

        deleted = 0
        for record in expired:
            try:
                await self._delete(transport, record)
                deleted += 1
            except Exception as exc:
                logger.warning(
                    "ephemeral_delete_failed_dropping",
                    extra={"record_id": record.id, "error": str(exc)},
                )

        expired_ids = {r.id for r in expired}
        self._records = [r for r in self._records if r.id not in expired_ids]
        await self._save()
        logger.info(
            "ephemeral_cleanup_done",
            extra={
                "expired": len(expired),
                "deleted": deleted,
                "pending": len(self._records),
            },
        )
        return len(expired)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_cleanup()
            except Exception as exc:
                logger.error("ephemeral_cleanup_error", extra={"error": str(exc)})

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            logger.warning("ephemeral_tracker_already_running")
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def create_ephemeral_tracker(
    settings: Settings,
    transport: ChatTransport | None = None,
    limiter: RateLimiter | None = None,
) -> EphemeralTracker:
    return EphemeralTracker(
        settings.ephemeral_ads_path,
        transport=transport,
        limiter=limiter,
        default_ttl_minutes=settings.ephemeral_default_ttl_minutes,
        cleanup_interval_seconds=settings.ephemeral_cleanup_interval_seconds,
    )
