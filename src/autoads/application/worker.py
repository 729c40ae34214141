"""Worker em background que dirige as filas duráveis.

Três laços independentes de intervalo fixo:
- fila de mensagens (curto, ex. 10s)
- fila de relatórios (mais longo, ex. 30s)
- limpeza + reclaim de jobs presos (ex. 1h)

Cada laço captura e contabiliza suas próprias exceções; falha em um laço
nunca impede os outros de rodar.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from autoads.application.job_queue import DurableJobQueue
from autoads.domain.jobs import JobOutcome
from autoads.observability.logging import get_logger
from autoads.observability.timing import timed

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


@dataclass(slots=True)
class LoopStats:
    """Contadores por laço (canal de erro do worker)."""

    ticks: int = 0
    errors: int = 0
    last_error: str | None = None
    last_tick_at: datetime | None = None
    outcomes: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "ticks": self.ticks,
            "errors": self.errors,
            "last_error": self.last_error,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "outcomes": dict(self.outcomes),
        }


class BackgroundWorker:
    """Dono dos timers de polling das filas."""

    def __init__(
        self,
        message_queue: DurableJobQueue[Any],
        report_queue: DurableJobQueue[Any],
        *,
        message_interval_seconds: float = 10.0,
        report_interval_seconds: float = 30.0,
        cleanup_interval_seconds: float = 3600.0,
        reclaim_on_start: bool = True,
    ) -> None:
        self._message_queue = message_queue
        self._report_queue = report_queue
        self._intervals = {
            "message": message_interval_seconds,
            "report": report_interval_seconds,
            "cleanup": cleanup_interval_seconds,
        }
        self._reclaim_on_start = reclaim_on_start
        self._running = False
        self._started_at: datetime | None = None
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._loops: dict[str, LoopStats] = {name: LoopStats() for name in self._intervals}

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Arma os três laços. Idempotente (aviso se já rodando)."""
        if self._running:
            logger.warning("worker_already_running")
            return

        self._running = True
        self._started_at = datetime.now(tz=UTC)

        if self._reclaim_on_start:
            await self._tick("cleanup", self._reclaim)

        actions: dict[str, Callable[[], Awaitable[Any]]] = {
            "message": self._message_queue.process_next,
            "report": self._report_queue.process_next,
            "cleanup": self.run_cleanup,
        }
        for name, action in actions.items():
            self._tasks[name] = asyncio.create_task(self._loop(name, action))
        logger.info("worker_started", extra={"intervals": self._intervals})

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("worker_stopped")

    async def _loop(self, name: str, action: Callable[[], Awaitable[Any]]) -> None:
        interval = self._intervals[name]
        while self._running:
            await asyncio.sleep(interval)
            await self._tick(name, action)

    async def _tick(self, name: str, action: Callable[[], Awaitable[Any]]) -> None:
        stats = self._loops[name]
        stats.ticks += 1
        stats.last_tick_at = datetime.now(tz=UTC)
        try:
            with timed("worker_tick", extra={"loop": name}):
                result = await action()
        except Exception as exc:
            stats.errors += 1
            stats.last_error = str(exc)
            logger.error("worker_tick_failed", extra={"loop": name, "error": str(exc)})
            return

        if isinstance(result, JobOutcome):
            stats.outcomes[result.value] = stats.outcomes.get(result.value, 0) + 1
            if result is JobOutcome.FAILED:
                stats.last_error = f"{name} job failed"

    async def _reclaim(self) -> int:
        reclaimed = await self._message_queue.reclaim_stale()
        reclaimed += await self._report_queue.reclaim_stale()
        return reclaimed

    async def run_cleanup(self) -> dict[str, int]:
        """Reclaim de presos + limpeza por retenção nas duas filas."""
        reclaimed = await self._reclaim()
        deleted_messages = await self._message_queue.cleanup()
        deleted_reports = await self._report_queue.cleanup()
        return {
            "reclaimed": reclaimed,
            "message_deleted": deleted_messages,
            "report_deleted": deleted_reports,
        }

    def health_check(self) -> dict[str, Any]:
        uptime = None
        if self._running and self._started_at:
            uptime = (datetime.now(tz=UTC) - self._started_at).total_seconds()
        return {
            "running": self._running,
            "uptime_seconds": uptime,
            "loops": {name: stats.as_dict() for name, stats in self._loops.items()},
        }

    async def stats(self) -> dict[str, Any]:
        message_stats = await self._message_queue.stats()
        report_stats = await self._report_queue.stats()
        return {
            "message_queue": message_stats.as_dict(),
            "report_queue": report_stats.as_dict(),
            "worker": self.health_check(),
        }


def create_worker(
    settings: Settings,
    message_queue: DurableJobQueue[Any],
    report_queue: DurableJobQueue[Any],
) -> BackgroundWorker:
    return BackgroundWorker(
        message_queue,
        report_queue,
        message_interval_seconds=settings.worker_message_interval_seconds,
        report_interval_seconds=settings.worker_report_interval_seconds,
        cleanup_interval_seconds=settings.worker_cleanup_interval_seconds,
    )
