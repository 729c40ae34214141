"""Filas duráveis de jobs (respostas de mensagem e relatórios).

Semântica comum:
- enqueue mescla payload em job não-terminal existente da mesma identidade
- process_next retira UM job por tick, ordenado por (priority, created_at)
- rate limit → volta a pending sem consumir retry
- outra falha → retry_count + 1; ao atingir max_retries → failed + hook
- itens mesclados durante o processamento voltam como cauda pendente
- o tick nunca deixa exceção escapar: todo resultado vira transição de status
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar, Generic

from autoads.domain.errors import PermanentInputError, is_rate_limit_error
from autoads.domain.jobs import (
    DEFAULT_MAX_RETRIES,
    NON_TERMINAL_STATUSES,
    JobOutcome,
    JobPriority,
    JobStatus,
    MessagePayload,
    P,
    QueueJob,
    QueueStats,
    ReportPayload,
    utcnow,
)
from autoads.domain.protocols.capacity import AlwaysOpenGate, CapacityGate
from autoads.domain.protocols.store import DurableStore
from autoads.observability.correlation import correlation_scope
from autoads.observability.logging import get_logger, mask_key
from autoads.observability.timing import timed

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

JobHandler = Callable[[QueueJob[Any]], Awaitable[None]]
FailureHook = Callable[[QueueJob[Any], str], Awaitable[None]]

RECLAIMED_ERROR = "reclaimed_after_stale_processing"
SLOW_JOB_MS = 60_000.0


class DurableJobQueue(Generic[P]):
    """Fila persistida, com retry limitado e merge na inserção."""

    payload_type: ClassVar[type]
    kind: ClassVar[str]

    def __init__(
        self,
        store: DurableStore,
        handler: JobHandler,
        *,
        table: str,
        retention: timedelta,
        max_retries: int = DEFAULT_MAX_RETRIES,
        gate: CapacityGate | None = None,
        on_failure: FailureHook | None = None,
        stale_after: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._handler = handler
        self._table = table
        self._retention = retention
        self._max_retries = max_retries
        self._gate = gate or AlwaysOpenGate()
        self._on_failure = on_failure
        self._stale_after = stale_after
        self._clock = clock or utcnow
        self._processing = False
        self._current_job_id: str | None = None

    @property
    def table(self) -> str:
        return self._table

    @property
    def is_processing(self) -> bool:
        return self._processing

    def _to_job(self, row: dict[str, Any]) -> QueueJob[P]:
        return QueueJob.from_row(row, self.payload_type)

    async def find_active(self, identity_key: str) -> QueueJob[P] | None:
        """Retorna o job não-terminal da identidade, se existir."""
        rows = await self._store.select(
            self._table,
            where=[
                ("identity_key", "==", identity_key),
                ("status", "in", [s.value for s in NON_TERMINAL_STATUSES]),
            ],
            limit=1,
        )
        return self._to_job(rows[0]) if rows else None

    async def enqueue(
        self,
        identity_key: str,
        payload: P,
        priority: int = JobPriority.NORMAL,
    ) -> QueueJob[P]:
        """Enfileira ou mescla no job não-terminal existente."""
        now = self._clock()
        existing = await self.find_active(identity_key)

        if existing is not None:
            merged = existing.payload.merged_with(payload)
            new_priority = min(existing.priority, int(priority))
            await self._store.update(
                self._table,
                existing.id,
                {
                    "payload": merged.to_document(),
                    "priority": new_priority,
                    "updated_at": now,
                },
            )
            existing.payload = merged
            existing.priority = new_priority
            existing.updated_at = now
            logger.info(
                "job_merged",
                extra={
                    "queue": self.kind,
                    "job_id": existing.id,
                    "identity": mask_key(identity_key),
                    "status": existing.status.value,
                },
            )
            return existing

        job: QueueJob[P] = QueueJob(
            id="",
            identity_key=identity_key,
            payload=payload,
            priority=int(priority),
            created_at=now,
            updated_at=now,
        )
        job.id = await self._store.insert(self._table, job.to_row())
        logger.info(
            "job_enqueued",
            extra={
                "queue": self.kind,
                "job_id": job.id,
                "identity": mask_key(identity_key),
                "priority": job.priority,
            },
        )
        return job

    async def process_next(self) -> JobOutcome | None:
        """Processa no máximo um job. Retorna None se nada foi feito."""
        if self._processing:
            logger.debug("queue_busy_skip", extra={"queue": self.kind})
            return None

        if not self._gate.has_capacity():
            logger.debug("queue_no_upstream_capacity", extra={"queue": self.kind})
            return None

        self._processing = True
        outcome: JobOutcome | None = None
        try:
            outcome = await self._process_one()
            return outcome
        except Exception as exc:
            logger.error(
                "queue_tick_failed",
                extra={"queue": self.kind, "error": str(exc)},
            )
            return None
        finally:
            if outcome is None:
                self._gate.release()
            self._processing = False
            self._current_job_id = None

    async def _dequeue(self) -> QueueJob[P] | None:
        rows = await self._store.select(
            self._table,
            where=[("status", "==", JobStatus.PENDING.value)],
            order_by=["priority", "created_at"],
            limit=1,
        )
        if not rows:
            return None
        job = self._to_job(rows[0])
        now = self._clock()
        await self._store.update(
            self._table,
            job.id,
            {"status": JobStatus.PROCESSING.value, "updated_at": now},
        )
        job.status = JobStatus.PROCESSING
        job.updated_at = now
        return job

    async def _process_one(self) -> JobOutcome | None:
        job = await self._dequeue()
        if job is None:
            return None
        self._current_job_id = job.id

        with correlation_scope(job.id):
            logger.info(
                "job_processing",
                extra={"queue": self.kind, "job_id": job.id, "retry_count": job.retry_count},
            )
            try:
                with timed(
                    "queue_job",
                    extra={"queue": self.kind, "job_id": job.id},
                    slow_ms=SLOW_JOB_MS,
                ):
                    await self._handler(job)
            except Exception as exc:
                return await self._handle_failure(job, exc)

            self._gate.record_success()
            return await self._complete(job)

    async def _complete(self, job: QueueJob[P]) -> JobOutcome:
        now = self._clock()
        row = await self._store.get(self._table, job.id)
        remainder = None
        if row is not None:
            stored = self.payload_type.from_document(row.get("payload") or {})
            remainder = stored.remainder_after(job.payload)

        if remainder is not None:
            await self._store.update(
                self._table,
                job.id,
                {
                    "status": JobStatus.PENDING.value,
                    "payload": remainder.to_document(),
                    "retry_count": 0,
                    "error_message": None,
                    "updated_at": now,
                },
            )
            logger.info("job_requeued_with_tail", extra={"queue": self.kind, "job_id": job.id})
            return JobOutcome.REQUEUED

        await self._store.update(
            self._table,
            job.id,
            {
                "status": JobStatus.COMPLETED.value,
                "error_message": None,
                "processed_at": now,
                "updated_at": now,
            },
        )
        logger.info("job_completed", extra={"queue": self.kind, "job_id": job.id})
        return JobOutcome.COMPLETED

    async def _handle_failure(self, job: QueueJob[P], exc: Exception) -> JobOutcome:
        now = self._clock()
        error = str(exc) or type(exc).__name__

        if is_rate_limit_error(exc):
            self._gate.record_rate_limit()
            await self._store.update(
                self._table,
                job.id,
                {
                    "status": JobStatus.PENDING.value,
                    "error_message": error,
                    "updated_at": now,
                },
            )
            logger.warning(
                "job_rate_limited",
                extra={"queue": self.kind, "job_id": job.id, "retry_count": job.retry_count},
            )
            return JobOutcome.RATE_LIMITED

        self._gate.record_failure()
        retry_count = job.retry_count + 1
        if retry_count >= self._max_retries or isinstance(exc, PermanentInputError):
            await self._store.update(
                self._table,
                job.id,
                {
                    "status": JobStatus.FAILED.value,
                    "retry_count": retry_count,
                    "error_message": error,
                    "updated_at": now,
                },
            )
            job.status = JobStatus.FAILED
            job.retry_count = retry_count
            job.error_message = error
            logger.error(
                "job_failed",
                extra={
                    "queue": self.kind,
                    "job_id": job.id,
                    "retry_count": retry_count,
                    "error": error,
                },
            )
            await self._notify_failure(job, error)
            return JobOutcome.FAILED

        await self._store.update(
            self._table,
            job.id,
            {
                "status": JobStatus.PENDING.value,
                "retry_count": retry_count,
                "error_message": error,
                "updated_at": now,
            },
        )
        logger.warning(
            "job_retry_scheduled",
            extra={
                "queue": self.kind,
                "job_id": job.id,
                "retry_count": retry_count,
                "max_retries": self._max_retries,
                "error": error,
            },
        )
        return JobOutcome.RETRY_SCHEDULED

    async def _notify_failure(self, job: QueueJob[P], error: str) -> None:
        if self._on_failure is None:
            return
        try:
            await self._on_failure(job, error)
        except Exception as exc:
            logger.error(
                "job_failure_hook_error",
                extra={"queue": self.kind, "job_id": job.id, "error": str(exc)},
            )

    async def stats(self) -> QueueStats:
        counts: dict[str, int] = {}
        for status in JobStatus:
            counts[status.value] = await self._store.count(
                self._table, where=[("status", "==", status.value)]
            )
        return QueueStats(**counts)

    async def cleanup(self) -> int:
        """Remove jobs terminais mais velhos que a retenção."""
        cutoff = self._clock() - self._retention
        deleted = await self._store.delete(
            self._table,
            where=[
                ("status", "in", [JobStatus.COMPLETED.value, JobStatus.FAILED.value]),
                ("updated_at", "<", cutoff),
            ],
        )
        if deleted:
            logger.info("queue_cleanup", extra={"queue": self.kind, "deleted": deleted})
        return deleted

    async def reclaim_stale(self, older_than: timedelta | None = None) -> int:
        """Devolve a pending jobs presos em processing além do limite."""
        now = self._clock()
        cutoff = now - (older_than if older_than is not None else self._stale_after)
        rows = await self._store.select(
            self._table,
            where=[
                ("status", "==", JobStatus.PROCESSING.value),
                ("updated_at", "<", cutoff),
            ],
        )
        reclaimed = 0
        for row in rows:
            if row["id"] == self._current_job_id:
                continue
            await self._store.update(
                self._table,
                row["id"],
                {
                    "status": JobStatus.PENDING.value,
                    "error_message": RECLAIMED_ERROR,
                    "updated_at": now,
                },
            )
            reclaimed += 1
        if reclaimed:
            logger.warning(
                "queue_stale_jobs_reclaimed",
                extra={"queue": self.kind, "reclaimed": reclaimed},
            )
        return reclaimed


class MessageJobQueue(DurableJobQueue[MessagePayload]):
    """Fila de respostas: identidade = chave da conversa."""

    payload_type = MessagePayload
    kind = "message"

    async def enqueue_batch(
        self,
        conversation_key: str,
        messages: list[str],
        priority: int = JobPriority.NORMAL,
    ) -> QueueJob[MessagePayload]:
        return await self.enqueue(conversation_key, MessagePayload.of(messages), priority)


def report_identity(contact: str, conversation_id: str) -> str:
    return f"{contact}:{conversation_id}"


class ReportJobQueue(DurableJobQueue[ReportPayload]):
    """Fila de relatórios: identidade = contato + conversa."""

    payload_type = ReportPayload
    kind = "report"

    async def enqueue_report(
        self,
        contact: str,
        payload: ReportPayload,
        priority: int = JobPriority.NORMAL,
    ) -> QueueJob[ReportPayload]:
        return await self.enqueue(
            report_identity(contact, payload.conversation_id), payload, priority
        )


def create_message_queue(
    settings: Settings,
    store: DurableStore,
    handler: JobHandler,
    *,
    gate: CapacityGate | None = None,
    on_failure: FailureHook | None = None,
) -> MessageJobQueue:
    return MessageJobQueue(
        store,
        handler,
        table=settings.message_queue_collection,
        retention=timedelta(hours=settings.message_queue_retention_hours),
        max_retries=settings.queue_max_retries,
        gate=gate,
        on_failure=on_failure,
        stale_after=timedelta(seconds=settings.queue_stale_processing_seconds),
    )


def create_report_queue(
    settings: Settings,
    store: DurableStore,
    handler: JobHandler,
    *,
    gate: CapacityGate | None = None,
    on_failure: FailureHook | None = None,
) -> ReportJobQueue:
    return ReportJobQueue(
        store,
        handler,
        table=settings.report_queue_collection,
        retention=timedelta(hours=settings.report_queue_retention_hours),
        max_retries=settings.queue_max_retries,
        gate=gate,
        on_failure=on_failure,
        stale_after=timedelta(seconds=settings.queue_stale_processing_seconds),
    )
