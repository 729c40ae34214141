"""Montagem do runtime: exatamente uma instância de cada componente.

Sem singletons de módulo; tudo é construído aqui e passado por referência.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from autoads.application.broadcast import BroadcastContent, BroadcastResult, BroadcastService
from autoads.application.group_directory import GroupDirectory
from autoads.application.handlers import MessageReplyHandler, ReportHandler
from autoads.application.job_queue import (
    MessageJobQueue,
    ReportJobQueue,
    create_message_queue,
    create_report_queue,
)
from autoads.application.message_buffer import MessageBuffer, create_message_buffer
from autoads.application.notifications import OwnerNotifier
from autoads.application.worker import BackgroundWorker, create_worker
from autoads.config.settings import Settings, get_settings
from autoads.domain.jobs import JobPriority, QueueJob, ReportPayload
from autoads.domain.protocols.ai import ConversationHistory, TextGenerator
from autoads.domain.protocols.store import DurableStore
from autoads.domain.protocols.transport import ChatTransport
from autoads.infra.capacity_gate import UpstreamCapacityGate, create_capacity_gate
from autoads.infra.ephemeral_tracker import EphemeralTracker, create_ephemeral_tracker
from autoads.infra.group_cache import GroupMetadataCache, create_group_cache
from autoads.infra.rate_limiter import RateLimiters, create_rate_limiters
from autoads.infra.store_factory import create_durable_store
from autoads.observability.logging import configure_logging, get_logger, mask_key

logger: logging.Logger = get_logger(__name__)


class _NoHistory(ConversationHistory):
    async def recent_messages(self, contact: str, limit: int = 20) -> list[Any]:
        return []


@dataclass
class Runtime:
    """Container dos componentes do processo."""

    settings: Settings
    store: DurableStore
    limiters: RateLimiters
    gate: UpstreamCapacityGate
    cache: GroupMetadataCache
    directory: GroupDirectory
    notifier: OwnerNotifier
    message_queue: MessageJobQueue
    report_queue: ReportJobQueue
    worker: BackgroundWorker
    buffer: MessageBuffer
    tracker: EphemeralTracker
    broadcaster: BroadcastService

    def on_message(self, jid: str, text: str) -> float:
        """Entrada de mensagem recebida; retorna a janela de debounce."""
        return self.buffer.add(jid, text)

    async def on_batch(self, jid: str, messages: list[str]) -> QueueJob[Any]:
        priority = JobPriority.OWNER if jid == self.settings.owner_jid else JobPriority.NORMAL
        return await self.message_queue.enqueue_batch(jid, messages, priority)

    async def request_report(
        self,
        contact: str,
        conversation_id: str,
        *,
        contact_name: str = "Unknown",
        last_message_time: datetime | None = None,
    ) -> QueueJob[Any]:
        payload = ReportPayload(
            conversation_id=conversation_id,
            contact_name=contact_name,
            last_message_time=last_message_time,
        )
        return await self.report_queue.enqueue_report(contact, payload, JobPriority.HIGH)

    async def broadcast(
        self, content: BroadcastContent, group_ids: list[str] | None = None
    ) -> BroadcastResult:
        return await self.broadcaster.broadcast(content, group_ids)

    async def start(self) -> None:
        self.cache.start()
        self.tracker.start()
        await self.worker.start()
        logger.info("runtime_started", extra={"owner": mask_key(self.settings.owner_jid or "")})

    async def stop(self) -> None:
        await self.buffer.close()
        await self.worker.stop()
        await self.tracker.stop()
        await self.cache.stop()
        logger.info("runtime_stopped")

    async def health(self) -> dict[str, Any]:
        return {
            "worker": self.worker.health_check(),
            "queues": await self.worker.stats(),
            "buffer": self.buffer.stats(),
            "cache": self.cache.stats(),
            "gate": self.gate.state,
            "limiters": {
                "metadata": self.limiters.metadata.status(),
                "api": self.limiters.api.status(),
            },
            "ephemeral_pending": len(self.tracker.records),
        }


def build_runtime(
    settings: Settings | None = None,
    *,
    transport: ChatTransport,
    generator: TextGenerator | None = None,
    history: ConversationHistory | None = None,
    store: DurableStore | None = None,
    firestore_client: Any | None = None,
    configure_logs: bool = True,
) -> Runtime:
    """Constrói o runtime completo a partir de Settings.

    Raises:
        ValueError: configuração inválida para o ambiente
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.log_level, settings.service_name)

    errors = settings.validate_all()
    if errors:
        error_msg = "; ".join(errors)
        raise ValueError(f"Configuração inválida para '{settings.environment}': {error_msg}")

    if generator is None:
        from autoads.ai.openai_generator import create_text_generator

        generator = create_text_generator(settings)
    history = history or _NoHistory()

    store = store or create_durable_store(settings, firestore_client)
    limiters = create_rate_limiters(settings)
    gate = create_capacity_gate(settings)
    cache = create_group_cache(settings, store)
    directory = GroupDirectory(transport, cache, limiters.metadata)
    notifier = OwnerNotifier(transport, settings.owner_jid, limiters.api)

    reply_handler = MessageReplyHandler(
        transport,
        generator,
        limiters.api,
        history=history,
        owner_jid=settings.owner_jid,
    )
    report_handler = ReportHandler(generator, history, notifier, limiters.api)
    message_queue = create_message_queue(
        settings, store, reply_handler, gate=gate, on_failure=notifier.on_job_failed
    )
    report_queue = create_report_queue(
        settings, store, report_handler, gate=gate, on_failure=notifier.on_job_failed
    )
    worker = create_worker(settings, message_queue, report_queue)
    tracker = create_ephemeral_tracker(settings, transport, limiters.api)
    broadcaster = BroadcastService(
        directory,
        transport,
        limiters.api,
        tracker=tracker,
        send_delay_seconds=settings.broadcast_send_delay_seconds,
    )

    runtime: Runtime

    async def enqueue_batch(jid: str, messages: list[str]) -> None:
        await runtime.on_batch(jid, messages)

    buffer = create_message_buffer(settings, enqueue_batch)

    runtime = Runtime(
        settings=settings,
        store=store,
        limiters=limiters,
        gate=gate,
        cache=cache,
        directory=directory,
        notifier=notifier,
        message_queue=message_queue,
        report_queue=report_queue,
        worker=worker,
        buffer=buffer,
        tracker=tracker,
        broadcaster=broadcaster,
    )
    logger.info(
        "runtime_built",
        extra={
            "environment": settings.environment,
            "durable_store_backend": settings.durable_store_backend,
        },
    )
    return runtime
