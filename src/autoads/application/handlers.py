"""Unidades de trabalho executadas pelas filas duráveis.

Cada handler recebe o QueueJob e levanta exceção em caso de falha; a fila
converte o resultado em transição de status.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from autoads.domain.errors import PermanentInputError
from autoads.domain.jobs import MessagePayload, QueueJob, ReportPayload
from autoads.domain.protocols.ai import ConversationHistory, HistoryMessage, TextGenerator
from autoads.domain.protocols.transport import ChatTransport
from autoads.observability.logging import get_logger, mask_key

if TYPE_CHECKING:
    from autoads.application.notifications import OwnerNotifier
    from autoads.infra.rate_limiter import RateLimiter

logger: logging.Logger = get_logger(__name__)

REPLY_HISTORY_LIMIT = 20
REPORT_HISTORY_LIMIT = 50


class MessageReplyHandler:
    """Gera resposta de IA para um lote e envia de volta ao contato."""

    def __init__(
        self,
        transport: ChatTransport,
        generator: TextGenerator,
        limiter: RateLimiter,
        *,
        history: ConversationHistory | None = None,
        owner_jid: str | None = None,
    ) -> None:
        self._transport = transport
        self._generator = generator
        self._limiter = limiter
        self._history = history
        self._owner_jid = owner_jid

    async def __call__(self, job: QueueJob[MessagePayload]) -> None:
        contact = job.identity_key
        messages = list(job.payload.messages)
        if not messages:
            logger.info("reply_skipped_empty_batch", extra={"job_id": job.id})
            return

        history: list[HistoryMessage] = []
        if self._history is not None:
            history = await self._history.recent_messages(contact, REPLY_HISTORY_LIMIT)

        is_owner = contact == self._owner_jid
        reply = await self._limiter.execute(
            lambda: self._generator.generate_reply(messages, history, is_owner=is_owner),
            "generate_reply",
        )
        if not reply or not reply.strip():
            logger.warning("reply_empty_from_generator", extra={"job_id": job.id})
            return

        await self._limiter.execute(
            lambda: self._transport.send_text(contact, reply),
            "send_reply",
        )
        logger.info(
            "reply_sent",
            extra={
                "job_id": job.id,
                "contact": mask_key(contact),
                "batch_size": len(messages),
                "reply_chars": len(reply),
            },
        )


class ReportHandler:
    """Resume conversa recente em relatório enviado ao dono."""

    def __init__(
        self,
        generator: TextGenerator,
        history: ConversationHistory,
        notifier: OwnerNotifier,
        limiter: RateLimiter,
    ) -> None:
        self._generator = generator
        self._history = history
        self._notifier = notifier
        self._limiter = limiter

    async def __call__(self, job: QueueJob[ReportPayload]) -> None:
        payload = job.payload
        messages = await self._history.recent_messages(
            payload.conversation_id, REPORT_HISTORY_LIMIT
        )
        if not messages:
            msg = f"Conversa sem histórico: {mask_key(payload.conversation_id)}"
            raise PermanentInputError(msg)

        report = await self._limiter.execute(
            lambda: self._generator.generate_report(
                messages,
                contact_name=payload.contact_name,
                last_message_time=payload.last_message_time,
            ),
            "generate_report",
        )
        await self._notifier.send_to_owner(f"📊 Relatório: {payload.contact_name}\n\n{report}")
        logger.info(
            "report_sent",
            extra={"job_id": job.id, "history_size": len(messages)},
        )
