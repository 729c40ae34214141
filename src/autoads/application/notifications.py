"""Notificações ao dono (operador) via transporte de chat."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from autoads.domain.jobs import QueueJob, ReportPayload
from autoads.domain.protocols.transport import ChatTransport
from autoads.observability.logging import get_logger, mask_key

if TYPE_CHECKING:
    from autoads.infra.rate_limiter import RateLimiter

logger: logging.Logger = get_logger(__name__)

_MAX_ERROR_CHARS = 200


class OwnerNotifier:
    """Envia mensagens ao JID do dono."""

    def __init__(
        self,
        transport: ChatTransport,
        owner_jid: str | None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._transport = transport
        self._owner_jid = owner_jid
        self._limiter = limiter

    @property
    def owner_jid(self) -> str | None:
        return self._owner_jid

    async def send_to_owner(self, text: str) -> None:
        """Envia ao dono; erros sobem ao chamador."""
        owner = self._owner_jid
        if not owner:
            logger.warning("owner_not_configured_skip_notification")
            return

        async def call() -> Any:
            return await self._transport.send_text(owner, text)

        if self._limiter is not None:
            await self._limiter.execute(call, "notify_owner")
        else:
            await call()

    async def notify_owner(self, text: str) -> bool:
        """Best-effort: nunca levanta. Retorna True se enviado."""
        try:
            await self.send_to_owner(text)
        except Exception as exc:
            logger.error("owner_notification_failed", extra={"error": str(exc)})
            return False
        return bool(self._owner_jid)

    async def on_job_failed(self, job: QueueJob[Any], error: str) -> None:
        """Hook de falha terminal das filas (disparado uma única vez)."""
        short_error = error[:_MAX_ERROR_CHARS]
        if isinstance(job.payload, ReportPayload):
            text = (
                f"⚠️ Erro ao gerar relatório para {job.payload.contact_name}. "
                "Verifique os logs."
            )
        else:
            text = (
                f"⚠️ Falha ao responder {mask_key(job.identity_key)} "
                f"após {job.retry_count} tentativas: {short_error}"
            )
        await self.notify_owner(text)
