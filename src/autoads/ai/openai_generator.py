"""Gerador de texto via OpenAI (implementa TextGenerator).

Retry do SDK desabilitado: o RateLimiter da aplicação é quem decide
retry/backoff. `openai.RateLimitError` vira `RateLimitError` do domínio;
demais erros sobem como estão (a fila contabiliza como falha).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI

from autoads.domain.errors import RateLimitError
from autoads.domain.protocols.ai import HistoryMessage, TextGenerator
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

REPLY_SYSTEM_PROMPT = (
    "Você é o assistente de atendimento de uma agência de anúncios no WhatsApp. "
    "Responda de forma curta, cordial e objetiva, no idioma do cliente."
)
OWNER_SYSTEM_PROMPT = (
    "Você está conversando com o dono da agência. Seja direto e técnico."
)
REPORT_SYSTEM_PROMPT = (
    "Resuma a conversa abaixo para o dono da agência: interesse do contato, "
    "pedidos pendentes e próximo passo sugerido. Use tópicos curtos."
)


class OpenAITextGenerator(TextGenerator):
    """Cliente fino sobre chat.completions."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=0)
        self._model = model
        self._timeout = timeout_seconds

    async def _complete(
        self,
        messages: list[dict[str, str]],
        *,
        operation: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout,
            )
        except openai.RateLimitError as exc:
            logger.warning("openai_rate_limited", extra={"operation": operation})
            raise RateLimitError(f"OpenAI rate limited (429): {operation}") from exc
        except openai.APIError as exc:
            logger.error(
                "openai_call_failed",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise
        return (response.choices[0].message.content or "").strip()

    async def generate_reply(
        self,
        messages: Sequence[str],
        history: Sequence[HistoryMessage] = (),
        *,
        is_owner: bool = False,
    ) -> str:
        chat: list[dict[str, Any]] = [
            {"role": "system", "content": OWNER_SYSTEM_PROMPT if is_owner else REPLY_SYSTEM_PROMPT}
        ]
        chat.extend({"role": m.role, "content": m.content} for m in history)
        chat.append({"role": "user", "content": "\n".join(messages)})
        return await self._complete(
            chat, operation="generate_reply", temperature=0.4, max_tokens=400
        )

    async def generate_report(
        self,
        history: Sequence[HistoryMessage],
        *,
        contact_name: str,
        last_message_time: datetime | None = None,
    ) -> str:
        transcript = "\n".join(f"{m.role}: {m.content}" for m in history)
        header = f"Contato: {contact_name}"
        if last_message_time is not None:
            header += f"\nÚltima mensagem: {last_message_time.isoformat()}"
        chat = [
            {"role": "system", "content": REPORT_SYSTEM_PROMPT},
            {"role": "user", "content": f"{header}\n\n{transcript}"},
        ]
        return await self._complete(
            chat, operation="generate_report", temperature=0.3, max_tokens=600
        )


def create_text_generator(settings: Settings) -> OpenAITextGenerator:
    if not settings.openai_enabled:
        msg = "OPENAI_ENABLED=false: nenhum TextGenerator disponível"
        raise ValueError(msg)
    return OpenAITextGenerator(
        settings.openai_api_key,
        model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
    )
