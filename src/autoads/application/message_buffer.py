"""Buffer de mensagens com debounce adaptativo por conversa.

Cada chave de conversa tem no máximo um timer e um acumulador. Cada add()
cancela e substitui o timer; na expiração, flush() remove o lote de forma
atômica e dispara o callback como task própria. Erros do callback não
afetam o estado do buffer (o acumulador já foi limpo) e são contabilizados
em stats().

A janela de debounce é uma função degrau do número de conversas ativas:
poucas conversas → janela curta; muitas → janela longa.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from autoads.observability.logging import get_logger, mask_key

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

BatchCallback = Callable[[str, list[str]], Awaitable[None]]


@dataclass(frozen=True)
class DebounceTiers:
    """Janelas (segundos) por faixa de conversas ativas.

    Com thresholds (1, 3, 10): 1 ativa → windows[0]; 2–3 → windows[1];
    4–10 → windows[2]; 11+ → windows[3].
    """

    windows_seconds: tuple[float, ...] = (10.0, 15.0, 20.0, 30.0)
    thresholds: tuple[int, ...] = (1, 3, 10)

    def __post_init__(self) -> None:
        if len(self.windows_seconds) != len(self.thresholds) + 1:
            msg = "windows_seconds deve ter exatamente um item a mais que thresholds"
            raise ValueError(msg)
        if list(self.windows_seconds) != sorted(self.windows_seconds):
            msg = "windows_seconds deve ser não-decrescente"
            raise ValueError(msg)
        if list(self.thresholds) != sorted(set(self.thresholds)):
            msg = "thresholds deve ser estritamente crescente"
            raise ValueError(msg)

    def window_for(self, active_count: int) -> float:
        for threshold, window in zip(self.thresholds, self.windows_seconds, strict=False):
            if active_count <= threshold:
                return window
        return self.windows_seconds[-1]


class MessageBuffer:
    """Agregador de rajadas por chave de conversa."""

    def __init__(
        self,
        on_batch: BatchCallback,
        tiers: DebounceTiers | None = None,
    ) -> None:
        self._on_batch = on_batch
        self._tiers = tiers or DebounceTiers()
        self._buffers: dict[str, list[str]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._batches_flushed = 0
        self._callback_errors = 0
        self._last_error: str | None = None

    @property
    def active_count(self) -> int:
        """Quantidade de acumuladores não vazios."""
        return sum(1 for messages in self._buffers.values() if messages)

    def add(self, key: str, text: str) -> float:
        """Acumula `text` e (re)arma o timer; retorna a janela usada."""
        self._buffers.setdefault(key, []).append(text)

        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        delay = self._tiers.window_for(self.active_count)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay, self.flush, key)

        logger.debug(
            "message_buffered",
            extra={
                "key_prefix": mask_key(key),
                "buffer_size": len(self._buffers[key]),
                "debounce_seconds": delay,
                "active_conversations": self.active_count,
            },
        )
        return delay

    def flush(self, key: str) -> list[str]:
        """Remove o lote de `key` e dispara o callback (no-op se vazio)."""
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        messages = self._buffers.pop(key, None)
        if not messages:
            return []

        self._batches_flushed += 1
        logger.info(
            "message_batch_flushed",
            extra={"key_prefix": mask_key(key), "batch_size": len(messages)},
        )
        task = asyncio.get_running_loop().create_task(self._run_callback(key, list(messages)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return messages

    async def _run_callback(self, key: str, messages: list[str]) -> None:
        try:
            await self._on_batch(key, messages)
        except Exception as exc:
            self._callback_errors += 1
            self._last_error = str(exc)
            logger.error(
                "message_batch_callback_failed",
                extra={"key_prefix": mask_key(key), "error": str(exc)},
            )

    def flush_all(self) -> int:
        """Força o flush de todas as chaves; retorna quantos lotes saíram."""
        return sum(1 for key in list(self._buffers) if self.flush(key))

    async def drain(self) -> None:
        """Aguarda todos os callbacks em andamento."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self, *, flush_pending: bool = True) -> None:
        """Encerra o buffer: flush (ou descarte) dos pendentes e drain."""
        if flush_pending:
            self.flush_all()
        else:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            self._buffers.clear()
        await self.drain()

    def stats(self) -> dict[str, Any]:
        return {
            "active_conversations": self.active_count,
            "buffered_messages": sum(len(m) for m in self._buffers.values()),
            "pending_timers": len(self._timers),
            "inflight_callbacks": len(self._tasks),
            "batches_flushed": self._batches_flushed,
            "callback_errors": self._callback_errors,
            "last_error": self._last_error,
        }


def create_message_buffer(settings: Settings, on_batch: BatchCallback) -> MessageBuffer:
    tiers = DebounceTiers(
        windows_seconds=tuple(settings.buffer_debounce_tiers_seconds),
        thresholds=tuple(settings.buffer_tier_thresholds),
    )
    return MessageBuffer(on_batch, tiers)
