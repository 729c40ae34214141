"""RateLimiter genérico com throttle, retry e backoff exponencial.

Envolve qualquer chamada assíncrona a uma API externa limitada:
- Espaçamento mínimo entre chamadas (medido desde o último SUCESSO)
- Retry apenas para erros com formato de rate limit (429)
- Backoff exponencial com jitter uniforme (±jitter_factor)
- Modo fila (`submit`) para execução serial FIFO

Erros que não são rate limit sobem imediatamente, sem retry.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from autoads.domain.errors import is_rate_limit_error
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class RateLimiterConfig:
    """Configuração do RateLimiter (durações em segundos)."""

    max_retries: int = 5
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1
    throttle_seconds: float = 0.5


def calculate_backoff(
    attempt: int,
    config: RateLimiterConfig,
    rng: Callable[[], float] = random.random,
) -> float:
    """Calcula espera para a tentativa `attempt` (0-based).

    delay = min(initial * multiplier^attempt, max), jitter ±jitter_factor,
    piso em initial e teto em max.
    """
    base = min(
        config.initial_delay_seconds * (config.backoff_multiplier**attempt),
        config.max_delay_seconds,
    )
    jitter = base * config.jitter_factor * (rng() * 2 - 1)
    delay = max(base + jitter, config.initial_delay_seconds)
    return min(delay, config.max_delay_seconds)


class RateLimiter:
    """Wrapper de retry/backoff/throttle para chamadas assíncronas.

    Uso típico:
        result = await limiter.execute(lambda: transport.fetch_group_metadata(jid), "group_metadata")
    """

    def __init__(
        self,
        config: RateLimiterConfig | None = None,
        *,
        name: str = "default",
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or RateLimiterConfig()
        self._name = name
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.random
        self._last_success_at: float | None = None
        self._queue: deque[tuple[Operation[Any], str, asyncio.Future[Any]]] = deque()
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    async def _throttle(self) -> None:
        if self._last_success_at is None:
            return
        elapsed = self._clock() - self._last_success_at
        remaining = self._config.throttle_seconds - elapsed
        if remaining > 0:
            await self._sleep(remaining)

    async def execute(self, operation: Operation[T], context: str | None = None) -> T:
        """Executa `operation` com throttle e retry em rate limit.

        Raises:
            Exception: o próprio erro da operação (não-429 na primeira
                tentativa; 429 após esgotar max_retries).
        """
        cfg = self._config
        label = context or "operation"
        attempt = 0

        while True:
            await self._throttle()
            try:
                result = await operation()
            except Exception as exc:
                if not is_rate_limit_error(exc):
                    raise
                if attempt >= cfg.max_retries:
                    logger.error(
                        "rate_limit_retries_exhausted",
                        extra={
                            "limiter": self._name,
                            "context": label,
                            "total_attempts": attempt + 1,
                        },
                    )
                    raise
                delay = calculate_backoff(attempt, cfg, self._rng)
                logger.warning(
                    "rate_limited_backing_off",
                    extra={
                        "limiter": self._name,
                        "context": label,
                        "attempt": attempt + 1,
                        "max_retries": cfg.max_retries,
                        "backoff_seconds": round(delay, 3),
                    },
                )
                await self._sleep(delay)
                attempt += 1
                continue

            self._last_success_at = self._clock()
            return result

    async def submit(self, operation: Operation[T], context: str | None = None) -> T:
        """Enfileira `operation` para execução serial FIFO (via execute)."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append((operation, context or "queued", future))
        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        try:
            while self._queue:
                operation, label, future = self._queue.popleft()
                if future.done():
                    continue
                try:
                    result = await self.execute(operation, label)
                except Exception as exc:
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            self._draining = False
            self._drain_task = None

    def status(self) -> dict[str, Any]:
        """Snapshot para observabilidade."""
        since = None
        if self._last_success_at is not None:
            since = round(self._clock() - self._last_success_at, 3)
        return {
            "name": self._name,
            "queue_length": len(self._queue),
            "draining": self._draining,
            "seconds_since_last_success": since,
            "config": asdict(self._config),
        }


@dataclass(frozen=True)
class RateLimiters:
    """Par de instâncias usadas pelo sistema."""

    metadata: RateLimiter
    api: RateLimiter


def create_rate_limiters(settings: Settings) -> RateLimiters:
    """Cria os limiters de metadados (conservador) e de API (leve)."""
    metadata_cfg = RateLimiterConfig(
        max_retries=settings.metadata_limiter_max_retries,
        initial_delay_seconds=settings.metadata_limiter_initial_delay_seconds,
        max_delay_seconds=settings.metadata_limiter_max_delay_seconds,
        backoff_multiplier=settings.metadata_limiter_backoff_multiplier,
        jitter_factor=settings.metadata_limiter_jitter_factor,
        throttle_seconds=settings.metadata_limiter_throttle_seconds,
    )
    api_cfg = RateLimiterConfig(
        max_retries=settings.api_limiter_max_retries,
        initial_delay_seconds=settings.api_limiter_initial_delay_seconds,
        max_delay_seconds=settings.api_limiter_max_delay_seconds,
        backoff_multiplier=settings.api_limiter_backoff_multiplier,
        jitter_factor=settings.api_limiter_jitter_factor,
        throttle_seconds=settings.api_limiter_throttle_seconds,
    )
    return RateLimiters(
        metadata=RateLimiter(metadata_cfg, name="metadata"),
        api=RateLimiter(api_cfg, name="api"),
    )
