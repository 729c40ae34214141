"""Gate de capacidade upstream consultado antes de cada dequeue.

Abre por um cooldown após um resultado de rate limit; depois do cooldown
libera um número limitado de chamadas de teste (half-open). Um sucesso
fecha o gate, assim como uma falha comum (o upstream respondeu).
Tick sem job devolve a vaga de teste.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from autoads.domain.protocols.capacity import CapacityGate
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

GateState = Literal["closed", "open", "half_open"]


@dataclass(frozen=True)
class CapacityGateConfig:
    """Configuração do gate (cooldown em segundos)."""

    enabled: bool = True
    cooldown_seconds: float = 60.0
    half_open_max_calls: int = 1


class UpstreamCapacityGate(CapacityGate):
    """Gate closed/open/half_open alimentado pelos resultados dos jobs."""

    def __init__(
        self,
        config: CapacityGateConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or CapacityGateConfig()
        self._state: GateState = "closed"
        self._opened_at: float | None = None
        self._half_open_calls: int = 0
        self._rate_limit_count: int = 0
        self._clock = clock or time.monotonic

    @property
    def state(self) -> GateState:
        """Estado atual (para observabilidade e testes)."""

        return self._state

    @property
    def rate_limit_count(self) -> int:
        return self._rate_limit_count

    def has_capacity(self) -> bool:
        """Determina se um job pode ser retirado da fila agora.

        - Se desabilitado, sempre permite.
        - Se aberto e dentro do cooldown, bloqueia.
        - Após cooldown, entra em half-open limitando chamadas de teste.
        """

        if not self._config.enabled:
            return True

        if self._state == "open":
            if self._opened_at is None:
                self._opened_at = self._clock()
            elapsed = self._clock() - self._opened_at
            if elapsed < self._config.cooldown_seconds:
                return False
            self._state = "half_open"
            self._half_open_calls = 0
            logger.info("capacity_gate_half_open")

        if self._state == "half_open":
            if self._half_open_calls >= self._config.half_open_max_calls:
                return False
            self._half_open_calls += 1
            return True

        return True

    def record_success(self) -> None:
        if not self._config.enabled:
            return
        if self._state != "closed":
            logger.info("capacity_gate_closed", extra={"previous_state": self._state})
        self._reset()

    def record_failure(self) -> None:
        """Falha que não é rate limit: o upstream respondeu, então o gate fecha."""
        if not self._config.enabled:
            return
        if self._state != "closed":
            logger.info(
                "capacity_gate_closed_on_failure", extra={"previous_state": self._state}
            )
        self._reset()

    def release(self) -> None:
        """Devolve a vaga de teste quando o dequeue não executou nenhum job."""
        if self._state == "half_open" and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def record_rate_limit(self) -> None:
        if not self._config.enabled:
            return
        self._rate_limit_count += 1
        self._state = "open"
        self._opened_at = self._clock()
        self._half_open_calls = 0
        logger.warning(
            "capacity_gate_opened",
            extra={
                "cooldown_seconds": self._config.cooldown_seconds,
                "rate_limit_count": self._rate_limit_count,
            },
        )

    def _reset(self) -> None:
        self._state = "closed"
        self._opened_at = None
        self._half_open_calls = 0


def create_capacity_gate(settings: Settings) -> UpstreamCapacityGate:
    return UpstreamCapacityGate(
        CapacityGateConfig(
            enabled=settings.capacity_gate_enabled,
            cooldown_seconds=settings.capacity_gate_cooldown_seconds,
            half_open_max_calls=settings.capacity_gate_half_open_max_calls,
        )
    )
