"""Protocolo do sinal de capacidade upstream consultado antes do dequeue."""

from __future__ import annotations

from abc import ABC, abstractmethod


class CapacityGate(ABC):
    """Indica se há capacidade upstream (credencial utilizável) agora.

    Todo `has_capacity()` verdadeiro deve terminar em exatamente um de
    `record_success`, `record_failure`, `record_rate_limit` ou `release`.
    """

    @abstractmethod
    def has_capacity(self) -> bool: ...

    @abstractmethod
    def record_success(self) -> None: ...

    @abstractmethod
    def record_failure(self) -> None: ...

    @abstractmethod
    def record_rate_limit(self) -> None: ...

    @abstractmethod
    def release(self) -> None: ...


class AlwaysOpenGate(CapacityGate):
    """Gate neutro: sempre há capacidade."""

    def has_capacity(self) -> bool:
        return True

    def record_success(self) -> None:
        return None

    def record_failure(self) -> None:
        return None

    def record_rate_limit(self) -> None:
        return None

    def release(self) -> None:
        return None
