"""Protocolo do armazenamento durável (insert/update/select/delete)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Literal

FilterOp = Literal["==", "in", "<", "<=", ">", ">="]
Filter = tuple[str, FilterOp, Any]


class DurableStore(ABC):
    """Contrato mínimo assíncrono de um store relacional/documental.

    Cada linha é um dict com campo `id` (chave primária) incluído nas leituras.
    Escritas são sempre escopadas a uma única linha.
    """

    @abstractmethod
    async def insert(
        self, table: str, row: dict[str, Any], *, key: str | None = None
    ) -> str:
        """Insere linha; retorna id. Levanta DurableStoreConflictError se `key` existir."""

    @abstractmethod
    async def update(self, table: str, key: str, changes: dict[str, Any]) -> bool:
        """Atualiza campos da linha `key`. Retorna False se inexistente."""

    @abstractmethod
    async def get(self, table: str, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def select(
        self,
        table: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def delete(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        """Remove linhas que satisfazem `where`; retorna quantidade removida."""

    @abstractmethod
    async def count(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        """Conta linhas que satisfazem `where` sem materializá-las."""

    @abstractmethod
    async def probe(self, table: str) -> None:
        """Consulta barata de existência. Levanta DurableStoreUnavailableError."""
