"""DurableStore em memória (desenvolvimento e testes).

⚠️ Não usar em produção! Dados são perdidos ao reiniciar.

Estrutura interna:
    {table: {row_id: row_dict}}
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from copy import deepcopy
from typing import Any

from autoads.domain.errors import DurableStoreConflictError
from autoads.domain.protocols.store import DurableStore, Filter
from autoads.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def _matches(row: dict[str, Any], where: Sequence[Filter]) -> bool:
    for field, op, value in where:
        current = row.get(field)
        if op == "==":
            ok = current == value
        elif op == "in":
            ok = current in value
        elif current is None:
            ok = False
        elif op == "<":
            ok = current < value
        elif op == "<=":
            ok = current <= value
        elif op == ">":
            ok = current > value
        elif op == ">=":
            ok = current >= value
        else:
            msg = f"Operador não suportado: {op}"
            raise ValueError(msg)
        if not ok:
            return False
    return True


def _sort_rows(rows: list[dict[str, Any]], order_by: Sequence[str]) -> list[dict[str, Any]]:
    """Ordena por múltiplos campos; prefixo '-' indica ordem decrescente."""
    for order in reversed(order_by):
        descending = order.startswith("-")
        field = order.lstrip("-")
        rows.sort(
            key=lambda r, f=field: (r.get(f) is None, r.get(f) if r.get(f) is not None else 0),
            reverse=descending,
        )
    return rows


class InMemoryDurableStore(DurableStore):
    """Store em memória com semântica de chave única por tabela."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    async def insert(
        self, table: str, row: dict[str, Any], *, key: str | None = None
    ) -> str:
        rows = self._table(table)
        row_id = key or uuid.uuid4().hex
        if row_id in rows:
            raise DurableStoreConflictError(f"{table}/{row_id} já existe")
        stored = deepcopy(row)
        stored["id"] = row_id
        rows[row_id] = stored
        return row_id

    async def update(self, table: str, key: str, changes: dict[str, Any]) -> bool:
        row = self._table(table).get(key)
        if row is None:
            return False
        row.update(deepcopy(changes))
        row["id"] = key
        return True

    async def get(self, table: str, key: str) -> dict[str, Any] | None:
        row = self._table(table).get(key)
        return deepcopy(row) if row is not None else None

    async def select(
        self,
        table: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        rows = [deepcopy(r) for r in self._table(table).values() if _matches(r, where)]
        rows = _sort_rows(rows, order_by)
        return rows[:limit] if limit is not None else rows

    async def delete(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        rows = self._table(table)
        doomed = [row_id for row_id, row in rows.items() if _matches(row, where)]
        for row_id in doomed:
            del rows[row_id]
        if doomed:
            logger.debug("memory_store_deleted", extra={"table": table, "count": len(doomed)})
        return len(doomed)

    async def count(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        return sum(1 for row in self._table(table).values() if _matches(row, where))

    async def probe(self, table: str) -> None:
        return None
