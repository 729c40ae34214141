"""DurableStore em Firestore via AsyncClient (produção).

Cada tabela é uma collection; o id da linha é o id do documento.
Erros do Firestore são traduzidos para a taxonomia DurableStoreError:
- AlreadyExists/Conflict → DurableStoreConflictError
- NotFound/FailedPrecondition/PermissionDenied/ServiceUnavailable →
  DurableStoreUnavailableError
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from autoads.domain.errors import (
    DurableStoreConflictError,
    DurableStoreError,
    DurableStoreUnavailableError,
)
from autoads.domain.protocols.store import DurableStore, Filter
from autoads.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_UNAVAILABLE_ERRORS = (
    gcp_exceptions.NotFound,
    gcp_exceptions.FailedPrecondition,
    gcp_exceptions.PermissionDenied,
    gcp_exceptions.ServiceUnavailable,
)


def _translate(exc: Exception, table: str, operation: str) -> DurableStoreError:
    logger.error(
        "firestore_store_error",
        extra={"table": table, "operation": operation, "error": type(exc).__name__},
    )
    if isinstance(exc, (gcp_exceptions.Conflict, gcp_exceptions.AlreadyExists)):
        return DurableStoreConflictError(f"{table}: {exc}")
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return DurableStoreUnavailableError(f"{table}: {exc}")
    return DurableStoreError(f"Falha no Firestore ({operation}) em {table}: {exc}")


class FirestoreDurableStore(DurableStore):
    """Store Firestore assíncrono."""

    def __init__(self, client: firestore.AsyncClient) -> None:
        self._client = client

    def _query(
        self,
        table: str,
        where: Sequence[Filter],
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> Any:
        query: Any = self._client.collection(table)
        for field, op, value in where:
            query = query.where(filter=FieldFilter(field, op, value))
        for order in order_by:
            direction = (
                firestore.Query.DESCENDING if order.startswith("-") else firestore.Query.ASCENDING
            )
            query = query.order_by(order.lstrip("-"), direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    async def insert(
        self, table: str, row: dict[str, Any], *, key: str | None = None
    ) -> str:
        try:
            if key is None:
                _, doc_ref = await self._client.collection(table).add(dict(row))
                return doc_ref.id
            await self._client.collection(table).document(key).create(dict(row))
            return key
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "insert") from exc

    async def update(self, table: str, key: str, changes: dict[str, Any]) -> bool:
        try:
            await self._client.collection(table).document(key).update(dict(changes))
            return True
        except gcp_exceptions.NotFound:
            return False
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "update") from exc

    async def get(self, table: str, key: str) -> dict[str, Any] | None:
        try:
            snapshot = await self._client.collection(table).document(key).get()
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "get") from exc
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return data

    async def select(
        self,
        table: str,
        *,
        where: Sequence[Filter] = (),
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query = self._query(table, where, order_by, limit)
        rows: list[dict[str, Any]] = []
        try:
            async for snapshot in query.stream():
                data = snapshot.to_dict() or {}
                data["id"] = snapshot.id
                rows.append(data)
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "select") from exc
        return rows

    async def delete(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        query = self._query(table, where)
        deleted = 0
        try:
            async for snapshot in query.stream():
                await snapshot.reference.delete()
                deleted += 1
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "delete") from exc
        return deleted

    async def count(self, table: str, *, where: Sequence[Filter] = ()) -> int:
        """Agregação COUNT no servidor (não lê os documentos)."""
        query = self._query(table, where)
        try:
            results = await query.count(alias="total").get()
        except gcp_exceptions.GoogleAPICallError as exc:
            raise _translate(exc, table, "count") from exc
        return int(results[0][0].value) if results and results[0] else 0

    async def probe(self, table: str) -> None:
        try:
            await self._client.collection(table).limit(1).get()
        except gcp_exceptions.GoogleAPICallError as exc:
            error = _translate(exc, table, "probe")
            raise DurableStoreUnavailableError(str(error)) from exc
