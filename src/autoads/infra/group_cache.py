"""Cache de metadados de grupo em dois níveis (memória + durável).

Leitura (read-through):
1. Memória, se fresca (TTL em processo) → hit rápido
2. Store durável, se disponível e fresco (TTL durável) → popula memória
3. Caso contrário → miss; o chamador busca na fonte de verdade e chama put()

Degradação: qualquer exceção do nível durável (exceto "verificado ausente")
marca o nível como indisponível; o cache passa a operar só em memória até
um probe posterior ter sucesso. Probes são espaçados por probe_interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from autoads.domain.errors import DurableStoreConflictError, DurableStoreUnavailableError
from autoads.domain.group_metadata import CacheEntry, GroupMetadata
from autoads.domain.protocols.store import DurableStore
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

STORED_AT_FIELD = "stored_at"


def _wall_now() -> datetime:
    return datetime.now(tz=UTC)


class GroupMetadataCache:
    """Cache TTL de dois níveis com degradação para memória."""

    def __init__(
        self,
        store: DurableStore,
        *,
        table: str = "groups",
        memory_ttl_seconds: float = 3600.0,
        durable_ttl_seconds: float = 3600.0,
        sweep_interval_seconds: float = 300.0,
        probe_interval_seconds: float = 60.0,
        clock: Callable[[], float] | None = None,
        wall_clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._table = table
        self._memory_ttl = memory_ttl_seconds
        self._durable_ttl = durable_ttl_seconds
        self._sweep_interval = sweep_interval_seconds
        self._probe_interval = probe_interval_seconds
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or _wall_now

        self._memory: dict[str, CacheEntry] = {}
        # None = desconhecido (primeiro acesso faz probe)
        self._durable_available: bool | None = None
        self._last_probe_at: float | None = None
        self._sweep_task: asyncio.Task[None] | None = None

        self._memory_hits = 0
        self._durable_hits = 0
        self._misses = 0

    @property
    def durable_available(self) -> bool | None:
        return self._durable_available

    def _mark_unavailable(self, reason: str) -> None:
        if self._durable_available is not False:
            logger.warning(
                "group_cache_durable_degraded",
                extra={"table": self._table, "error": reason},
            )
        self._durable_available = False
        self._last_probe_at = self._clock()

    async def _ensure_durable(self) -> bool:
        """Retorna disponibilidade do nível durável, fazendo probe se devido."""
        if self._durable_available:
            return True

        now = self._clock()
        if (
            self._durable_available is False
            and self._last_probe_at is not None
            and now - self._last_probe_at < self._probe_interval
        ):
            return False

        self._last_probe_at = now
        try:
            await self._store.probe(self._table)
        except Exception as exc:
            self._mark_unavailable(str(exc))
            return False

        if self._durable_available is False:
            logger.info("group_cache_durable_recovered", extra={"table": self._table})
        self._durable_available = True
        return True

    async def get(self, key: str) -> CacheEntry | None:
        """Retorna entrada fresca (memória ou durável) ou None (miss)."""
        now = self._clock()
        entry = self._memory.get(key)
        if entry is not None and entry.is_fresh(now, self._memory_ttl):
            self._memory_hits += 1
            return entry

        if not await self._ensure_durable():
            self._misses += 1
            return None

        try:
            row = await self._store.get(self._table, key)
        except Exception as exc:
            self._mark_unavailable(str(exc))
            self._misses += 1
            return None

        if row is None:
            self._misses += 1
            return None

        stored_at = row.get(STORED_AT_FIELD)
        if not isinstance(stored_at, datetime):
            self._misses += 1
            return None
        age = (self._wall_clock() - stored_at).total_seconds()
        if age >= self._durable_ttl:
            logger.debug("group_cache_durable_stale", extra={"age_seconds": int(age)})
            self._misses += 1
            return None

        metadata = GroupMetadata.from_document({**row, "group_id": row.get("group_id", key)})
        # idade durável conta contra o TTL em memória
        entry = CacheEntry(key=key, metadata=metadata, fetched_at=now - max(age, 0.0))
        self._memory[key] = entry
        self._durable_hits += 1
        return entry

    async def put(self, key: str, metadata: GroupMetadata) -> CacheEntry:
        """Grava em memória e, em best-effort, no nível durável."""
        fetched_at = self._clock()
        self._memory[key] = CacheEntry(key=key, metadata=metadata.as_cached(), fetched_at=fetched_at)
        fresh = CacheEntry(key=key, metadata=metadata, fetched_at=fetched_at)

        if not await self._ensure_durable():
            return fresh

        row: dict[str, Any] = {**metadata.to_document(), STORED_AT_FIELD: self._wall_clock()}
        try:
            try:
                await self._store.insert(self._table, row, key=key)
            except DurableStoreConflictError:
                await self._store.update(self._table, key, row)
        except DurableStoreUnavailableError as exc:
            self._mark_unavailable(str(exc))
        except Exception as exc:
            logger.warning(
                "group_cache_durable_write_failed",
                extra={"table": self._table, "error": str(exc)},
            )
        return fresh

    def invalidate(self, key: str) -> None:
        """Remove apenas a entrada em memória."""
        self._memory.pop(key, None)

    def invalidate_all(self) -> None:
        self._memory.clear()

    def sweep(self) -> int:
        """Remove entradas em memória mais velhas que o TTL em processo."""
        now = self._clock()
        expired = [k for k, e in self._memory.items() if not e.is_fresh(now, self._memory_ttl)]
        for key in expired:
            del self._memory[key]
        if expired:
            logger.debug("group_cache_swept", extra={"removed": len(expired)})
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def start(self) -> None:
        """Inicia a varredura periódica (idempotente)."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        fresh = sum(1 for e in self._memory.values() if e.is_fresh(now, self._memory_ttl))
        return {
            "memory_size": len(self._memory),
            "fresh": fresh,
            "stale": len(self._memory) - fresh,
            "memory_ttl_seconds": self._memory_ttl,
            "durable_ttl_seconds": self._durable_ttl,
            "durable_available": self._durable_available,
            "memory_hits": self._memory_hits,
            "durable_hits": self._durable_hits,
            "misses": self._misses,
        }


def create_group_cache(settings: Settings, store: DurableStore) -> GroupMetadataCache:
    return GroupMetadataCache(
        store,
        table=settings.groups_collection,
        memory_ttl_seconds=settings.group_cache_memory_ttl_seconds,
        durable_ttl_seconds=settings.group_cache_durable_ttl_seconds,
        sweep_interval_seconds=settings.group_cache_sweep_interval_seconds,
        probe_interval_seconds=settings.group_cache_probe_interval_seconds,
    )
