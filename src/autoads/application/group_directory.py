"""Diretório de grupos: leitura via cache com fallback ao transporte."""

from __future__ import annotations

import logging

from autoads.config.settings import WHATSAPP_GROUP_SUFFIX
from autoads.domain.group_metadata import GroupMetadata
from autoads.domain.protocols.transport import ChatTransport
from autoads.infra.group_cache import GroupMetadataCache
from autoads.infra.rate_limiter import RateLimiter
from autoads.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class GroupDirectory:
    """Resolve metadados de grupo (cache → limiter → transporte → put)."""

    def __init__(
        self,
        transport: ChatTransport,
        cache: GroupMetadataCache,
        limiter: RateLimiter,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._limiter = limiter

    async def get_metadata(self, group_id: str) -> GroupMetadata:
        entry = await self._cache.get(group_id)
        if entry is not None:
            return entry.metadata
        return await self._fetch(group_id)

    async def refresh(self, group_id: str) -> GroupMetadata:
        """Ignora ambos os níveis do cache e rebusca no transporte."""
        self._cache.invalidate(group_id)
        return await self._fetch(group_id)

    async def _fetch(self, group_id: str) -> GroupMetadata:
        raw = await self._limiter.execute(
            lambda: self._transport.fetch_group_metadata(group_id),
            "group_metadata",
        )
        metadata = GroupMetadata.from_raw(group_id, raw)
        await self._cache.put(group_id, metadata)
        logger.debug(
            "group_metadata_fetched",
            extra={"total_members": metadata.total_members},
        )
        return metadata

    async def list_groups(self) -> list[str]:
        groups = await self._limiter.execute(self._transport.get_all_groups, "get_all_groups")
        return [g for g in groups if g.endswith(WHATSAPP_GROUP_SUFFIX)]
