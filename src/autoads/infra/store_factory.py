"""Factory para DurableStore (criação independente de backend)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from autoads.domain.protocols.store import DurableStore
from autoads.infra.store_memory import InMemoryDurableStore
from autoads.observability.logging import get_logger

if TYPE_CHECKING:
    from autoads.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_durable_store(
    settings: Settings,
    firestore_client: Any | None = None,
) -> DurableStore:
    """Factory para DurableStore.

    Args:
        settings: configurações (usa durable_store_backend e firestore_*)
        firestore_client: AsyncClient pré-construído (opcional)

    Raises:
        ValueError: se backend inválido
    """
    backend = settings.durable_store_backend.lower()

    if backend == "memory":
        logger.warning("Using in-memory durable store (dev only)")
        return InMemoryDurableStore()

    if backend == "firestore":
        from google.cloud import firestore

        from autoads.infra.store_firestore import FirestoreDurableStore

        client = firestore_client or firestore.AsyncClient(
            project=settings.firestore_project_id,
            database=settings.firestore_database_id,
        )
        logger.info(
            "Using Firestore durable store",
            extra={"project_id": settings.firestore_project_id},
        )
        return FirestoreDurableStore(client)

    msg = f"Unknown durable store backend: {backend}"
    raise ValueError(msg)
