"""Testes da factory de DurableStore."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from autoads.config.settings import Settings
from autoads.infra.store_factory import create_durable_store
from autoads.infra.store_firestore import FirestoreDurableStore
from autoads.infra.store_memory import InMemoryDurableStore


class TestCreateDurableStore:
    def test_memory_backend(self) -> None:
        store = create_durable_store(Settings(durable_store_backend="memory"))
        assert isinstance(store, InMemoryDurableStore)

    def test_backend_name_is_case_insensitive(self) -> None:
        store = create_durable_store(Settings(durable_store_backend="MEMORY"))
        assert isinstance(store, InMemoryDurableStore)

    def test_firestore_backend_uses_given_client(self) -> None:
        client = MagicMock()
        settings = Settings(durable_store_backend="firestore", firestore_project_id="proj")

        store = create_durable_store(settings, firestore_client=client)

        assert isinstance(store, FirestoreDurableStore)
        assert store._client is client

    def test_unknown_backend_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown durable store backend"):
            create_durable_store(Settings(durable_store_backend="redis"))
