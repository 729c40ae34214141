from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from autoads.config.settings import Settings, get_settings
from autoads.domain.protocols.ai import ConversationHistory, HistoryMessage, TextGenerator
from autoads.domain.protocols.transport import ChatTransport
from autoads.infra.store_memory import InMemoryDurableStore


class FakeTransport(ChatTransport):
    """Transporte em memória que registra chamadas."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.images: list[tuple[str, bytes, str | None]] = []
        self.deleted: list[tuple[str, str]] = []
        self.groups: list[str] = []
        self.metadata: dict[str, dict[str, Any]] = {}
        self.fail_send_to: set[str] = set()
        self.fail_delete: set[str] = set()
        self.metadata_calls = 0
        self._counter = 0

    async def send_text(self, channel_id: str, text: str) -> str | None:
        if channel_id in self.fail_send_to:
            raise RuntimeError(f"send failed for {channel_id}")
        self.sent.append((channel_id, text))
        self._counter += 1
        return f"msg-{self._counter}"

    async def send_image(
        self, channel_id: str, image: bytes, caption: str | None = None
    ) -> str | None:
        if channel_id in self.fail_send_to:
            raise RuntimeError(f"send failed for {channel_id}")
        self.images.append((channel_id, image, caption))
        self._counter += 1
        return f"img-{self._counter}"

    async def delete_message(self, channel_id: str, handle: str) -> None:
        if handle in self.fail_delete:
            raise RuntimeError("delete failed")
        self.deleted.append((channel_id, handle))

    async def get_all_groups(self) -> list[str]:
        return list(self.groups)

    async def fetch_group_metadata(self, channel_id: str) -> dict[str, Any]:
        self.metadata_calls += 1
        return self.metadata[channel_id]


class FakeGenerator(TextGenerator):
    """Gerador determinístico; pode ser programado para falhar."""

    def __init__(self) -> None:
        self.reply_calls: list[list[str]] = []
        self.report_calls: list[str] = []
        self.errors: list[Exception] = []

    async def generate_reply(
        self,
        messages: Sequence[str],
        history: Sequence[HistoryMessage] = (),
        *,
        is_owner: bool = False,
    ) -> str:
        self.reply_calls.append(list(messages))
        if self.errors:
            raise self.errors.pop(0)
        prefix = "owner" if is_owner else "reply"
        return f"{prefix}: {' | '.join(messages)}"

    async def generate_report(
        self,
        history: Sequence[HistoryMessage],
        *,
        contact_name: str,
        last_message_time: datetime | None = None,
    ) -> str:
        self.report_calls.append(contact_name)
        if self.errors:
            raise self.errors.pop(0)
        return f"report for {contact_name} ({len(history)} msgs)"


class FakeHistory(ConversationHistory):
    def __init__(self, messages: dict[str, list[HistoryMessage]] | None = None) -> None:
        self.messages = messages or {}

    async def recent_messages(self, contact: str, limit: int = 20) -> list[HistoryMessage]:
        return self.messages.get(contact, [])[-limit:]


class ManualClock:
    """Relógio monotônico controlado pelo teste."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualWallClock:
    """Relógio de parede (datetime UTC) controlado pelo teste."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(owner_phone_number="+55 11 99999 0000")


@pytest.fixture()
def store() -> InMemoryDurableStore:
    return InMemoryDurableStore()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def wall_clock() -> ManualWallClock:
    return ManualWallClock()


@pytest.fixture()
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture()
def fake_sleep(recorded_sleeps: list[float], clock: ManualClock):
    """Sleep que não espera: registra a duração e avança o relógio."""

    async def _sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)
        clock.advance(seconds)

    return _sleep
