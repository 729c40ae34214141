"""Testes do EphemeralTracker (persistência JSON e reconciliação)."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from autoads.infra.ephemeral_tracker import EphemeralRecord, EphemeralTracker, create_ephemeral_tracker


class TestTrackAd:
    @pytest.mark.asyncio
    async def test_persists_full_list(self, tmp_path, wall_clock) -> None:
        path = tmp_path / "ephemeral_ads.json"
        tracker = EphemeralTracker(path, clock=wall_clock)

        record = await tracker.track_ad("g1@g.us", "msg-1", ttl_minutes=30)
        await tracker.track_ad("g2@g.us", "msg-2")

        data = json.loads(path.read_text())
        assert [item["handle"] for item in data] == ["msg-1", "msg-2"]
        assert data[0]["id"] == record.id
        assert data[1]["ttl_minutes"] == 120

    @pytest.mark.asyncio
    async def test_reloads_on_startup(self, tmp_path, wall_clock) -> None:
        path = tmp_path / "ephemeral_ads.json"
        await EphemeralTracker(path, clock=wall_clock).track_ad("g1@g.us", "msg-1")

        reloaded = EphemeralTracker(path, clock=wall_clock)

        assert [r.handle for r in reloaded.records] == ["msg-1"]

    @pytest.mark.asyncio
    async def test_file_write_runs_in_worker_thread(self, tmp_path, wall_clock, monkeypatch) -> None:
        """A gravação sai do event loop via asyncio.to_thread."""
        offloaded: list[str] = []
        real_to_thread = asyncio.to_thread

        async def spy(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr("autoads.infra.ephemeral_tracker.asyncio.to_thread", spy)
        tracker = EphemeralTracker(tmp_path / "e.json", clock=wall_clock)

        await tracker.track_ad("g1@g.us", "msg-1")

        assert offloaded == ["_write"]

    @pytest.mark.asyncio
    async def test_concurrent_tracks_all_persisted(self, tmp_path, wall_clock) -> None:
        path = tmp_path / "e.json"
        tracker = EphemeralTracker(path, clock=wall_clock)

        await asyncio.gather(*(tracker.track_ad(f"g{i}@g.us", f"msg-{i}") for i in range(5)))

        handles = [item["handle"] for item in json.loads(path.read_text())]
        assert handles == [f"msg-{i}" for i in range(5)]

    def test_corrupt_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "ephemeral_ads.json"
        path.write_text("{not json")
        assert EphemeralTracker(path).records == []


class TestRunCleanup:
    @pytest.mark.asyncio
    async def test_expired_deleted_once_pending_kept(self, tmp_path, wall_clock, transport) -> None:
        path = tmp_path / "ephemeral_ads.json"
        tracker = EphemeralTracker(path, transport=transport, clock=wall_clock)
        await tracker.track_ad("g1@g.us", "old", ttl_minutes=1)
        await tracker.track_ad("g2@g.us", "new", ttl_minutes=120)
        wall_clock.advance(minutes=2)

        reconciled = await tracker.run_cleanup()

        assert reconciled == 1
        assert transport.deleted == [("g1@g.us", "old")]
        assert [r.handle for r in tracker.records] == ["new"]
        assert [item["handle"] for item in json.loads(path.read_text())] == ["new"]

        assert await tracker.run_cleanup() == 0
        assert transport.deleted == [("g1@g.us", "old")]

    @pytest.mark.asyncio
    async def test_failed_deletion_is_dropped(self, tmp_path, wall_clock, transport) -> None:
        transport.fail_delete.add("bad")
        tracker = EphemeralTracker(tmp_path / "e.json", transport=transport, clock=wall_clock)
        await tracker.track_ad("g1@g.us", "bad", ttl_minutes=0)

        assert await tracker.run_cleanup() == 1
        assert tracker.records == []

    @pytest.mark.asyncio
    async def test_no_change_no_write(self, tmp_path, wall_clock, transport) -> None:
        tracker = EphemeralTracker(tmp_path / "e.json", transport=transport, clock=wall_clock)
        await tracker.track_ad("g1@g.us", "h", ttl_minutes=60)
        tracker._save = AsyncMock()

        await tracker.run_cleanup()

        tracker._save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_transport_is_skipped(self, tmp_path, wall_clock) -> None:
        tracker = EphemeralTracker(tmp_path / "e.json", clock=wall_clock)
        await tracker.track_ad("g1@g.us", "h", ttl_minutes=0)

        assert await tracker.run_cleanup() == 0
        assert len(tracker.records) == 1

    @pytest.mark.asyncio
    async def test_set_transport_later(self, tmp_path, wall_clock, transport) -> None:
        tracker = EphemeralTracker(tmp_path / "e.json", clock=wall_clock)
        await tracker.track_ad("g1@g.us", "h", ttl_minutes=0)
        tracker.set_transport(transport)

        assert await tracker.run_cleanup() == 1


class TestEphemeralRecord:
    def test_expiry_boundary(self, wall_clock) -> None:
        record = EphemeralRecord(channel_id="c", handle="h", sent_at=wall_clock.now, ttl_minutes=5)
        wall_clock.advance(minutes=4, seconds=59)
        assert record.is_expired(wall_clock.now) is False
        wall_clock.advance(seconds=1)
        assert record.is_expired(wall_clock.now) is True

    @pytest.mark.asyncio
    async def test_factory(self, settings, tmp_path) -> None:
        settings.ephemeral_ads_path = str(tmp_path / "ads.json")
        tracker = create_ephemeral_tracker(settings)
        assert (await tracker.track_ad("g", "h")).ttl_minutes == settings.ephemeral_default_ttl_minutes
