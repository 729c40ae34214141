"""Testes do UpstreamCapacityGate (closed/open/half_open)."""

from __future__ import annotations

from autoads.infra.capacity_gate import (
    CapacityGateConfig,
    UpstreamCapacityGate,
    create_capacity_gate,
)


class TestCapacityGate:
    def test_closed_by_default(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(), clock=clock)
        assert gate.state == "closed"
        assert gate.has_capacity() is True

    def test_rate_limit_opens_for_cooldown(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(cooldown_seconds=60), clock=clock)
        gate.record_rate_limit()

        assert gate.state == "open"
        assert gate.has_capacity() is False
        clock.advance(59)
        assert gate.has_capacity() is False

    def test_half_open_allows_limited_trial_calls(self, clock) -> None:
        gate = UpstreamCapacityGate(
            CapacityGateConfig(cooldown_seconds=10, half_open_max_calls=1), clock=clock
        )
        gate.record_rate_limit()
        clock.advance(10)

        assert gate.has_capacity() is True
        assert gate.state == "half_open"
        assert gate.has_capacity() is False

    def test_success_closes(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(cooldown_seconds=10), clock=clock)
        gate.record_rate_limit()
        clock.advance(10)
        gate.has_capacity()
        gate.record_success()

        assert gate.state == "closed"
        assert gate.has_capacity() is True

    def test_rate_limit_in_half_open_reopens(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(cooldown_seconds=10), clock=clock)
        gate.record_rate_limit()
        clock.advance(10)
        gate.has_capacity()
        gate.record_rate_limit()

        assert gate.state == "open"
        assert gate.rate_limit_count == 2

    def test_generic_failure_in_half_open_closes(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(cooldown_seconds=10), clock=clock)
        gate.record_rate_limit()
        clock.advance(10)
        assert gate.has_capacity() is True

        gate.record_failure()

        assert gate.state == "closed"
        assert gate.has_capacity() is True

    def test_release_returns_trial_slot(self, clock) -> None:
        gate = UpstreamCapacityGate(
            CapacityGateConfig(cooldown_seconds=10, half_open_max_calls=1), clock=clock
        )
        gate.record_rate_limit()
        clock.advance(10)
        assert gate.has_capacity() is True
        assert gate.has_capacity() is False

        gate.release()

        assert gate.state == "half_open"
        assert gate.has_capacity() is True

    def test_release_outside_half_open_is_noop(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(cooldown_seconds=10), clock=clock)
        gate.release()
        assert gate.state == "closed"

        gate.record_rate_limit()
        gate.release()
        assert gate.state == "open"
        assert gate.has_capacity() is False

    def test_disabled_always_has_capacity(self, clock) -> None:
        gate = UpstreamCapacityGate(CapacityGateConfig(enabled=False), clock=clock)
        gate.record_rate_limit()
        assert gate.has_capacity() is True
        assert gate.state == "closed"

    def test_factory_uses_settings(self, settings) -> None:
        gate = create_capacity_gate(settings)
        assert gate.has_capacity() is True
