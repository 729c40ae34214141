"""Testes dos handlers de job (resposta de IA e relatório)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from autoads.application.handlers import MessageReplyHandler, ReportHandler
from autoads.application.notifications import OwnerNotifier
from autoads.domain.errors import PermanentInputError, RateLimitError
from autoads.domain.jobs import MessagePayload, QueueJob, ReportPayload
from autoads.domain.protocols.ai import HistoryMessage, TextGenerator
from autoads.infra.rate_limiter import RateLimiter, RateLimiterConfig

OWNER = "5511999990000@s.whatsapp.net"
CONTACT = "5511888887777@s.whatsapp.net"


@pytest.fixture()
def limiter(fake_sleep, clock) -> RateLimiter:
    config = RateLimiterConfig(
        max_retries=2,
        initial_delay_seconds=0.5,
        max_delay_seconds=1.0,
        throttle_seconds=0.0,
    )
    return RateLimiter(config, name="api", clock=clock, sleep=fake_sleep, rng=lambda: 0.5)


def _message_job(messages: list[str], contact: str = CONTACT) -> QueueJob[MessagePayload]:
    return QueueJob(id="m1", identity_key=contact, payload=MessagePayload.of(messages))


def _report_job(name: str = "Ana") -> QueueJob[ReportPayload]:
    return QueueJob(
        id="r1",
        identity_key=f"{CONTACT}:conv-1",
        payload=ReportPayload(conversation_id="conv-1", contact_name=name),
    )


class TestMessageReplyHandler:
    @pytest.mark.asyncio
    async def test_replies_with_whole_batch(self, transport, generator, history, limiter) -> None:
        history.messages[CONTACT] = [HistoryMessage("user", "antes")]
        handler = MessageReplyHandler(
            transport, generator, limiter, history=history, owner_jid=OWNER
        )

        await handler(_message_job(["oi", "tudo bem?"]))

        assert generator.reply_calls == [["oi", "tudo bem?"]]
        assert transport.sent == [(CONTACT, "reply: oi | tudo bem?")]

    @pytest.mark.asyncio
    async def test_owner_gets_owner_prompt(self, transport, generator, limiter) -> None:
        handler = MessageReplyHandler(transport, generator, limiter, owner_jid=OWNER)

        await handler(_message_job(["status?"], contact=OWNER))

        assert transport.sent == [(OWNER, "owner: status?")]

    @pytest.mark.asyncio
    async def test_rate_limited_generation_is_retried(
        self, transport, generator, limiter, recorded_sleeps
    ) -> None:
        generator.errors.append(RateLimitError("429"))
        handler = MessageReplyHandler(transport, generator, limiter)

        await handler(_message_job(["oi"]))

        assert len(generator.reply_calls) == 2
        assert recorded_sleeps == [0.5]
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_other_errors_propagate_without_send(
        self, transport, generator, limiter
    ) -> None:
        generator.errors.append(ValueError("bad"))
        handler = MessageReplyHandler(transport, generator, limiter)

        with pytest.raises(ValueError):
            await handler(_message_job(["oi"]))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_empty_batch_skips_generation(self, transport, generator, limiter) -> None:
        handler = MessageReplyHandler(transport, generator, limiter)
        await handler(_message_job([]))
        assert generator.reply_calls == []

    @pytest.mark.asyncio
    async def test_blank_reply_is_not_sent(self, transport, limiter) -> None:
        blank = MagicMock(spec=TextGenerator)
        blank.generate_reply = AsyncMock(return_value="   ")
        handler = MessageReplyHandler(transport, blank, limiter)

        await handler(_message_job(["oi"]))

        assert transport.sent == []


class TestReportHandler:
    @pytest.mark.asyncio
    async def test_report_sent_to_owner(self, transport, generator, history, limiter) -> None:
        history.messages["conv-1"] = [
            HistoryMessage("user", "quero anunciar"),
            HistoryMessage("assistant", "claro!"),
        ]
        notifier = OwnerNotifier(transport, OWNER, limiter)
        handler = ReportHandler(generator, history, notifier, limiter)

        await handler(_report_job())

        assert generator.report_calls == ["Ana"]
        assert transport.sent == [(OWNER, "📊 Relatório: Ana\n\nreport for Ana (2 msgs)")]

    @pytest.mark.asyncio
    async def test_missing_history_is_permanent(
        self, transport, generator, history, limiter
    ) -> None:
        notifier = OwnerNotifier(transport, OWNER, limiter)
        handler = ReportHandler(generator, history, notifier, limiter)

        with pytest.raises(PermanentInputError):
            await handler(_report_job())
        assert generator.report_calls == []

    @pytest.mark.asyncio
    async def test_delivery_failure_propagates(
        self, transport, generator, history, limiter
    ) -> None:
        history.messages["conv-1"] = [HistoryMessage("user", "oi")]
        transport.fail_send_to.add(OWNER)
        notifier = OwnerNotifier(transport, OWNER, limiter)
        handler = ReportHandler(generator, history, notifier, limiter)

        with pytest.raises(RuntimeError):
            await handler(_report_job())
