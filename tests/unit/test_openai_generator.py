"""Testes do OpenAITextGenerator com AsyncOpenAI mockado."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from autoads.ai.openai_generator import (
    OWNER_SYSTEM_PROMPT,
    REPLY_SYSTEM_PROMPT,
    REPORT_SYSTEM_PROMPT,
    OpenAITextGenerator,
    create_text_generator,
)
from autoads.config.settings import Settings
from autoads.domain.errors import RateLimitError, is_rate_limit_error
from autoads.domain.protocols.ai import HistoryMessage

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _client(content: str | None = "resposta") -> MagicMock:
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def _sent_messages(client: MagicMock) -> list[dict[str, str]]:
    return client.chat.completions.create.call_args.kwargs["messages"]


class TestGenerateReply:
    @pytest.mark.asyncio
    async def test_builds_chat_from_history_and_batch(self) -> None:
        client = _client("  olá!  ")
        generator = OpenAITextGenerator(client=client, model="gpt-test")

        reply = await generator.generate_reply(
            ["oi", "tudo bem?"], [HistoryMessage("assistant", "bem-vindo")]
        )

        assert reply == "olá!"
        messages = _sent_messages(client)
        assert messages[0] == {"role": "system", "content": REPLY_SYSTEM_PROMPT}
        assert messages[1] == {"role": "assistant", "content": "bem-vindo"}
        assert messages[2] == {"role": "user", "content": "oi\ntudo bem?"}
        assert client.chat.completions.create.call_args.kwargs["model"] == "gpt-test"

    @pytest.mark.asyncio
    async def test_owner_prompt(self) -> None:
        client = _client()
        await OpenAITextGenerator(client=client).generate_reply(["status"], is_owner=True)
        assert _sent_messages(client)[0]["content"] == OWNER_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_none_content_becomes_empty(self) -> None:
        generator = OpenAITextGenerator(client=_client(None))
        assert await generator.generate_reply(["oi"]) == ""


class TestGenerateReport:
    @pytest.mark.asyncio
    async def test_header_includes_contact_and_time(self) -> None:
        client = _client("resumo")
        when = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

        report = await OpenAITextGenerator(client=client).generate_report(
            [HistoryMessage("user", "preço?")], contact_name="Ana", last_message_time=when
        )

        assert report == "resumo"
        messages = _sent_messages(client)
        assert messages[0]["content"] == REPORT_SYSTEM_PROMPT
        assert messages[1]["content"].startswith("Contato: Ana\nÚltima mensagem: 2026-01-01")
        assert "user: preço?" in messages[1]["content"]


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_rate_limit_becomes_domain_error(self) -> None:
        client = _client()
        client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down",
            response=httpx.Response(429, request=_REQUEST),
            body=None,
        )

        with pytest.raises(RateLimitError) as excinfo:
            await OpenAITextGenerator(client=client).generate_reply(["oi"])
        assert is_rate_limit_error(excinfo.value)

    @pytest.mark.asyncio
    async def test_other_api_errors_propagate(self) -> None:
        client = _client()
        client.chat.completions.create.side_effect = openai.APIConnectionError(request=_REQUEST)

        with pytest.raises(openai.APIConnectionError):
            await OpenAITextGenerator(client=client).generate_reply(["oi"])


class TestFactory:
    def test_disabled_raises(self) -> None:
        with pytest.raises(ValueError, match="OPENAI_ENABLED=false"):
            create_text_generator(Settings(openai_enabled=False))

    def test_enabled_builds_generator(self) -> None:
        settings = Settings(openai_enabled=True, openai_api_key="sk-test", openai_model="m")
        generator = create_text_generator(settings)
        assert isinstance(generator, OpenAITextGenerator)
        assert generator._model == "m"
