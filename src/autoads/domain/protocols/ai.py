"""Protocolos de geração de texto e histórico de conversa."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class HistoryMessage:
    """Mensagem do histórico (role: "user" | "assistant")."""

    role: str
    content: str


class TextGenerator(ABC):
    """Provedor de IA opaco.

    Implementações devem levantar RateLimitError (ou CredentialsExhaustedError)
    quando o provedor sinalizar throttling.
    """

    @abstractmethod
    async def generate_reply(
        self,
        messages: Sequence[str],
        history: Sequence[HistoryMessage] = (),
        *,
        is_owner: bool = False,
    ) -> str: ...

    @abstractmethod
    async def generate_report(
        self,
        history: Sequence[HistoryMessage],
        *,
        contact_name: str,
        last_message_time: datetime | None = None,
    ) -> str: ...


class ConversationHistory(ABC):
    """Fonte de histórico recente por contato."""

    @abstractmethod
    async def recent_messages(
        self, contact: str, limit: int = 20
    ) -> list[HistoryMessage]: ...
