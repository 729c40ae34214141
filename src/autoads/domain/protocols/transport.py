"""Protocolo do transporte de chat (cliente WhatsApp opaco)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ChatTransport(ABC):
    """Capacidades mínimas do cliente de chat.

    Todas as chamadas são limitadas pelo serviço remoto e devem passar
    por um RateLimiter quando usadas em laço.
    """

    @abstractmethod
    async def send_text(self, channel_id: str, text: str) -> str | None:
        """Envia texto; retorna handle da mensagem (para deleção) se houver."""

    @abstractmethod
    async def send_image(
        self, channel_id: str, image: bytes, caption: str | None = None
    ) -> str | None: ...

    @abstractmethod
    async def delete_message(self, channel_id: str, handle: str) -> None: ...

    @abstractmethod
    async def get_all_groups(self) -> list[str]: ...

    @abstractmethod
    async def fetch_group_metadata(self, channel_id: str) -> dict[str, Any]: ...
