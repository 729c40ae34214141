"""Re-exports dos Protocolos de domínio para uso por Application e Infra."""

from __future__ import annotations

from autoads.domain.protocols.ai import ConversationHistory, HistoryMessage, TextGenerator
from autoads.domain.protocols.capacity import AlwaysOpenGate, CapacityGate
from autoads.domain.protocols.store import DurableStore, Filter, FilterOp
from autoads.domain.protocols.transport import ChatTransport

__all__ = [
    "AlwaysOpenGate",
    "CapacityGate",
    "ChatTransport",
    "ConversationHistory",
    "DurableStore",
    "Filter",
    "FilterOp",
    "HistoryMessage",
    "TextGenerator",
]
