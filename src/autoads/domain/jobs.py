"""Modelos de domínio das filas duráveis.

Um job é um registro persistido com chave de identidade, payload tipado
(união por tipo de fila), prioridade e ciclo de vida:

    pending → processing → completed
                         → pending (rate limit, retry_count inalterado)
                         → pending (falha, retry_count + 1)
                         → failed  (retry_count >= max_retries)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, ClassVar, Generic, TypeVar, Union

DEFAULT_MAX_RETRIES = 3


class JobStatus(str, Enum):
    """Status possíveis de um job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


NON_TERMINAL_STATUSES: tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.PROCESSING)


class JobPriority(IntEnum):
    """Prioridade numérica (menor = mais urgente)."""

    OWNER = 0
    HIGH = 1
    NORMAL = 2
    LOW = 5


class JobOutcome(str, Enum):
    """Resultado de uma iteração de process_next."""

    COMPLETED = "completed"
    REQUEUED = "requeued"  # sucesso parcial: sobrou cauda mesclada durante o processamento
    RATE_LIMITED = "rate_limited"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class MessagePayload:
    """Lote ordenado de textos de uma conversa."""

    kind: ClassVar[str] = "message"

    messages: tuple[str, ...]

    @classmethod
    def of(cls, messages: list[str] | tuple[str, ...]) -> MessagePayload:
        return cls(messages=tuple(messages))

    def merged_with(self, other: MessagePayload) -> MessagePayload:
        """Concatena mantendo a ordem de chegada."""
        return MessagePayload(messages=self.messages + other.messages)

    def remainder_after(self, processed: MessagePayload) -> MessagePayload | None:
        """Itens anexados depois do snapshot processado (ou None)."""
        size = len(processed.messages)
        if len(self.messages) <= size or self.messages[:size] != processed.messages:
            return None
        return MessagePayload(messages=self.messages[size:])

    @property
    def full_text(self) -> str:
        return "\n".join(self.messages)

    def to_document(self) -> dict[str, Any]:
        return {"messages": list(self.messages)}

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> MessagePayload:
        return cls(messages=tuple(data.get("messages") or ()))


@dataclass(slots=True, frozen=True)
class ReportPayload:
    """Referência a uma conversa a ser resumida em relatório."""

    kind: ClassVar[str] = "report"

    conversation_id: str
    contact_name: str = "Unknown"
    last_message_time: datetime | None = None

    def merged_with(self, other: ReportPayload) -> ReportPayload:
        """Mantém a referência; avança last_message_time para o mais recente."""
        times = [t for t in (self.last_message_time, other.last_message_time) if t]
        contact = other.contact_name if other.contact_name != "Unknown" else self.contact_name
        return replace(
            self,
            contact_name=contact,
            last_message_time=max(times) if times else None,
        )

    def remainder_after(self, processed: ReportPayload) -> ReportPayload | None:
        return None

    def to_document(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "contact_name": self.contact_name,
            "last_message_time": self.last_message_time,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> ReportPayload:
        return cls(
            conversation_id=str(data["conversation_id"]),
            contact_name=data.get("contact_name") or "Unknown",
            last_message_time=data.get("last_message_time"),
        )


JobPayload = Union[MessagePayload, ReportPayload]
P = TypeVar("P", MessagePayload, ReportPayload)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class QueueJob(Generic[P]):
    """Registro persistido de um job."""

    id: str
    identity_key: str
    payload: P
    priority: int = JobPriority.NORMAL
    status: JobStatus = JobStatus.PENDING
    retry_count: int = 0
    error_message: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """Serializa para o formato de linha do store (sem o id)."""
        return {
            "identity_key": self.identity_key,
            "kind": self.payload.kind,
            "payload": self.payload.to_document(),
            "priority": int(self.priority),
            "status": self.status.value,
            "retry_count": self.retry_count,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "processed_at": self.processed_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any], payload_type: type[P]) -> QueueJob[P]:
        return cls(
            id=str(row["id"]),
            identity_key=row["identity_key"],
            payload=payload_type.from_document(row.get("payload") or {}),
            priority=int(row.get("priority", JobPriority.NORMAL)),
            status=JobStatus(row.get("status", JobStatus.PENDING.value)),
            retry_count=int(row.get("retry_count") or 0),
            error_message=row.get("error_message"),
            created_at=row.get("created_at") or utcnow(),
            updated_at=row.get("updated_at") or utcnow(),
            processed_at=row.get("processed_at"),
        )


@dataclass(slots=True, frozen=True)
class QueueStats:
    """Contagem de jobs por status."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
        }
