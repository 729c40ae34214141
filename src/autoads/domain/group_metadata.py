"""Snapshot desnormalizado de metadados de grupo (cacheável)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any


@dataclass(slots=True, frozen=True)
class GroupMetadata:
    """Metadados de um grupo, com flag de proveniência.

    `cached=True` indica que o snapshot veio do cache (memória ou durável);
    `cached=False` indica busca recente na fonte de verdade.
    """

    group_id: str
    subject: str
    description: str | None = None
    total_members: int = 0
    admins_count: int = 0
    is_announce: bool = False
    updated_at: datetime | None = None
    cached: bool = False

    @classmethod
    def from_raw(cls, group_id: str, raw: dict[str, Any]) -> GroupMetadata:
        """Deriva snapshot a partir do dicionário cru retornado pelo transporte.

        Participantes com `admin` em {"admin", "superadmin"} (ou `is_admin`
        verdadeiro) contam como administradores.
        """
        participants = raw.get("participants") or []
        admins = sum(1 for p in participants if _is_admin(p))
        total = raw.get("size")
        return cls(
            group_id=group_id,
            subject=raw.get("subject") or "",
            description=raw.get("desc") or raw.get("description"),
            total_members=int(total) if total is not None else len(participants),
            admins_count=admins,
            is_announce=bool(raw.get("announce", False)),
            updated_at=datetime.now(tz=UTC),
            cached=False,
        )

    def as_cached(self) -> GroupMetadata:
        return replace(self, cached=True)

    def to_document(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "subject": self.subject,
            "description": self.description,
            "total_members": self.total_members,
            "admins_count": self.admins_count,
            "is_announce": self.is_announce,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> GroupMetadata:
        return cls(
            group_id=data["group_id"],
            subject=data.get("subject") or "",
            description=data.get("description"),
            total_members=int(data.get("total_members") or 0),
            admins_count=int(data.get("admins_count") or 0),
            is_announce=bool(data.get("is_announce", False)),
            updated_at=data.get("updated_at"),
            cached=True,
        )


def _is_admin(participant: Any) -> bool:
    if not isinstance(participant, dict):
        return False
    if participant.get("is_admin"):
        return True
    return participant.get("admin") in ("admin", "superadmin")


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """Entrada do cache em memória.

    `fetched_at` usa relógio monotônico (segundos).
    """

    key: str
    metadata: GroupMetadata
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return self.age(now) < ttl_seconds
