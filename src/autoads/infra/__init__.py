"""Camada de infraestrutura: adapters para serviços externos.

Exporta as factories principais:

- Store durável: InMemoryDurableStore, FirestoreDurableStore, create_durable_store
- Rate limiting: RateLimiter, create_rate_limiters
- Capacidade upstream: UpstreamCapacityGate, create_capacity_gate
- Cache de grupos: GroupMetadataCache, create_group_cache
- Anúncios efêmeros: EphemeralTracker, create_ephemeral_tracker

Infraestrutura não decide regra de negócio; logs estruturados sem PII.
"""

from autoads.infra.capacity_gate import (
    CapacityGateConfig,
    UpstreamCapacityGate,
    create_capacity_gate,
)
from autoads.infra.ephemeral_tracker import (
    EphemeralRecord,
    EphemeralTracker,
    create_ephemeral_tracker,
)
from autoads.infra.group_cache import GroupMetadataCache, create_group_cache
from autoads.infra.rate_limiter import (
    RateLimiter,
    RateLimiterConfig,
    RateLimiters,
    calculate_backoff,
    create_rate_limiters,
)
from autoads.infra.store_factory import create_durable_store
from autoads.infra.store_memory import InMemoryDurableStore

__all__ = [
    "CapacityGateConfig",
    "EphemeralRecord",
    "EphemeralTracker",
    "GroupMetadataCache",
    "InMemoryDurableStore",
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiters",
    "UpstreamCapacityGate",
    "calculate_backoff",
    "create_capacity_gate",
    "create_durable_store",
    "create_ephemeral_tracker",
    "create_group_cache",
    "create_rate_limiters",
]
