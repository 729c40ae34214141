"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou arquivo .env em dev).
Durações são sempre expressas em segundos, exceto quando o nome diz o contrário.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from autoads.observability.logging import get_logger

# -----------------------------------------------------------------------------
# Constantes de rede WhatsApp
# -----------------------------------------------------------------------------
WHATSAPP_USER_SUFFIX: str = "@s.whatsapp.net"
WHATSAPP_GROUP_SUFFIX: str = "@g.us"


class Settings(BaseSettings):
    """Configurações lidas do ambiente.

    Comentários em PT-BR são obrigatórios por diretriz do projeto.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    # Aplicação
    service_name: str = "autoads"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    timezone: str = "UTC"

    # Dono da conta (tráfego prioritário + notificações)
    owner_phone_number: str | None = None

    # Rate limiter de metadados (conservador)
    metadata_limiter_max_retries: int = 5
    metadata_limiter_initial_delay_seconds: float = 1.5
    metadata_limiter_max_delay_seconds: float = 60.0
    metadata_limiter_backoff_multiplier: float = 2.5
    metadata_limiter_jitter_factor: float = 0.15
    metadata_limiter_throttle_seconds: float = 0.8

    # Rate limiter de chamadas gerais (leve)
    api_limiter_max_retries: int = 3
    api_limiter_initial_delay_seconds: float = 0.5
    api_limiter_max_delay_seconds: float = 30.0
    api_limiter_backoff_multiplier: float = 2.0
    api_limiter_jitter_factor: float = 0.1
    api_limiter_throttle_seconds: float = 0.2

    # Cache de metadados de grupos (memória + durável)
    group_cache_memory_ttl_seconds: float = 3600.0
    group_cache_durable_ttl_seconds: float = 3600.0
    group_cache_sweep_interval_seconds: float = 300.0
    group_cache_probe_interval_seconds: float = 60.0

    # Buffer de mensagens (debounce adaptativo)
    buffer_debounce_tiers_seconds: tuple[float, float, float, float] = (10.0, 15.0, 20.0, 30.0)
    buffer_tier_thresholds: tuple[int, int, int] = (1, 3, 10)

    # Filas duráveis
    queue_max_retries: int = 3
    message_queue_retention_hours: int = 24
    report_queue_retention_hours: int = 168  # 7 dias
    queue_stale_processing_seconds: int = 600

    # Background worker
    worker_message_interval_seconds: float = 10.0
    worker_report_interval_seconds: float = 30.0
    worker_cleanup_interval_seconds: float = 3600.0

    # Gate de capacidade upstream (credenciais de IA)
    capacity_gate_enabled: bool = True
    capacity_gate_cooldown_seconds: float = 60.0
    capacity_gate_half_open_max_calls: int = 1

    # Anúncios efêmeros
    ephemeral_ads_path: str = "ephemeral_ads.json"
    ephemeral_default_ttl_minutes: int = 120
    ephemeral_cleanup_interval_seconds: float = 300.0

    # Broadcast para grupos
    broadcast_send_delay_seconds: float = 2.0

    # Armazenamento durável
    durable_store_backend: str = "memory"  # memory | firestore
    firestore_project_id: str | None = None
    firestore_database_id: str = "(default)"
    message_queue_collection: str = "message_queue"
    report_queue_collection: str = "report_queue"
    groups_collection: str = "groups"

    # OpenAI / IA
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0
    openai_enabled: bool = False  # Feature flag (fail-safe: false)

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def owner_jid(self) -> str | None:
        """JID do dono no formato WhatsApp (sem '+' e espaços)."""
        if not self.owner_phone_number:
            return None
        digits = self.owner_phone_number.replace("+", "").replace(" ", "")
        return f"{digits}{WHATSAPP_USER_SUFFIX}"

    def validate_durable_store_config(self) -> list[str]:
        """Valida backend do armazenamento durável.

        Em staging/prod, memory é proibido (filas perderiam jobs no restart).
        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        backend = self.durable_store_backend.lower()

        valid_backends = {"memory", "firestore"}
        if backend not in valid_backends:
            errors.append(
                f"DURABLE_STORE_BACKEND '{backend}' inválido. Valores válidos: {valid_backends}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "DURABLE_STORE_BACKEND=memory é proibido em staging/production. "
                "Configure 'firestore' para filas persistentes."
            )

        if backend == "firestore" and not self.firestore_project_id:
            errors.append("DURABLE_STORE_BACKEND=firestore requer FIRESTORE_PROJECT_ID")

        return errors

    def validate_buffer_config(self) -> list[str]:
        """Valida faixas do debounce adaptativo (devem ser não-decrescentes)."""
        errors: list[str] = []
        tiers = list(self.buffer_debounce_tiers_seconds)
        thresholds = list(self.buffer_tier_thresholds)

        if any(t <= 0 for t in tiers):
            errors.append("BUFFER_DEBOUNCE_TIERS_SECONDS deve conter apenas valores > 0")
        if tiers != sorted(tiers):
            errors.append("BUFFER_DEBOUNCE_TIERS_SECONDS deve ser não-decrescente")
        if thresholds != sorted(thresholds) or len(set(thresholds)) != len(thresholds):
            errors.append("BUFFER_TIER_THRESHOLDS deve ser estritamente crescente")
        return errors

    def validate_openai_config(self) -> list[str]:
        """Valida configuração de OpenAI.

        Se openai_enabled=True, verifica se OPENAI_API_KEY está configurado.
        """
        errors: list[str] = []
        if self.openai_enabled and not self.openai_api_key:
            errors.append("OPENAI_ENABLED=true requer OPENAI_API_KEY configurado")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações."""
        return [
            *self.validate_durable_store_config(),
            *self.validate_buffer_config(),
            *self.validate_openai_config(),
        ]

    def model_post_init(self, __context: Any) -> None:
        """Registra ambiente carregado (sem expor valores sensíveis)."""
        logger: logging.Logger = get_logger(__name__)

        if os.getenv("PYTEST_CURRENT_TEST"):
            return

        logger.info(
            "Configuração carregada",
            extra={
                "environment": self.environment,
                "durable_store_backend": self.durable_store_backend,
                "owner_configured": bool(self.owner_phone_number),
            },
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
