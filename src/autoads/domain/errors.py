"""Taxonomia de erros do domínio.

Três famílias:
- Rate limit (transitório, esperado): retry indefinido, não consome orçamento.
- Falha transitória/desconhecida: retry limitado, depois status terminal.
- Falha permanente de entrada: nunca retentada, sobe direto ao chamador.
"""

from __future__ import annotations

RATE_LIMIT_STATUS = 429
CREDENTIALS_EXHAUSTED_MARKER = "ALL_KEYS_EXHAUSTED"
_RATE_LIMIT_MESSAGE_MARKERS = ("429", "rate-overlimit", CREDENTIALS_EXHAUSTED_MARKER)
_STATUS_ATTRIBUTES = ("code", "status", "status_code", "data")


class RateLimitError(Exception):
    """Upstream sinalizou throttling (HTTP 429 ou equivalente)."""

    def __init__(self, message: str = "Rate limited (429)", retry_after: float | None = None):
        super().__init__(message)
        self.status_code = RATE_LIMIT_STATUS
        self.retry_after = retry_after


class CredentialsExhaustedError(RateLimitError):
    """Nenhuma credencial de IA utilizável no momento."""

    def __init__(self, message: str = CREDENTIALS_EXHAUSTED_MARKER) -> None:
        super().__init__(message)


class PermanentInputError(Exception):
    """Entrada inválida (alvo bloqueado, URL malformada, registro ausente)."""

    pass


class DurableStoreError(Exception):
    """Erro ao operar o armazenamento durável."""

    pass


class DurableStoreConflictError(DurableStoreError):
    """Chave única já existente no insert."""

    pass


class DurableStoreUnavailableError(DurableStoreError):
    """Relação/coleção inexistente ou backend indisponível."""

    pass


def _matches_status(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value == RATE_LIMIT_STATUS
    if isinstance(value, str):
        return value.strip() == str(RATE_LIMIT_STATUS)
    return False


def is_rate_limit_error(exc: BaseException) -> bool:
    """Determina se a falha tem formato de rate limit.

    Reconhece:
    - instâncias de RateLimitError
    - atributos code/status/status_code/data iguais a 429
    - mensagem contendo "429", "rate-overlimit" ou ALL_KEYS_EXHAUSTED
    """
    if isinstance(exc, RateLimitError):
        return True

    for attr in _STATUS_ATTRIBUTES:
        if _matches_status(getattr(exc, attr, None)):
            return True

    message = str(exc)
    return any(marker in message for marker in _RATE_LIMIT_MESSAGE_MARKERS)
