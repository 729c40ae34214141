"""Testes da classificação de erros de rate limit."""

from __future__ import annotations

import pytest

from autoads.domain.errors import (
    CREDENTIALS_EXHAUSTED_MARKER,
    CredentialsExhaustedError,
    DurableStoreConflictError,
    DurableStoreError,
    PermanentInputError,
    RateLimitError,
    is_rate_limit_error,
)


class _WithAttr(Exception):
    def __init__(self, message: str = "", **attrs) -> None:
        super().__init__(message)
        for key, value in attrs.items():
            setattr(self, key, value)


class TestIsRateLimitError:
    @pytest.mark.parametrize(
        "exc",
        [
            RateLimitError(),
            CredentialsExhaustedError(),
            _WithAttr(code=429),
            _WithAttr(status=429),
            _WithAttr(status_code="429"),
            _WithAttr(data=429),
            Exception("HTTP 429 Too Many Requests"),
            Exception("rate-overlimit"),
            Exception(CREDENTIALS_EXHAUSTED_MARKER),
        ],
    )
    def test_recognized(self, exc: Exception) -> None:
        assert is_rate_limit_error(exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            ValueError("boom"),
            _WithAttr("server error", status_code=500),
            _WithAttr(code=True),
            PermanentInputError("blocked"),
        ],
    )
    def test_not_recognized(self, exc: Exception) -> None:
        assert is_rate_limit_error(exc) is False


class TestHierarchy:
    def test_credentials_exhausted_is_rate_limit(self) -> None:
        exc = CredentialsExhaustedError()
        assert isinstance(exc, RateLimitError)
        assert exc.status_code == 429
        assert str(exc) == CREDENTIALS_EXHAUSTED_MARKER

    def test_store_errors_share_base(self) -> None:
        assert issubclass(DurableStoreConflictError, DurableStoreError)
