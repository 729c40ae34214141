"""Medição de latência de ticks do worker e de jobs das filas."""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Generator
from typing import Any

from autoads.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@contextlib.contextmanager
def timed(
    component: str,
    *,
    extra: dict[str, Any] | None = None,
    slow_ms: float | None = None,
) -> Generator[None, None, None]:
    """Mede o bloco e loga `component_latency`.

    Campos em `extra` (ex.: `queue`, `job_id`) seguem junto no log. Acima de
    `slow_ms` o registro sobe para warning com `slow=True`; abaixo fica em
    debug, já que os ticks rodam a cada poucos segundos.

    Usage:
        with timed("queue_job", extra={"queue": "report"}, slow_ms=30_000):
            await handler(job)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        fields = {**(extra or {}), "component": component, "elapsed_ms": elapsed_ms}
        if slow_ms is not None and elapsed_ms > slow_ms:
            logger.warning("component_latency", extra={**fields, "slow": True})
        else:
            logger.debug("component_latency", extra=fields)
