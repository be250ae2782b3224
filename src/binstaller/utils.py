"""Small helpers shared across binstaller."""

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog


@asynccontextmanager
async def timed_operation(
    event: str,
    log: structlog.stdlib.BoundLogger,
    **fields: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log ``event`` with its duration and outcome when the block exits.

    The block may add keys to the yielded dict; they are logged alongside
    ``fields``. ``outcome`` is ``"ok"`` unless the block raised.
    """
    start = time.perf_counter()
    timing: dict[str, Any] = {}
    outcome = "error"
    try:
        yield timing
        outcome = "ok"
    finally:
        timing["elapsed_ms"] = round((time.perf_counter() - start) * 1000, 2)
        log.debug(event, outcome=outcome, **{**fields, **timing})
