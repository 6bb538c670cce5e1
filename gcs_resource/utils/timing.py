"""Timing instrumentation for listing, chunk uploads and compose calls."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any
from typing import AsyncGenerator


logger = logging.getLogger(__name__)


def _emit(operation: str, duration_ms: float, extra: dict[str, Any] | None) -> None:
    extra_str = " ".join(f"{k}={v}" for k, v in (extra or {}).items())
    logger.info(f"TIMING {operation} duration_ms={duration_ms:.2f} {extra_str}".strip())


@asynccontextmanager
async def async_timing_context(
    operation: str, *, log_threshold_ms: float = 0.0, extra: dict[str, Any] | None = None
) -> AsyncGenerator[dict[str, Any], None]:
    """Time an async block and log it on exit.

    Args:
        operation: Name of the operation being timed
        log_threshold_ms: Only log if duration exceeds this threshold (ms). 0 = always log.
        extra: Additional context to include in log

    Example:
        async with async_timing_context("compose", extra={"parts": 4}):
            await store.compose(bucket, key, part_keys)
        # Logs: "TIMING compose duration_ms=42.3 parts=4"
    """
    ctx: dict[str, Any] = {"start": time.perf_counter()}
    if extra:
        ctx.update(extra)

    try:
        yield ctx
    finally:
        ctx["duration_ms"] = (time.perf_counter() - ctx["start"]) * 1000.0
        if ctx["duration_ms"] >= log_threshold_ms:
            _emit(operation, ctx["duration_ms"], extra)


def log_timing(operation: str, duration_ms: float, *, extra: dict[str, Any] | None = None) -> None:
    """Log an already measured duration."""
    _emit(operation, duration_ms, extra)
