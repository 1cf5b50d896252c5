"""Shared logger helpers for catalog operations.

USAGE:
    from mediacatalog.infrastructure.observability import get_module_logger, log_operation

    logger = get_module_logger(__name__)

    async with log_operation(logger, "scan.complete", scan_started_at=started.isoformat()):
        swept = await repo.mark_non_present(started)
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


def get_module_logger(name: str) -> logging.Logger:
    """Get logger for module (use __name__).

    Example:
        >>> logger = get_module_logger(__name__)
        >>> logger.info("scan.started")
    """
    return logging.getLogger(name)


# Yo, this context manager is the standard way to time a catalog operation! It logs
# {operation}.started, then .completed with duration_ms, or .failed with the traceback - and
# ALWAYS re-raises. It never swallows anything, the caller decides what a failure means.
# **context ends up as extra fields on every line (JSON keys in production).
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Log operation start/end with automatic timing.

    The yielded dict can be filled with result fields (e.g. ``rows=42``);
    they are added to the ``.completed`` line.

    Args:
        logger: Logger instance from get_module_logger()
        operation: Operation name (e.g., "scan.mark_present")
        **context: Additional fields to include in logs

    Example:
        >>> async with log_operation(logger, "scan.expunge") as result:
        ...     result["deleted"] = await repo.expunge()

        # Logs:
        # INFO: scan.expunge.started
        # INFO: scan.expunge.completed {"deleted": 12, "duration_ms": 31}
    """
    start = time.monotonic()
    result: dict[str, Any] = {}
    logger.info(f"{operation}.started", extra=context)

    try:
        yield result
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result, "duration_ms": duration_ms},
    )


def log_slow_operation(
    logger: logging.Logger,
    operation: str,
    duration_ms: int,
    threshold_ms: int = 100,
    **context: Any,
) -> None:
    """Log a warning if an operation exceeded its threshold.

    Example:
        >>> log_slow_operation(logger, "mark_present.chunk", 2300, threshold_ms=1000, rows=30000)

        # Only logs if duration_ms > threshold_ms:
        # WARNING: operation.slow {"operation": "mark_present.chunk", "duration_ms": 2300, ...}
    """
    if duration_ms > threshold_ms:
        logger.warning(
            "operation.slow",
            extra={
                **context,
                "operation": operation,
                "duration_ms": duration_ms,
                "threshold_ms": threshold_ms,
            },
        )
