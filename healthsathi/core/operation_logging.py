"""
Operation logging for store calls.
Logs start, completion with timing, and failure of each operation.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def logged_operation(operation: str, **fields) -> AsyncIterator[None]:
    """Wrap a store operation with debug-level timing logs."""
    start_time = time.perf_counter()

    logger.debug("Store operation started", operation=operation, **fields)

    try:
        yield
    except Exception:
        process_time = time.perf_counter() - start_time
        logger.warning(
            "Store operation failed",
            operation=operation,
            duration_ms=round(process_time * 1000, 2),
            **fields,
        )
        raise

    process_time = time.perf_counter() - start_time
    logger.debug(
        "Store operation completed",
        operation=operation,
        duration_ms=round(process_time * 1000, 2),
        **fields,
    )
