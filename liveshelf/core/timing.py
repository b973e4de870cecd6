"""Timing helper for shelf queries and other store round-trips."""

import time
from collections.abc import Generator
from contextlib import contextmanager

from liveshelf.core.logging import get_logger

logger = get_logger(__name__)

SLOW_MS = 50
VERY_SLOW_MS = 200


@contextmanager
def timed(operation: str) -> Generator[None]:
    """Log how long the wrapped block took, escalating the level when slow.

    Usage:
        with timed("tag shelf query"):
            shelf = get_tag_shelf(db, tag)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms < SLOW_MS:
            logger.debug("[%.2fms] %s", duration_ms, operation)
        elif duration_ms < VERY_SLOW_MS:
            logger.info("[%.2fms] %s (slow)", duration_ms, operation)
        else:
            logger.warning("[%.2fms] %s (very slow)", duration_ms, operation)
