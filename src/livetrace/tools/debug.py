"""Opt-in timing instrumentation for the decode path."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

DEBUG_LIVETRACE = os.getenv("LIVETRACE_DEBUG", "").lower() in {"1", "true", "yes", "on"}


def debug_enabled() -> bool:
    """Return True when lightweight instrumentation should run."""
    return DEBUG_LIVETRACE


@contextmanager
def time_block(label: str) -> Iterator[None]:
    """
    Log the elapsed time of the wrapped block at DEBUG level.

    Costs nothing beyond a flag check unless ``LIVETRACE_DEBUG`` is set.
    """
    if not DEBUG_LIVETRACE:
        yield
        return

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.debug("%s took %.3f ms", label, elapsed_ms)
