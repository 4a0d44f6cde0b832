"""Stage timing for the capture and comparison pipeline."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = structlog.get_logger(__name__)


@dataclass
class StageTiming:
    stage: str
    elapsed_ms: float = 0.0
    failed: bool = False


@contextmanager
def timed(stage: str, **context: object) -> Iterator[StageTiming]:
    """Measure one pipeline stage and log its duration on exit.

    Usage::

        with timed("diff", name="home") as t:
            result = engine.compare(a, b)
        t.elapsed_ms

    The duration is recorded even when the stage raises; ``failed`` is set
    and the exception propagates.
    """
    timing = StageTiming(stage)
    start = time.perf_counter()
    try:
        yield timing
    except BaseException:
        timing.failed = True
        raise
    finally:
        timing.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "stage_timed",
            stage=stage,
            elapsed_ms=round(timing.elapsed_ms, 3),
            failed=timing.failed,
            **context,
        )
