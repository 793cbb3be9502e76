"""
Timing Utilities for Latency Instrumentation and Deadlines

Provides timing context managers for the discovery pipeline and the
overall-deadline object that every upstream call consults.

The active deadline is bound per pipeline stage through a ContextVar, so
clients deep in the call stack (and tasks spawned from them) see it
without threading it through every signature.
"""

import logging
import time
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


def log_timing(node_name: str, action: str, duration_ms: Optional[float] = None):
    """Log a timing event in standard format."""
    if duration_ms is not None:
        logger.info("[TIMING] %s: %s — duration=%.0fms", node_name, action, duration_ms)
    else:
        logger.info("[TIMING] %s: %s", node_name, action)


class StepTimer:
    """
    Utility class for timing multiple steps within a pipeline run.

    Usage:
        timer = StepTimer("pipeline")
        async with timer.async_step("discovering"):
            await discover()
        timer.summary()
    """

    def __init__(self, node_name: str):
        self.node_name = node_name
        self.steps: dict[str, float] = {}
        self.start_time = time.perf_counter()

    @asynccontextmanager
    async def async_step(self, step_name: str):
        """Time a single async step."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.steps[step_name] = duration_ms
            log_timing(self.node_name, step_name, duration_ms)

    def summary(self) -> float:
        """Log summary of all steps."""
        total_ms = (time.perf_counter() - self.start_time) * 1000
        log_timing(self.node_name, "TOTAL", total_ms)
        return total_ms


# ---------------------------------------------------------------------------
# Overall deadline
# ---------------------------------------------------------------------------

class Deadline:
    """A fixed point in time after which no new upstream work starts.

    ``seconds=None`` means unbounded. ``clock`` is injectable for tests.
    """

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, floored at 0. None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def clamp(self, timeout: float) -> float:
        """Shrink a per-request timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining()!r})"


_current_deadline: ContextVar[Optional[Deadline]] = ContextVar("current_deadline", default=None)


@contextmanager
def bind_deadline(deadline: Optional[Deadline]) -> Iterator[Optional[Deadline]]:
    """Make ``deadline`` visible to every call made inside the block."""
    token = _current_deadline.set(deadline)
    try:
        yield deadline
    finally:
        _current_deadline.reset(token)


def deadline_exceeded() -> bool:
    deadline = _current_deadline.get()
    return deadline is not None and deadline.expired


def remaining_time() -> Optional[float]:
    deadline = _current_deadline.get()
    return None if deadline is None else deadline.remaining()


def clamp_timeout(timeout: float) -> float:
    deadline = _current_deadline.get()
    return timeout if deadline is None else deadline.clamp(timeout)
