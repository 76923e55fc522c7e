"""Wall-clock budget and bounded worker pool used by the pipeline stages."""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence, TypeVar

from .errors import PipelineTimeout

T = TypeVar("T")
R = TypeVar("R")

_POLL_INTERVAL = 0.1


class Deadline:
    """Tracks the overall budget of one pipeline run and its cancellation flag."""

    def __init__(
        self,
        budget: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if budget is None else clock() + budget
        self._cancelled = threading.Event()

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cancel(self) -> None:
        """Stop queued work from starting; in-flight calls end at their clamped timeout."""
        self._cancelled.set()

    def check(self, stage: str) -> None:
        if self.cancelled:
            raise PipelineTimeout(f"Pipeline cancelled during {stage}")
        if self.expired:
            raise PipelineTimeout(f"Pipeline exceeded its time budget during {stage}")

    def clamp(self, timeout: float | None) -> float | None:
        """Return ``timeout`` limited to whatever budget is left."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)


def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], R],
    *,
    max_workers: int,
    deadline: Deadline,
    stage: str,
) -> List[R]:
    """Apply ``worker`` to every item on a fixed-size pool, preserving input order.

    ``worker`` is expected to absorb its own per-item failures; an exception that
    escapes it cancels the remaining work and is re-raised. Queued items are
    skipped once the deadline is exhausted or cancelled and ``PipelineTimeout``
    is raised without waiting for calls already in flight.
    """
    if not items:
        return []
    deadline.check(stage)

    def _guarded(item: T) -> R:
        deadline.check(stage)
        return worker(item)

    pool_size = max(1, min(max_workers, len(items)))
    executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix=f"echodocs-{stage}")
    futures: List[Future[R]] = []
    try:
        futures = [executor.submit(_guarded, item) for item in items]
        pending = set(futures)
        while pending:
            # short waits so a cancellation from another thread is noticed promptly
            remaining = deadline.remaining()
            interval = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
            done, pending = wait(pending, timeout=interval, return_when=FIRST_EXCEPTION)
            failed: Optional[BaseException] = next(
                (future.exception() for future in done if future.exception() is not None), None
            )
            if failed is not None:
                raise failed
            if pending and deadline.expired:
                reason = "was cancelled" if deadline.cancelled else "exceeded its time budget"
                deadline.cancel()
                raise PipelineTimeout(f"Pipeline {reason} during {stage}")
        return [future.result() for future in futures]
    finally:
        for future in futures:
            future.cancel()
        executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["Deadline", "run_bounded"]
