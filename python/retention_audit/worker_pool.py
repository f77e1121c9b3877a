"""
Bounded worker pool.

At most ``max_workers`` units of work run at once. Submission blocks on a
counting semaphore until a slot frees, so queued work never piles up inside the
executor. ``run`` is a join point: it returns only after every unit finished.
Failures are logged and reported in the result, never raised to the caller.
"""

import concurrent.futures
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Tuple, TypeVar

from retention_audit.logging_utils import get_logger, log_exception

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PoolResult(Generic[T, R]):
    """Outcome of a pool run, in completion order."""
    completed: List[Tuple[T, R]] = field(default_factory=list)
    failed: List[Tuple[T, BaseException]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.failed)


class BoundedWorkerPool:
    """Runs a function over items with at most ``max_workers`` in flight.

    ``max_workers <= 1`` runs everything sequentially in the calling thread.
    """

    def __init__(self, max_workers: int, name: str = "worker", progress_every: int = 10):
        self.max_workers = max(1, int(max_workers))
        self.name = name
        self.progress_every = progress_every

    def _log_progress(self, done: int, total: int) -> None:
        if total and (done % self.progress_every == 0 or done == total):
            logger.info(f"  Progress: {done}/{total} {self.name} units finished ({done / total * 100:.1f}%)")

    def _record_failure(self, result: PoolResult, item: Any, error: BaseException) -> None:
        log_exception(logger, f"  {self.name} unit for {item!r} failed", error)
        result.failed.append((item, error))

    def run(self, func: Callable[[T], R], items: Iterable[T]) -> PoolResult:
        """Apply ``func`` to every item and wait for all of them."""
        work = list(items)
        total = len(work)
        result: PoolResult = PoolResult()

        if self.max_workers == 1:
            for done, item in enumerate(work, 1):
                try:
                    result.completed.append((item, func(item)))
                except Exception as e:
                    self._record_failure(result, item, e)
                self._log_progress(done, total)
            return result

        slots = threading.BoundedSemaphore(self.max_workers)
        lock = threading.Lock()
        done_count = 0

        def _on_done(item: T, future: concurrent.futures.Future) -> None:
            nonlocal done_count
            slots.release()
            error = future.exception()
            with lock:
                if error is not None:
                    self._record_failure(result, item, error)
                else:
                    result.completed.append((item, future.result()))
                done_count += 1
                self._log_progress(done_count, total)

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=self.name
        ) as executor:
            for item in work:
                slots.acquire()
                future = executor.submit(func, item)
                future.add_done_callback(lambda f, item=item: _on_done(item, f))
        # Leaving the context manager joins every submitted unit

        return result
