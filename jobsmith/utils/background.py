"""
Detached background tasks.

Work submitted here runs to completion independently of the request that
scheduled it. Outcomes are only observable through logs and the returned
futures, never through the caller's response.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Optional

from loguru import logger


class BackgroundTaskQueue:
    """
    Thread-pool backed queue for fire-and-forget work.

    Failures are logged with the task name and kept on the future. Tests (and
    shutdown code) can call wait_for_all() to observe completion.
    """

    def __init__(self, max_workers: int = 4, name: str = "jobsmith-bg"):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, task_name: str, fn: Callable, *args, **kwargs) -> Future:
        """
        Schedule fn(*args, **kwargs) without blocking the caller.

        Returns:
            Future for the scheduled task
        """
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(partial(self._finish, task_name))
        return future

    def wait_for_all(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every pending task has finished.

        Returns:
            True if all tasks completed within the timeout
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)

    def _finish(self, task_name: str, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

        if future.cancelled():
            logger.warning(f"Background task cancelled: {task_name}")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background task failed: {task_name}: {error}")
        else:
            logger.debug(f"Background task completed: {task_name}")
