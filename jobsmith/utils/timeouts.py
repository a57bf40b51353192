"""
Time-bounded calls.

Runs a blocking call on its own daemon thread and stops waiting after a
deadline. The worker is not interrupted; its eventual result is discarded.
Abandoned workers hold no shared slot, so later calls never queue behind them.
"""

import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

T = TypeVar("T")


def call_with_timeout(fn: Callable[..., T], timeout_s: float, description: str, *args, **kwargs) -> T:
    """
    Call fn(*args, **kwargs) and wait at most timeout_s seconds for it.

    Args:
        fn: Blocking callable
        timeout_s: Seconds to wait (None or <= 0 waits indefinitely)
        description: Used in the timeout message (e.g., "generation")

    Returns:
        fn's return value

    Raises:
        TimeoutError: If fn has not finished within timeout_s
        Exception: Whatever fn raised
    """
    future: Future = Future()

    def run():
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=run, name=f"jobsmith-bounded-{description}", daemon=True).start()

    wait_s = timeout_s if timeout_s and timeout_s > 0 else None
    try:
        return future.result(timeout=wait_s)
    except FutureTimeoutError:
        raise TimeoutError(f"{description} timed out after {timeout_s:g}s") from None
