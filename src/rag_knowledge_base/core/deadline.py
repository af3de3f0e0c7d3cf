"""
Caller-supplied deadlines around embedding calls and store reads.

Local inference pays an unbounded model load on first use, and a stuck
network call can hang a request forever. run_with_deadline() moves the call
onto a shared worker pool and stops waiting once the deadline passes.

The worker itself cannot be interrupted; it finishes in the background and
its result is discarded. Only use it for calls with no side effects. Store
writes take the timeout themselves and are cancelled server-side by
statement_timeout, so they either commit in time or roll back.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from rag_knowledge_base.core.errors import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_WORKERS = 8

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=_MAX_WORKERS, thread_name_prefix="kb-deadline"
            )
        return _executor


def run_with_deadline(
    fn: Callable[[], T],
    timeout: float | None,
    operation: str,
) -> T:
    """
    Run fn() and return its result, or raise OperationTimeoutError.

    Args:
        fn: Zero-argument callable
        timeout: Seconds to wait; None runs fn inline with no deadline
        operation: Name used in the error message

    Exceptions raised by fn propagate unchanged.
    """
    if timeout is None:
        return fn()
    if timeout <= 0:
        raise OperationTimeoutError(operation, timeout)

    future = _get_executor().submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning(f"{operation} exceeded deadline of {timeout:.3f}s")
        raise OperationTimeoutError(operation, timeout) from exc


def shutdown_deadline_pool() -> None:
    """Stop the worker pool (tests, process shutdown)."""
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=False, cancel_futures=True)
            _executor = None
