"""
Worker pool for blocking database I/O.

Every public operation is a synchronous driver call (connect, execute, fetch,
close). Those calls run on one bounded ThreadPoolExecutor so a burst of
requests cannot open an unbounded number of backend connections.

The pool is created lazily and reused across requests.
"""
from __future__ import annotations

import atexit
import contextvars
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Callable, Optional, TypeVar

from dbgrid.common.errors import ExecutionTimeout, GridError, QueryExecutionFailed
from dbgrid.common.logger import get_logger
from dbgrid.common.settings import settings

logger = get_logger(__name__)

R = TypeVar("R")


class WorkerPoolManager:
    """Manages the global pool for blocking database operations."""

    _exec_pool: Optional[ThreadPoolExecutor] = None

    @classmethod
    def get_execution_pool(cls) -> ThreadPoolExecutor:
        if cls._exec_pool is None:
            workers = settings.exec_workers
            logger.info(f"Initializing execution pool with {workers} workers.")
            cls._exec_pool = ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix="dbgrid-worker",
            )
        return cls._exec_pool

    @classmethod
    def shutdown(cls):
        """Shuts down the pool, waiting for pending operations to complete."""
        if cls._exec_pool:
            logger.info("Shutting down execution pool...")
            cls._exec_pool.shutdown(wait=True)
            cls._exec_pool = None


atexit.register(WorkerPoolManager.shutdown)


def get_execution_pool() -> ThreadPoolExecutor:
    """Helper accessor for the execution pool."""
    return WorkerPoolManager.get_execution_pool()


def run_in_pool(
    pool: ThreadPoolExecutor,
    func: Callable[..., R],
    *args,
    timeout_sec: float,
    on_failure: Callable[[GridError], R],
    **kwargs,
) -> R:
    """Runs `func` on the pool and waits for it with a timeout.

    The caller's contextvars (trace id) are copied into the worker. A timeout
    does not cancel the worker: the operation runs to completion or to the
    driver timeout on its own, and the caller gets a failure value right away.

    Args:
        pool (ThreadPoolExecutor): The pool to submit to.
        func (Callable): The blocking operation.
        timeout_sec (float): Maximum time to wait for the result.
        on_failure (Callable): Builds the result value returned for infrastructure failures.

    Returns:
        The value returned by `func`, or `on_failure(error)`.
    """
    ctx = contextvars.copy_context()
    try:
        future = pool.submit(ctx.run, func, *args, **kwargs)
        return future.result(timeout=timeout_sec)

    except FuturesTimeout:
        logger.error(f"Pool timeout ({timeout_sec}s) for {getattr(func, '__name__', func)}")
        return on_failure(ExecutionTimeout(timeout_sec))

    except GridError as e:
        return on_failure(e)

    except RuntimeError as e:
        # Raised by submit() once the pool has been shut down.
        logger.error(f"Pool failure for {getattr(func, '__name__', func)}: {e}")
        return on_failure(QueryExecutionFailed(f"Worker pool unavailable: {e}"))
