import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from dbgrid.common.errors import ErrorCode, NotEditable
from dbgrid.common.logger import current_trace_id, trace_context
from dbgrid.common.sandbox import WorkerPoolManager, get_execution_pool, run_in_pool
from dbgrid.execution.models import SaveOutcome


@pytest.fixture
def pool():
    executor = ThreadPoolExecutor(max_workers=2)
    yield executor
    executor.shutdown(wait=True)


def test_result_is_returned(pool):
    result = run_in_pool(pool, lambda a, b: a + b, 2, 3, timeout_sec=5, on_failure=SaveOutcome.failure)

    assert result == 5


def test_trace_id_reaches_the_worker(pool):
    """Verifies that the caller's trace id is visible inside the worker thread."""
    with trace_context("trace-pool"):
        seen = run_in_pool(pool, current_trace_id, timeout_sec=5, on_failure=SaveOutcome.failure)

    assert seen == "trace-pool"


def test_timeout_returns_failure_value(pool):
    release = threading.Event()

    def blocked():
        release.wait(5)
        return SaveOutcome(success=True)

    try:
        outcome = run_in_pool(pool, blocked, timeout_sec=0.1, on_failure=SaveOutcome.failure)
    finally:
        release.set()

    assert outcome.success is False
    assert outcome.error_code == ErrorCode.EXECUTION_TIMEOUT
    assert "timed out" in outcome.error


def test_grid_error_becomes_failure_value(pool):
    def refuse():
        raise NotEditable("read only")

    outcome = run_in_pool(pool, refuse, timeout_sec=5, on_failure=SaveOutcome.failure)

    assert outcome.error_code == ErrorCode.NOT_EDITABLE
    assert outcome.error == "read only"


def test_shut_down_pool():
    executor = ThreadPoolExecutor(max_workers=1)
    executor.shutdown()

    outcome = run_in_pool(executor, lambda: None, timeout_sec=1, on_failure=SaveOutcome.failure)

    assert outcome.error_code == ErrorCode.QUERY_EXECUTION_FAILED


def test_execution_pool_is_reused():
    first = get_execution_pool()

    assert get_execution_pool() is first

    WorkerPoolManager.shutdown()
    assert WorkerPoolManager._exec_pool is None
