"""
Unit Tests for Caller-Supplied Deadlines
"""

import threading
import time

import pytest

from rag_knowledge_base.core import OperationTimeoutError, StoreError
from rag_knowledge_base.core.deadline import run_with_deadline, shutdown_deadline_pool


class TestRunWithDeadline:
    def test_no_timeout_runs_inline(self):
        caller = threading.current_thread()
        seen = []

        assert run_with_deadline(lambda: seen.append(threading.current_thread()) or 42, None, "op") == 42
        assert seen == [caller]

    def test_result_within_deadline(self):
        assert run_with_deadline(lambda: "done", 5.0, "op") == "done"

    def test_deadline_exceeded(self):
        with pytest.raises(OperationTimeoutError) as exc_info:
            run_with_deadline(lambda: time.sleep(0.5), 0.05, "store.count")

        assert exc_info.value.operation == "store.count"
        assert "store.count" in str(exc_info.value)

    def test_non_positive_timeout(self):
        called = []
        with pytest.raises(OperationTimeoutError):
            run_with_deadline(lambda: called.append(1), 0, "op")
        assert called == []

    @pytest.mark.parametrize("timeout", [None, 5.0])
    def test_exceptions_propagate_unchanged(self, timeout):
        def fail():
            raise StoreError("constraint violated")

        with pytest.raises(StoreError, match="constraint violated"):
            run_with_deadline(fail, timeout, "op")

    def test_pool_recreated_after_shutdown(self):
        run_with_deadline(lambda: 1, 5.0, "op")
        shutdown_deadline_pool()
        assert run_with_deadline(lambda: 2, 5.0, "op") == 2
