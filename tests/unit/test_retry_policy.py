"""
Tests unitarios para RetryPolicy (reintentos con espera fija).
"""
from __future__ import annotations

from typing import List

import pytest

from jdy_sync.shared.exceptions import RetryExhaustedError, SinkApiError
from jdy_sync.shared.utils.retry import RetryPolicy


class _Flaky:
    """Operacion que falla `failures` veces antes de devolver `result`."""

    def __init__(self, failures: int, result="ok", error: Exception | None = None) -> None:
        self.failures = failures
        self.result = result
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            if self.error is not None:
                raise self.error
            return None
        return self.result


class TestRetryPolicy:
    def test_returns_first_success_without_sleeping(self) -> None:
        sleeps: List[float] = []
        policy = RetryPolicy(max_attempts=5, delay_s=5.0, sleep=sleeps.append)

        assert policy.run(_Flaky(0), description="op") == "ok"
        assert sleeps == []

    def test_sleeps_fixed_delay_between_attempts(self) -> None:
        sleeps: List[float] = []
        policy = RetryPolicy(max_attempts=5, delay_s=5.0, sleep=sleeps.append)
        op = _Flaky(2)

        assert policy.run(op, description="op") == "ok"
        assert op.calls == 3
        assert sleeps == [5.0, 5.0]

    def test_falsy_result_counts_as_failed_attempt(self) -> None:
        policy = RetryPolicy.immediate(max_attempts=3)
        op = _Flaky(10, result=True)

        with pytest.raises(RetryExhaustedError) as exc:
            policy.run(op, description="create")

        assert op.calls == 3
        assert exc.value.attempts == 3
        assert exc.value.last_error is None

    def test_never_sleeps_after_last_attempt(self) -> None:
        sleeps: List[float] = []
        policy = RetryPolicy(max_attempts=3, delay_s=1.0, sleep=sleeps.append)

        with pytest.raises(RetryExhaustedError):
            policy.run(_Flaky(10), description="op")

        assert sleeps == [1.0, 1.0]

    def test_retryable_exception_is_kept_as_last_error(self) -> None:
        policy = RetryPolicy.immediate(max_attempts=2, retry_on=(SinkApiError,))
        error = SinkApiError("timeout")

        with pytest.raises(RetryExhaustedError) as exc:
            policy.run(_Flaky(5, error=error), description="query")

        assert exc.value.last_error is error
        assert "query" in exc.value.message

    def test_non_retryable_exception_propagates_immediately(self) -> None:
        policy = RetryPolicy.immediate(max_attempts=5, retry_on=(SinkApiError,))
        op = _Flaky(5, error=KeyError("boom"))

        with pytest.raises(KeyError):
            policy.run(op, description="op")
        assert op.calls == 1

    def test_custom_success_predicate(self) -> None:
        policy = RetryPolicy.immediate(max_attempts=2)

        # Una lista vacia es un resultado valido para una consulta
        assert policy.run(lambda: [], description="query", is_success=lambda _r: True) == []

    def test_with_retry_on_keeps_attempts_and_delay(self) -> None:
        base = RetryPolicy(max_attempts=7, delay_s=2.5)
        narrowed = base.with_retry_on(SinkApiError)

        assert narrowed.max_attempts == 7
        assert narrowed.delay_s == 2.5
        assert narrowed.retry_on == (SinkApiError,)

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(delay_s=-1)
