from __future__ import annotations

import pytest

from ralphy.errors import RetryableEngineError
from ralphy.runtime.domain.models import AIResult
from ralphy.runtime.orchestrator import retry
from ralphy.runtime.orchestrator.retry import RetryOptions, is_retryable_error, raise_if_retryable, with_retry


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    sleeps: list[float] = []
    monkeypatch.setattr(retry.time, "sleep", sleeps.append)
    return sleeps


def test_always_failing_operation_is_attempted_exactly_max_retries_times(_no_sleep) -> None:
    attempts = 0

    def operation() -> str:
        nonlocal attempts
        attempts += 1
        raise ValueError("SyntaxError: unexpected token")

    with pytest.raises(ValueError, match="unexpected token"):
        with_retry(operation, RetryOptions(max_retries=3, retry_delay_seconds=2))

    assert attempts == 3
    assert _no_sleep == [2.0, 2.0]


def test_returns_first_success_and_reports_retries() -> None:
    calls = iter([RuntimeError("rate limit"), RuntimeError("timeout"), "done"])
    seen: list[tuple[int, str]] = []

    def operation() -> str:
        item = next(calls)
        if isinstance(item, Exception):
            raise item
        return item

    result = with_retry(operation, RetryOptions(max_retries=5, retry_delay_seconds=0, on_retry=lambda a, m: seen.append((a, m))))

    assert result == "done"
    assert seen == [(1, "rate limit"), (2, "timeout")]


def test_zero_max_retries_still_runs_once() -> None:
    calls = []
    with pytest.raises(KeyError):
        with_retry(lambda: calls.append(1) or {}["missing"], RetryOptions(max_retries=0))
    assert calls == [1]


@pytest.mark.parametrize(
    "message",
    [
        "Error: 429 Too Many Requests",
        "Rate limit exceeded",
        "request Timeout",
        "read ECONNRESET",
        "Anthropic API is overloaded",
        "network unreachable",
    ],
)
def test_transient_messages_are_retryable(message: str) -> None:
    assert is_retryable_error(message)


@pytest.mark.parametrize("message", ["SyntaxError: unexpected token", "permission denied", "", "econnreset"])
def test_other_messages_are_fatal(message: str) -> None:
    assert not is_retryable_error(message)


def test_raise_if_retryable_only_raises_for_transient_failures() -> None:
    ok = AIResult.ok("fine")
    fatal = AIResult.failure("compile error")

    assert raise_if_retryable(ok) is ok
    assert raise_if_retryable(fatal) is fatal
    with pytest.raises(RetryableEngineError, match="429"):
        raise_if_retryable(AIResult.failure("HTTP 429"))


def test_retryable_result_is_retried_until_it_succeeds() -> None:
    results = iter([AIResult.failure("rate limit"), AIResult.ok("second time")])

    result = with_retry(lambda: raise_if_retryable(next(results)), RetryOptions(max_retries=3, retry_delay_seconds=0))

    assert result.success
    assert result.response == "second time"
