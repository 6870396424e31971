"""Bounded fixed-delay retry for engine invocations."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from ...errors import RetryableEngineError
from ..domain.models import AIResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transient failure categories. Anything not matched here is fatal.
RETRYABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"rate limit", re.IGNORECASE),
    re.compile(r"too many requests", re.IGNORECASE),
    re.compile(r"429"),
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"network", re.IGNORECASE),
    re.compile(r"connection", re.IGNORECASE),
    re.compile(r"ECONNRESET"),
    re.compile(r"ETIMEDOUT"),
    re.compile(r"ENOTFOUND"),
    re.compile(r"overloaded", re.IGNORECASE),
)


@dataclass(frozen=True)
class RetryOptions:
    """Retry settings for :func:`with_retry`.

    Attributes:
        max_retries: Total number of attempts, including the first one.
        retry_delay_seconds: Fixed wait between attempts.
        on_retry: Optional callback receiving ``(attempt, message)`` before waiting.
    """

    max_retries: int = 3
    retry_delay_seconds: float = 5
    on_retry: Optional[Callable[[int, str], None]] = None


def is_retryable_error(message: str) -> bool:
    """Return whether an error message describes a transient failure."""
    text = str(message or "")
    return any(pattern.search(text) for pattern in RETRYABLE_PATTERNS)


def raise_if_retryable(result: AIResult) -> AIResult:
    """Turn a transient engine failure into an exception so the retry loop fires.

    Failed results whose error is not retryable are returned unchanged; the
    caller accounts for them as task failures.
    """
    if not result.success and result.error and is_retryable_error(result.error):
        raise RetryableEngineError(result.error)
    return result


def with_retry(operation: Callable[[], T], options: RetryOptions) -> T:
    """Run ``operation`` up to ``options.max_retries`` times.

    Every raised exception counts as a failed attempt, regardless of
    classification; the last one is re-raised once attempts are exhausted.

    Args:
        operation: Zero-argument callable to execute.
        options: Attempt budget, delay, and retry callback.

    Returns:
        T: Value returned by the first successful attempt.
    """
    max_attempts = max(int(options.max_retries), 1)
    last_error: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            last_error = exc
            if attempt >= max_attempts:
                break
            message = str(exc) or exc.__class__.__name__
            logger.warning("Attempt %s/%s failed: %s", attempt, max_attempts, message)
            if options.on_retry is not None:
                options.on_retry(attempt, message)
            logger.debug("Waiting %ss before retry...", options.retry_delay_seconds)
            time.sleep(max(float(options.retry_delay_seconds), 0.0))

    assert last_error is not None
    raise last_error
