"""Retry with error classification and exponential backoff.

Two schedules are used across the service:

* generic remote operations wait ``min(2 ** n, 10)`` seconds after attempt ``n``
* evaluation batches wait ``min(10 * 2 ** (n - 1), 45)`` seconds after attempt ``n``

A non-retryable error is re-raised immediately without sleeping.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from app.core.exceptions import (
    ContractViolationError,
    DuplicateResourceError,
    PermanentRemoteError,
    TransientRemoteError,
    ValidationError,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]

# Matched case-insensitively against str(error)
RETRYABLE_PATTERNS = [
    re.compile(r"time(d)?\s?out"),
    re.compile(r"connection|network|econnreset|econnrefused"),
    re.compile(r"server_error|service unavailable|temporar"),
    re.compile(r"\b(500|502|503|504)\b"),
    re.compile(r"rate.?limit|too many requests|\b429\b"),
    # Backend refuses new input while the previous run on a thread is active
    re.compile(r"can'?t add messages.*\brun\b.*\bactive\b"),
    re.compile(r"cannot submit new input.*active"),
    re.compile(r"no results returned"),
]

NON_RETRYABLE_PATTERN = re.compile(r"\b(400|401|403|404)\b")


def generic_backoff(attempt: int) -> float:
    """Wait after a failed generic remote call: 2s, 4s, 8s, capped at 10s."""
    return min(2 ** attempt, 10)


def evaluation_batch_backoff(attempt: int) -> float:
    """Wait after a failed evaluation batch: 10s, 20s, 40s, capped at 45s."""
    return min(10 * 2 ** (attempt - 1), 45)


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as retryable.

    Unclassified errors default to retryable.
    """
    if isinstance(error, (ValidationError, DuplicateResourceError)):
        return False
    if isinstance(error, (TransientRemoteError, ContractViolationError)):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True

    message = str(error).lower()
    if any(pattern.search(message) for pattern in RETRYABLE_PATTERNS):
        return True

    if isinstance(error, PermanentRemoteError):
        return False
    if NON_RETRYABLE_PATTERN.search(message):
        return False

    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently an operation is retried."""

    name: str
    max_attempts: int
    schedule: Callable[[int], float] = generic_backoff
    classifier: Callable[[BaseException], bool] = is_retryable_error


GENERIC_POLICY = RetryPolicy(name="remote operation", max_attempts=3)
EVALUATION_BATCH_POLICY = RetryPolicy(
    name="evaluation batch", max_attempts=3, schedule=evaluation_batch_backoff
)
CLEANUP_POLICY = RetryPolicy(name="remote cleanup", max_attempts=2)


class BackoffEngine:
    """Executes an async operation under a retry policy."""

    def __init__(self, policy: RetryPolicy = GENERIC_POLICY, sleep: Optional[SleepFn] = None):
        self.policy = policy
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[int], Awaitable[T]],
        max_attempts: Optional[int] = None,
        operation_name: Optional[str] = None,
        raise_on_failure: bool = True,
    ) -> Any:
        """Run ``operation(attempt)`` until it succeeds or attempts run out.

        Args:
            operation: Coroutine factory receiving the 1-based attempt number
            max_attempts: Overrides the policy's attempt count
            operation_name: Label used in log lines
            raise_on_failure: When False, exhaustion returns False instead of raising

        Returns:
            The operation's result, or False on exhaustion when not raising

        Raises:
            The last error when attempts are exhausted or the error is not retryable
        """
        attempts = max_attempts or self.policy.max_attempts
        name = operation_name or self.policy.name
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                return await operation(attempt)
            except Exception as e:
                last_error = e
                retryable = self.policy.classifier(e)

                if retryable and attempt < attempts:
                    wait_time = self.policy.schedule(attempt)
                    LOGGER.warning(
                        f"{name} failed (attempt {attempt}/{attempts}): {e}. Retrying in {wait_time}s...",
                        extra={"operation": name, "attempt": attempt, "error_type": type(e).__name__},
                    )
                    await self._sleep(wait_time)
                    continue

                if not retryable:
                    LOGGER.error(f"{name} failed with non-retryable error: {e}")
                else:
                    LOGGER.error(f"{name} failed after {attempt} attempts: {e}")
                break

        if raise_on_failure and last_error is not None:
            raise last_error
        return False
