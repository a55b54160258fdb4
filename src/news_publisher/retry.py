"""Bounded exponential-backoff retry for fallible pipeline operations."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from news_publisher.config import RetrySettings
from news_publisher.errors import PipelineCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_MIN = 0.85
JITTER_MAX = 1.15
_random = random.Random()  # noqa: S311


def retry_everything(_error: BaseException) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff curve for one labelled operation."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 15.0
    should_retry: Callable[[BaseException], bool] = field(default=retry_everything)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            max_delay_seconds=settings.max_delay_seconds,
        )

    def with_attempts(self, max_attempts: int) -> RetryPolicy:
        return replace(self, max_attempts=max_attempts)

    def with_predicate(self, should_retry: Callable[[BaseException], bool]) -> RetryPolicy:
        return replace(self, should_retry=should_retry)

    def delay_for(self, attempt: int, jitter: float) -> float:
        """Backoff before the retry that follows ``attempt`` (1-based)."""

        return min(self.base_delay_seconds * 2 ** (attempt - 1) * jitter, self.max_delay_seconds)


def with_retry(
    label: str,
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Invoke ``operation`` until it succeeds or the policy gives up.

    The last error is re-raised unchanged. Cancellation is never retried.
    """

    policy = policy or RetryPolicy()
    if policy.max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")

    attempt = 1
    while True:
        try:
            return operation()
        except PipelineCancelledError:
            raise
        except Exception as exc:
            if attempt >= policy.max_attempts or not policy.should_retry(exc):
                raise
            delay = policy.delay_for(attempt, _random.uniform(JITTER_MIN, JITTER_MAX))
            logger.warning(
                "Retrying %s: attempt %d/%d failed, next attempt in %.2fs (%s)",
                label,
                attempt,
                policy.max_attempts,
                delay,
                exc,
            )
            sleep(delay)
            attempt += 1
