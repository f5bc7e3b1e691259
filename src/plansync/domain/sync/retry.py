"""Batch-level retry policy with capped exponential backoff."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from plansync.domain.errors import FetchError, PersistenceError

type Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` counts from zero)."""

        return min(self.base_delay * (2**attempt), self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return is_retryable(error) and attempt + 1 < self.max_attempts


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, FetchError | PersistenceError):
        return error.retryable
    return False
