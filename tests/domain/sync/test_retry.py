from __future__ import annotations

import pytest

from plansync.domain.errors import (
    Malformed,
    NotFound,
    PersistenceError,
    RateLimited,
    TransientFetchError,
    Unauthorized,
)
from plansync.domain.sync import RetryPolicy, is_retryable


def test_delay_doubles_until_capped() -> None:
    policy = RetryPolicy(max_attempts=10, base_delay=0.5, max_delay=3.0)

    assert [policy.delay_for(attempt) for attempt in range(5)] == [0.5, 1.0, 2.0, 3.0, 3.0]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TransientFetchError("timeout"), True),
        (TransientFetchError("bad gateway", status_code=502), True),
        (PersistenceError("locked", retryable=True), True),
        (PersistenceError("constraint"), False),
        (Malformed("bad request", status_code=400), False),
        (Unauthorized("denied", status_code=401), False),
        (NotFound("gone", status_code=404), False),
        (RateLimited("slow down", status_code=429), False),
        (RuntimeError("boom"), False),
    ],
)
def test_only_transient_errors_are_retryable(error: Exception, expected: bool) -> None:
    assert is_retryable(error) is expected


def test_should_retry_respects_attempt_budget() -> None:
    policy = RetryPolicy(max_attempts=3)
    error = TransientFetchError("down", status_code=503)

    assert policy.should_retry(error, 0)
    assert policy.should_retry(error, 1)
    assert not policy.should_retry(error, 2)


def test_invalid_policies_are_rejected() -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError, match="non-negative"):
        RetryPolicy(base_delay=-1)
