"""Synchronization defaults for the incremental sync coordinator."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int
from .errors import ConfigurationError

DEFAULT_BATCH_SIZE = 200
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE_SECONDS = 0.5
DEFAULT_BACKOFF_MAX_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be positive")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be positive")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be positive")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ConfigurationError("backoff cap must not be below the base delay")


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        batch_size=env_int("PLANSYNC_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        max_concurrency=env_int("PLANSYNC_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY),
        max_attempts=env_int("PLANSYNC_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        backoff_base_seconds=env_float(
            "PLANSYNC_BACKOFF_BASE_SECONDS", DEFAULT_BACKOFF_BASE_SECONDS
        ),
        backoff_max_seconds=env_float("PLANSYNC_BACKOFF_MAX_SECONDS", DEFAULT_BACKOFF_MAX_SECONDS),
    )
