"""Error taxonomy for the sync core.

Record-level problems (``NormalizationError``) are collected per run, batch-level
problems (``FetchError``, ``PersistenceError``) abort one batch, and invariant guards
(``WatermarkAdvanceBlocked``, ``InvalidPhaseTransition``) flag programming or
concurrency mistakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from plansync.domain.model import ItemKey, ItemType, SourceSystem


class PlansyncError(RuntimeError):
    """Base class for domain errors."""


class NormalizationError(PlansyncError):
    """Raised when a single payload cannot be turned into a canonical record."""

    def __init__(self, message: str, *, external_id: str | None = None) -> None:
        super().__init__(message)
        self.external_id = external_id


class FetchError(PlansyncError):
    """Raised by connectors when a request for remote data fails."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Network failures and 5xx responses."""

    retryable = True


class RateLimited(FetchError):
    """Throttling that persisted past the transport's own ``Retry-After`` handling."""


class Unauthorized(FetchError):
    pass


class NotFound(FetchError):
    pass


class Malformed(FetchError):
    """Rejected request or a response body that does not match the expected shape."""


class PersistenceError(PlansyncError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ReconciliationConflict(PlansyncError):
    """Raised when an incoming record is not newer than the stored one."""

    def __init__(self, key: ItemKey, *, stored_version: int, incoming_version: int) -> None:
        super().__init__(
            f"Rejected {key}: incoming version {incoming_version} "
            f"is not newer than stored version {stored_version}"
        )
        self.key = key
        self.stored_version = stored_version
        self.incoming_version = incoming_version


class WatermarkAdvanceBlocked(PlansyncError):
    """Raised when a watermark update would move it backwards."""

    def __init__(
        self,
        source_system: SourceSystem,
        entity_type: ItemType,
        *,
        current: datetime,
        proposed: datetime,
    ) -> None:
        super().__init__(
            f"Watermark for {source_system}/{entity_type} cannot move from "
            f"{current.isoformat()} back to {proposed.isoformat()}"
        )
        self.source_system = source_system
        self.entity_type = entity_type
        self.current = current
        self.proposed = proposed


class InvalidPhaseTransition(PlansyncError):
    pass


class SyncRunAlreadyFinalized(PlansyncError):
    pass


__all__ = [
    "FetchError",
    "InvalidPhaseTransition",
    "Malformed",
    "NormalizationError",
    "NotFound",
    "PersistenceError",
    "PlansyncError",
    "RateLimited",
    "ReconciliationConflict",
    "SyncRunAlreadyFinalized",
    "TransientFetchError",
    "Unauthorized",
    "WatermarkAdvanceBlocked",
]
