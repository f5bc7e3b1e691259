"""Incremental sync coordination."""

from __future__ import annotations

from .batching import Batch, BatchStatus, order_markers, partition, safe_watermark
from .coordinator import BatchResult, IncrementalSyncCoordinator
from .retry import RetryPolicy, is_retryable
from .state import ALLOWED_TRANSITIONS, BatchStateMachine

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Batch",
    "BatchResult",
    "BatchStateMachine",
    "BatchStatus",
    "IncrementalSyncCoordinator",
    "RetryPolicy",
    "is_retryable",
    "order_markers",
    "partition",
    "safe_watermark",
]
