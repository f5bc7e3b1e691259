"""Public interface for the ProductBoard adapter."""

from __future__ import annotations

from .client import ProductBoardConnector
from .schema import DocumentEnvelope, ListEnvelope, RecordStub

__all__ = [
    "DocumentEnvelope",
    "ListEnvelope",
    "ProductBoardConnector",
    "RecordStub",
]
