"""Canonical record normalization."""

from __future__ import annotations

from .cross_refs import planning_item_ref, tracking_item_ref
from .extractors import ExtractionTable, FieldSpec
from .normalizer import EXTRACTION_TABLES, NormalizedBatch, normalize, normalize_batch

__all__ = [
    "EXTRACTION_TABLES",
    "ExtractionTable",
    "FieldSpec",
    "NormalizedBatch",
    "normalize",
    "normalize_batch",
    "planning_item_ref",
    "tracking_item_ref",
]
