"""Relationship graph derivation."""

from __future__ import annotations

from .builder import EdgeBuild, EdgeGap, GapReason, rebuild_edges
from .diff import EdgeDiff, diff_edges

__all__ = ["EdgeBuild", "EdgeDiff", "EdgeGap", "GapReason", "diff_edges", "rebuild_edges"]
