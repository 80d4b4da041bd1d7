"""History assembly: segmentation, backfill and the caller-facing service."""

from __future__ import annotations

from fx_history.history.backfill import BackfillOrchestrator
from fx_history.history.segmenter import RangeSegmenter, build_segments
from fx_history.history.service import HistoryService, HistorySettings

__all__ = [
    "BackfillOrchestrator",
    "HistoryService",
    "HistorySettings",
    "RangeSegmenter",
    "build_segments",
]
