"""Checklist analysis against the remote backend."""

from app.services.analysis.orchestrator import AnalysisOrchestrator, BatchPhase, partition
from app.services.analysis.result_extractor import ResultExtractor

__all__ = [
    "AnalysisOrchestrator",
    "BatchPhase",
    "ResultExtractor",
    "partition",
]
