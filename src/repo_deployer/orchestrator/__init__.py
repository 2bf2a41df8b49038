"""Orchestrator module for stage-based pipeline execution.

- PipelineOrchestrator: runs the stages in order, fail-fast
- PipelineContext: state threaded through the stages of one run
- PipelineRun / StageOutcome: the observable record of a run
"""

from .models import (
    PipelineContext,
    PipelineRun,
    SessionFactory,
    StageOutcome,
    StageStatus,
)
from .orchestrator import PipelineOrchestrator

__all__ = [
    "PipelineContext",
    "PipelineRun",
    "SessionFactory",
    "StageOutcome",
    "StageStatus",
    "PipelineOrchestrator",
]
