"""
Turn processing pipeline.

A composable pipeline of stages for processing one conversation turn. Each
stage is independently testable; the orchestrator folds their outputs into
an immutable PipelineState.
"""

from .base import TurnStage
from .pipeline import STAGE_PLAN, TurnPipeline

__all__ = [
    "STAGE_PLAN",
    "TurnStage",
    "TurnPipeline",
]
