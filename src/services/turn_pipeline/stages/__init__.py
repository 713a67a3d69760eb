"""
Pipeline stages for turn processing.

Each stage encapsulates one model-backed step of a turn. The classifier
always runs first; TurnPipeline decides from its intent which of the
others follow.
"""

from .classifier_stage import ClassifierStage
from .context_retrieval_stage import ContextRetrievalStage
from .gap_reasoning_stage import GapReasoningStage
from .persona_stage import PersonaStage
from .structuring_stage import StructuringStage

__all__ = [
    "ClassifierStage",
    "ContextRetrievalStage",
    "GapReasoningStage",
    "PersonaStage",
    "StructuringStage",
]
