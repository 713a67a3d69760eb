"""Domain models package."""

from .agent import (
    AgentInput,
    ClassifierOutput,
    ClassifierResult,
    ContextMatch,
    ContextOutput,
    GapReasoningOutput,
    GapReasoningResult,
    Intent,
    PersonaOutput,
    PersonaResult,
    StructuringOutput,
    StructuringResult,
)
from .configuration import Category, DomainConfig, PersonaConfig
from .knowledge import (
    META,
    UNCATEGORIZED,
    FollowUp,
    KnowledgeEntry,
    KnowledgeGap,
    KnowledgeSearchResult,
)
from .pipeline_state import PipelineState
from .session import Session, SessionInit, SessionResponse, Turn
from .turn import TurnContext, TurnSummary

__all__ = [
    "AgentInput",
    "ClassifierOutput",
    "ClassifierResult",
    "ContextMatch",
    "ContextOutput",
    "GapReasoningOutput",
    "GapReasoningResult",
    "Intent",
    "PersonaOutput",
    "PersonaResult",
    "StructuringOutput",
    "StructuringResult",
    "Category",
    "DomainConfig",
    "PersonaConfig",
    "META",
    "UNCATEGORIZED",
    "FollowUp",
    "KnowledgeEntry",
    "KnowledgeGap",
    "KnowledgeSearchResult",
    "PipelineState",
    "Session",
    "SessionInit",
    "SessionResponse",
    "Turn",
    "TurnContext",
    "TurnSummary",
]
