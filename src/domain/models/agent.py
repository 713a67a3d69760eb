"""Pipeline step contracts.

Two kinds of models live here:

- *Result* models are the JSON shapes the language model must return. They
  are the validation schemas handed to invoke_and_validate().
- *Output* models are what each pipeline stage contributes to the turn's
  PipelineState. Stages build them from a validated result plus whatever
  normalization the stage applies.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models.knowledge import (
    META,
    UNCATEGORIZED,
    KnowledgeEntry,
    KnowledgeGap,
)

Intent = Literal["content", "greeting", "proactive_request", "dont_know"]


class AgentInput(BaseModel):
    """Raw user input for one turn."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Model response schemas
# =============================================================================


class ClassifierResult(BaseModel):
    """Classifier response.

    category_id is a configured category id, UNCATEGORIZED, or META (for the
    greeting/proactive_request intents). summary and suggested_category_label
    are only kept for UNCATEGORIZED results.
    """

    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    intent: Intent = "content"
    is_topic_change: bool = False
    reasoning: str = ""
    summary: Optional[str] = None
    suggested_category_label: Optional[str] = None

    @property
    def is_uncategorized(self) -> bool:
        return self.category_id == UNCATEGORIZED

    @property
    def is_meta(self) -> bool:
        return self.category_id == META


class GapReasoningResult(BaseModel):
    gaps: List[KnowledgeGap] = Field(default_factory=list)
    follow_up_questions: List[str] = Field(default_factory=list)
    reasoning: str = ""


class PersonaResult(BaseModel):
    response: str = Field(..., min_length=1)
    follow_up_questions: List[str] = Field(default_factory=list)


class StructuringResult(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    structured_data: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    is_complete: bool = False
    missing_fields: List[str] = Field(default_factory=list)
    # Requested only in uncategorized mode
    suggested_category_label: Optional[str] = None
    topic_keywords: List[str] = Field(default_factory=list)
    reasoning: str = ""


# =============================================================================
# Stage outputs
# =============================================================================


class AgentOutput(BaseModel):
    """Common envelope for stage outputs."""

    model_config = ConfigDict(frozen=True)

    agent_role: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    reasoning: str = ""


class ClassifierOutput(AgentOutput):
    agent_role: Literal["classifier"] = "classifier"
    result: ClassifierResult


class ContextMatch(BaseModel):
    """One retrieved knowledge entry, tagged with where it came from."""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    category_id: str
    title: str
    content: str
    similarity: float
    session_id: Optional[str] = None
    same_session: bool = False


class ContextOutput(AgentOutput):
    agent_role: Literal["context_retriever"] = "context_retriever"
    relevant_context: List[ContextMatch] = Field(default_factory=list)
    context_summary: str = ""


class GapReasoningOutput(AgentOutput):
    agent_role: Literal["gap_reasoning"] = "gap_reasoning"
    gaps: List[KnowledgeGap] = Field(default_factory=list)
    follow_up_questions: List[str] = Field(default_factory=list)


class PersonaOutput(AgentOutput):
    agent_role: Literal["persona"] = "persona"
    response: str
    follow_up_questions: List[str] = Field(default_factory=list)


class StructuringOutput(AgentOutput):
    agent_role: Literal["structuring"] = "structuring"
    entry: KnowledgeEntry
    is_complete: bool = False
    missing_fields: List[str] = Field(default_factory=list)
