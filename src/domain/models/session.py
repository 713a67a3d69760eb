"""Session domain models for knowledge-collection lifecycle management.

Core Models:
    - Session: Conversation aggregate (turns, current entry, classification)
    - Turn: One processed user input with its full pipeline state
    - SessionResponse: What a turn returns to the caller
    - SessionInit: What init_session returns

Session Lifecycle:
    1. Created empty (init_session) or with a first turn (start_session)
    2. Each continue_session appends exactly one turn
    3. end_session marks it complete (has an entry) or abandoned (no entry)
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from src.domain.models.agent import ClassifierResult, Intent
from src.domain.models.knowledge import KnowledgeEntry, utc_now
from src.domain.models.pipeline_state import PipelineState

SessionStatus = Literal["active", "complete", "abandoned"]


class Turn(BaseModel):
    """A processed turn.

    pipeline_result is kept whole: it is the audit record and the source for
    rebuilding TurnContext on later turns.
    """

    turn_number: int = Field(..., ge=1)
    user_input: str
    pipeline_result: PipelineState
    completeness_score: float = Field(default=0.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """Conversation aggregate owned by the caller's persistence layer."""

    id: str
    domain_config_name: str
    persona_config_name: str
    status: SessionStatus = "active"
    turns: List[Turn] = Field(default_factory=list)
    current_entry: Optional[KnowledgeEntry] = None
    classifier_result: Optional[ClassifierResult] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    @property
    def active_category(self) -> Optional[str]:
        if self.classifier_result is None:
            return None
        return self.classifier_result.category_id


class SessionResponse(BaseModel):
    """Result of one turn, as returned to the caller."""

    session_id: str
    turn_number: int
    intent: Optional[Intent] = None
    category_id: Optional[str] = None
    is_topic_change: bool = False
    entry: Optional[KnowledgeEntry] = None
    persona_response: str = ""
    follow_up_questions: List[str] = Field(default_factory=list)
    completeness_score: float = Field(default=0.0, ge=0.0, le=1.0)
    is_complete: bool = False
    status: SessionStatus = "active"


class SessionInit(BaseModel):
    session_id: str
    greeting: str
