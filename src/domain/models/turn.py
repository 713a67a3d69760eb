"""Turn-scoped conversational memory.

TurnContext is built by the SessionService from the session's history before
each turn and handed to the pipeline read-only.

Core Models:
    - TurnSummary: Compact record of one earlier turn
    - TurnContext: Everything the pipeline needs to know about earlier turns
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models.knowledge import KnowledgeEntry


class TurnSummary(BaseModel):
    """One earlier turn, reduced to what prompts need."""

    model_config = ConfigDict(frozen=True)

    turn_number: int = Field(..., ge=1)
    user_input: str
    gaps: List[str] = Field(default_factory=list, description="Gap field names")
    filled_fields: List[str] = Field(
        default_factory=list, description="Structured-data keys filled so far"
    )


class TurnContext(BaseModel):
    """Conversational memory for the turn being processed.

    Fields:
        - turn_number: 1-indexed number of the turn being processed
        - is_follow_up: True for every turn after the first
        - previous_turns: Summaries of all earlier turns, oldest first
        - previous_entry: Session's current knowledge entry, if any
        - asked_questions: Every question surfaced to the user so far
        - last_question: Last question of the previous turn, the one the
          user is most likely answering
        - skipped_fields: Fields the user deflected with "I don't know"
    """

    model_config = ConfigDict(frozen=True)

    turn_number: int = Field(..., ge=1)
    is_follow_up: bool = False
    previous_turns: List[TurnSummary] = Field(default_factory=list)
    previous_entry: Optional[KnowledgeEntry] = None
    asked_questions: List[str] = Field(default_factory=list)
    last_question: Optional[str] = None
    skipped_fields: List[str] = Field(default_factory=list)
