"""Knowledge entry models.

A KnowledgeEntry is the structured record built up over one topic of a
conversation. It is created by the structuring step and merged (never
replaced wholesale) on follow-up turns.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

UNCATEGORIZED = "_uncategorized"
META = "_meta"

GapPriority = Literal["high", "medium", "low"]
EntryStatus = Literal["draft", "confirmed", "archived"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KnowledgeGap(BaseModel):
    """A piece of information still missing for the active topic."""

    field: str = Field(..., min_length=1, description="Schema field or free-form descriptor")
    description: str = Field(..., description="What is missing")
    priority: GapPriority = "medium"


class FollowUp(BaseModel):
    gaps: List[str] = Field(default_factory=list, description='"field: description" lines')
    suggested_questions: List[str] = Field(default_factory=list)


class KnowledgeEntry(BaseModel):
    """Structured knowledge captured from a conversation."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    category_id: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    title: str = ""
    content: str = ""
    structured_data: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    follow_up: Optional[FollowUp] = None

    # Provenance
    session_id: Optional[str] = None
    domain_id: Optional[str] = None
    raw_input: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    status: EntryStatus = "draft"

    # Only meaningful for UNCATEGORIZED entries
    suggested_category_label: Optional[str] = None
    topic_keywords: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_uncategorized(self) -> bool:
        return self.category_id == UNCATEGORIZED

    def filled_fields(self) -> List[str]:
        """Keys of structured_data holding a usable value."""
        return [k for k, v in self.structured_data.items() if is_filled(v)]


class KnowledgeSearchResult(BaseModel):
    """Nearest-neighbor match returned by the knowledge repository."""

    entry: KnowledgeEntry
    similarity: float = Field(..., ge=-1.0, le=1.0)


def is_filled(value: Any) -> bool:
    """A structured-data value counts as present unless null or blank."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True
