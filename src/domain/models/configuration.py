"""Domain and persona configuration models.

Validated from YAML by src.core.domain_loader and src.core.persona_loader.
Both are read-only once loaded: the pipeline never mutates them.
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


class Category(BaseModel):
    """A knowledge category with its schema fields."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Category identifier")
    label: str = Field(..., min_length=1, description="Human-readable label")
    description: str = Field(..., min_length=1)
    required_fields: List[str] = Field(default_factory=list)
    optional_fields: List[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def id_not_reserved(cls, v: str) -> str:
        # Leading underscore is reserved for the sentinels (_uncategorized, _meta)
        if v.startswith("_"):
            raise ValueError(f"Category id '{v}' must not start with '_'")
        return v

    @property
    def all_fields(self) -> List[str]:
        return [*self.required_fields, *self.optional_fields]


class IngestionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_language: str = Field(default="en", min_length=2)
    supported_languages: List[str] = Field(default_factory=list)


class CompletenessConfig(BaseModel):
    """Thresholds used by the completeness scorer and session service."""

    model_config = ConfigDict(frozen=True)

    auto_complete_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    content_length_threshold: int = Field(
        default=200,
        ge=1,
        description="Content length above which a field-less category scores higher",
    )
    auto_close: bool = Field(
        default=False,
        description="Mark the session complete once a turn reaches the threshold",
    )
    max_turns: Optional[int] = Field(
        default=None, ge=1, description="Turn limit per session; None means unlimited"
    )


class DomainConfig(BaseModel):
    """Complete domain definition: what knowledge is collected and how."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: str = Field(..., description="Semantic version (x.y.z)")
    description: str = Field(default="")
    categories: List[Category] = Field(..., min_length=1)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    completeness: CompletenessConfig = Field(default_factory=CompletenessConfig)

    @field_validator("version")
    @classmethod
    def version_is_semver(cls, v: str) -> str:
        if not SEMVER_PATTERN.match(v):
            raise ValueError(f"version must be semver (x.y.z), got '{v}'")
        return v

    @model_validator(mode="after")
    def category_ids_unique(self) -> "DomainConfig":
        ids = [c.id for c in self.categories]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate category ids: {', '.join(duplicates)}")
        return self

    @property
    def category_ids(self) -> List[str]:
        return [c.id for c in self.categories]

    def get_category(self, category_id: str) -> Optional[Category]:
        """Return the category with this id, or None."""
        for category in self.categories:
            if category.id == category_id:
                return category
        return None


class PromptBehavior(BaseModel):
    model_config = ConfigDict(frozen=True)

    gap_analysis: bool = True
    max_follow_up_questions: int = Field(default=3, ge=0, le=10)
    encourage_storytelling: bool = False
    validate_with_sources: bool = False


class PersonaConfig(BaseModel):
    """Conversational persona used for replies and greetings.

    Attributes:
        name: Persona name shown in the system prompt
        tonality: Free-form tone description (e.g. "warm, curious")
        formality: formal | informal | neutral
        language: Reply language code
        address_form: Optional form of address (e.g. "du")
        prompt_behavior: Question budget and style switches
        system_prompt_template: Base system prompt for the persona
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    version: str = Field(...)
    tonality: str = Field(..., min_length=1)
    formality: Literal["formal", "informal", "neutral"] = "neutral"
    language: str = Field(default="en", min_length=2)
    address_form: Optional[str] = None
    prompt_behavior: PromptBehavior = Field(default_factory=PromptBehavior)
    system_prompt_template: str = Field(..., min_length=1)

    @field_validator("version")
    @classmethod
    def version_is_semver(cls, v: str) -> str:
        if not SEMVER_PATTERN.match(v):
            raise ValueError(f"version must be semver (x.y.z), got '{v}'")
        return v
