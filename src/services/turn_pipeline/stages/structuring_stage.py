"""
Stage 5: Extract a structured knowledge entry.

On a follow-up turn about the same topic, the previous entry keeps its id
and creation time and its structured data is merged with the new
extraction. A topic change starts a fresh entry. Without one, the entry stays
in the session's active category even when the turn was tagged otherwise.
"""

from typing import List, Optional

import structlog

from ..base import TurnStage
from src.core.exceptions import AgentError, AgentPreconditionError
from src.domain.models.agent import ClassifierResult, StructuringOutput, StructuringResult
from src.domain.models.configuration import Category, DomainConfig
from src.domain.models.knowledge import (
    META,
    UNCATEGORIZED,
    FollowUp,
    KnowledgeEntry,
    KnowledgeGap,
    is_filled,
    utc_now,
)
from src.domain.models.pipeline_state import PipelineState
from src.llm.client import LLMClient
from src.llm.invoke import DEFAULT_MAX_RETRIES, LLMRequest, invoke_and_validate
from src.llm.prompts.structuring import format_merge_context, get_structuring_system_prompt

log = structlog.get_logger(__name__)


def build_follow_up(gaps: List[KnowledgeGap], questions: List[str]) -> Optional[FollowUp]:
    """Follow-up block for an entry, or None when nothing is open."""
    if not gaps and not questions:
        return None
    return FollowUp(
        gaps=[f"{g.field}: {g.description}" for g in gaps],
        suggested_questions=list(questions),
    )


class StructuringStage(TurnStage):
    """
    Turn the conversation so far into a KnowledgeEntry.

    Populates PipelineState.structuring_output.
    """

    output_field = "structuring_output"

    def __init__(
        self,
        domain_config: DomainConfig,
        llm_client: LLMClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.domain_config = domain_config
        self.llm_client = llm_client
        self.max_retries = max_retries

    async def process(self, state: PipelineState) -> dict:
        classification = self._session_classification(
            state, self.require_classification(state).result
        )
        category_id = classification.category_id

        if category_id == META:
            raise AgentPreconditionError(
                "StructuringStage cannot structure a greeting or proactive request"
            )

        category: Optional[Category] = None
        if category_id != UNCATEGORIZED:
            category = self.domain_config.get_category(category_id)
            if category is None:
                raise AgentError(f"Category not found: {category_id}")

        gaps = state.gap_reasoning_output.gaps if state.gap_reasoning_output else []
        questions = (
            state.gap_reasoning_output.follow_up_questions if state.gap_reasoning_output else []
        )

        previous = self._previous_entry(state, category_id)
        merge_context = ""
        if previous is not None:
            merge_context = format_merge_context(previous, state.turn_context.turn_number)

        system_prompt = get_structuring_system_prompt(
            category,
            classification,
            gaps,
            merge_context=merge_context,
        )

        result = await invoke_and_validate(
            self.llm_client,
            LLMRequest(
                system_prompt=system_prompt,
                user_message=state.input.content,
                output_schema=StructuringResult.model_json_schema(),
            ),
            schema=StructuringResult,
            agent_name="Structuring",
            max_retries=self.max_retries,
        )

        entry = self._build_entry(state, classification, result, previous)
        entry = entry.model_copy(update={"follow_up": build_follow_up(gaps, questions)})

        log.info(
            "structuring_completed",
            session_id=state.session_id,
            entry_id=entry.id,
            category_id=entry.category_id,
            merged=previous is not None,
            field_count=len(entry.structured_data),
            is_complete=result.is_complete,
        )

        return {
            self.output_field: StructuringOutput(
                entry=entry,
                is_complete=result.is_complete,
                missing_fields=result.missing_fields,
                reasoning=result.reasoning,
            )
        }

    @staticmethod
    def _session_classification(
        state: PipelineState, classification: ClassifierResult
    ) -> ClassifierResult:
        """
        Classification the entry is structured under.

        Without a topic change a follow-up stays in the session's active
        category, whatever category the turn itself was tagged with.
        """
        turn_context = state.turn_context
        active = state.active_category
        if (
            turn_context is None
            or turn_context.previous_entry is None
            or classification.is_topic_change
            or active in (None, META)
            or active == classification.category_id
        ):
            return classification

        log.debug(
            "structuring_kept_active_category",
            session_id=state.session_id,
            turn_category=classification.category_id,
            active_category=active,
        )
        return classification.model_copy(update={"category_id": active})

    def _previous_entry(
        self, state: PipelineState, category_id: str
    ) -> Optional[KnowledgeEntry]:
        """Entry to merge into, or None when this turn starts a new one."""
        turn_context = state.turn_context
        if turn_context is None or turn_context.previous_entry is None:
            return None
        if state.classifier_output.result.is_topic_change:
            return None
        previous = turn_context.previous_entry
        if previous.category_id != category_id:
            return None
        return previous

    def _build_entry(
        self,
        state: PipelineState,
        classification: ClassifierResult,
        result: StructuringResult,
        previous: Optional[KnowledgeEntry],
    ) -> KnowledgeEntry:
        structured_data = dict(previous.structured_data) if previous else {}
        # Null or blank values never erase what earlier turns captured
        structured_data.update(
            {
                k: v
                for k, v in result.structured_data.items()
                if is_filled(v) or k not in structured_data
            }
        )

        tags = list(previous.tags) if previous else []
        tags.extend(t for t in result.tags if t not in tags)

        suggested_label = None
        topic_keywords: List[str] = []
        if classification.category_id == UNCATEGORIZED:
            suggested_label = (
                result.suggested_category_label
                or classification.suggested_category_label
                or (previous.suggested_category_label if previous else None)
            )
            topic_keywords = result.topic_keywords or (
                list(previous.topic_keywords) if previous else []
            )
            if suggested_label:
                structured_data["suggested_category_label"] = suggested_label
            if topic_keywords:
                structured_data["topic_keywords"] = topic_keywords

        fields = dict(
            category_id=classification.category_id,
            subcategory_id=classification.subcategory_id,
            title=result.title,
            content=result.content,
            structured_data=structured_data,
            tags=tags,
            session_id=state.session_id,
            raw_input=state.input.content,
            confidence=classification.confidence,
            suggested_category_label=suggested_label,
            topic_keywords=topic_keywords,
            updated_at=utc_now(),
        )

        if previous is not None:
            return previous.model_copy(update=fields)
        return KnowledgeEntry(domain_id=self.domain_config.name, **fields)
