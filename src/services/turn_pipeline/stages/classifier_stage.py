"""
Stage 1: Detect intent and classify the input into a category.

Always runs first. Its output decides which stages run after it.
"""

from typing import Optional

import structlog

from ..base import TurnStage
from src.core.exceptions import AgentError, ConfigurationError
from src.domain.models.agent import ClassifierOutput, ClassifierResult
from src.domain.models.configuration import DomainConfig
from src.domain.models.knowledge import META, UNCATEGORIZED
from src.domain.models.pipeline_state import PipelineState
from src.llm.client import LLMClient
from src.llm.invoke import DEFAULT_MAX_RETRIES, LLMRequest, invoke_and_validate
from src.llm.prompts.classifier import get_classifier_system_prompt

log = structlog.get_logger(__name__)

META_INTENTS = ("greeting", "proactive_request")


class ClassifierStage(TurnStage):
    """
    Determine intent, then category.

    Populates PipelineState.classifier_output.
    """

    output_field = "classifier_output"

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
        if not self.domain_config.categories:
            raise ConfigurationError("No categories configured in domain config")

        turn_context = state.turn_context
        is_follow_up = bool(turn_context and turn_context.is_follow_up)
        active_category = state.active_category if is_follow_up else None
        last_question = turn_context.last_question if turn_context else None

        system_prompt = get_classifier_system_prompt(
            self.domain_config,
            active_category=active_category,
            last_question=last_question,
        )

        raw = await invoke_and_validate(
            self.llm_client,
            LLMRequest(
                system_prompt=system_prompt,
                user_message=state.input.content,
                output_schema=ClassifierResult.model_json_schema(),
            ),
            schema=ClassifierResult,
            agent_name="Classifier",
            max_retries=self.max_retries,
        )

        result = self._normalize(raw, active_category, is_follow_up)
        self._check_category(result.category_id)

        log.info(
            "classification_completed",
            session_id=state.session_id,
            category_id=result.category_id,
            confidence=result.confidence,
            intent=result.intent,
            is_topic_change=result.is_topic_change,
        )

        return {
            self.output_field: ClassifierOutput(
                result=result,
                confidence=result.confidence,
                reasoning=result.reasoning,
            )
        }

    def _normalize(
        self,
        result: ClassifierResult,
        active_category: Optional[str],
        is_follow_up: bool,
    ) -> ClassifierResult:
        """Enforce the intent/category invariants the model may have missed."""
        update = {}

        if result.intent in META_INTENTS:
            update.update(category_id=META, subcategory_id=None, is_topic_change=False)
        elif result.intent == "dont_know":
            # "I don't know" is an answer within the current topic
            update["is_topic_change"] = False
            if active_category:
                update["category_id"] = active_category
        elif result.category_id == META:
            log.warning(
                "classifier_meta_category_for_content",
                reasoning=result.reasoning,
            )
            update["category_id"] = UNCATEGORIZED

        if not is_follow_up:
            update["is_topic_change"] = False

        category_id = update.get("category_id", result.category_id)
        if category_id != UNCATEGORIZED:
            update.update(summary=None, suggested_category_label=None)

        return result.model_copy(update=update) if update else result

    def _check_category(self, category_id: str) -> None:
        valid_ids = self.domain_config.category_ids
        if category_id in (UNCATEGORIZED, META) or category_id in valid_ids:
            return
        raise AgentError(
            f"Classifier returned unknown category_id: {category_id}. "
            f"Valid IDs: {', '.join(valid_ids)}, {UNCATEGORIZED}, {META}"
        )
