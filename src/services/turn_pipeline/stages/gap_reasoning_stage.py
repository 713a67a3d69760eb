"""
Stage 3: Identify missing information and propose follow-up questions.

Three modes, picked from the classification:
- configured category: gaps against the category's declared fields
- uncategorized: exploratory gaps with no field list
- dont_know: at most one question about a topic not yet asked
"""

import structlog

from ..base import TurnStage
from src.core.exceptions import AgentError
from src.domain.models.agent import GapReasoningOutput, GapReasoningResult
from src.domain.models.configuration import DomainConfig
from src.domain.models.knowledge import UNCATEGORIZED
from src.domain.models.pipeline_state import PipelineState
from src.llm.client import LLMClient
from src.llm.invoke import DEFAULT_MAX_RETRIES, LLMRequest, invoke_and_validate
from src.llm.prompts.gap_reasoning import (
    MAX_FOLLOW_UP_QUESTIONS,
    get_category_gap_prompt,
    get_dont_know_gap_prompt,
    get_exploratory_gap_prompt,
)

log = structlog.get_logger(__name__)

DONT_KNOW_MAX_QUESTIONS = 1
EMPTY_CONTEXT_SUMMARY = "No related knowledge found."


class GapReasoningStage(TurnStage):
    """
    Analyze what is still missing for the classified topic.

    Populates PipelineState.gap_reasoning_output.
    """

    output_field = "gap_reasoning_output"

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
        classifier = self.require_classification(state)
        classification = classifier.result

        if classification.intent == "greeting":
            return {self.output_field: GapReasoningOutput()}

        context_summary = EMPTY_CONTEXT_SUMMARY
        has_retrieved_context = False
        if state.context_output is not None:
            context_summary = state.context_output.context_summary
            has_retrieved_context = bool(state.context_output.relevant_context)

        if classification.intent == "dont_know":
            mode = "dont_know"
            max_questions = DONT_KNOW_MAX_QUESTIONS
            system_prompt = get_dont_know_gap_prompt(
                self.domain_config,
                classification.category_id,
                context_summary,
                state.turn_context,
            )
        elif classification.category_id == UNCATEGORIZED:
            mode = "exploratory"
            max_questions = MAX_FOLLOW_UP_QUESTIONS
            system_prompt = get_exploratory_gap_prompt(
                classification,
                context_summary,
                has_retrieved_context,
                state.turn_context,
            )
        else:
            category = self.domain_config.get_category(classification.category_id)
            if category is None:
                raise AgentError(f"Category not found: {classification.category_id}")
            mode = "category"
            max_questions = MAX_FOLLOW_UP_QUESTIONS
            system_prompt = get_category_gap_prompt(
                category,
                context_summary,
                has_retrieved_context,
                state.turn_context,
            )

        result = await invoke_and_validate(
            self.llm_client,
            LLMRequest(
                system_prompt=system_prompt,
                user_message=state.input.content,
                output_schema=GapReasoningResult.model_json_schema(),
            ),
            schema=GapReasoningResult,
            agent_name="Gap reasoning",
            max_retries=self.max_retries,
        )

        questions = result.follow_up_questions[:max_questions]

        log.info(
            "gap_reasoning_completed",
            session_id=state.session_id,
            mode=mode,
            gap_count=len(result.gaps),
            question_count=len(questions),
        )

        return {
            self.output_field: GapReasoningOutput(
                gaps=result.gaps,
                follow_up_questions=questions,
                reasoning=result.reasoning,
            )
        }
