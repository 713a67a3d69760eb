"""
Stage 4: Produce the user-facing reply in the persona's voice.

Runs on every turn. For content turns the reply weaves in the top-ranked
gaps; for greetings and proactive requests it answers directly.
"""

import structlog

from ..base import TurnStage
from src.domain.models.agent import PersonaOutput, PersonaResult
from src.domain.models.configuration import DomainConfig, PersonaConfig
from src.domain.models.pipeline_state import PipelineState
from src.llm.client import LLMClient
from src.llm.invoke import DEFAULT_MAX_RETRIES, LLMRequest, invoke_and_validate
from src.llm.prompts.persona import get_persona_system_prompt

log = structlog.get_logger(__name__)


class PersonaStage(TurnStage):
    """
    Generate the conversational response.

    Populates PipelineState.persona_output.
    """

    output_field = "persona_output"

    def __init__(
        self,
        persona_config: PersonaConfig,
        domain_config: DomainConfig,
        llm_client: LLMClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.persona_config = persona_config
        self.domain_config = domain_config
        self.llm_client = llm_client
        self.max_retries = max_retries

    async def process(self, state: PipelineState) -> dict:
        classifier = self.require_classification(state)
        gaps = state.gap_reasoning_output.gaps if state.gap_reasoning_output else []

        system_prompt = get_persona_system_prompt(
            self.persona_config,
            classifier.result.intent,
            gaps=gaps,
            domain=self.domain_config,
            turn_context=state.turn_context,
        )

        result = await invoke_and_validate(
            self.llm_client,
            LLMRequest(
                system_prompt=system_prompt,
                user_message=state.input.content,
                output_schema=PersonaResult.model_json_schema(),
            ),
            schema=PersonaResult,
            agent_name="Persona",
            max_retries=self.max_retries,
        )

        max_questions = self.persona_config.prompt_behavior.max_follow_up_questions
        questions = result.follow_up_questions[:max_questions]

        log.info(
            "persona_response_generated",
            session_id=state.session_id,
            intent=classifier.result.intent,
            response_length=len(result.response),
            question_count=len(questions),
        )

        return {
            self.output_field: PersonaOutput(
                response=result.response,
                follow_up_questions=questions,
            )
        }
