"""
Pipeline orchestrator for turn processing.

TurnPipeline runs the classifier, then looks up the classified intent in
STAGE_PLAN to get the ordered list of stages for the rest of the turn.
Stages run sequentially with timing and error logging; each stage's partial
update is folded into the immutable PipelineState.
"""

import time
from typing import Dict, List, Optional

import structlog

from .base import TurnStage
from src.core.exceptions import AgentError
from src.domain.models.pipeline_state import PipelineState

log = structlog.get_logger(__name__)

# Stages that follow the classifier, keyed by intent.
STAGE_PLAN: Dict[str, List[str]] = {
    "greeting": ["persona"],
    "proactive_request": ["persona"],
    "content": ["context", "gap", "persona", "structuring"],
    "dont_know": ["context", "gap", "persona"],
}


class TurnPipeline:
    """
    Orchestrates execution of pipeline stages.

    Executes the classifier, then the planned stages for the classified
    intent, tracking timing and handling errors. No stage is retried here;
    retries happen inside the model invocation gateway.
    """

    def __init__(
        self,
        classifier: TurnStage,
        persona: TurnStage,
        context: Optional[TurnStage] = None,
        gap: Optional[TurnStage] = None,
        structuring: Optional[TurnStage] = None,
    ):
        """
        Initialize pipeline with its stages.

        Args:
            classifier: Always runs first
            persona: Runs on every turn
            context: Context retrieval (content and dont_know turns)
            gap: Gap reasoning (content and dont_know turns)
            structuring: Entry extraction (content turns)
        """
        self.classifier = classifier
        self.stages: Dict[str, Optional[TurnStage]] = {
            "context": context,
            "gap": gap,
            "persona": persona,
            "structuring": structuring,
        }
        self.logger = log

    def plan(self, intent: str) -> List[TurnStage]:
        """Ordered stages to run after the classifier for ``intent``."""
        if intent not in STAGE_PLAN:
            raise AgentError(f"No stage plan for intent: {intent}")

        planned = []
        for name in STAGE_PLAN[intent]:
            stage = self.stages[name]
            if stage is None:
                raise AgentError(f"Stage '{name}' is required for intent '{intent}'")
            planned.append(stage)
        return planned

    async def execute(self, state: PipelineState) -> PipelineState:
        """
        Execute one turn.

        Args:
            state: Initial state with session_id, input and turn context

        Returns:
            Final PipelineState holding every stage's output

        Raises:
            Exception: If any stage fails; nothing partial is returned
        """
        start_time = time.perf_counter()
        stage_timings: Dict[str, float] = {}

        self.logger.info("pipeline_started", session_id=state.session_id)

        state = await self._run_stage(self.classifier, state, stage_timings)
        planned = self.plan(state.intent)

        self.logger.debug(
            "pipeline_planned",
            session_id=state.session_id,
            intent=state.intent,
            stages=[stage.stage_name for stage in planned],
        )

        for stage in planned:
            state = await self._run_stage(stage, state, stage_timings)

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        self.logger.info(
            "pipeline_completed",
            session_id=state.session_id,
            intent=state.intent,
            latency_ms=latency_ms,
            stage_timings=stage_timings,
        )

        return state

    async def _run_stage(
        self,
        stage: TurnStage,
        state: PipelineState,
        stage_timings: Dict[str, float],
    ) -> PipelineState:
        stage_start = time.perf_counter()

        try:
            self.logger.debug(
                "stage_started",
                stage_name=stage.stage_name,
                session_id=state.session_id,
            )

            update = await stage.process(state)
            state = state.merge(update)

            stage_elapsed = (time.perf_counter() - stage_start) * 1000
            stage_timings[stage.stage_name] = stage_elapsed

            self.logger.debug(
                "stage_completed",
                stage_name=stage.stage_name,
                duration_ms=stage_elapsed,
            )

        except Exception as e:
            self.logger.error(
                "stage_failed",
                stage_name=stage.stage_name,
                session_id=state.session_id,
                error=str(e),
                exc_info=True,
            )
            raise

        return state
