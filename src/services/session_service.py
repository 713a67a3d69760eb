"""
Session orchestration service.

Main entry point for knowledge-collection conversations. Wraps the
TurnPipeline across turns: builds conversational memory (TurnContext) from
the session's history, runs the pipeline, scores completeness, folds the
turn's outputs into the session aggregate and persists the result.

Turns of one session must be serialized by the caller.
"""

from typing import Any, Dict, List, Optional
from uuid import uuid4

import structlog

from src.core.exceptions import (
    SessionNotFoundError,
    SessionStateError,
    SessionTurnLimitError,
)
from src.core.logging import bind_context, clear_context
from src.domain.models.agent import AgentInput, PersonaResult
from src.domain.models.configuration import DomainConfig, PersonaConfig
from src.domain.models.knowledge import KnowledgeEntry
from src.domain.models.pipeline_state import PipelineState
from src.domain.models.session import Session, SessionInit, SessionResponse, Turn
from src.domain.models.turn import TurnContext, TurnSummary
from src.llm.client import LLMClient
from src.llm.invoke import DEFAULT_MAX_RETRIES, LLMRequest, invoke_and_validate
from src.llm.prompts.persona import GREETING_USER_MESSAGE, get_greeting_system_prompt
from src.services.completeness import calculate_completeness
from src.services.embedding_service import build_entry_embedding_text
from src.services.protocols import EmbeddingClient, KnowledgeRepository, SessionRepository
from src.services.turn_pipeline import TurnPipeline
from src.services.turn_pipeline.stages import (
    ClassifierStage,
    ContextRetrievalStage,
    GapReasoningStage,
    PersonaStage,
    StructuringStage,
)

log = structlog.get_logger(__name__)


def build_turn_summary(turn: Turn) -> TurnSummary:
    """Reduce a recorded turn to what later prompts need."""
    result = turn.pipeline_result
    gaps = (
        [g.field for g in result.gap_reasoning_output.gaps]
        if result.gap_reasoning_output
        else []
    )
    filled_fields = (
        list(result.structuring_output.entry.structured_data.keys())
        if result.structuring_output
        else []
    )
    return TurnSummary(
        turn_number=turn.turn_number,
        user_input=turn.user_input,
        gaps=gaps,
        filled_fields=filled_fields,
    )


def collect_asked_questions(turns: List[Turn]) -> List[str]:
    """Every follow-up question surfaced to the user, oldest first."""
    questions: List[str] = []
    for turn in turns:
        persona_output = turn.pipeline_result.persona_output
        if persona_output is None:
            continue
        questions.extend(q for q in persona_output.follow_up_questions if q not in questions)
    return questions


def last_asked_question(turns: List[Turn]) -> Optional[str]:
    """Final follow-up question of the most recent turn, if it asked any."""
    if not turns:
        return None
    persona_output = turns[-1].pipeline_result.persona_output
    if persona_output is None or not persona_output.follow_up_questions:
        return None
    return persona_output.follow_up_questions[-1]


def collect_skipped_fields(
    turns: List[Turn], current_entry: Optional[KnowledgeEntry]
) -> List[str]:
    """
    Fields the user deflected with "I don't know".

    For each dont_know turn, the gap fields of the turn before it count as
    skipped unless the current entry has since filled them.
    """
    filled = set(current_entry.filled_fields()) if current_entry else set()
    skipped: List[str] = []

    for previous, turn in zip(turns, turns[1:]):
        if turn.pipeline_result.intent != "dont_know":
            continue
        gap_output = previous.pipeline_result.gap_reasoning_output
        if gap_output is None:
            continue
        for gap in gap_output.gaps:
            if gap.field not in filled and gap.field not in skipped:
                skipped.append(gap.field)

    return skipped


class SessionService:
    """Knowledge-collection session lifecycle.

    Operations: init_session, start_session, continue_session, end_session,
    get_session. Storage is delegated to the injected repositories.
    """

    def __init__(
        self,
        domain_config: DomainConfig,
        persona_config: PersonaConfig,
        llm_client: LLMClient,
        session_repo: SessionRepository,
        knowledge_repo: Optional[KnowledgeRepository] = None,
        embedding_client: Optional[EmbeddingClient] = None,
        validation_retries: int = DEFAULT_MAX_RETRIES,
        search_limit: int = 15,
        min_similarity: float = 0.5,
        pipeline: Optional[TurnPipeline] = None,
    ):
        """
        Initialize session service with pipeline.

        Args:
            domain_config: Categories and completeness thresholds
            persona_config: Voice of the conversational replies
            llm_client: Model client shared by every stage
            session_repo: Session storage
            knowledge_repo: Entry storage and search (None disables both)
            embedding_client: Embeddings for search and storage (None disables)
            validation_retries: Gateway correction retries per model call
            search_limit: Maximum context matches per turn
            min_similarity: Context matches below this score are dropped
            pipeline: Prebuilt pipeline (built from the above if None)
        """
        self.domain_config = domain_config
        self.persona_config = persona_config
        self.llm_client = llm_client
        self.session_repo = session_repo
        self.knowledge_repo = knowledge_repo
        self.embedding_client = embedding_client
        self.validation_retries = validation_retries

        self.pipeline = pipeline or self._build_pipeline(search_limit, min_similarity)

        log.info(
            "session_service_initialized",
            domain=domain_config.name,
            persona=persona_config.name,
            context_retrieval=embedding_client is not None and knowledge_repo is not None,
        )

    def _build_pipeline(self, search_limit: int, min_similarity: float) -> TurnPipeline:
        retries = self.validation_retries
        return TurnPipeline(
            classifier=ClassifierStage(self.domain_config, self.llm_client, retries),
            context=ContextRetrievalStage(
                self.domain_config.name,
                embedding_client=self.embedding_client,
                knowledge_repo=self.knowledge_repo,
                limit=search_limit,
                min_similarity=min_similarity,
            ),
            gap=GapReasoningStage(self.domain_config, self.llm_client, retries),
            persona=PersonaStage(
                self.persona_config, self.domain_config, self.llm_client, retries
            ),
            structuring=StructuringStage(self.domain_config, self.llm_client, retries),
        )

    @property
    def threshold(self) -> float:
        return self.domain_config.completeness.auto_complete_threshold

    # ==================== LIFECYCLE ====================

    async def init_session(self, metadata: Optional[Dict[str, Any]] = None) -> SessionInit:
        """
        Create an empty session and generate an opening greeting.

        No pipeline run and no turn recorded.
        """
        session = await self._create_session(metadata)
        bind_context(session_id=session.id)
        try:
            greeting = await self.generate_greeting()
            log.info("session_initialized", session_id=session.id)
            return SessionInit(session_id=session.id, greeting=greeting)
        finally:
            clear_context()

    async def start_session(
        self, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> SessionResponse:
        """Create a session and immediately process its first turn."""
        session = await self._create_session(metadata)
        bind_context(session_id=session.id)
        try:
            log.info("session_started", session_id=session.id)
            return await self._process_turn(session, content)
        finally:
            clear_context()

    async def continue_session(self, session_id: str, content: str) -> SessionResponse:
        """
        Process the next turn of an active session.

        Raises:
            SessionNotFoundError: Unknown session id
            SessionStateError: Session is complete or abandoned
            SessionTurnLimitError: Domain's max_turns already used
        """
        session = await self.get_session(session_id)
        if session.status != "active":
            raise SessionStateError(session_id, session.status)

        max_turns = self.domain_config.completeness.max_turns
        if max_turns is not None and session.turn_count >= max_turns:
            raise SessionTurnLimitError(session_id, max_turns)

        bind_context(session_id=session_id)
        try:
            return await self._process_turn(session, content)
        finally:
            clear_context()

    async def end_session(self, session_id: str) -> Session:
        """Close a session: complete if it captured an entry, else abandoned."""
        session = await self.get_session(session_id)
        status = "complete" if session.current_entry is not None else "abandoned"

        updated = await self.session_repo.update(session.model_copy(update={"status": status}))

        log.info(
            "session_ended",
            session_id=session_id,
            status=status,
            turn_count=session.turn_count,
        )
        return updated

    async def get_session(self, session_id: str) -> Session:
        session = await self.session_repo.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def generate_greeting(self) -> str:
        """Opening line in the persona's voice."""
        result = await invoke_and_validate(
            self.llm_client,
            LLMRequest(
                system_prompt=get_greeting_system_prompt(
                    self.persona_config, self.domain_config
                ),
                user_message=GREETING_USER_MESSAGE,
                output_schema=PersonaResult.model_json_schema(),
            ),
            schema=PersonaResult,
            agent_name="Greeting",
            max_retries=self.validation_retries,
        )
        log.debug("greeting_generated", length=len(result.response))
        return result.response

    # ==================== TURN PROCESSING ====================

    def build_turn_context(self, session: Session) -> TurnContext:
        """Conversational memory for the session's next turn."""
        turn_number = session.turn_count + 1
        return TurnContext(
            turn_number=turn_number,
            is_follow_up=turn_number > 1,
            previous_turns=[build_turn_summary(t) for t in session.turns],
            previous_entry=session.current_entry,
            asked_questions=collect_asked_questions(session.turns),
            last_question=last_asked_question(session.turns),
            skipped_fields=collect_skipped_fields(session.turns, session.current_entry),
        )

    async def _create_session(self, metadata: Optional[Dict[str, Any]]) -> Session:
        session = Session(
            id=str(uuid4()),
            domain_config_name=self.domain_config.name,
            persona_config_name=self.persona_config.name,
            metadata=metadata or {},
        )
        return await self.session_repo.create(session)

    async def _process_turn(self, session: Session, content: str) -> SessionResponse:
        turn_context = self.build_turn_context(session)
        turn_number = turn_context.turn_number

        log.info(
            "processing_turn",
            turn_number=turn_number,
            input_length=len(content),
            skipped_fields=len(turn_context.skipped_fields),
        )

        initial = PipelineState(
            session_id=session.id,
            input=AgentInput(
                session_id=session.id, content=content, metadata={"source": "session"}
            ),
            active_category=session.active_category,
            turn_context=turn_context,
        )
        result = await self.pipeline.execute(initial)

        classification = result.classifier_output.result
        new_entry = result.structuring_output.entry if result.structuring_output else None

        scored_entry = new_entry or session.current_entry
        score = (
            calculate_completeness(scored_entry, self.domain_config) if scored_entry else 0.0
        )

        turn = Turn(
            turn_number=turn_number,
            user_input=content,
            pipeline_result=result,
            completeness_score=score,
        )
        await self.session_repo.add_turn(session.id, turn)

        folded = self._fold_turn(session, result)
        if (
            self.domain_config.completeness.auto_close
            and folded.current_entry is not None
            and score >= self.threshold
        ):
            folded = folded.model_copy(update={"status": "complete"})
            log.info("session_auto_completed", completeness_score=score)
        session = await self.session_repo.update(folded)

        if new_entry is not None:
            await self._persist_entry(new_entry)

        structuring_complete = (
            result.structuring_output.is_complete if result.structuring_output else False
        )
        is_complete = structuring_complete or score >= self.threshold

        log.info(
            "turn_processed",
            turn_number=turn_number,
            intent=classification.intent,
            category_id=classification.category_id,
            is_topic_change=classification.is_topic_change,
            completeness_score=score,
            is_complete=is_complete,
        )

        persona_output = result.persona_output
        return SessionResponse(
            session_id=session.id,
            turn_number=turn_number,
            intent=classification.intent,
            category_id=session.active_category,
            is_topic_change=classification.is_topic_change,
            entry=new_entry,
            persona_response=persona_output.response if persona_output else "",
            follow_up_questions=persona_output.follow_up_questions if persona_output else [],
            completeness_score=score,
            is_complete=is_complete,
            status=session.status,
        )

    def _fold_turn(self, session: Session, result: PipelineState) -> Session:
        """
        Session aggregate after a turn.

        Only content turns touch the current entry and classification. A
        topic change replaces the classification; otherwise the first one
        sticks.
        """
        classification = result.classifier_output.result
        if classification.intent != "content":
            return session

        update: Dict[str, Any] = {}
        if result.structuring_output is not None:
            update["current_entry"] = result.structuring_output.entry

        if session.classifier_result is None or classification.is_topic_change:
            update["classifier_result"] = classification
            if session.classifier_result is not None:
                log.info(
                    "topic_changed",
                    previous_category=session.classifier_result.category_id,
                    category_id=classification.category_id,
                )

        return session.model_copy(update=update) if update else session

    async def _persist_entry(self, entry: KnowledgeEntry) -> None:
        if self.knowledge_repo is None:
            return

        embedding = None
        if self.embedding_client is not None:
            try:
                embedding = await self.embedding_client.embed(build_entry_embedding_text(entry))
            except Exception as e:
                log.warning(
                    "entry_embedding_failed",
                    entry_id=entry.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        await self.knowledge_repo.upsert(entry.model_copy(update={"status": "draft"}), embedding)
