"""
Stage 2: Retrieve related knowledge.

Embeds the input and searches existing entries in the domain. Retrieval is
an enhancement: any embedding or search failure is logged and the turn
continues with no context.
"""

from typing import List, Optional

import structlog

from ..base import TurnStage
from src.domain.models.agent import ContextMatch, ContextOutput
from src.domain.models.knowledge import UNCATEGORIZED, KnowledgeSearchResult
from src.domain.models.pipeline_state import PipelineState
from src.services.embedding_service import build_input_embedding_text
from src.services.protocols import EmbeddingClient, KnowledgeRepository

log = structlog.get_logger(__name__)

NOT_CONFIGURED_SUMMARY = "No existing context available (vector search not configured)."
NO_RESULTS_SUMMARY = "No related knowledge found."
SAME_SESSION_HEADER = "[SAME_SESSION] Knowledge shared by this user earlier in this conversation:"
OTHER_SESSION_HEADER = "[OTHER_SESSION] Knowledge from other sources (NOT from this user):"


def build_context_summary(matches: List[ContextMatch]) -> str:
    """Human-readable summary grouped by same/other session."""
    if not matches:
        return NO_RESULTS_SUMMARY

    same_session: List[str] = []
    other_session: List[str] = []

    for match in matches:
        category = f"[{match.category_id}] " if match.category_id != UNCATEGORIZED else ""
        line = f"- {category}{match.title} (relevance: {match.similarity:.2f}): {match.content}"
        (same_session if match.same_session else other_session).append(line)

    sections = []
    if same_session:
        sections.append(SAME_SESSION_HEADER + "\n" + "\n".join(same_session))
    if other_session:
        sections.append(OTHER_SESSION_HEADER + "\n" + "\n".join(other_session))
    return "\n\n".join(sections)


class ContextRetrievalStage(TurnStage):
    """
    Find existing knowledge related to the input.

    Populates PipelineState.context_output.
    """

    output_field = "context_output"

    def __init__(
        self,
        domain_id: str,
        embedding_client: Optional[EmbeddingClient] = None,
        knowledge_repo: Optional[KnowledgeRepository] = None,
        limit: int = 15,
        min_similarity: float = 0.5,
    ):
        self.domain_id = domain_id
        self.embedding_client = embedding_client
        self.knowledge_repo = knowledge_repo
        self.limit = limit
        self.min_similarity = min_similarity

    async def process(self, state: PipelineState) -> dict:
        if self.embedding_client is None or self.knowledge_repo is None:
            log.info("context_retrieval_not_configured", session_id=state.session_id)
            return {
                self.output_field: ContextOutput(context_summary=NOT_CONFIGURED_SUMMARY)
            }

        category_id = (
            state.classifier_output.result.category_id if state.classifier_output else None
        )
        results: List[KnowledgeSearchResult] = []

        try:
            text = build_input_embedding_text(state.input.content, category_id)
            embedding = await self.embedding_client.embed(text)
            results = await self.knowledge_repo.search_similar(
                domain_id=self.domain_id,
                embedding=embedding,
                limit=self.limit,
                min_similarity=self.min_similarity,
            )
        except Exception as e:
            log.warning(
                "context_retrieval_failed",
                session_id=state.session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            results = []

        matches = [
            ContextMatch(
                entry_id=r.entry.id,
                category_id=r.entry.category_id,
                title=r.entry.title,
                content=r.entry.content,
                similarity=r.similarity,
                session_id=r.entry.session_id,
                same_session=r.entry.session_id == state.session_id,
            )
            for r in results
        ]

        log.info(
            "context_retrieval_completed",
            session_id=state.session_id,
            results_found=len(matches),
            same_session=sum(1 for m in matches if m.same_session),
        )

        return {
            self.output_field: ContextOutput(
                relevant_context=matches,
                context_summary=build_context_summary(matches),
            )
        }
