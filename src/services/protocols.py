"""
Service protocol definitions (interfaces).

Defines the collaborators the core consumes, using typing.Protocol for
structural subtyping. SQLite and in-memory repositories, and the
sentence-transformers and mock embedding services, all satisfy these.
"""

from typing import List, Optional, Protocol

from src.domain.models.knowledge import KnowledgeEntry, KnowledgeSearchResult
from src.domain.models.session import Session, Turn


class EmbeddingClient(Protocol):
    """Computes a vector embedding for a piece of text."""

    async def embed(self, text: str) -> List[float]:
        """
        Args:
            text: Input text

        Returns:
            Embedding vector
        """
        ...


class KnowledgeRepository(Protocol):
    """Storage and nearest-neighbor search for knowledge entries."""

    async def upsert(
        self, entry: KnowledgeEntry, embedding: Optional[List[float]] = None
    ) -> KnowledgeEntry:
        """Insert the entry, or replace the stored entry with the same id."""
        ...

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        ...

    async def get_by_session(self, session_id: str) -> List[KnowledgeEntry]:
        ...

    async def get_by_category(
        self, domain_id: str, category_id: str
    ) -> List[KnowledgeEntry]:
        ...

    async def search_similar(
        self,
        domain_id: str,
        embedding: List[float],
        limit: int = 15,
        min_similarity: float = 0.5,
        exclude_session_id: Optional[str] = None,
    ) -> List[KnowledgeSearchResult]:
        """
        Nearest entries in the domain, most similar first.

        Entries without an embedding and entries below min_similarity are
        left out.
        """
        ...


class SessionRepository(Protocol):
    """Durable storage for sessions and their turns."""

    async def create(self, session: Session) -> Session:
        ...

    async def get(self, session_id: str) -> Optional[Session]:
        """Session with its turns in turn order, or None."""
        ...

    async def update(self, session: Session) -> Session:
        """Persist status, current entry, classifier result and metadata."""
        ...

    async def add_turn(self, session_id: str, turn: Turn) -> None:
        ...

    async def list(self, status: Optional[str] = None) -> List[Session]:
        ...
