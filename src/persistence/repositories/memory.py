"""In-memory repositories.

Same interface as the SQLite repositories, without durability. Used by the
CLI's ``--in-memory`` mode and by tests.
"""

from typing import Dict, List, Optional

import numpy as np

from src.core.exceptions import PersistenceError
from src.domain.models.knowledge import KnowledgeEntry, KnowledgeSearchResult, utc_now
from src.domain.models.session import Session, Turn
from src.persistence.repositories.knowledge_repo import cosine_similarity


class InMemorySessionRepository:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    async def create(self, session: Session) -> Session:
        if session.id in self._sessions:
            raise PersistenceError(f"Session already exists: {session.id}")
        self._sessions[session.id] = session.model_copy(deep=True)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def update(self, session: Session) -> Session:
        stored = self._sessions.get(session.id)
        if stored is None:
            raise PersistenceError(f"Cannot update missing session: {session.id}")
        updated = stored.model_copy(
            update={
                "status": session.status,
                "current_entry": session.current_entry,
                "classifier_result": session.classifier_result,
                "metadata": dict(session.metadata),
                "updated_at": utc_now(),
            }
        )
        self._sessions[session.id] = updated
        return updated.model_copy(deep=True)

    async def add_turn(self, session_id: str, turn: Turn) -> None:
        stored = self._sessions.get(session_id)
        if stored is None:
            raise PersistenceError(f"Cannot add turn to missing session: {session_id}")
        if any(t.turn_number == turn.turn_number for t in stored.turns):
            raise PersistenceError(
                f"Turn {turn.turn_number} already recorded for session {session_id}"
            )
        self._sessions[session_id] = stored.model_copy(
            update={"turns": [*stored.turns, turn]}
        )

    async def list(self, status: Optional[str] = None) -> List[Session]:
        sessions = [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if status is None or s.status == status
        ]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)


class InMemoryKnowledgeRepository:
    def __init__(self):
        self._entries: Dict[str, KnowledgeEntry] = {}
        self._embeddings: Dict[str, np.ndarray] = {}

    async def upsert(
        self, entry: KnowledgeEntry, embedding: Optional[List[float]] = None
    ) -> KnowledgeEntry:
        self._entries[entry.id] = entry
        if embedding is not None:
            self._embeddings[entry.id] = np.asarray(embedding, dtype=np.float32)
        else:
            self._embeddings.pop(entry.id, None)
        return entry

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        return self._entries.get(entry_id)

    async def get_by_session(self, session_id: str) -> List[KnowledgeEntry]:
        return [e for e in self._entries.values() if e.session_id == session_id]

    async def get_by_category(
        self, domain_id: str, category_id: str
    ) -> List[KnowledgeEntry]:
        return [
            e
            for e in self._entries.values()
            if e.domain_id == domain_id and e.category_id == category_id
        ]

    async def search_similar(
        self,
        domain_id: str,
        embedding: List[float],
        limit: int = 15,
        min_similarity: float = 0.5,
        exclude_session_id: Optional[str] = None,
    ) -> List[KnowledgeSearchResult]:
        query = np.asarray(embedding, dtype=np.float32)
        results = []

        for entry_id, stored in self._embeddings.items():
            entry = self._entries[entry_id]
            if entry.domain_id != domain_id:
                continue
            if exclude_session_id and entry.session_id == exclude_session_id:
                continue

            similarity = cosine_similarity(query, stored)
            if similarity >= min_similarity:
                results.append(
                    KnowledgeSearchResult(
                        entry=entry, similarity=max(-1.0, min(1.0, similarity))
                    )
                )

        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]
