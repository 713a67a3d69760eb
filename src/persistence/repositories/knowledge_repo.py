"""Knowledge entry repository with embedding similarity search."""

from typing import List, Optional

import aiosqlite
import numpy as np
import structlog

from src.domain.models.knowledge import KnowledgeEntry, KnowledgeSearchResult

log = structlog.get_logger(__name__)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute cosine similarity between two numpy arrays.

    Returns 0.0 when the dimensions differ.
    """
    if a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b) + 1e-8))


class KnowledgeRepository:
    """
    Repository for knowledge entries.

    Entries are stored as JSON with an optional float32 embedding blob.
    Similarity search is O(N) brute force over the domain's embedded entries.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def upsert(
        self, entry: KnowledgeEntry, embedding: Optional[List[float]] = None
    ) -> KnowledgeEntry:
        """Insert the entry, or replace the stored entry with the same id."""
        embedding_blob = (
            np.asarray(embedding, dtype=np.float32).tobytes() if embedding is not None else None
        )

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO knowledge_entries (
                    id, domain_id, category_id, session_id, status, entry,
                    embedding, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    domain_id = excluded.domain_id,
                    category_id = excluded.category_id,
                    session_id = excluded.session_id,
                    status = excluded.status,
                    entry = excluded.entry,
                    embedding = excluded.embedding,
                    updated_at = excluded.updated_at
                """,
                (
                    entry.id,
                    entry.domain_id,
                    entry.category_id,
                    entry.session_id,
                    entry.status,
                    entry.model_dump_json(),
                    embedding_blob,
                    entry.created_at.isoformat(),
                    entry.updated_at.isoformat(),
                ),
            )
            await db.commit()

        log.debug(
            "knowledge_entry_upserted",
            entry_id=entry.id,
            category_id=entry.category_id,
            has_embedding=embedding_blob is not None,
        )
        return entry

    async def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT entry FROM knowledge_entries WHERE id = ?", (entry_id,)
            )
            row = await cursor.fetchone()
        return KnowledgeEntry.model_validate_json(row["entry"]) if row else None

    async def get_by_session(self, session_id: str) -> List[KnowledgeEntry]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT entry FROM knowledge_entries WHERE session_id = ? ORDER BY created_at",
                (session_id,),
            )
            rows = await cursor.fetchall()
        return [KnowledgeEntry.model_validate_json(row["entry"]) for row in rows]

    async def get_by_category(
        self, domain_id: str, category_id: str
    ) -> List[KnowledgeEntry]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT entry FROM knowledge_entries "
                "WHERE domain_id = ? AND category_id = ? ORDER BY created_at",
                (domain_id, category_id),
            )
            rows = await cursor.fetchall()
        return [KnowledgeEntry.model_validate_json(row["entry"]) for row in rows]

    async def search_similar(
        self,
        domain_id: str,
        embedding: List[float],
        limit: int = 15,
        min_similarity: float = 0.5,
        exclude_session_id: Optional[str] = None,
    ) -> List[KnowledgeSearchResult]:
        """
        Find entries similar to the given embedding via cosine similarity.

        Args:
            domain_id: Only entries of this domain are compared
            embedding: Query embedding
            limit: Maximum results
            min_similarity: Entries below this score are dropped
            exclude_session_id: Leave out entries from this session

        Returns:
            Results sorted descending by similarity
        """
        query = np.asarray(embedding, dtype=np.float32)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT entry, session_id, embedding FROM knowledge_entries
                WHERE domain_id = ? AND embedding IS NOT NULL
                """,
                (domain_id,),
            )
            rows = await cursor.fetchall()

        results = []
        for row in rows:
            if exclude_session_id and row["session_id"] == exclude_session_id:
                continue

            stored = np.frombuffer(row["embedding"], dtype=np.float32)
            similarity = cosine_similarity(query, stored)
            if similarity < min_similarity:
                continue

            results.append(
                KnowledgeSearchResult(
                    entry=KnowledgeEntry.model_validate_json(row["entry"]),
                    similarity=max(-1.0, min(1.0, similarity)),
                )
            )

        results.sort(key=lambda r: r.similarity, reverse=True)

        log.debug(
            "knowledge_search_completed",
            domain_id=domain_id,
            candidates=len(rows),
            matches=len(results),
        )
        return results[:limit]
