"""
Text embedding services.

SentenceTransformerEmbeddingService computes embeddings with
sentence-transformers (all-MiniLM-L6-v2, 384-dim) for knowledge search.
MockEmbeddingService produces deterministic vectors for tests and offline
runs.

Also holds the helpers that decide which text gets embedded for an input
and for a stored entry, so both sides of a search are built the same way.
"""

import asyncio
import hashlib
from typing import Any, Dict, List, Optional

import numpy as np
import structlog

from src.domain.models.knowledge import META, UNCATEGORIZED, KnowledgeEntry, is_filled

logger = structlog.get_logger(__name__)

EMBEDDING_MODEL = "all-MiniLM-L6-v2"
MOCK_DIMENSIONS = 64


def build_input_embedding_text(user_input: str, category_id: Optional[str] = None) -> str:
    """Text embedded for a user turn: input prefixed with its category."""
    if category_id and category_id not in (UNCATEGORIZED, META):
        return f"{category_id}. {user_input}"
    return user_input


def build_entry_embedding_text(entry: KnowledgeEntry) -> str:
    """Text embedded for a stored entry."""
    parts: List[str] = []

    if entry.category_id and entry.category_id != UNCATEGORIZED:
        parts.append(entry.category_id)

    parts.append(entry.title)
    parts.append(entry.content)

    structured = [
        f"{key}: {value}" for key, value in entry.structured_data.items() if is_filled(value)
    ]
    if structured:
        parts.append(". ".join(structured))

    if entry.tags:
        parts.append(", ".join(entry.tags))

    return ". ".join(p for p in parts if p)


class SentenceTransformerEmbeddingService:
    """
    Text embedding via sentence-transformers.

    Lazy Loading:
        The model is loaded on first use, avoiding a startup penalty for
        sessions that never reach context retrieval.

    Cache:
        In-memory dict cache; encoding the same text twice is one model call.
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        self.model_name = model_name
        self._model: Optional[Any] = None  # SentenceTransformer (lazy)
        self._cache: Dict[str, List[float]] = {}

    @property
    def model(self) -> Any:
        """Lazy-load sentence-transformers model on first access."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("loading_embedding_model", model=self.model_name)
            self._model = SentenceTransformer(self.model_name)
            logger.info("embedding_model_loaded", model=self.model_name)
        return self._model

    async def embed(self, text: str) -> List[float]:
        """
        Encode text to a normalized embedding vector.

        Encoding runs in a worker thread so the event loop is not blocked.
        """
        if text in self._cache:
            logger.debug("embedding_cache_hit", text_length=len(text))
            return self._cache[text]

        vector = await asyncio.to_thread(
            self.model.encode, text, normalize_embeddings=True
        )
        embedding = np.asarray(vector, dtype=np.float32).tolist()
        self._cache[text] = embedding

        logger.debug(
            "embedding_computed",
            text_length=len(text),
            dimensions=len(embedding),
        )
        return embedding

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        cleared_count = len(self._cache)
        self._cache.clear()
        logger.debug("embedding_cache_cleared", cleared_count=cleared_count)


class MockEmbeddingService:
    """Deterministic embeddings seeded from a hash of the text.

    Identical texts get identical unit vectors; different texts get
    unrelated ones. Good enough to exercise storage and search end to end.
    """

    def __init__(self, dimensions: int = MOCK_DIMENSIONS):
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        vector = rng.standard_normal(self.dimensions)
        vector /= np.linalg.norm(vector)
        return vector.astype(np.float32).tolist()
