"""Repository implementations."""

from src.persistence.repositories.knowledge_repo import KnowledgeRepository
from src.persistence.repositories.memory import (
    InMemoryKnowledgeRepository,
    InMemorySessionRepository,
)
from src.persistence.repositories.session_repo import SessionRepository

__all__ = [
    "SessionRepository",
    "KnowledgeRepository",
    "InMemorySessionRepository",
    "InMemoryKnowledgeRepository",
]
