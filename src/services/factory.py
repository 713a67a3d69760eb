"""
Service construction from settings.

Every collaborator is created here, once, and injected. Nothing below the
factory reads the global settings.
"""

from typing import Optional

import structlog

from src.core.config import Settings, settings
from src.core.domain_loader import load_domain
from src.core.persona_loader import load_persona
from src.llm.client import LLMClient, get_llm_client
from src.persistence.database import init_database
from src.persistence.repositories import (
    InMemoryKnowledgeRepository,
    InMemorySessionRepository,
    KnowledgeRepository,
    SessionRepository,
)
from src.services.embedding_service import (
    MockEmbeddingService,
    SentenceTransformerEmbeddingService,
)
from src.services.protocols import EmbeddingClient
from src.services.session_service import SessionService

log = structlog.get_logger(__name__)


def get_embedding_client(config: Optional[Settings] = None) -> Optional[EmbeddingClient]:
    """Embedding client described by settings, or None when disabled."""
    config = config or settings
    if not config.embedding_enabled:
        return None
    if config.embedding_provider == "mock":
        return MockEmbeddingService()
    return SentenceTransformerEmbeddingService()


async def build_session_service(
    config: Optional[Settings] = None,
    domain: Optional[str] = None,
    persona: Optional[str] = None,
    in_memory: bool = False,
    llm_client: Optional[LLMClient] = None,
) -> SessionService:
    """
    Build a SessionService with SQLite (or in-memory) storage.

    Args:
        config: Settings (defaults to the module-level settings)
        domain: Domain config name (defaults to settings.default_domain)
        persona: Persona config name (defaults to settings.default_persona)
        in_memory: Use in-memory repositories instead of SQLite
        llm_client: Override the client built from settings
    """
    config = config or settings

    domain_config = load_domain(domain or config.default_domain, config.config_dir)
    persona_config = load_persona(persona or config.default_persona, config.config_dir)

    if in_memory:
        session_repo = InMemorySessionRepository()
        knowledge_repo = InMemoryKnowledgeRepository()
    else:
        db_path = await init_database(config.database_path)
        session_repo = SessionRepository(str(db_path))
        knowledge_repo = KnowledgeRepository(str(db_path))

    service = SessionService(
        domain_config=domain_config,
        persona_config=persona_config,
        llm_client=llm_client or get_llm_client(config),
        session_repo=session_repo,
        knowledge_repo=knowledge_repo,
        embedding_client=get_embedding_client(config),
        validation_retries=config.llm_validation_retries,
        search_limit=config.context_search_limit,
        min_similarity=config.context_min_similarity,
    )

    log.info(
        "session_service_built",
        provider=config.llm_provider,
        domain=domain_config.name,
        persona=persona_config.name,
        storage="memory" if in_memory else "sqlite",
    )
    return service
