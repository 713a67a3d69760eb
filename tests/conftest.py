"""
Shared test fixtures.

Domain and persona configs are built in code so tests do not depend on the
YAML files under config/.
"""

import tempfile
from pathlib import Path

import pytest

from src.domain.models.agent import AgentInput
from src.domain.models.configuration import (
    Category,
    CompletenessConfig,
    DomainConfig,
    PersonaConfig,
    PromptBehavior,
)
from src.domain.models.pipeline_state import PipelineState
from src.persistence.database import init_database
from src.persistence.repositories.knowledge_repo import KnowledgeRepository
from src.persistence.repositories.memory import (
    InMemoryKnowledgeRepository,
    InMemorySessionRepository,
)
from src.persistence.repositories.session_repo import SessionRepository


@pytest.fixture
def domain_config():
    """Village domain: history needs {period, sources}."""
    return DomainConfig(
        name="village_test",
        version="1.0.0",
        description="Knowledge about a small village",
        categories=[
            Category(
                id="history",
                label="History",
                description="Historical events and periods",
                required_fields=["period", "sources"],
                optional_fields=["people_involved", "location"],
            ),
            Category(
                id="nature",
                label="Nature",
                description="Plants, animals and landscape",
                required_fields=["location"],
                optional_fields=["season"],
            ),
            Category(
                id="buildings",
                label="Buildings",
                description="Notable buildings",
                optional_fields=["architect", "year_built", "style", "condition", "owner"],
            ),
            Category(
                id="anecdotes",
                label="Anecdotes",
                description="Short stories without a fixed structure",
            ),
        ],
        completeness=CompletenessConfig(auto_complete_threshold=0.8, content_length_threshold=50),
    )


@pytest.fixture
def persona_config():
    return PersonaConfig(
        name="Test Chronicler",
        version="1.0.0",
        tonality="warm",
        formality="informal",
        language="en",
        prompt_behavior=PromptBehavior(max_follow_up_questions=2),
        system_prompt_template="You are a village chronicler.",
    )


@pytest.fixture
def make_state():
    """Factory for an initial PipelineState."""

    def _make(content: str = "The old church was built in 1732.", **kwargs):
        session_id = kwargs.pop("session_id", "test-session")
        return PipelineState(
            session_id=session_id,
            input=AgentInput(session_id=session_id, content=content),
            **kwargs,
        )

    return _make


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)
        yield db_path


@pytest.fixture
def session_repo(test_db):
    """Create session repository with test database."""
    return SessionRepository(str(test_db))


@pytest.fixture
def knowledge_repo(test_db):
    return KnowledgeRepository(str(test_db))


@pytest.fixture
def memory_session_repo():
    return InMemorySessionRepository()


@pytest.fixture
def memory_knowledge_repo():
    return InMemoryKnowledgeRepository()
