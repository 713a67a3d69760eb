"""Tests for the SQLite and in-memory knowledge repositories."""

import numpy as np
import pytest

from src.domain.models.knowledge import KnowledgeEntry
from src.persistence.repositories.knowledge_repo import cosine_similarity


def make_entry(title: str, session_id: str = "s-1", category_id: str = "history", domain_id: str = "village_test"):
    return KnowledgeEntry(
        category_id=category_id,
        title=title,
        content=f"About the {title.lower()}",
        session_id=session_id,
        domain_id=domain_id,
        structured_data={"period": "1732"},
    )


@pytest.fixture(params=["sqlite", "memory"])
def repo(request, knowledge_repo, memory_knowledge_repo):
    return knowledge_repo if request.param == "sqlite" else memory_knowledge_repo


class TestKnowledgeRepository:
    @pytest.mark.asyncio
    async def test_upsert_and_get(self, repo):
        entry = make_entry("Church")

        await repo.upsert(entry, [1.0, 0.0])
        stored = await repo.get(entry.id)

        assert stored.id == entry.id
        assert stored.structured_data == {"period": "1732"}
        assert stored.created_at == entry.created_at

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing(self, repo):
        entry = make_entry("Church")
        await repo.upsert(entry, [1.0, 0.0])

        await repo.upsert(entry.model_copy(update={"title": "Old church"}), [1.0, 0.0])

        assert (await repo.get(entry.id)).title == "Old church"
        assert len(await repo.get_by_session("s-1")) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        assert await repo.get("missing") is None

    @pytest.mark.asyncio
    async def test_get_by_session_and_category(self, repo):
        await repo.upsert(make_entry("Church"))
        await repo.upsert(make_entry("Pond", category_id="nature"))
        await repo.upsert(make_entry("Mill", session_id="s-2"))

        assert {e.title for e in await repo.get_by_session("s-1")} == {"Church", "Pond"}
        assert {e.title for e in await repo.get_by_category("village_test", "history")} == {
            "Church",
            "Mill",
        }
        assert await repo.get_by_category("elsewhere", "history") == []

    @pytest.mark.asyncio
    async def test_search_ranks_by_similarity(self, repo):
        await repo.upsert(make_entry("Church"), [1.0, 0.0])
        await repo.upsert(make_entry("Mill"), [0.6, 0.8])
        await repo.upsert(make_entry("Pond"), [0.0, 1.0])
        await repo.upsert(make_entry("Unembedded"))
        await repo.upsert(make_entry("Castle", domain_id="elsewhere"), [1.0, 0.0])

        results = await repo.search_similar("village_test", [1.0, 0.0], min_similarity=0.5)

        assert [r.entry.title for r in results] == ["Church", "Mill"]
        assert results[0].similarity == pytest.approx(1.0, abs=1e-4)
        assert results[1].similarity == pytest.approx(0.6, abs=1e-4)

    @pytest.mark.asyncio
    async def test_search_limit_and_exclusion(self, repo):
        await repo.upsert(make_entry("Church"), [1.0, 0.0])
        await repo.upsert(make_entry("Mill", session_id="s-2"), [0.9, 0.1])
        await repo.upsert(make_entry("Barn", session_id="s-3"), [0.8, 0.2])

        limited = await repo.search_similar("village_test", [1.0, 0.0], limit=2)
        excluded = await repo.search_similar("village_test", [1.0, 0.0], exclude_session_id="s-1")

        assert [r.entry.title for r in limited] == ["Church", "Mill"]
        assert [r.entry.title for r in excluded] == ["Mill", "Barn"]

    @pytest.mark.asyncio
    async def test_search_skips_mismatched_dimensions(self, repo):
        await repo.upsert(make_entry("Church"), [1.0, 0.0, 0.0])

        assert await repo.search_similar("village_test", [1.0, 0.0]) == []


def test_cosine_similarity():
    a = np.array([1.0, 0.0], dtype=np.float32)

    assert cosine_similarity(a, a) == pytest.approx(1.0, abs=1e-6)
    assert cosine_similarity(a, np.array([0.0, 1.0], dtype=np.float32)) == pytest.approx(0.0)
    assert cosine_similarity(a, np.array([-1.0, 0.0], dtype=np.float32)) == pytest.approx(-1.0, abs=1e-6)
    assert cosine_similarity(a, np.array([1.0, 0.0, 0.0], dtype=np.float32)) == 0.0
