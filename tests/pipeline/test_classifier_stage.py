"""Tests for ClassifierStage intent/category normalization."""

import pytest

from src.core.exceptions import AgentError
from src.domain.models.knowledge import META, UNCATEGORIZED
from src.domain.models.turn import TurnContext
from src.services.turn_pipeline.stages.classifier_stage import ClassifierStage
from tests.fakes import ScriptedLLMClient, classification

FOLLOW_UP = TurnContext(
    turn_number=2,
    is_follow_up=True,
    asked_questions=["When was the church built?", "Who built it?"],
    last_question="Who built it?",
)


async def classify(domain_config, state, reply):
    llm = ScriptedLLMClient([reply])
    stage = ClassifierStage(domain_config, llm)
    update = await stage.process(state)
    return update["classifier_output"].result, llm


class TestClassifierStageContract:
    @pytest.mark.asyncio
    async def test_returns_only_its_output_field(self, domain_config, make_state):
        stage = ClassifierStage(domain_config, ScriptedLLMClient([classification()]))

        update = await stage.process(make_state())

        assert list(update) == ["classifier_output"]
        output = update["classifier_output"]
        assert output.agent_role == "classifier"
        assert output.result.category_id == "history"
        assert output.confidence == 0.9

    @pytest.mark.asyncio
    async def test_prompt_lists_categories(self, domain_config, make_state):
        _, llm = await classify(domain_config, make_state(), classification())

        system = llm.calls[0]["system"]
        assert "- history: History" in system
        assert "- anecdotes: Anecdotes" in system
        assert "[SESSION_CONTEXT]" not in system

    @pytest.mark.asyncio
    async def test_follow_up_prompt_carries_active_topic(self, domain_config, make_state):
        state = make_state(active_category="history", turn_context=FOLLOW_UP)

        _, llm = await classify(domain_config, state, classification())

        system = llm.calls[0]["system"]
        assert 'conversation about the topic "history"' in system
        assert "Who built it?" in system

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, domain_config, make_state):
        with pytest.raises(AgentError, match="unknown category_id: fishing"):
            await classify(domain_config, make_state(), classification(category_id="fishing"))


class TestIntentNormalization:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("intent", ["greeting", "proactive_request"])
    async def test_meta_intents_force_meta_category(self, domain_config, make_state, intent):
        state = make_state("Hello!", active_category="history", turn_context=FOLLOW_UP)

        result, _ = await classify(
            domain_config,
            state,
            classification(category_id="history", intent=intent, is_topic_change=True),
        )

        assert result.category_id == META
        assert result.is_meta
        assert result.is_topic_change is False

    @pytest.mark.asyncio
    async def test_dont_know_keeps_active_category(self, domain_config, make_state):
        state = make_state("No idea", active_category="history", turn_context=FOLLOW_UP)

        result, _ = await classify(
            domain_config,
            state,
            classification(category_id="nature", intent="dont_know", is_topic_change=True),
        )

        assert result.intent == "dont_know"
        assert result.category_id == "history"
        assert result.is_topic_change is False

    @pytest.mark.asyncio
    async def test_meta_category_for_content_becomes_uncategorized(
        self, domain_config, make_state
    ):
        result, _ = await classify(
            domain_config, make_state(), classification(category_id=META, intent="content")
        )

        assert result.category_id == UNCATEGORIZED

    @pytest.mark.asyncio
    async def test_topic_change_cleared_on_first_turn(self, domain_config, make_state):
        result, _ = await classify(
            domain_config, make_state(), classification(is_topic_change=True)
        )

        assert result.is_topic_change is False

    @pytest.mark.asyncio
    async def test_topic_change_kept_on_follow_up(self, domain_config, make_state):
        state = make_state(active_category="history", turn_context=FOLLOW_UP)

        result, _ = await classify(
            domain_config, state, classification(category_id="nature", is_topic_change=True)
        )

        assert result.category_id == "nature"
        assert result.is_topic_change is True

    @pytest.mark.asyncio
    async def test_summary_dropped_for_configured_category(self, domain_config, make_state):
        result, _ = await classify(
            domain_config,
            make_state(),
            classification(summary="A church", suggested_category_label="Churches"),
        )

        assert result.summary is None
        assert result.suggested_category_label is None

    @pytest.mark.asyncio
    async def test_summary_kept_for_uncategorized(self, domain_config, make_state):
        result, _ = await classify(
            domain_config,
            make_state("The village football club won the cup in 1954."),
            classification(
                category_id=UNCATEGORIZED,
                confidence=0.4,
                summary="Football club history",
                suggested_category_label="Sports",
            ),
        )

        assert result.is_uncategorized
        assert result.summary == "Football club history"
        assert result.suggested_category_label == "Sports"
