"""Tests for GapReasoningStage modes and question caps."""

import pytest

from src.core.exceptions import AgentError, AgentPreconditionError
from src.domain.models.agent import ContextOutput
from src.domain.models.knowledge import META, UNCATEGORIZED
from src.domain.models.turn import TurnContext
from src.llm.prompts.gap_reasoning import MAX_FOLLOW_UP_QUESTIONS
from src.services.turn_pipeline.stages.gap_reasoning_stage import GapReasoningStage
from tests.fakes import ScriptedLLMClient, classifier_output, gaps


async def run_gap(domain_config, state, reply):
    llm = ScriptedLLMClient([reply])
    update = await GapReasoningStage(domain_config, llm).process(state)
    return update["gap_reasoning_output"], llm


class TestGapReasoningStage:
    @pytest.mark.asyncio
    async def test_requires_classification(self, domain_config, make_state):
        stage = GapReasoningStage(domain_config, ScriptedLLMClient())

        with pytest.raises(AgentPreconditionError):
            await stage.process(make_state())

    @pytest.mark.asyncio
    async def test_greeting_needs_no_model_call(self, domain_config, make_state):
        state = make_state(
            "Hi", classifier_output=classifier_output(category_id=META, intent="greeting")
        )

        output, llm = await run_gap(domain_config, state, gaps("period"))

        assert output.gaps == []
        assert output.follow_up_questions == []
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_category_mode_uses_declared_fields(self, domain_config, make_state):
        state = make_state(classifier_output=classifier_output())

        output, llm = await run_gap(domain_config, state, gaps("period", "sources"))

        assert [g.field for g in output.gaps] == ["period", "sources"]
        assert output.follow_up_questions == ["What about the period?", "What about the sources?"]
        system = llm.calls[0]["system"]
        assert "Required fields for this category: period, sources" in system
        assert "Optional fields for this category: people_involved, location" in system

    @pytest.mark.asyncio
    async def test_questions_capped(self, domain_config, make_state):
        state = make_state(classifier_output=classifier_output())
        questions = [f"Question {i}?" for i in range(MAX_FOLLOW_UP_QUESTIONS + 2)]

        output, _ = await run_gap(domain_config, state, gaps("period", questions=questions))

        assert output.follow_up_questions == questions[:MAX_FOLLOW_UP_QUESTIONS]

    @pytest.mark.asyncio
    async def test_context_summary_reaches_prompt(self, domain_config, make_state):
        state = make_state(
            classifier_output=classifier_output(),
            context_output=ContextOutput(context_summary="- [history] Church: built 1732"),
        )

        _, llm = await run_gap(domain_config, state, gaps())

        assert "- [history] Church: built 1732" in llm.calls[0]["system"]

    @pytest.mark.asyncio
    async def test_exploratory_mode_for_uncategorized(self, domain_config, make_state):
        state = make_state(
            "We play skat every Friday at the inn.",
            classifier_output=classifier_output(
                category_id=UNCATEGORIZED,
                confidence=0.4,
                summary="Weekly card game",
                suggested_category_label="Pastimes",
            ),
        )

        output, llm = await run_gap(domain_config, state, gaps("timeframe"))

        system = llm.calls[0]["system"]
        assert "exploratory mode" in system
        assert "Classifier summary: Weekly card game" in system
        assert "Suggested topic area: Pastimes" in system
        assert [g.field for g in output.gaps] == ["timeframe"]

    @pytest.mark.asyncio
    async def test_dont_know_mode_asks_one_question(self, domain_config, make_state):
        state = make_state(
            "I have no idea",
            classifier_output=classifier_output(intent="dont_know"),
            turn_context=TurnContext(
                turn_number=2, is_follow_up=True, skipped_fields=["sources"]
            ),
        )

        output, llm = await run_gap(
            domain_config,
            state,
            gaps("period", "location", questions=["When was it?", "Where was it?"]),
        )

        assert output.follow_up_questions == ["When was it?"]
        system = llm.calls[0]["system"]
        assert "don't know the answer" in system
        assert "[SKIPPED TOPICS]" in system
        assert "- sources" in system
        assert "Other available categories" in system

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, domain_config, make_state):
        state = make_state(classifier_output=classifier_output(category_id="fishing"))

        with pytest.raises(AgentError, match="Category not found: fishing"):
            await run_gap(domain_config, state, gaps())
