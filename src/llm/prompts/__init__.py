# noqa
from src.llm.prompts.classifier import get_classifier_system_prompt
from src.llm.prompts.gap_reasoning import (
    MAX_FOLLOW_UP_QUESTIONS,
    get_category_gap_prompt,
    get_dont_know_gap_prompt,
    get_exploratory_gap_prompt,
)
from src.llm.prompts.persona import (
    GREETING_USER_MESSAGE,
    get_greeting_system_prompt,
    get_persona_system_prompt,
    rank_gaps,
)
from src.llm.prompts.structuring import (
    format_merge_context,
    get_structuring_system_prompt,
)

__all__ = [
    "get_classifier_system_prompt",
    "MAX_FOLLOW_UP_QUESTIONS",
    "get_category_gap_prompt",
    "get_dont_know_gap_prompt",
    "get_exploratory_gap_prompt",
    "GREETING_USER_MESSAGE",
    "get_greeting_system_prompt",
    "get_persona_system_prompt",
    "rank_gaps",
    "format_merge_context",
    "get_structuring_system_prompt",
]
