"""
Prompts for gap reasoning (what is still missing, what to ask next).

Three modes:
- known category: compare required/optional fields against what is known
- uncategorized: exploratory mode with free-form gap descriptors and one
  question about whether the topic recurs
- dont_know: at most one question on a different angle or category

All modes share the [SKIPPED TOPICS] and [FOLLOW_UP_CONTEXT] blocks.
"""

import json
from typing import Optional

from src.domain.models.agent import ClassifierResult
from src.domain.models.configuration import Category, DomainConfig
from src.domain.models.turn import TurnContext

MAX_FOLLOW_UP_QUESTIONS = 3

RESPONSE_FORMAT = """Respond with a JSON object containing:
- gaps: array of {{field, description, priority}} where priority is "high", "medium" or "low"
- follow_up_questions: array of strings (max {max_questions})
- reasoning: brief explanation of your analysis"""


def format_skipped_fields(turn_context: Optional[TurnContext]) -> str:
    if turn_context is None or not turn_context.skipped_fields:
        return ""
    lines = "\n".join(f"- {f}" for f in turn_context.skipped_fields)
    return f"""
[SKIPPED TOPICS]
The user has already said they don't know about these topics. Do NOT ask about them again:
{lines}

Instead, ask about something completely different or a different category.
"""


def format_follow_up_context(turn_context: Optional[TurnContext]) -> str:
    if turn_context is None or not turn_context.is_follow_up:
        return ""

    previous = "\n".join(
        f'Turn {t.turn_number}: User said: "{t.user_input}" | '
        f"Gaps: {', '.join(t.gaps) or 'none'} | "
        f"Filled: {', '.join(t.filled_fields) or 'none'}"
        for t in turn_context.previous_turns
    )
    existing = (
        json.dumps(turn_context.previous_entry.structured_data, ensure_ascii=False)
        if turn_context.previous_entry
        else "none"
    )
    asked = "\n".join(f"- {q}" for q in turn_context.asked_questions) or "- none"

    return f"""
[FOLLOW_UP_CONTEXT]
This is follow-up turn {turn_context.turn_number}. The user is providing additional information.

Previous turns:
{previous or 'none'}

Existing structured data: {existing}

Questions already asked (do not repeat them):
{asked}

Focus ONLY on remaining gaps that have not been filled yet.
"""


def _connect_rule(has_retrieved_context: bool) -> str:
    if has_retrieved_context:
        return (
            "Generate follow-up questions that CONNECT the user's input to existing "
            "knowledge (e.g. if the user mentions a building near a known church, ask "
            "about the relationship between them, not generic questions)"
        )
    return "Only ask about things the user is likely to know based on their input"


def get_category_gap_prompt(
    category: Category,
    context_summary: str,
    has_retrieved_context: bool,
    turn_context: Optional[TurnContext],
) -> str:
    """Gap analysis against a configured category's fields."""
    required = ", ".join(category.required_fields) or "none"
    optional = ", ".join(category.optional_fields) or "none"

    return f"""You are a gap-reasoning agent. Analyze the user's input for a knowledge entry in the "{category.label}" category.

Required fields for this category: {required}
Optional fields for this category: {optional}

## Already Known
{context_summary}
{format_skipped_fields(turn_context)}{format_follow_up_context(turn_context)}
Identify what information is missing or incomplete. For each gap, give the field name, a description of what is missing, and a priority (high for required fields, medium/low for optional).

Rules:
- NEVER ask about information already captured in "Already Known" above; treat it as settled knowledge
- {_connect_rule(has_retrieved_context)}
- If the input is already rich and detailed, return fewer or no gaps; don't manufacture questions
- Rank questions by how likely the user can answer them, not just by field priority
- Never ask about things that require specialized expertise the user hasn't demonstrated
- Maximum {MAX_FOLLOW_UP_QUESTIONS} follow-up questions

{RESPONSE_FORMAT.format(max_questions=MAX_FOLLOW_UP_QUESTIONS)}

Example response:
{{"gaps": [{{"field": "period", "description": "The exact time period is unclear", "priority": "high"}}], "follow_up_questions": ["Can you specify the exact time period?"], "reasoning": "The user mentioned a historical event but did not say when it occurred."}}"""


def get_exploratory_gap_prompt(
    classification: ClassifierResult,
    context_summary: str,
    has_retrieved_context: bool,
    turn_context: Optional[TurnContext],
) -> str:
    """Gap analysis for input that fits no configured category."""
    summary = classification.summary or "No summary available."
    label_line = (
        f"Suggested topic area: {classification.suggested_category_label}"
        if classification.suggested_category_label
        else ""
    )

    return f"""You are a gap-reasoning agent in exploratory mode. The user's input did not fit any existing knowledge category.

Classifier summary: {summary}
{label_line}

## Already Known
{context_summary}
{format_skipped_fields(turn_context)}{format_follow_up_context(turn_context)}
Your task is to understand what the user is sharing and ask questions that capture their knowledge more fully. You are NOT checking against a predefined list of fields.

Rules:
- NEVER ask about information already captured in "Already Known" above
- {_connect_rule(has_retrieved_context)}
- If they describe personal experience, ask about details of that experience
- If they share facts, ask about sources or related information
- ALWAYS include one question about whether this topic recurs, something natural like "Is this something that happens regularly here?" or "Are there others who share this experience?"
- Maximum {MAX_FOLLOW_UP_QUESTIONS} follow-up questions, most natural and likely-to-be-answered first
- For gaps, use descriptive field names for the missing information (e.g. "timeframe", "location", "personal_connection") with "medium" or "low" priority

{RESPONSE_FORMAT.format(max_questions=MAX_FOLLOW_UP_QUESTIONS)}

Example response:
{{"gaps": [{{"field": "timeframe", "description": "When did this happen?", "priority": "medium"}}, {{"field": "location", "description": "Where exactly does this take place?", "priority": "medium"}}], "follow_up_questions": ["When did this happen?", "Where exactly was this?", "Is this something that happens regularly here?"], "reasoning": "A personal experience without temporal or spatial context."}}"""


def get_dont_know_gap_prompt(
    domain: DomainConfig,
    category_id: str,
    context_summary: str,
    turn_context: Optional[TurnContext],
) -> str:
    """Gap analysis after the user said they don't know."""
    category = domain.get_category(category_id)
    current_label = category.label if category else category_id
    others = "\n".join(
        f"- {c.id}: {c.label} - {c.description}"
        for c in domain.categories
        if c.id != category_id
    )
    others_block = f"\nOther available categories:\n{others}\n" if others else ""
    many_skipped = turn_context is not None and len(turn_context.skipped_fields) > 1
    direction = (
        "Suggest switching to a DIFFERENT category entirely"
        if many_skipped
        else "Try a different angle within the current category, or suggest a different category"
    )

    return f"""You are a gap-reasoning agent. The user just said they don't know the answer to a previous question.

Current category: {current_label}
{others_block}
## Already Known
{context_summary}
{format_skipped_fields(turn_context)}{format_follow_up_context(turn_context)}
Rules:
- Do NOT ask about skipped topics again
- {direction}
- Generate at most 1 follow-up question about an unasked topic
- If there is truly nothing left to ask, return empty gaps and questions

{RESPONSE_FORMAT.format(max_questions=1)}"""
