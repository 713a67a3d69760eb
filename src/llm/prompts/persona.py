"""
Prompts for the persona responder and the opening greeting.

The persona block (name, tonality, formality, language, address form) is
shared by every reply. What follows it depends on the turn's intent:
greeting, proactive request, or a normal reply built from the top gaps.
"""

from typing import List, Optional

from src.domain.models.configuration import DomainConfig, PersonaConfig
from src.domain.models.knowledge import KnowledgeGap
from src.domain.models.turn import TurnContext

MAX_PRESENTED_GAPS = 3

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

GREETING_USER_MESSAGE = "Generate an opening greeting for a new conversation."


def rank_gaps(gaps: List[KnowledgeGap], limit: int = MAX_PRESENTED_GAPS) -> List[KnowledgeGap]:
    """Highest-priority gaps first, original order kept within a priority."""
    ordered = sorted(
        enumerate(gaps), key=lambda pair: (PRIORITY_RANK.get(pair[1].priority, 3), pair[0])
    )
    return [gap for _, gap in ordered[:limit]]


def get_persona_block(persona: PersonaConfig) -> str:
    address_line = f"- Address form: {persona.address_form}\n" if persona.address_form else ""
    return f"""{persona.system_prompt_template}

Your persona:
- Name: {persona.name}
- Tonality: {persona.tonality}
- Formality: {persona.formality}
- Language: {persona.language}
{address_line}"""


def _response_format(language: str, max_questions: int) -> str:
    return f"""IMPORTANT: Respond in {language}.

Respond with a JSON object containing:
- response: your reply text
- follow_up_questions: array of strings (max {max_questions})"""


def get_persona_system_prompt(
    persona: PersonaConfig,
    intent: str,
    gaps: Optional[List[KnowledgeGap]] = None,
    domain: Optional[DomainConfig] = None,
    turn_context: Optional[TurnContext] = None,
) -> str:
    """
    Build the persona responder system prompt.

    Args:
        persona: Persona configuration
        intent: Classified intent of the turn
        gaps: Gap analysis (content and dont_know turns)
        domain: Domain configuration (category list for proactive requests)
        turn_context: Conversational memory, used for already-asked questions

    Returns:
        System prompt string for LLM
    """
    max_questions = persona.prompt_behavior.max_follow_up_questions
    header = get_persona_block(persona)
    follow_up_line = (
        f"\nThis is follow-up turn {turn_context.turn_number} of the conversation.\n"
        if turn_context is not None and turn_context.is_follow_up
        else ""
    )
    asked = turn_context.asked_questions if turn_context else []
    asked_block = (
        "\nQuestions you already asked (do not repeat them):\n"
        + "\n".join(f"- {q}" for q in asked)
        + "\n"
        if asked
        else ""
    )
    storytelling = (
        "- Encourage storytelling: invite the user to share stories or memories\n"
        if persona.prompt_behavior.encourage_storytelling
        else ""
    )
    sources = (
        "- Where it fits naturally, ask how the user knows (sources, documents, witnesses)\n"
        if persona.prompt_behavior.validate_with_sources
        else ""
    )

    if intent == "greeting":
        task = f"""The user greeted you. Greet them back warmly and ask ONE open-ended question that invites them to share what they know.
- Keep it SHORT: 1-2 sentences
{storytelling}"""
        questions = 1
    elif intent == "proactive_request":
        categories = (
            "\n".join(f"- {c.label}: {c.description}" for c in domain.categories)
            if domain
            else "- any topic the user knows about"
        )
        task = f"""The user asked you to ask them something. Pick the knowledge areas below that have come up least in this conversation and ask 1-2 specific, curious questions about them, the way a curious local would.

Knowledge areas:
{categories}
{asked_block}
- Questions must be concrete, not generic "tell me about X"
{storytelling}"""
        questions = min(2, max_questions) if max_questions else 0
    else:
        top_gaps = rank_gaps(gaps or [])
        if top_gaps and persona.prompt_behavior.gap_analysis:
            gap_lines = "\n".join(f"- {g.field}: {g.description}" for g in top_gaps)
            task = f"""Thank the user for what they shared, then ask about the most important missing information.

Missing information (most important first):
{gap_lines}
{asked_block}
- Ask at most {max_questions} question(s), ONE topic at a time
- Keep it conversational; do not list fields
{storytelling}{sources}"""
        else:
            task = """Nothing important is missing. Write a warm closing message that thanks the user for what they shared and invites them to tell more whenever they like.
- Do not ask follow-up questions
"""
            max_questions = 0
        questions = max_questions

    return (
        f"{header}{follow_up_line}\n{task}\n"
        + _response_format(persona.language, questions)
    )


def get_greeting_system_prompt(persona: PersonaConfig, domain: DomainConfig) -> str:
    """System prompt for the opening greeting of a new session."""
    categories = "\n".join(f"- {c.label}: {c.description}" for c in domain.categories)
    storytelling = (
        "- Encourage storytelling: invite the user to share stories or memories\n"
        if persona.prompt_behavior.encourage_storytelling
        else ""
    )

    return f"""{get_persona_block(persona)}
You are starting a NEW conversation. There is no user input yet.
Generate a warm, inviting opening greeting that introduces yourself and asks an open-ended question to get the conversation started.

Domain context ({domain.name}): {domain.description}
Knowledge categories:
{categories}

STRICT RULES:
- Keep it SHORT: 1-3 sentences maximum
- Ask ONE open-ended question that invites the user to share knowledge about any of the categories above
- Do NOT list the categories; weave them naturally into your question
{storytelling}
IMPORTANT: Respond in {persona.language}.

Respond with a JSON object containing:
- response: your greeting text
- follow_up_questions: empty array"""
