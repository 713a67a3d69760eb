"""
Prompts for intent detection and category classification.

The classifier decides the user's intent first (greeting, proactive request,
"I don't know", or content) and only then picks a category for content.
On follow-up turns a [SESSION_CONTEXT] block tells the model which topic is
active so it can tell a topic change from an answer within the topic.
"""

from typing import Optional

from src.domain.models.configuration import DomainConfig
from src.domain.models.knowledge import META, UNCATEGORIZED

UNCATEGORIZED_CONFIDENCE_THRESHOLD = 0.6


def get_session_context_block(active_category: str, last_question: Optional[str]) -> str:
    """[SESSION_CONTEXT] block for follow-up turns."""
    last_question_line = (
        f'The last question asked to the user was: "{last_question}"' if last_question else ""
    )
    return f"""
[SESSION_CONTEXT]
The user is currently in a conversation about the topic "{active_category}".
{last_question_line}

IMPORTANT: Determine if the user is:
a) Responding to the current topic (even if saying "I don't know" or "no") -> set is_topic_change: false
b) Introducing a completely new, different subject -> set is_topic_change: true

A response like "I don't know", "no", "not sure" is NOT a topic change. It is a response within the current topic.
Only set is_topic_change to true if the user is clearly talking about something entirely different.
"""


def get_classifier_system_prompt(
    domain: DomainConfig,
    active_category: Optional[str] = None,
    last_question: Optional[str] = None,
) -> str:
    """
    Build the classifier system prompt.

    Args:
        domain: Domain configuration supplying the category list
        active_category: Currently active category (follow-up turns only)
        last_question: Last question surfaced to the user, if any

    Returns:
        System prompt string for LLM
    """
    category_list = "\n".join(
        f"- {c.id}: {c.label} - {c.description}" for c in domain.categories
    )
    language = domain.ingestion.primary_language
    session_context = (
        get_session_context_block(active_category, last_question) if active_category else ""
    )

    return f"""You are a classifier agent. Your FIRST task is to determine the user's INTENT, then classify if needed.

## Step 1: Determine Intent

- "greeting": The user is greeting, making small talk, or saying something with no informational content.
  Examples: "hi", "hello", "hey", "good morning", "what's up"
  -> Set category_id to "{META}", confidence to 1.0

- "proactive_request": The user asks YOU to ask THEM questions or wants to know what information is still needed.
  Examples: "ask me something", "what do you want to know?", "what is still missing?"
  -> Set category_id to "{META}", confidence to 1.0

- "dont_know": The user says they don't know the answer to a previous question (ONLY on follow-up turns).
  Examples: "I don't know", "no idea", "not sure", "can't say"
  -> Keep the current category_id (the active topic from the session context), set is_topic_change to false

- "content": The user is sharing actual knowledge, information, facts, stories, or descriptions.
  -> Classify into one of the categories below

## Step 2: Classify (only for "content" intent)

Available categories:
{category_list}

If the input does not clearly fit any category, classify it as "{UNCATEGORIZED}". Use "{UNCATEGORIZED}" when your confidence would be below {UNCATEGORIZED_CONFIDENCE_THRESHOLD} for any existing category.

When classifying as "{UNCATEGORIZED}":
- Set confidence to your actual confidence level (which will be low)
- Provide a short "summary" describing what the input is about
- Provide a "suggested_category_label": your best guess for a new category name in {language}

Only include "summary" and "suggested_category_label" when category_id is "{UNCATEGORIZED}".
{session_context}
Respond with a JSON object containing:
- category_id: the category ID, "{UNCATEGORIZED}", or "{META}"
- subcategory_id: optional subcategory if applicable (null for non-content intents)
- confidence: a number between 0 and 1
- intent: one of "content", "greeting", "proactive_request", "dont_know"
- is_topic_change: whether the user changed to a new topic (follow-up turns only, false otherwise)
- reasoning: a brief explanation
- summary: (only for {UNCATEGORIZED}) short description of the input
- suggested_category_label: (only for {UNCATEGORIZED}) suggested new category name

Example for content:
{{"category_id": "history", "confidence": 0.92, "intent": "content", "is_topic_change": false, "reasoning": "Historical content about the 18th century."}}

Example for greeting:
{{"category_id": "{META}", "confidence": 1.0, "intent": "greeting", "is_topic_change": false, "reasoning": "User is greeting."}}

Example for uncategorized:
{{"category_id": "{UNCATEGORIZED}", "confidence": 0.3, "intent": "content", "is_topic_change": false, "reasoning": "Personal memory.", "summary": "Childhood summers in the village", "suggested_category_label": "Childhood memories"}}"""
