"""
Prompts for structured knowledge extraction.

For configured categories the model fills the category's fields. For
uncategorized input it extracts free-form structured data plus a suggested
category label and topic keywords. On follow-up turns the existing entry is
included with an instruction to merge rather than overwrite.
"""

import json
from typing import List, Optional

from src.domain.models.agent import ClassifierResult
from src.domain.models.configuration import Category
from src.domain.models.knowledge import KnowledgeEntry, KnowledgeGap


def format_merge_context(previous_entry: KnowledgeEntry, turn_number: int) -> str:
    """[FOLLOW_UP_CONTEXT] block asking the model to merge into the existing entry."""
    return f"""
[FOLLOW_UP_CONTEXT]
This is follow-up turn {turn_number}. Merge new information into the existing entry.

Existing entry:
- Title: {previous_entry.title}
- Content: {previous_entry.content}
- Structured data: {json.dumps(previous_entry.structured_data, ensure_ascii=False)}
- Tags: {', '.join(previous_entry.tags)}

Merge the new information: keep every existing structured_data field and add newly provided ones, append to content instead of replacing it, and extend the tags. Keep the existing title unless the new information warrants a better one.
"""


def get_structuring_system_prompt(
    category: Optional[Category],
    classification: ClassifierResult,
    gaps: List[KnowledgeGap],
    merge_context: str = "",
) -> str:
    """
    Build the structuring system prompt.

    Args:
        category: Configured category, or None for uncategorized input
        classification: Classifier result for the turn
        gaps: Gap analysis for the turn
        merge_context: Output of format_merge_context() on follow-up turns

    Returns:
        System prompt string for LLM
    """
    gap_info = (
        f"Identified gaps: {', '.join(g.field for g in gaps)}"
        if gaps
        else "No open gaps identified."
    )

    if category is None:
        summary = classification.summary or "No summary available."
        label = classification.suggested_category_label or "none"
        return f"""You are a structuring agent. The user's input does not fit any configured category. Extract structured knowledge in free form.

Classifier summary: {summary}
Suggested category label: {label}

{gap_info}
{merge_context}
Create a structured knowledge entry with:
- title: a concise title
- content: the full content, cleaned up and well-structured
- structured_data: any facts you can extract as key-value pairs (e.g. timeframe, location, people)
- tags: relevant tags
- suggested_category_label: a short name for the category this knowledge would belong to
- topic_keywords: 3-6 keywords describing the topic
- is_complete: false
- missing_fields: descriptors of information that is still missing

Respond with a JSON object."""

    required = ", ".join(category.required_fields) or "none"
    optional = ", ".join(category.optional_fields) or "none"

    return f"""You are a structuring agent. Extract structured knowledge from the user's input for the "{category.label}" category.

Required fields: {required}
Optional fields: {optional}

{gap_info}
{merge_context}
Create a structured knowledge entry with:
- title: a concise title for this knowledge entry
- content: the full content, cleaned up and well-structured
- structured_data: extracted field values as key-value pairs (use the field names above)
- tags: relevant tags for categorization
- is_complete: whether all required fields are filled
- missing_fields: list of required fields that are still missing

Respond with a JSON object.

Example response:
{{"title": "Village Church History", "content": "The village church was built in the 18th century.", "structured_data": {{"period": "18th century"}}, "tags": ["history", "architecture"], "is_complete": false, "missing_fields": ["sources"]}}"""
