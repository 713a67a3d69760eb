"""Completeness scoring for knowledge entries.

Scores how much of a category's structured data an entry has captured.
Pure: the score depends only on the entry and the domain configuration.

Rules:
- unknown category: 0.0
- required fields: fraction of required fields filled (optional ignored)
- optional fields only: fraction filled, scaled to OPTIONAL_ONLY_MAX
- no fields: a soft signal from content length
- uncategorized: thirds for content, suggested label and topic keywords,
  capped below the auto-complete threshold
"""

from typing import List

from src.domain.models.configuration import DomainConfig
from src.domain.models.knowledge import KnowledgeEntry, is_filled

OPTIONAL_ONLY_MAX = 0.8
CONTENT_ONLY_SCORE = 0.3
LONG_CONTENT_SCORE = 0.5
UNCATEGORIZED_MAX = 0.7


def _fraction_filled(entry: KnowledgeEntry, fields: List[str]) -> float:
    filled = sum(1 for field in fields if is_filled(entry.structured_data.get(field)))
    return filled / len(fields)


def calculate_completeness(entry: KnowledgeEntry, domain_config: DomainConfig) -> float:
    """
    Score an entry between 0.0 and 1.0.

    Args:
        entry: Knowledge entry to score
        domain_config: Domain holding the entry's category definition

    Returns:
        Completeness score
    """
    if entry.is_uncategorized:
        signals = [
            bool(entry.content.strip()),
            bool(entry.suggested_category_label),
            bool(entry.topic_keywords),
        ]
        score = sum(signals) / len(signals)
        return min(score, UNCATEGORIZED_MAX, domain_config.completeness.auto_complete_threshold)

    category = domain_config.get_category(entry.category_id)
    if category is None:
        return 0.0

    if category.required_fields:
        return _fraction_filled(entry, category.required_fields)

    if category.optional_fields:
        return _fraction_filled(entry, category.optional_fields) * OPTIONAL_ONLY_MAX

    content = entry.content.strip()
    if not content:
        return 0.0
    if len(content) > domain_config.completeness.content_length_threshold:
        return LONG_CONTENT_SCORE
    return CONTENT_ONLY_SCORE
