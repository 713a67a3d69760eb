"""Tests for completeness scoring."""

import pytest

from src.domain.models.knowledge import UNCATEGORIZED, KnowledgeEntry
from src.services.completeness import (
    CONTENT_ONLY_SCORE,
    LONG_CONTENT_SCORE,
    OPTIONAL_ONLY_MAX,
    calculate_completeness,
)


def entry(category_id="history", structured_data=None, content="Something happened.", **kwargs):
    return KnowledgeEntry(
        category_id=category_id,
        title="Entry",
        content=content,
        structured_data=structured_data or {},
        **kwargs,
    )


class TestRequiredFields:
    def test_nothing_filled(self, domain_config):
        assert calculate_completeness(entry(), domain_config) == 0.0

    def test_half_filled(self, domain_config):
        score = calculate_completeness(entry(structured_data={"period": "18th century"}), domain_config)
        assert score == 0.5

    def test_all_filled(self, domain_config):
        data = {"period": "18th century", "sources": "church records"}
        assert calculate_completeness(entry(structured_data=data), domain_config) == 1.0

    def test_optional_fields_ignored_when_required_exist(self, domain_config):
        data = {"people_involved": "the mayor", "location": "market square"}
        assert calculate_completeness(entry(structured_data=data), domain_config) == 0.0

    @pytest.mark.parametrize("blank", [None, "", "   "])
    def test_blank_values_do_not_count(self, domain_config, blank):
        data = {"period": blank, "sources": "church records"}
        assert calculate_completeness(entry(structured_data=data), domain_config) == 0.5

    def test_non_string_values_count(self, domain_config):
        data = {"period": 1732, "sources": ["parish book"]}
        assert calculate_completeness(entry(structured_data=data), domain_config) == 1.0

    def test_adding_required_field_never_decreases_score(self, domain_config):
        data = {}
        previous = calculate_completeness(entry(structured_data=data), domain_config)
        for field, value in [("extra", "x"), ("period", "1732"), ("location", "y"), ("sources", "z")]:
            data = {**data, field: value}
            score = calculate_completeness(entry(structured_data=data), domain_config)
            assert score >= previous
            previous = score
        assert previous == 1.0


class TestOtherCategoryShapes:
    def test_unknown_category(self, domain_config):
        data = {"period": "x", "sources": "y"}
        assert calculate_completeness(entry("weather", structured_data=data), domain_config) == 0.0

    def test_optional_only_is_scaled(self, domain_config):
        data = {"architect": "A", "year_built": "1800"}
        score = calculate_completeness(entry("buildings", structured_data=data), domain_config)
        assert score == pytest.approx(2 / 5 * OPTIONAL_ONLY_MAX)

    def test_optional_only_never_reaches_one(self, domain_config):
        data = {f: "x" for f in ["architect", "year_built", "style", "condition", "owner"]}
        score = calculate_completeness(entry("buildings", structured_data=data), domain_config)
        assert score == pytest.approx(OPTIONAL_ONLY_MAX)

    def test_fieldless_category_short_content(self, domain_config):
        assert calculate_completeness(entry("anecdotes", content="Short tale."), domain_config) == CONTENT_ONLY_SCORE

    def test_fieldless_category_long_content(self, domain_config):
        long_content = "A long story about the village fair. " * 3
        score = calculate_completeness(entry("anecdotes", content=long_content), domain_config)
        assert score == LONG_CONTENT_SCORE

    def test_fieldless_category_empty_content(self, domain_config):
        assert calculate_completeness(entry("anecdotes", content=""), domain_config) == 0.0


class TestUncategorized:
    def test_thirds(self, domain_config):
        only_content = entry(UNCATEGORIZED)
        with_label = entry(UNCATEGORIZED, suggested_category_label="Local crafts")

        assert calculate_completeness(only_content, domain_config) == pytest.approx(1 / 3)
        assert calculate_completeness(with_label, domain_config) == pytest.approx(2 / 3)

    def test_capped_below_auto_complete_threshold(self, domain_config):
        full = entry(
            UNCATEGORIZED,
            suggested_category_label="Local crafts",
            topic_keywords=["weaving", "baskets"],
        )
        score = calculate_completeness(full, domain_config)
        assert score < domain_config.completeness.auto_complete_threshold

    def test_empty(self, domain_config):
        assert calculate_completeness(entry(UNCATEGORIZED, content=""), domain_config) == 0.0


def test_deterministic(domain_config):
    e = entry(structured_data={"period": "1732"})
    assert {calculate_completeness(e, domain_config) for _ in range(5)} == {0.5}
