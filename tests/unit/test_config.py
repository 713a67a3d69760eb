"""Tests for configuration module."""

import os

import pytest


def test_settings_defaults():
    """Settings have sensible defaults."""
    from src.core.config import Settings

    # Create fresh settings (don't use global)
    s = Settings(_env_file=None)

    assert s.llm_provider == "anthropic"
    assert s.llm_validation_retries == 1
    assert s.context_search_limit == 15
    assert s.context_min_similarity == 0.5
    assert s.default_domain == "village_chronicle"
    assert s.default_persona == "chronicler"
    assert (s.config_dir / "domains").is_dir()


def test_settings_from_env():
    """Settings can be overridden via environment variables."""
    os.environ["LLM_PROVIDER"] = "mock"
    os.environ["CONTEXT_SEARCH_LIMIT"] = "5"

    try:
        from src.core.config import Settings

        s = Settings(_env_file=None)

        assert s.llm_provider == "mock"
        assert s.context_search_limit == 5
    finally:
        del os.environ["LLM_PROVIDER"]
        del os.environ["CONTEXT_SEARCH_LIMIT"]


def test_settings_validation():
    """Settings validate constraints."""
    from pydantic import ValidationError

    from src.core.config import Settings

    with pytest.raises(ValidationError):
        Settings(llm_temperature=3.0)

    with pytest.raises(ValidationError):
        Settings(context_min_similarity=1.5)

    with pytest.raises(ValidationError):
        Settings(llm_provider="unknown")


def test_global_settings_available():
    """Global settings instance is importable."""
    from src.core.config import settings

    assert settings is not None
    assert hasattr(settings, "database_path")
