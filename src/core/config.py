"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.

Domain and persona definitions live in YAML under ``config_dir`` and are
loaded by src.core.domain_loader / src.core.persona_loader.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


LLMProvider = Literal["anthropic", "openai", "deepseek", "mock"]
EmbeddingProvider = Literal["sentence_transformers", "mock"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path(__file__).resolve().parent.parent.parent / "config",
        description="Directory containing domain/ and personas/ YAML files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/mycel.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================

    llm_provider: LLMProvider = Field(
        default="anthropic", description="Provider used by every pipeline step"
    )
    llm_model: Optional[str] = Field(
        default=None, description="Model override (provider default if unset)"
    )
    llm_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=2048, ge=1)
    llm_timeout: float = Field(default=30.0, gt=0, description="Request timeout (s)")
    llm_transient_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for transient transport failures (429/5xx/network)",
    )
    llm_validation_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Correction retries when model output fails validation",
    )

    # API Keys (required for providers you use)
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    # ==========================================================================
    # Embeddings / context retrieval
    # ==========================================================================

    embedding_enabled: bool = Field(
        default=True, description="Disable to run context retrieval in 'not configured' mode"
    )
    embedding_provider: EmbeddingProvider = Field(default="sentence_transformers")
    context_search_limit: int = Field(default=15, ge=1, le=100)
    context_min_similarity: float = Field(default=0.5, ge=0.0, le=1.0)

    # ==========================================================================
    # Session Defaults
    # ==========================================================================

    default_domain: str = Field(default="village_chronicle")
    default_persona: str = Field(default="chronicler")

    debug: bool = Field(default=False, description="Enable debug mode")


# Global settings instance
settings = Settings()
