"""Configuration management for the Consistency Engine."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, test, prod")

    # Anthropic configuration (analyzer, patcher, completion)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    ANTHROPIC_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for all text capabilities"
    )
    ANALYZE_MAX_TOKENS: int = Field(default=2000, description="Max output tokens for analysis")
    PATCH_MAX_TOKENS: int = Field(default=600, description="Max output tokens for chunk patches")
    SUGGEST_MAX_TOKENS: int = Field(default=1024, description="Max output tokens for completions")

    # Embedding configuration (optional similarity backend)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    EMBEDDINGS_ENABLED: bool = Field(
        default=False, description="Use embeddings instead of lexical similarity"
    )
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )

    # Chunker
    MIN_CHUNK_CHARS: int = Field(default=50, description="Chunks shorter than this are merged")
    MAX_CHUNK_CHARS: int = Field(
        default=500, description="Paragraphs longer than this are split into sentences"
    )
    MIN_CHUNKS_FOR_COMPARISON: int = Field(
        default=2, description="Minimum chunk count needed to audit a document"
    )

    # Audit pipeline
    MAX_DIRTY_QUEUE: int = Field(default=10, description="Max items in a dirty queue")
    PATCH_CONTEXT_CHUNKS: int = Field(
        default=2, description="Neighbor chunks on each side sent as patch context"
    )
    HEURISTIC_FALLBACK_ENABLED: bool = Field(
        default=True, description="Fall back to heuristic classification on analyzer failure"
    )
    MODIFIED_CHUNK_STRATEGY: Literal["positional", "aligned"] = Field(
        default="positional", description="How edited chunks are located between versions"
    )

    # Completion triggering
    SUGGESTION_DEBOUNCE_SECONDS: float = Field(
        default=1.0, description="Idle delay before a completion is requested"
    )
    MIN_CONTENT_LENGTH_FOR_SUGGESTION: int = Field(
        default=20, description="Documents shorter than this never trigger completions"
    )
    REQUIRE_TRIGGER_PHRASE: bool = Field(
        default=True, description="Only trigger completions when a planning phrase is present"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables have invalid values
    """
    return Settings()
