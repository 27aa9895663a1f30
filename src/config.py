from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""

    # Supabase (optional; summaries are only persisted when both are set)
    supabase_url: str = ""
    supabase_key: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 2048

    # Chunking
    chunk_target_duration_ms: int = 30_000
    chunk_max_chars: int = 8_000
    chunk_overlap_words: int = 50

    # Request scheduling (the generation quota is global, not per session)
    requests_per_minute: int = 15
    max_retries: int = 3
    retry_base_delay_ms: int = 1_000
    retry_max_delay_ms: int = 10_000
    request_timeout_ms: int = 60_000

    # Auto-generation trigger
    auto_generate: bool = True
    min_segments: int = 10
    min_words: int = 100
    summary_interval_ms: int = 30_000

    # Summary shape
    max_content_words: int = 200
    max_key_points: int = 10
    max_decisions: int = 10
    max_action_items: int = 10
    max_quotes: int = 5
    max_topics: int = 8

    # Long-session compaction
    max_retained_segments: int = 2_000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
