"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Instances are built explicitly and passed down to the services that need
    them; there is no module-level cache.
    """

    # Provider — OpenRouter unless use_openai is set
    use_openai: bool = False
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Models
    story_generation_model: str = "gpt-4o"     # scene / revision / transition
    reasoning_model: str = ""                  # outline + sequel ideas
    character_model: str = ""                  # character roster
    rewriting_model: str = ""                  # chunked rewrite
    title_model: str = ""                      # titles

    # Outline
    outline_min_chapters: int = 4
    outline_max_chapters: int = 6
    outline_max_attempts: int = 5
    outline_retry_delay: float = 1.0
    structured_outline: bool = True

    # Chapter
    completion_word_threshold: int = 500
    context_max_chars: int = 8000
    context_recent_chapters: int = 4

    # Provider retries
    provider_max_retries: int = 3
    provider_backoff_base: float = 1.0
    provider_backoff_max: float = 30.0
    character_max_attempts: int = 3
    title_max_attempts: int = 5

    # Autosave
    autosave_interval: float = 5.0
    autosave_max_retries: int = 3
    autosave_backoff_base: float = 1.0
    autosave_backoff_max: float = 30.0
    snapshot_version: int = 1

    # Streaming
    reveal_words_per_second: float = 0.0  # 0 = reveal as soon as received

    # Storage
    sqlite_db_path: Path = Path("./data/stories.db")
    local_store_dir: Path = Path("./data/local")

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("outline_min_chapters", "outline_max_chapters")
    @classmethod
    def validate_chapter_bounds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Outline chapter bounds must be >= 1")
        return v

    @field_validator(
        "outline_max_attempts", "provider_max_retries", "autosave_max_retries",
        "character_max_attempts", "title_max_attempts",
    )
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Attempt counts must be >= 1")
        return v

    @field_validator("completion_word_threshold", "context_max_chars", "context_recent_chapters")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must be non-negative")
        return v

    @field_validator(
        "outline_retry_delay", "provider_backoff_base", "provider_backoff_max",
        "autosave_backoff_base", "autosave_backoff_max", "reveal_words_per_second",
    )
    @classmethod
    def validate_non_negative_float(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays and rates must be non-negative")
        return v

    @field_validator("autosave_interval")
    @classmethod
    def validate_autosave_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("autosave_interval must be > 0")
        return v

    @field_validator("sqlite_db_path", "local_store_dir", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_outline_range(self) -> "Settings":
        if self.outline_min_chapters > self.outline_max_chapters:
            raise ValueError(
                f"outline_min_chapters ({self.outline_min_chapters}) must not exceed "
                f"outline_max_chapters ({self.outline_max_chapters})"
            )
        return self
