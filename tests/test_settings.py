"""Tests for Settings validation."""

import pytest
from pydantic import ValidationError


def _make(tmp_path, **overrides):
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "stories.db",
        local_store_dir=tmp_path / "local",
        log_dir=tmp_path / "logs",
        **overrides,
    )


class TestSettingsDefaults:
    def test_code_defaults(self, tmp_path):
        s = _make(tmp_path)
        assert s.use_openai is False
        assert s.story_generation_model == "gpt-4o"
        assert s.outline_min_chapters == 4
        assert s.outline_max_chapters == 6
        assert s.outline_max_attempts == 5
        assert s.completion_word_threshold == 500
        assert s.autosave_interval == 5.0
        assert s.autosave_max_retries == 3
        assert s.snapshot_version == 1
        assert s.reveal_words_per_second == 0.0

    def test_openrouter_base_url(self, tmp_path):
        assert _make(tmp_path).openrouter_base_url == "https://openrouter.ai/api/v1"

    def test_fixture_overrides(self, settings):
        assert settings.completion_word_threshold == 5
        assert settings.openrouter_api_key == "or-test-key"


class TestSettingsValidation:
    def test_min_chapters_above_max_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="outline_min_chapters"):
            _make(tmp_path, outline_min_chapters=7, outline_max_chapters=6)

    def test_zero_chapter_bound_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="chapter bounds"):
            _make(tmp_path, outline_min_chapters=0)

    def test_zero_attempts_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="Attempt counts"):
            _make(tmp_path, outline_max_attempts=0)

    def test_zero_autosave_interval_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="autosave_interval"):
            _make(tmp_path, autosave_interval=0)

    def test_negative_reveal_rate_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="non-negative"):
            _make(tmp_path, reveal_words_per_second=-1)

    def test_env_var_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("USE_OPENAI", "true")
        monkeypatch.setenv("STORY_GENERATION_MODEL", "gpt-4o-mini")
        s = _make(tmp_path)
        assert s.use_openai is True
        assert s.story_generation_model == "gpt-4o-mini"

    def test_parent_dirs_created(self, tmp_path):
        _make(tmp_path / "nested")
        assert (tmp_path / "nested").is_dir()
