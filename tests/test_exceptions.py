"""Tests for the custom exception hierarchy."""

import pytest
from config.exceptions import (
    PlotterError,
    ConfigurationError,
    MissingCredentialError,
    InvalidModelError,
    ProviderError,
    TransientProviderError,
    MalformedOutputError,
    PersistenceError,
    StaleSessionDiscard,
    ValidationError,
)


class TestExceptionHierarchy:
    def test_all_inherit_from_plotter_error(self):
        leaf_classes = [
            ConfigurationError, MissingCredentialError, InvalidModelError,
            ProviderError, TransientProviderError,
            MalformedOutputError, PersistenceError, StaleSessionDiscard, ValidationError,
        ]
        for cls in leaf_classes:
            assert issubclass(cls, PlotterError), f"{cls.__name__} must inherit PlotterError"

    def test_configuration_subclasses(self):
        assert issubclass(MissingCredentialError, ConfigurationError)
        assert issubclass(InvalidModelError, ConfigurationError)

    def test_transient_is_provider_error(self):
        assert issubclass(TransientProviderError, ProviderError)

    def test_configuration_is_not_provider_error(self):
        assert not issubclass(ConfigurationError, ProviderError)


class TestExceptionCreation:
    def test_basic_message(self):
        err = PersistenceError("disk full")
        assert err.message == "disk full"
        assert err.details == {}
        assert str(err) == "disk full"

    def test_details_in_str(self):
        err = ValidationError("bad index", {"index": 7})
        assert "index=7" in str(err)

    def test_missing_credential(self):
        err = MissingCredentialError("openrouter")
        assert err.provider == "openrouter"
        assert "openrouter API key" in err.message

    def test_invalid_model(self):
        err = InvalidModelError("gpt 4", "openai")
        assert err.model == "gpt 4"
        assert err.details["provider"] == "openai"

    def test_transient_retry_after(self):
        err = TransientProviderError("slow down", status=429, retry_after=12.0)
        assert err.status == 429
        assert err.retry_after == 12.0
        assert err.details == {"status": 429, "retry_after": 12.0}

    def test_malformed_output_truncates_raw(self):
        err = MalformedOutputError(raw_output="x" * 500, attempts=5)
        assert len(err.details["raw_output"]) == 200
        assert err.raw_output == "x" * 500
        assert err.attempts == 5

    def test_stale_session(self):
        err = StaleSessionDiscard(epoch=2, current_epoch=3)
        assert err.epoch == 2
        assert err.current_epoch == 3

    def test_catchable_as_base(self):
        with pytest.raises(PlotterError):
            raise TransientProviderError()
