"""Custom exception hierarchy for the generation and durability engine."""

from typing import Optional


class PlotterError(Exception):
    """Base exception for all plotter errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Configuration Errors ----

class ConfigurationError(PlotterError):
    """Missing or invalid credential or model id. Never retried."""


class MissingCredentialError(ConfigurationError):
    """The selected provider has no usable API key."""

    def __init__(self, provider: str, message: str = ""):
        msg = message or f"{provider} API key not set in settings"
        super().__init__(msg, {"provider": provider})
        self.provider = provider


class InvalidModelError(ConfigurationError):
    """Model identifier does not fit the naming rules of the provider."""

    def __init__(self, model: str, provider: str):
        super().__init__(
            f"Invalid model format: {model!r}. Please check your settings.",
            {"model": model, "provider": provider},
        )
        self.model = model
        self.provider = provider


# ---- Provider Errors ----

class ProviderError(PlotterError):
    """Text-generation provider rejected or failed a request."""

    def __init__(self, message: str, status: Optional[int] = None):
        details = {"status": status} if status is not None else {}
        super().__init__(message, details)
        self.status = status


class TransientProviderError(ProviderError):
    """Network fault, rate limit or broken stream; worth retrying."""

    def __init__(
        self,
        message: str = "Provider temporarily unavailable",
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status)
        if retry_after is not None:
            self.details["retry_after"] = retry_after
        self.retry_after = retry_after


# ---- Output Errors ----

class MalformedOutputError(PlotterError):
    """Model output could not be turned into the expected structure."""

    def __init__(
        self,
        message: str = "Failed to parse model output",
        raw_output: str = "",
        attempts: Optional[int] = None,
    ):
        details = {}
        if raw_output:
            details["raw_output"] = raw_output[:200]
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, details)
        self.raw_output = raw_output
        self.attempts = attempts


# ---- Persistence Errors ----

class PersistenceError(PlotterError):
    """Backend or local store write/read failed."""


# ---- Session Errors ----

class StaleSessionDiscard(PlotterError):
    """Result belongs to a superseded generation session; dropped silently."""

    def __init__(self, epoch: int, current_epoch: int):
        super().__init__(
            "Generation session superseded",
            {"epoch": epoch, "current_epoch": current_epoch},
        )
        self.epoch = epoch
        self.current_epoch = current_epoch


# ---- Validation Errors ----

class ValidationError(PlotterError):
    """Caller input cannot be used for the requested operation."""
