"""Configuration package — settings, logging, and exceptions."""

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
from config.logging_config import setup_logging
from config.settings import Settings

__all__ = [
    "Settings",
    "setup_logging",
    "PlotterError",
    "ConfigurationError",
    "MissingCredentialError",
    "InvalidModelError",
    "ProviderError",
    "TransientProviderError",
    "MalformedOutputError",
    "PersistenceError",
    "StaleSessionDiscard",
    "ValidationError",
]
