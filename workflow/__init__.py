"""Workflow package — generation sessions, pacing and prompt context.

The editor lives in workflow.editor and is imported from there directly.
"""

from workflow.callbacks import SessionCallback, LoggingCallback, RichStreamCallback, CompositeCallback
from workflow.context import PromptContext, build_context, render_context
from workflow.pacing import RevealPacer
from workflow.session import GenerationSession, GenerationSessionManager, SessionToken

__all__ = [
    "SessionCallback",
    "LoggingCallback",
    "RichStreamCallback",
    "CompositeCallback",
    "PromptContext",
    "build_context",
    "render_context",
    "RevealPacer",
    "GenerationSession",
    "GenerationSessionManager",
    "SessionToken",
]
