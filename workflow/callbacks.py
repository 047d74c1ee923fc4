"""Generation session callbacks for the editing surface and terminal output."""

import logging
from typing import Optional, Protocol, runtime_checkable

from rich.markup import escape

from models.enums import SessionKind

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionCallback(Protocol):
    """Protocol for generation session callbacks.

    Implement this protocol to receive the output of a generation session.
    Calls only ever arrive for the current session.
    """

    def on_progress(self, chapter_index: Optional[int], chunk: str) -> None:
        """Called with each revealed piece of streamed text."""
        ...

    def on_save(self, chapter_index: Optional[int], content: str) -> None:
        """Called exactly once with the final content of a completed session."""
        ...

    def on_restore(self, chapter_index: Optional[int], content: str) -> None:
        """Called with the pre-session content when a revise/refine session is aborted."""
        ...

    def on_error(self, kind: SessionKind, error: Exception) -> None:
        """Called when the current session fails."""
        ...


class LoggingCallback:
    """Lightweight callback that logs session events to the standard logger."""

    def on_progress(self, chapter_index: Optional[int], chunk: str) -> None:
        logger.debug("chunk for chapter %s: %d chars", chapter_index, len(chunk))

    def on_save(self, chapter_index: Optional[int], content: str) -> None:
        logger.info("Session saved chapter %s (%d chars)", chapter_index, len(content))

    def on_restore(self, chapter_index: Optional[int], content: str) -> None:
        logger.info("Session restored chapter %s", chapter_index)

    def on_error(self, kind: SessionKind, error: Exception) -> None:
        logger.error("Session '%s' failed: %s", kind.value, error)


class RichStreamCallback:
    """Writes streamed text straight to a Rich console."""

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        if console is None:
            from rich.console import Console
            console = Console()
        self._console = console

    def on_progress(self, chapter_index: Optional[int], chunk: str) -> None:
        self._console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def on_save(self, chapter_index: Optional[int], content: str) -> None:
        self._console.print()

    def on_restore(self, chapter_index: Optional[int], content: str) -> None:
        self._console.print()
        self._console.print("[yellow]Generation stopped, original text restored.[/]")

    def on_error(self, kind: SessionKind, error: Exception) -> None:
        self._console.print()
        self._console.print(f"[red]{kind.value.capitalize()} failed: {escape(str(error))}[/]")


class CompositeCallback:
    """Fans every event out to several callbacks in order."""

    def __init__(self, *callbacks):
        self._callbacks = [c for c in callbacks if c is not None]

    def on_progress(self, chapter_index: Optional[int], chunk: str) -> None:
        for callback in self._callbacks:
            callback.on_progress(chapter_index, chunk)

    def on_save(self, chapter_index: Optional[int], content: str) -> None:
        for callback in self._callbacks:
            callback.on_save(chapter_index, content)

    def on_restore(self, chapter_index: Optional[int], content: str) -> None:
        for callback in self._callbacks:
            callback.on_restore(chapter_index, content)

    def on_error(self, kind: SessionKind, error: Exception) -> None:
        for callback in self._callbacks:
            callback.on_error(kind, error)
