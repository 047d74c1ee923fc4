"""Generation Session Manager: cancellable, stale-proof streaming sessions.

Every session gets a token carrying a fresh epoch. Starting a new session or
cancelling bumps the epoch, which makes every older token stale. The streaming
loop checks its token at each resumption point and drops out through
StaleSessionDiscard as soon as it has been superseded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional

from config.exceptions import StaleSessionDiscard
from models.enums import SessionKind
from workflow.callbacks import LoggingCallback, SessionCallback
from workflow.pacing import RevealPacer

logger = logging.getLogger(__name__)

# Kinds that overwrite existing prose and so put it back when aborted
RESTORING_KINDS = frozenset({SessionKind.REVISE, SessionKind.REFINE})


@dataclass(frozen=True)
class SessionToken:
    epoch: int
    kind: SessionKind


@dataclass
class GenerationSession:
    token: SessionToken
    chapter_index: Optional[int] = None
    pre_session_content: str = ""
    buffer: list[str] = field(default_factory=list)

    @property
    def kind(self) -> SessionKind:
        return self.token.kind

    @property
    def text(self) -> str:
        return "".join(self.buffer)


class GenerationSessionManager:
    """Runs at most one generation session at a time for an editing surface."""

    def __init__(
        self,
        callback: Optional[SessionCallback] = None,
        words_per_second: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.callback = callback or LoggingCallback()
        self.words_per_second = words_per_second
        self._clock = clock
        self._sleep = sleep
        self._epoch = 0
        self._session: Optional[GenerationSession] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> Optional[GenerationSession]:
        return self._session

    @property
    def epoch(self) -> int:
        return self._epoch

    def begin(
        self,
        kind: SessionKind,
        pre_session_content: str = "",
        chapter_index: Optional[int] = None,
    ) -> GenerationSession:
        """Open a session, invalidating whatever session was running."""
        if self._session is not None:
            logger.debug("Session %d superseded", self._session.token.epoch)
        self._epoch += 1
        session = GenerationSession(
            token=SessionToken(self._epoch, kind),
            chapter_index=chapter_index,
            pre_session_content=pre_session_content,
        )
        self._session = session
        return session

    def is_current(self, token: SessionToken) -> bool:
        return (
            self._session is not None
            and token.epoch == self._epoch
            and self._session.token == token
        )

    def ensure_current(self, token: SessionToken) -> None:
        if not self.is_current(token):
            raise StaleSessionDiscard(token.epoch, self._epoch)

    def cancel(self) -> bool:
        """Invalidate the running session and hand back the original text.

        The detached streaming loop notices at its next resumption point and
        closes its provider stream.
        """
        session = self._session
        if session is None:
            return False
        self._epoch += 1
        self._session = None
        logger.info("Session %d (%s) cancelled", session.token.epoch, session.kind.value)
        if session.kind in RESTORING_KINDS:
            self.callback.on_restore(session.chapter_index, session.pre_session_content)
        return True

    def _emit(self, session: GenerationSession, text: str) -> None:
        self.ensure_current(session.token)
        self.callback.on_progress(session.chapter_index, text)

    def _abort(self, session: GenerationSession) -> None:
        self._session = None
        if session.kind in RESTORING_KINDS:
            self.callback.on_restore(session.chapter_index, session.pre_session_content)

    async def run(
        self,
        kind: SessionKind,
        producer: AsyncIterator[str],
        pre_session_content: str = "",
        chapter_index: Optional[int] = None,
        finalize: Optional[Callable[[str], str]] = None,
    ) -> Optional[str]:
        """Consume a producer as one session.

        Args:
            kind: Session kind; revise/refine restore their original on abort.
            producer: Async iterator of text deltas.
            pre_session_content: Content to restore on error or cancel.
            chapter_index: Chapter the session writes to, passed to callbacks.
            finalize: Maps the full buffer to the content handed to on_save.

        Returns:
            The saved content, or None when the session was superseded,
            cancelled or failed (failures are reported through on_error).
        """
        session = self.begin(kind, pre_session_content, chapter_index)
        token = session.token
        pacer = RevealPacer(self.words_per_second, clock=self._clock, sleep=self._sleep)
        logger.debug("Session %d (%s) started", token.epoch, kind.value)

        try:
            async for delta in producer:
                self.ensure_current(token)
                session.buffer.append(delta)
                released = pacer.push(delta)
                if released:
                    self._emit(session, released)
                while pacer.enabled and pacer.backlog:
                    await pacer.wait()
                    self.ensure_current(token)
                    released = pacer.release()
                    if released:
                        self._emit(session, released)

            self.ensure_current(token)
            if pacer.enabled:
                tail = pacer.drain()
                if tail:
                    self._emit(session, tail)

            content = finalize(session.text) if finalize else session.text
            self.ensure_current(token)
            self.callback.on_save(chapter_index, content)
            logger.info("Session %d (%s) saved %d chars", token.epoch, kind.value, len(content))
            return content

        except StaleSessionDiscard:
            logger.debug("Session %d discarded (current epoch %d)", token.epoch, self._epoch)
            return None
        except asyncio.CancelledError:
            if self.is_current(token):
                self._abort(session)
            raise
        except Exception as e:
            if not self.is_current(token):
                logger.debug("Ignoring failure of superseded session %d: %s", token.epoch, e)
                return None
            logger.warning("Session %d (%s) failed: %s", token.epoch, kind.value, e)
            self._abort(session)
            self.callback.on_error(kind, e)
            return None
        finally:
            if self.is_current(token):
                self._session = None
            aclose = getattr(producer, "aclose", None)
            if aclose is not None:
                await aclose()

    def start(
        self,
        kind: SessionKind,
        producer: AsyncIterator[str],
        pre_session_content: str = "",
        chapter_index: Optional[int] = None,
        finalize: Optional[Callable[[str], str]] = None,
    ) -> asyncio.Task:
        """Run a session as a detached task held by the manager."""
        task = asyncio.create_task(
            self.run(kind, producer, pre_session_content, chapter_index, finalize)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every detached session task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
