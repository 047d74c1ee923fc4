"""Editing surface controller: live chapters, generation sessions and autosave."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from agents.rewrite_agent import ChunkedRewriteEngine
from agents.writer_agent import SceneWriter, join_transition
from config.exceptions import ValidationError
from config.settings import Settings
from models.database import RecordStore
from models.enums import SessionKind
from models.story import Chapter, Story
from persistence.autosave import AutosaveManager
from persistence.recovery import RecoveryOutcome, RecoveryStrategy, resolve_recovery
from persistence.snapshot import SnapshotStore
from tools.text_utils import is_chapter_complete
from workflow.callbacks import SessionCallback
from workflow.session import GenerationSessionManager

logger = logging.getLogger(__name__)

# Session kinds whose streamed text replaces the chapter while it arrives
_LIVE_KINDS = frozenset({SessionKind.WRITE, SessionKind.REVISE, SessionKind.REFINE})


class StoryEditor:
    """Headless editing surface for one story.

    Holds the working chapters, keeps the completion flag in step with the
    word threshold, routes generation output into the chapters and hands
    every mutation to the autosave manager.
    """

    def __init__(
        self,
        story: Story,
        store: RecordStore,
        snapshots: SnapshotStore,
        writer: SceneWriter,
        rewriter: ChunkedRewriteEngine,
        settings: Optional[Settings] = None,
        surface: Optional[SessionCallback] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self.story = story
        self.chapters: list[Chapter] = list(story.chapters)
        for chapter, beat in zip(self.chapters, story.outline):
            if not chapter.beat:
                chapter.beat = beat
        self.writer = writer
        self.rewriter = rewriter
        self.surface = surface
        self.recovery: Optional[RecoveryOutcome] = None

        threshold = self.settings.completion_word_threshold
        self._forced = {
            i for i, c in enumerate(self.chapters)
            if c.completed and not is_chapter_complete(c.content, threshold)
        }
        self._live: dict[int, str] = {}

        self.autosave = AutosaveManager(
            story.id, store, snapshots,
            settings=self.settings, on_warning=on_warning, sleep=sleep,
        )
        self.autosave.mark_synced(story.updated_at)
        self.sessions = GenerationSessionManager(
            callback=self,
            words_per_second=self.settings.reveal_words_per_second,
            clock=clock,
            sleep=sleep,
        )

    @classmethod
    async def open(
        cls,
        story_id: str,
        store: RecordStore,
        snapshots: SnapshotStore,
        writer: SceneWriter,
        rewriter: ChunkedRewriteEngine,
        strategy: RecoveryStrategy,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> "StoryEditor":
        """Load a story, reconcile it with any local snapshot, and open it."""
        settings = settings or Settings()
        story = await asyncio.to_thread(store.get_story, story_id)
        if story is None:
            raise ValidationError("Story not found", {"story_id": story_id})

        outcome = await resolve_recovery(story, snapshots, strategy, settings.completion_word_threshold)
        story.chapters = outcome.chapters
        editor = cls(story, store, snapshots, writer, rewriter, settings=settings, **kwargs)
        editor.recovery = outcome
        if outcome.recovered:
            editor.autosave.record_change(editor.chapters)
        return editor

    # ---- chapter state ----

    def chapter(self, index: int) -> Chapter:
        if not 0 <= index < len(self.chapters):
            raise ValidationError("Unknown chapter index", {"index": index})
        return self.chapters[index]

    def _apply(self, index: int, content: str) -> None:
        chapter = self.chapter(index)
        chapter.content = content
        chapter.completed = index in self._forced or is_chapter_complete(
            content, self.settings.completion_word_threshold
        )

    def update_content(self, index: int, content: str) -> Chapter:
        """User edit: replace a chapter's prose and schedule a save."""
        self._apply(index, content)
        self.autosave.record_change(self.chapters)
        return self.chapters[index]

    def mark_complete(self, index: int, completed: bool = True) -> Chapter:
        """Force the completion flag on, or hand it back to the word threshold."""
        chapter = self.chapter(index)
        if completed:
            self._forced.add(index)
        else:
            self._forced.discard(index)
        self._apply(index, chapter.content)
        self.autosave.record_change(self.chapters)
        return chapter

    # ---- session callbacks ----

    def on_progress(self, chapter_index: Optional[int], chunk: str) -> None:
        session = self.sessions.active
        if chapter_index is not None and session is not None and session.kind in _LIVE_KINDS:
            self._live[chapter_index] = self._live.get(chapter_index, "") + chunk
            self._apply(chapter_index, self._live[chapter_index])
        if self.surface is not None:
            self.surface.on_progress(chapter_index, chunk)

    def on_save(self, chapter_index: Optional[int], content: str) -> None:
        self._live.pop(chapter_index, None)
        if chapter_index is not None:
            self.update_content(chapter_index, content)
        if self.surface is not None:
            self.surface.on_save(chapter_index, content)

    def on_restore(self, chapter_index: Optional[int], content: str) -> None:
        self._live.pop(chapter_index, None)
        if chapter_index is not None:
            self.update_content(chapter_index, content)
        if self.surface is not None:
            self.surface.on_restore(chapter_index, content)

    def on_error(self, kind: SessionKind, error: Exception) -> None:
        if self.surface is not None:
            self.surface.on_error(kind, error)

    # ---- generation ----

    async def _run(self, kind, producer, index, finalize=None) -> Optional[str]:
        self._live[index] = ""
        try:
            return await self.sessions.run(
                kind,
                producer,
                pre_session_content=self.chapters[index].content,
                chapter_index=index,
                finalize=finalize,
            )
        finally:
            # A newer session on the same chapter owns the live buffer now
            active = self.sessions.active
            if active is None or active.chapter_index != index:
                self._live.pop(index, None)

    async def write(self, index: int) -> Optional[str]:
        """Generate the chapter from its beat."""
        self.sessions.cancel()
        producer = self.writer.stream_scene(self.chapters, index, self.story.characters)
        return await self._run(SessionKind.WRITE, producer, index)

    async def revise(self, index: int, feedback: str) -> Optional[str]:
        self.sessions.cancel()
        chapter = self.chapter(index)
        producer = self.writer.stream_revision(chapter.content, feedback, chapter.beat, self.story.characters)
        return await self._run(SessionKind.REVISE, producer, index)

    async def transition(self, index: int) -> Optional[str]:
        """Prepend a bridge from the previous chapter to this one."""
        self.sessions.cancel()
        if index < 1:
            raise ValidationError("The first chapter has no previous chapter to transition from")
        previous, current = self.chapter(index - 1), self.chapter(index)
        producer = self.writer.stream_transition(previous.content, current.content, current.beat)
        return await self._run(
            SessionKind.TRANSITION,
            producer,
            index,
            finalize=lambda text: join_transition(text, self.chapters[index].content),
        )

    async def refine(self, index: int) -> Optional[str]:
        """Rewrite the chapter's narrative sections."""
        self.sessions.cancel()
        chapter = self.chapter(index)
        if not chapter.content.strip():
            raise ValidationError("There is no chapter text to refine", {"index": index})
        producer = self.rewriter.refine(chapter.content)
        return await self._run(SessionKind.REFINE, producer, index)

    def cancel(self) -> bool:
        return self.sessions.cancel()

    async def close(self) -> bool:
        """Tear down the surface with one final flush."""
        return await self.autosave.close()
