"""Debounced backend sync behind a write-ahead local snapshot.

Every change is written to the local snapshot straight away. A debounce
timer then pushes the chapters to the record store; failed pushes are retried
with capped exponential backoff on an independent timer. The snapshot is only
cleared once the revision it holds has been confirmed by the backend.
"""

import asyncio
import dataclasses
import logging
from typing import Awaitable, Callable, Optional

from config.exceptions import PersistenceError
from config.settings import Settings
from models.database import RecordStore
from models.save_state import SaveState
from models.story import Chapter
from persistence.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

SYNC_WARNING = "Error saving changes. Your work is saved locally and will sync when connection is restored."
LOCAL_WARNING = "Local save failed. Changes will be saved when connection is restored."


class AutosaveManager:
    """Keeps one story's chapters durable while they are being edited."""

    def __init__(
        self,
        story_id: str,
        store: RecordStore,
        snapshots: SnapshotStore,
        settings: Optional[Settings] = None,
        on_warning: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.story_id = story_id
        self.store = store
        self.snapshots = snapshots
        self.settings = settings or Settings()
        self.on_warning = on_warning
        self._sleep = sleep

        self.state = SaveState()
        self._chapters: list[Chapter] = []
        self._revision = 0
        self._lock = asyncio.Lock()
        self._debounce_timer: Optional[asyncio.Task] = None
        self._retry_timer: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def revision(self) -> int:
        return self._revision

    def mark_synced(self, timestamp: Optional[float]) -> None:
        """Record the backend sync time of the state loaded at open."""
        self.state.last_synced_timestamp = timestamp

    def _warn(self, message: str) -> None:
        if self.on_warning is not None:
            self.on_warning(message)

    def _write_snapshot(self, after: Optional[float] = None) -> None:
        try:
            self.snapshots.save(self.story_id, self._chapters, after=after)
        except PersistenceError as e:
            logger.error("Local snapshot for story %s failed: %s", self.story_id, e)
            self._warn(LOCAL_WARNING)

    def record_change(self, chapters: list[Chapter]) -> None:
        """Snapshot the chapters locally and (re)arm the debounce timer."""
        self._chapters = [dataclasses.replace(c) for c in chapters]
        self._revision += 1
        self.state.pending_changes = True
        if self.state.retry_count >= self.settings.autosave_max_retries:
            self.state.retry_count = 0

        self._write_snapshot()

        if not self._closed:
            self._schedule_debounce()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Only a timer that is still sleeping is cancelled; a flush it already
    # started runs to completion.

    def _schedule_debounce(self) -> None:
        if self._debounce_timer is not None and not self._debounce_timer.done():
            self._debounce_timer.cancel()
        self._debounce_timer = self._spawn(self._debounced())

    async def _debounced(self) -> None:
        await self._sleep(self.settings.autosave_interval)
        if self._debounce_timer is asyncio.current_task():
            self._debounce_timer = None
        await self.flush()

    def _schedule_retry(self, delay: float) -> None:
        if self._retry_timer is not None and not self._retry_timer.done():
            self._retry_timer.cancel()
        self._retry_timer = self._spawn(self._retry_later(delay))

    async def _retry_later(self, delay: float) -> None:
        await self._sleep(delay)
        if self._retry_timer is asyncio.current_task():
            self._retry_timer = None
        await self.flush()

    def backoff(self, retry_count: int) -> float:
        return min(
            self.settings.autosave_backoff_base * (2 ** retry_count),
            self.settings.autosave_backoff_max,
        )

    async def flush(self) -> bool:
        """Push pending chapters to the backend. Safe to call repeatedly.

        Returns:
            True when nothing is left pending for the flushed revision.
        """
        async with self._lock:
            if not self.state.pending_changes:
                return True
            revision = self._revision
            chapters = self._chapters

            try:
                synced_at = await asyncio.to_thread(self.store.update_chapters, self.story_id, chapters)
            except PersistenceError as e:
                self.state.last_error = str(e)
                self.state.retry_count += 1
                self.state.pending_changes = True
                logger.warning(
                    "Sync of story %s failed (attempt %d/%d): %s",
                    self.story_id, self.state.retry_count, self.settings.autosave_max_retries, e,
                )
                if self.state.retry_count < self.settings.autosave_max_retries and not self._closed:
                    self._schedule_retry(self.backoff(self.state.retry_count))
                else:
                    self._warn(SYNC_WARNING)
                return False

            self.state.last_synced_timestamp = synced_at
            self.state.retry_count = 0
            self.state.last_error = None

            if revision != self._revision:
                logger.debug("Story %s changed during sync; staying pending", self.story_id)
                # Re-stamp so the snapshot stays newer than the sync it outlived
                self._write_snapshot(after=synced_at)
                return False

            self.state.pending_changes = False
            try:
                self.snapshots.clear(self.story_id)
            except PersistenceError as e:
                logger.warning("Could not clear snapshot for story %s: %s", self.story_id, e)
            logger.debug("Story %s synced at revision %d", self.story_id, revision)
            return True

    async def wait_idle(self) -> None:
        """Wait until no debounce or retry timer or timer-started flush is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> bool:
        """Stop the timers and make one final best-effort flush."""
        self._closed = True
        for timer in (self._debounce_timer, self._retry_timer):
            if timer is not None and not timer.done():
                timer.cancel()
        if not self.state.pending_changes:
            return True
        synced = await self.flush()
        if not synced:
            logger.warning("Final sync of story %s failed; changes remain in the local snapshot", self.story_id)
        return synced
