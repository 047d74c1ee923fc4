"""Tests for debounced autosave with write-ahead snapshots."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from config.exceptions import PersistenceError
from models.enums import RecoveryAction
from models.story import Chapter
from persistence.autosave import LOCAL_WARNING, SYNC_WARNING, AutosaveManager
from persistence.recovery import reconcile
from persistence.snapshot import SnapshotStore


def _chapters(text):
    return [Chapter(title="Chapter 1", content=text)]


@pytest.fixture
def remote():
    store = MagicMock()
    store.update_chapters.return_value = 100.0
    return store


@pytest.fixture
def warnings():
    return []


@pytest.fixture
def make_manager(remote, snapshots, settings, no_sleep, warnings):
    def make(**kwargs):
        kwargs.setdefault("sleep", no_sleep)
        return AutosaveManager(
            "s1", remote, snapshots, settings=settings, on_warning=warnings.append, **kwargs
        )
    return make


class TestRecordChange:
    @pytest.mark.asyncio
    async def test_snapshot_written_before_sync(self, make_manager, snapshots):
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        assert snapshots.load("s1").chapters[0].content == "draft"
        assert manager.state.pending_changes
        await manager.close()

    @pytest.mark.asyncio
    async def test_debounced_sync_clears_snapshot(self, make_manager, remote, snapshots, no_sleep, settings):
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        await manager.wait_idle()
        no_sleep.assert_awaited_with(settings.autosave_interval)
        remote.update_chapters.assert_called_once()
        assert remote.update_chapters.call_args.args[0] == "s1"
        assert not manager.state.pending_changes
        assert manager.state.last_synced_timestamp == 100.0
        assert snapshots.load("s1") is None

    @pytest.mark.asyncio
    async def test_local_snapshot_failure_warns(self, remote, settings, no_sleep, warnings):
        broken = MagicMock()
        broken.save.side_effect = PersistenceError("quota exceeded")
        manager = AutosaveManager("s1", remote, broken, settings, warnings.append, sleep=no_sleep)
        manager.record_change(_chapters("draft"))
        assert warnings == [LOCAL_WARNING]
        await manager.wait_idle()
        remote.update_chapters.assert_called_once()

    @pytest.mark.asyncio
    async def test_burst_of_edits_syncs_latest(self, make_manager, remote):
        gate = asyncio.Event()

        async def sleep(delay):
            await gate.wait()

        manager = make_manager(sleep=sleep)
        for text in ("a", "ab", "abc"):
            manager.record_change(_chapters(text))
            await asyncio.sleep(0)
        gate.set()
        await manager.wait_idle()
        remote.update_chapters.assert_called_once()
        assert remote.update_chapters.call_args.args[1][0].content == "abc"


class TestRetries:
    @pytest.mark.asyncio
    async def test_fail_twice_then_succeed(self, make_manager, remote, snapshots, no_sleep, warnings):
        present = []

        def update(story_id, chapters):
            present.append(snapshots.load(story_id) is not None)
            if len(present) < 3:
                raise PersistenceError("backend down")
            return 200.0

        remote.update_chapters.side_effect = update
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        await manager.wait_idle()

        assert present == [True, True, True]
        assert [c.args[0] for c in no_sleep.await_args_list] == [5.0, 2.0, 4.0]
        assert manager.state.retry_count == 0
        assert manager.state.last_error is None
        assert not manager.state.pending_changes
        assert snapshots.load("s1") is None
        assert warnings == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_warn_and_keep_snapshot(self, make_manager, remote, snapshots, warnings, settings):
        remote.update_chapters.side_effect = PersistenceError("backend down")
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        await manager.wait_idle()

        assert remote.update_chapters.call_count == settings.autosave_max_retries
        assert warnings == [SYNC_WARNING]
        assert manager.state.pending_changes
        assert manager.state.last_error == "backend down"
        assert snapshots.load("s1") is not None

    @pytest.mark.asyncio
    async def test_new_edit_after_exhaustion_retries_again(self, make_manager, remote, settings):
        remote.update_chapters.side_effect = PersistenceError("backend down")
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        await manager.wait_idle()

        remote.update_chapters.side_effect = None
        manager.record_change(_chapters("draft 2"))
        await manager.wait_idle()
        assert not manager.state.pending_changes
        assert remote.update_chapters.call_count == settings.autosave_max_retries + 1

    def test_backoff_capped(self, make_manager, settings):
        manager = make_manager()
        assert manager.backoff(0) == 1.0
        assert manager.backoff(3) == 8.0
        assert manager.backoff(10) == settings.autosave_backoff_max


class TestConsistency:
    @pytest.mark.asyncio
    async def test_edit_during_sync_stays_pending(self, make_manager, remote, snapshots):
        started = threading.Event()
        release = threading.Event()
        synced = []

        def slow_update(story_id, chapters):
            started.set()
            release.wait(5)
            synced.append(chapters[0].content)
            return 300.0

        remote.update_chapters.side_effect = slow_update
        manager = make_manager()
        manager.record_change(_chapters("first"))
        await asyncio.to_thread(started.wait, 5)

        manager.record_change(_chapters("second"))
        release.set()
        await manager.wait_idle()

        assert synced == ["first", "second"]
        assert not manager.state.pending_changes
        assert snapshots.load("s1") is None

    @pytest.mark.asyncio
    async def test_edit_during_sync_outlives_it(self, remote, local_store, settings, warnings):
        snapshots = SnapshotStore(local_store, clock=lambda: 5.0)
        started = threading.Event()
        release = threading.Event()

        def slow_update(story_id, chapters):
            started.set()
            release.wait(5)
            return 10.0

        remote.update_chapters.side_effect = slow_update
        held = asyncio.Event()

        async def sleep(delay):
            await held.wait()

        manager = AutosaveManager("s1", remote, snapshots, settings, warnings.append, sleep=sleep)
        manager.record_change(_chapters("first"))
        flush = asyncio.create_task(manager.flush())
        await asyncio.to_thread(started.wait, 5)

        manager.record_change(_chapters("second"))
        release.set()
        assert await flush is False

        snapshot = snapshots.load("s1")
        assert snapshot.chapters[0].content == "second"
        assert snapshot.timestamp > 10.0
        assert reconcile(snapshot, 10.0).action == RecoveryAction.PROMPT
        assert manager.state.pending_changes
        await manager.close()

    @pytest.mark.asyncio
    async def test_recorded_chapters_are_copies(self, make_manager, remote):
        manager = make_manager()
        chapters = _chapters("draft")
        manager.record_change(chapters)
        chapters[0].content = "streamed over"
        await manager.close()
        assert remote.update_chapters.call_args.args[1][0].content == "draft"

    @pytest.mark.asyncio
    async def test_flush_without_changes(self, make_manager, remote):
        manager = make_manager()
        assert await manager.flush() is True
        remote.update_chapters.assert_not_called()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_flushes_once(self, make_manager, remote):
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        assert await manager.close() is True
        await manager.wait_idle()
        remote.update_chapters.assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_close_keeps_snapshot(self, make_manager, remote, snapshots, warnings):
        remote.update_chapters.side_effect = PersistenceError("offline")
        manager = make_manager()
        manager.record_change(_chapters("draft"))
        assert await manager.close() is False
        await manager.wait_idle()
        assert remote.update_chapters.call_count == 1
        assert warnings == [SYNC_WARNING]
        assert snapshots.load("s1") is not None

    @pytest.mark.asyncio
    async def test_close_without_changes(self, make_manager, remote):
        assert await make_manager().close() is True
        remote.update_chapters.assert_not_called()

    @pytest.mark.asyncio
    async def test_mark_synced(self, make_manager):
        manager = make_manager()
        manager.mark_synced(42.0)
        assert manager.state.last_synced_timestamp == 42.0
