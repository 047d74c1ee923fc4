"""Tests for the local store, snapshots and load-time recovery."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.exceptions import PersistenceError
from models.enums import RecoveryAction
from models.save_state import LocalSnapshot
from models.story import Chapter
from persistence.local_store import FileLocalStore, InMemoryLocalStore
from persistence.recovery import (
    AlwaysRecover,
    NeverRecover,
    merge_chapters,
    reconcile,
    resolve_recovery,
)
from persistence.snapshot import SnapshotStore, snapshot_key


class TestLocalStores:
    def test_in_memory(self):
        store = InMemoryLocalStore()
        store.set("k", "v")
        assert store.get("k") == "v"
        store.remove("k")
        store.remove("k")
        assert store.get("k") is None

    def test_file_store_round_trip(self, tmp_path):
        store = FileLocalStore(tmp_path / "local")
        store.set("story_a/b_chapters", "payload")
        assert store.get("story_a/b_chapters") == "payload"
        assert [p.name for p in (tmp_path / "local").iterdir()] == ["story_a%2Fb_chapters.json"]
        store.remove("story_a/b_chapters")
        assert store.get("story_a/b_chapters") is None

    def test_file_store_last_writer_wins(self, tmp_path):
        store = FileLocalStore(tmp_path)
        store.set("k", "one")
        store.set("k", "two")
        assert store.get("k") == "two"

    def test_file_store_write_failure(self, tmp_path):
        store = FileLocalStore(tmp_path / "gone")
        (tmp_path / "gone").rmdir()
        with pytest.raises(PersistenceError):
            store.set("k", "v")


class TestSnapshotStore:
    def test_save_writes_versioned_record(self, local_store):
        snapshots = SnapshotStore(local_store, version=1, clock=lambda: 100.0)
        snapshots.save("s1", [Chapter(title="Chapter 1", content="Hi", beat="ignored")])
        record = json.loads(local_store.get("story_s1_chapters"))
        assert record == {
            "chapters": [{"title": "Chapter 1", "content": "Hi", "completed": False}],
            "timestamp": 100.0,
            "version": 1,
        }

    def test_load(self, local_store):
        snapshots = SnapshotStore(local_store, clock=lambda: 5.0)
        snapshots.save("s1", [Chapter(content="Hi", completed=True)])
        loaded = snapshots.load("s1")
        assert loaded.timestamp == 5.0
        assert loaded.chapters[0].content == "Hi"
        assert loaded.chapters[0].completed

    def test_missing_and_corrupt(self, local_store, snapshots):
        assert snapshots.load("nope") is None
        local_store.set(snapshot_key("bad"), "{not json")
        assert snapshots.load("bad") is None
        local_store.set(snapshot_key("no_ts"), json.dumps({"chapters": []}))
        assert snapshots.load("no_ts") is None

    def test_other_version_ignored(self, local_store):
        SnapshotStore(local_store, version=1).save("s1", [])
        assert SnapshotStore(local_store, version=2).load("s1") is None

    def test_clear(self, local_store, snapshots):
        snapshots.save("s1", [])
        snapshots.clear("s1")
        assert local_store.keys() == []


class TestReconcile:
    def _snap(self, ts):
        return LocalSnapshot(story_id="s", timestamp=ts)

    def test_no_snapshot(self):
        assert reconcile(None, 10.0).action == RecoveryAction.NO_SNAPSHOT

    def test_newer_snapshot_prompts(self):
        decision = reconcile(self._snap(11.0), 10.0)
        assert decision.action == RecoveryAction.PROMPT
        assert decision.snapshot.timestamp == 11.0

    def test_equal_timestamp_uses_remote(self):
        assert reconcile(self._snap(10.0), 10.0).action == RecoveryAction.USE_REMOTE

    def test_never_synced_prompts(self):
        assert reconcile(self._snap(1.0), None).action == RecoveryAction.PROMPT


class TestMergeChapters:
    def test_positional_overlay(self):
        base = [Chapter(title="Chapter 1", beat="B1"), Chapter(title="Chapter 2", beat="B2")]
        saved = [Chapter(title="", content="one two three", completed=False)]
        merged = merge_chapters(base, saved, threshold=3)
        assert merged[0].content == "one two three"
        assert merged[0].completed
        assert merged[0].title == "Chapter 1"
        assert merged[0].beat == "B1"
        assert merged[1].content == ""
        assert not merged[1].completed

    def test_extra_saved_chapters_kept(self):
        base = [Chapter(title="Chapter 1", beat="B1")]
        saved = [Chapter(content="a"), Chapter(title="Epilogue", content="b", completed=True)]
        merged = merge_chapters(base, saved, threshold=100)
        assert [c.title for c in merged] == ["Chapter 1", "Epilogue"]
        assert merged[1].completed

    def test_forced_completion_kept(self):
        merged = merge_chapters([Chapter(title="Chapter 1")], [Chapter(content="short", completed=True)], 100)
        assert merged[0].completed


class TestResolveRecovery:
    @pytest.fixture
    def story(self, sample_story):
        sample_story.id = "s1"
        sample_story.updated_at = 50.0
        sample_story.chapters[0].content = "remote text"
        return sample_story

    @pytest.mark.asyncio
    async def test_accepting_newer_snapshot(self, story, local_store):
        snapshots = SnapshotStore(local_store, clock=lambda: 60.0)
        snapshots.save("s1", [Chapter(content="local text")])
        outcome = await resolve_recovery(story, snapshots, AlwaysRecover(), threshold=5)
        assert outcome.recovered
        assert outcome.chapters[0].content == "local text"
        assert outcome.chapters[0].beat == story.outline[0]
        assert snapshots.load("s1") is not None

    @pytest.mark.asyncio
    async def test_declining_purges_snapshot(self, story, local_store):
        snapshots = SnapshotStore(local_store, clock=lambda: 60.0)
        snapshots.save("s1", [Chapter(content="local text")])
        outcome = await resolve_recovery(story, snapshots, NeverRecover(), threshold=5)
        assert not outcome.recovered
        assert outcome.chapters[0].content == "remote text"
        assert snapshots.load("s1") is None

    @pytest.mark.asyncio
    async def test_async_strategy_awaited(self, story, local_store):
        snapshots = SnapshotStore(local_store, clock=lambda: 60.0)
        snapshots.save("s1", [Chapter(content="local text")])
        strategy = AsyncMock(return_value=True)
        outcome = await resolve_recovery(story, snapshots, strategy, threshold=5)
        assert outcome.recovered
        strategy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_older_snapshot_not_offered(self, story, local_store):
        snapshots = SnapshotStore(local_store, clock=lambda: 40.0)
        snapshots.save("s1", [Chapter(content="old local")])
        strategy = MagicMock()
        outcome = await resolve_recovery(story, snapshots, strategy, threshold=5)
        strategy.assert_not_called()
        assert outcome.decision.action == RecoveryAction.USE_REMOTE
        assert outcome.chapters[0].content == "remote text"

    @pytest.mark.asyncio
    async def test_no_snapshot_builds_from_outline(self, story, snapshots):
        outcome = await resolve_recovery(story, snapshots, AlwaysRecover(), threshold=5)
        assert [c.beat for c in outcome.chapters] == story.outline
        assert outcome.decision.action == RecoveryAction.NO_SNAPSHOT
