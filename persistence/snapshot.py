"""Versioned write-ahead chapter snapshots in the local store."""

import json
import logging
import math
import time
from typing import Callable, Optional

from models.save_state import LocalSnapshot
from models.story import Chapter, chapters_from_json
from persistence.local_store import LocalStore

logger = logging.getLogger(__name__)


def snapshot_key(story_id: str) -> str:
    return f"story_{story_id}_chapters"


class SnapshotStore:
    """Reads and writes `{chapters, timestamp, version}` records per story."""

    def __init__(
        self,
        store: LocalStore,
        version: int = 1,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.version = version
        self._clock = clock

    def save(self, story_id: str, chapters: list[Chapter], after: Optional[float] = None) -> LocalSnapshot:
        """Write a snapshot; with ``after`` its timestamp is forced past that time."""
        timestamp = self._clock()
        if after is not None and timestamp <= after:
            timestamp = math.nextafter(after, math.inf)
        snapshot = LocalSnapshot(
            story_id=story_id,
            chapters=list(chapters),
            timestamp=timestamp,
            version=self.version,
        )
        payload = {
            "chapters": [c.to_dict() for c in chapters],
            "timestamp": snapshot.timestamp,
            "version": snapshot.version,
        }
        self.store.set(snapshot_key(story_id), json.dumps(payload, ensure_ascii=False))
        return snapshot

    def load(self, story_id: str) -> Optional[LocalSnapshot]:
        """Return the snapshot, or None if missing, corrupt or of another version."""
        raw = self.store.get(snapshot_key(story_id))
        if not raw:
            return None
        try:
            data = json.loads(raw)
            timestamp = float(data["timestamp"])
            version = int(data.get("version", 0))
            chapters = chapters_from_json(json.dumps(data.get("chapters", [])))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring unreadable snapshot for story %s: %s", story_id, e)
            return None
        if version != self.version:
            logger.warning(
                "Ignoring snapshot for story %s with schema version %s (expected %s)",
                story_id, version, self.version,
            )
            return None
        return LocalSnapshot(story_id=story_id, chapters=chapters, timestamp=timestamp, version=version)

    def clear(self, story_id: str) -> None:
        self.store.remove(snapshot_key(story_id))
