"""SQLite backend record store for stories."""

import logging
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from config.exceptions import PersistenceError
from models.story import (
    DEFAULT_OUTLINE,
    Chapter,
    Story,
    chapters_from_json,
    chapters_to_json,
    outline_from_json,
    outline_to_json,
)

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS stories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'Untitled Story',
    story_idea TEXT DEFAULT '',
    plot_outline TEXT,
    characters TEXT DEFAULT '',
    chapters TEXT,
    parent_story_id TEXT,
    is_sequel BOOLEAN DEFAULT FALSE,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
"""

_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_stories_user ON stories(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_stories_parent ON stories(parent_story_id)",
]

# Columns a caller may change through update_story()
_UPDATABLE_FIELDS = {
    "title": "title",
    "premise": "story_idea",
    "outline": "plot_outline",
    "characters": "characters",
    "chapters": "chapters",
    "parent_story_id": "parent_story_id",
    "is_sequel": "is_sequel",
}


@runtime_checkable
class RecordStore(Protocol):
    """Backend record CRUD consumed by the engine. No cross-record transactions."""

    def create_story(self, story: Story) -> str: ...

    def get_story(self, story_id: str) -> Optional[Story]: ...

    def list_stories(self, user_id: str) -> list[Story]: ...

    def update_story(self, story_id: str, **fields) -> Story: ...

    def update_chapters(self, story_id: str, chapters: list[Chapter]) -> float: ...

    def delete_story(self, story_id: str) -> None: ...


class StoryRecordStore:
    """SQLite implementation of the story record store."""

    def __init__(self, db_path: str | Path, clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    # ---- Story CRUD ----

    def create_story(self, story: Story) -> str:
        story_id = story.id or str(uuid.uuid4())
        now = self._clock()
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "INSERT INTO stories (id, user_id, title, story_idea, plot_outline, "
                    "characters, chapters, parent_story_id, is_sequel, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (story_id, story.user_id, story.title or "Untitled Story",
                     story.premise, outline_to_json(story.outline), story.characters,
                     chapters_to_json(story.chapters), story.parent_story_id,
                     story.is_sequel, now, now),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to create story: {e}", {"story_id": story_id}) from e
        story.id = story_id
        story.created_at = now
        story.updated_at = now
        logger.info("Story %s created for user %s", story_id, story.user_id)
        return story_id

    def get_story(self, story_id: str) -> Optional[Story]:
        try:
            with self._get_conn() as conn:
                row = conn.execute("SELECT * FROM stories WHERE id = ?", (story_id,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load story: {e}", {"story_id": story_id}) from e
        if not row:
            return None
        story = self._row_to_story(row)
        if outline_from_json(row["plot_outline"]) is None:
            logger.warning("Invalid plot_outline for story %s, repairing", story_id)
            self.update_story(story_id, outline=list(DEFAULT_OUTLINE))
            story.outline = list(DEFAULT_OUTLINE)
        return story

    def list_stories(self, user_id: str) -> list[Story]:
        try:
            with self._get_conn() as conn:
                rows = conn.execute(
                    "SELECT * FROM stories WHERE user_id = ? ORDER BY created_at DESC",
                    (user_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list stories: {e}", {"user_id": user_id}) from e
        return [self._row_to_story(r) for r in rows]

    def update_story(self, story_id: str, **fields) -> Story:
        """Update the given fields and stamp updated_at."""
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown story fields: {sorted(unknown)}")

        assignments = []
        values = []
        for name, value in fields.items():
            if name == "outline":
                value = outline_to_json(value)
            elif name == "chapters":
                value = chapters_to_json(value)
            assignments.append(f"{_UPDATABLE_FIELDS[name]}=?")
            values.append(value)
        assignments.append("updated_at=?")
        values.append(self._clock())
        values.append(story_id)

        try:
            with self._get_conn() as conn:
                cursor = conn.execute(
                    f"UPDATE stories SET {', '.join(assignments)} WHERE id=?",
                    tuple(values),
                )
                if cursor.rowcount == 0:
                    raise PersistenceError("Story not found", {"story_id": story_id})
                row = conn.execute("SELECT * FROM stories WHERE id = ?", (story_id,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update story: {e}", {"story_id": story_id}) from e
        return self._row_to_story(row)

    def update_chapters(self, story_id: str, chapters: list[Chapter]) -> float:
        """Persist the chapter array; returns the confirmed sync timestamp."""
        story = self.update_story(story_id, chapters=chapters)
        return story.updated_at

    def delete_story(self, story_id: str) -> None:
        """Delete a story and detach any sequels pointing at it."""
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "UPDATE stories SET parent_story_id = NULL WHERE parent_story_id = ?",
                    (story_id,),
                )
                conn.execute("DELETE FROM stories WHERE id = ?", (story_id,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete story: {e}", {"story_id": story_id}) from e
        logger.info("Story %s deleted", story_id)

    def _row_to_story(self, row) -> Story:
        return Story(
            id=row["id"], user_id=row["user_id"], title=row["title"],
            premise=row["story_idea"] or "",
            outline=outline_from_json(row["plot_outline"]) or [],
            characters=row["characters"] or "",
            chapters=chapters_from_json(row["chapters"]),
            parent_story_id=row["parent_story_id"],
            is_sequel=bool(row["is_sequel"]),
            created_at=row["created_at"], updated_at=row["updated_at"],
        )
