"""Story, chapter and character data models plus their JSON exchange format."""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

# Outline stored for records whose plot_outline is missing or corrupt
DEFAULT_OUTLINE = ["Chapter 1: Begin your story here..."]


@dataclass
class Chapter:
    """A single chapter: prose plus the beat it was seeded from."""
    title: str = ""
    content: str = ""
    completed: bool = False
    beat: str = ""

    def to_dict(self) -> dict:
        """Exchange form — the beat is not persisted with the chapter."""
        return {"title": self.title, "content": self.content, "completed": self.completed}


@dataclass
class Character:
    """Represents one entry of the character roster."""
    name: str = ""
    aliases: str = ""
    pronouns: str = ""
    age: str = ""
    description: str = ""


@dataclass
class Story:
    """Represents a story record and its editable chapters."""
    id: Optional[str] = None
    user_id: str = ""
    title: str = ""
    premise: str = ""
    outline: list[str] = field(default_factory=list)
    characters: str = ""
    chapters: list[Chapter] = field(default_factory=list)
    parent_story_id: Optional[str] = None
    is_sequel: bool = False
    created_at: Optional[float] = None
    updated_at: Optional[float] = None


def chapters_from_outline(outline: list[str]) -> list[Chapter]:
    """Build one empty chapter per beat."""
    return [
        Chapter(title=f"Chapter {index + 1}", content="", completed=False, beat=beat)
        for index, beat in enumerate(outline)
    ]


def chapters_to_json(chapters: list[Chapter]) -> str:
    return json.dumps([c.to_dict() for c in chapters], ensure_ascii=False)


def chapters_from_json(text: Optional[str]) -> list[Chapter]:
    """Parse the chapter exchange format; malformed input yields an empty list."""
    if not text:
        return []
    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Discarding malformed chapters JSON (%d chars)", len(text))
        return []
    if not isinstance(raw, list):
        return []
    chapters = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        chapters.append(Chapter(
            title=str(item.get("title") or ""),
            content=str(item.get("content") or ""),
            completed=bool(item.get("completed", False)),
        ))
    return chapters


def outline_to_json(outline: list[str]) -> str:
    return json.dumps(list(outline), ensure_ascii=False)


def outline_from_json(text: Optional[str]) -> Optional[list[str]]:
    """Parse a stored outline. Returns None when the value is missing or corrupt."""
    if not text:
        return None
    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, list):
        return None
    return [str(beat) for beat in raw]
