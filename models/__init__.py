"""Models package — story records, save state, enums and the record store."""

from models.database import RecordStore, StoryRecordStore
from models.story import (
    Chapter,
    Character,
    Story,
    chapters_from_json,
    chapters_from_outline,
    chapters_to_json,
    outline_from_json,
    outline_to_json,
)
from models.save_state import LocalSnapshot, SaveState
from models.enums import (
    Provider,
    SessionKind,
    SectionKind,
    ParseTag,
    RecoveryAction,
)

__all__ = [
    "RecordStore",
    "StoryRecordStore",
    "Chapter",
    "Character",
    "Story",
    "chapters_from_json",
    "chapters_from_outline",
    "chapters_to_json",
    "outline_from_json",
    "outline_to_json",
    "LocalSnapshot",
    "SaveState",
    "Provider",
    "SessionKind",
    "SectionKind",
    "ParseTag",
    "RecoveryAction",
]
