"""Autosave bookkeeping and the local write-ahead snapshot."""

from dataclasses import dataclass, field
from typing import Optional

from models.story import Chapter


@dataclass
class SaveState:
    """Sync status of the editing surface against the backend store."""
    pending_changes: bool = False
    last_synced_timestamp: Optional[float] = None
    retry_count: int = 0
    last_error: Optional[str] = None


@dataclass
class LocalSnapshot:
    """Versioned local copy of the chapters, keyed by story id."""
    story_id: str
    chapters: list[Chapter] = field(default_factory=list)
    timestamp: float = 0.0
    version: int = 1
