"""Persistence package — local snapshots, autosave and load-time recovery."""

from persistence.local_store import FileLocalStore, InMemoryLocalStore, LocalStore
from persistence.snapshot import SnapshotStore, snapshot_key
from persistence.recovery import (
    AlwaysRecover,
    Decision,
    NeverRecover,
    RecoveryOutcome,
    merge_chapters,
    reconcile,
    resolve_recovery,
)
from persistence.autosave import AutosaveManager

__all__ = [
    "FileLocalStore",
    "InMemoryLocalStore",
    "LocalStore",
    "SnapshotStore",
    "snapshot_key",
    "AlwaysRecover",
    "Decision",
    "NeverRecover",
    "RecoveryOutcome",
    "merge_chapters",
    "reconcile",
    "resolve_recovery",
    "AutosaveManager",
]
