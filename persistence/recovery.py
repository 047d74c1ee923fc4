"""Load-time reconciliation of the local snapshot against the backend record."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Optional, Protocol, Union

from models.enums import RecoveryAction
from models.save_state import LocalSnapshot
from models.story import Chapter, Story, chapters_from_outline
from persistence.snapshot import SnapshotStore
from tools.text_utils import is_chapter_complete

logger = logging.getLogger(__name__)

RECOVERY_QUESTION = (
    "We found unsaved changes from your last session. Would you like to recover them?"
)


@dataclass(frozen=True)
class Decision:
    action: RecoveryAction
    snapshot: Optional[LocalSnapshot] = None


def reconcile(local: Optional[LocalSnapshot], remote_synced_at: Optional[float]) -> Decision:
    """Decide what to do with a snapshot found at load time.

    The snapshot only matters when it is strictly newer than the last
    confirmed backend sync.
    """
    if local is None:
        return Decision(RecoveryAction.NO_SNAPSHOT)
    if remote_synced_at is None or local.timestamp > remote_synced_at:
        return Decision(RecoveryAction.PROMPT, local)
    return Decision(RecoveryAction.USE_REMOTE, local)


def merge_chapters(base: list[Chapter], saved: list[Chapter], threshold: int) -> list[Chapter]:
    """Overlay saved chapters onto outline chapters by position.

    Chapters are matched by index only; reordering the outline misaligns
    saved prose. Saved chapters beyond the outline are kept at the end.
    """
    merged = []
    for index, chapter in enumerate(base):
        other = saved[index] if index < len(saved) else None
        content = other.content if other else ""
        merged.append(Chapter(
            title=(other.title if other and other.title else chapter.title),
            content=content,
            completed=bool(other and other.completed) or is_chapter_complete(content, threshold),
            beat=chapter.beat,
        ))
    for other in saved[len(base):]:
        merged.append(Chapter(
            title=other.title,
            content=other.content,
            completed=other.completed or is_chapter_complete(other.content, threshold),
        ))
    return merged


class RecoveryStrategy(Protocol):
    """Asked whether a newer local snapshot should replace the backend copy."""

    def __call__(self, snapshot: LocalSnapshot) -> Union[bool, Awaitable[bool]]: ...


class AlwaysRecover:
    def __call__(self, snapshot: LocalSnapshot) -> bool:
        return True


class NeverRecover:
    def __call__(self, snapshot: LocalSnapshot) -> bool:
        return False


@dataclass
class RecoveryOutcome:
    chapters: list[Chapter] = field(default_factory=list)
    decision: Decision = field(default_factory=lambda: Decision(RecoveryAction.NO_SNAPSHOT))
    recovered: bool = False


async def resolve_recovery(
    story: Story,
    snapshots: SnapshotStore,
    strategy: RecoveryStrategy,
    threshold: int,
) -> RecoveryOutcome:
    """Build the working chapters for a freshly opened story.

    Accepting a newer snapshot makes it the working state; declining purges
    it. A snapshot that is not newer is left alone and the backend copy wins.
    """
    base = chapters_from_outline(story.outline)
    decision = reconcile(snapshots.load(story.id), story.updated_at)

    if decision.action == RecoveryAction.PROMPT:
        answer = strategy(decision.snapshot)
        if inspect.isawaitable(answer):
            answer = await answer
        if answer:
            logger.info("Recovered unsaved changes for story %s", story.id)
            return RecoveryOutcome(
                chapters=merge_chapters(base, decision.snapshot.chapters, threshold),
                decision=decision,
                recovered=True,
            )
        logger.info("Discarding unsaved changes for story %s", story.id)
        snapshots.clear(story.id)

    return RecoveryOutcome(
        chapters=merge_chapters(base, story.chapters, threshold),
        decision=decision,
    )
