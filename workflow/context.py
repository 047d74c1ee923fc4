"""Prompt context assembly: recent chapters plus the beats still to come."""

from dataclasses import dataclass, field

from models.story import Chapter
from tools.text_utils import truncate_head

NO_CONTEXT = "No previous context. This is the first scene of the story."
FUTURE_HEADER = (
    "Upcoming chapters. Do NOT reveal or write these events yet; "
    "you may subtly foreshadow them:"
)


@dataclass
class PromptContext:
    recent: list[tuple[int, str]] = field(default_factory=list)
    future_beats: list[tuple[int, str]] = field(default_factory=list)
    max_chars: int = 8000


def build_context(
    chapters: list[Chapter],
    index: int,
    recent_count: int = 4,
    max_chars: int = 8000,
) -> PromptContext:
    """Collect the prior chapters with text and every unwritten later beat."""
    prior = [(i, c.content.strip()) for i, c in enumerate(chapters[:index]) if c.content.strip()]
    recent = prior[-recent_count:] if recent_count > 0 else []
    future = [
        (i, c.beat.strip())
        for i, c in enumerate(chapters[index + 1:], start=index + 1)
        if c.beat.strip() and not c.content.strip()
    ]
    return PromptContext(recent=recent, future_beats=future, max_chars=max_chars)


def render_context(context: PromptContext) -> str:
    if context.recent:
        previous = "\n\n".join(f"Chapter {i + 1}:\n{text}" for i, text in context.recent)
        previous = truncate_head(previous, context.max_chars)
    else:
        previous = NO_CONTEXT

    if not context.future_beats:
        return previous
    upcoming = "\n".join(f"- Chapter {i + 1}: {beat}" for i, beat in context.future_beats)
    return f"{previous}\n\n{FUTURE_HEADER}\n{upcoming}"
