"""Writer Agent: streamed scene writing, revision and chapter transitions."""

import logging
from typing import AsyncIterator, Optional

from agents.base_agent import BaseAgent
from config.exceptions import ValidationError
from config.settings import Settings
from models.story import Chapter
from tools.provider_client import ProviderClient
from tools.text_utils import first_paragraphs, last_paragraphs, strip_emphasis
from workflow.context import build_context, render_context

logger = logging.getLogger(__name__)

# Paragraphs taken from each side of a chapter boundary
_TRANSITION_PARAGRAPHS = 4


def join_transition(transition: str, current_content: str) -> str:
    """Prepend a generated transition to the chapter it leads into."""
    transition = transition.strip()
    if not transition:
        return current_content
    return f"{transition}\n\n{current_content.lstrip()}"


class SceneWriter(BaseAgent):
    """Builds scene, revision and transition prompts and streams the prose.

    Each ``stream_*`` method validates its input eagerly and returns an async
    iterator of text deltas for a generation session to consume.
    """

    def __init__(
        self,
        provider: Optional[ProviderClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(provider, settings)
        self._scene_template = self._load_prompt("scene")
        self._revise_template = self._load_prompt("revise")
        self._transition_template = self._load_prompt("transition")

    def stream_scene(
        self,
        chapters: list[Chapter],
        index: int,
        characters: str = "",
    ) -> AsyncIterator[str]:
        """Stream the prose for chapter `index` from its beat.

        Raises:
            ValidationError: Unknown chapter or empty beat.
        """
        if not 0 <= index < len(chapters):
            raise ValidationError("Unknown chapter index", {"index": index})
        beat = chapters[index].beat.strip()
        if not beat:
            raise ValidationError(
                "Scene beat is required to generate a scene. Please provide a scene beat.",
                {"index": index},
            )

        context = build_context(
            chapters,
            index,
            recent_count=self.settings.context_recent_chapters,
            max_chars=self.settings.context_max_chars,
        )
        prompt = self._extract_section(self._scene_template, "Instructions").format(
            characters=characters or "(no character descriptions)",
            context=render_context(context),
            beat=beat,
        )
        logger.info("Writing chapter %d (%d chars of prompt)", index + 1, len(prompt))
        return self._stream(
            [{"role": "user", "content": prompt}],
            temperature=0.7,
            clean=strip_emphasis,
        )

    def stream_revision(
        self,
        content: str,
        feedback: str,
        beat: str = "",
        characters: str = "",
    ) -> AsyncIterator[str]:
        """Stream a revised version of `content` following the feedback."""
        if not content or not content.strip():
            raise ValidationError("There is no chapter text to revise")
        if not feedback or not feedback.strip():
            raise ValidationError("Feedback is required to revise a scene")

        system_prompt = self._extract_section(self._revise_template, "System Prompt")
        user_prompt = self._extract_section(self._revise_template, "Instructions").format(
            content=content,
            feedback=feedback.strip(),
            beat=beat,
            characters=characters,
        )
        logger.info("Revising scene (%d chars)", len(content))
        return self._stream(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.7,
            max_tokens=4000,
        )

    def stream_transition(
        self,
        previous_content: str,
        current_content: str,
        beat: str = "",
    ) -> AsyncIterator[str]:
        """Stream bridging paragraphs between two chapters.

        Raises:
            ValidationError: Either chapter has no paragraphs to work with.
        """
        previous = last_paragraphs(previous_content, _TRANSITION_PARAGRAPHS)
        current = first_paragraphs(current_content, _TRANSITION_PARAGRAPHS)
        if not previous or not current:
            raise ValidationError("Not enough content in chapters to create a transition")

        prompt = self._extract_section(self._transition_template, "Instructions").format(
            previous="\n\n".join(previous),
            current="\n\n".join(current),
            beat=beat,
        )
        return self._stream(
            [{"role": "user", "content": prompt}],
            temperature=0.5,
            max_tokens=500,
        )

    async def _stream(
        self,
        messages: list[dict],
        temperature: float,
        max_tokens: Optional[int] = None,
        clean=None,
    ) -> AsyncIterator[str]:
        stream = self.provider.stream(
            messages,
            model=self._model(),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        try:
            async for delta in stream:
                if clean is not None:
                    delta = clean(delta)
                if delta:
                    yield delta
        finally:
            await stream.aclose()
