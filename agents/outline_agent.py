"""Outline Synthesizer: premise -> bounded chapter outline, roster, title and story record."""

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Optional

from agents.base_agent import BaseAgent
from config.exceptions import (
    ConfigurationError,
    MalformedOutputError,
    ProviderError,
    ValidationError,
)
from config.settings import Settings
from models.database import RecordStore
from models.story import Character, Story, chapters_from_outline
from tools.outline_parser import format_scenes, within_bounds
from tools.provider_client import ProviderClient

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Story"
MAX_TITLE_CHARS = 100

_CHARACTER_RE = re.compile(r"<character\b([^>]*)>(.*?)</character>", re.DOTALL | re.IGNORECASE)
_ATTR_RE = re.compile(r"""(\w+)\s*=\s*(?:'([^']*)'|"([^"]*)")""")
_TITLE_QUOTES_RE = re.compile(r"[\"'“”‘’]")
_TITLE_TRAILING_RE = re.compile(r"[.!?]+$")


def ordinal(n: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th', 23 -> '23rd'."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def generate_scene_template(count: int, wrap: bool = False) -> str:
    """JSON skeleton with one placeholder beat per chapter.

    With ``wrap`` the list sits under a "scenes" key, as required when the
    provider's structured-output mode only accepts an object root.
    """
    scenes = [
        {"scene_number": i, "scene_beat": f"<Write the {ordinal(i)} scene beat here>"}
        for i in range(1, count + 1)
    ]
    payload = {"scenes": scenes} if wrap else scenes
    return json.dumps(payload, indent=2)


def clean_title(raw: str) -> str:
    title = _TITLE_QUOTES_RE.sub("", (raw or "").strip())
    return _TITLE_TRAILING_RE.sub("", title).strip()


def parse_characters(text: str) -> list[Character]:
    """Parse the `<character name='..' aliases='..' ...>` roster format."""
    characters = []
    for attrs, body in _CHARACTER_RE.findall(text or ""):
        values = {m.group(1).lower(): (m.group(2) if m.group(2) is not None else m.group(3))
                  for m in _ATTR_RE.finditer(attrs)}
        name = (values.get("name") or "").strip()
        if not name:
            continue
        characters.append(Character(
            name=name,
            aliases=(values.get("aliases") or values.get("alias") or "").strip(),
            pronouns=(values.get("pronouns") or "").strip(),
            age=(values.get("age") or "").strip(),
            description=body.strip(),
        ))
    return characters


class OutlineSynthesizer(BaseAgent):
    """Builds the outline, character roster and title for a new story."""

    def __init__(
        self,
        provider: Optional[ProviderClient] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(provider, settings)
        self._sleep = sleep
        self._outline_template = self._load_prompt("outline")
        self._characters_template = self._load_prompt("characters")
        self._title_template = self._load_prompt("title")
        self._sequel_template = self._load_prompt("sequel")

    async def create_outline(
        self,
        premise: str,
        min_chapters: Optional[int] = None,
        max_chapters: Optional[int] = None,
    ) -> list[str]:
        """Synthesize an ordered beat list whose length lies in [min, max].

        The whole call is retried when the output cannot be parsed or has the
        wrong number of chapters.

        Raises:
            ValidationError: Empty premise or inverted bounds.
            ConfigurationError: Credential or model problem (not retried).
            MalformedOutputError: Every attempt failed.
        """
        if not premise or not premise.strip():
            raise ValidationError("A story idea is required to create an outline")
        min_chapters = min_chapters or self.settings.outline_min_chapters
        max_chapters = max_chapters or self.settings.outline_max_chapters
        if min_chapters < 1 or min_chapters > max_chapters:
            raise ValidationError(
                "Invalid outline bounds",
                {"min_chapters": min_chapters, "max_chapters": max_chapters},
            )

        target = (min_chapters + max_chapters + 1) // 2
        json_mode = self.settings.structured_outline and self.provider.supports_json_mode
        system_prompt = self._extract_section(self._outline_template, "System Prompt")
        user_prompt = self._extract_section(self._outline_template, "Instructions").format(
            min_chapters=min_chapters,
            max_chapters=max_chapters,
            template=generate_scene_template(target, wrap=json_mode),
            premise=premise.strip(),
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        attempts = self.settings.outline_max_attempts
        last_raw = ""
        for attempt in range(1, attempts + 1):
            try:
                last_raw = await self.provider.complete(
                    messages,
                    model=self._model(self.settings.reasoning_model),
                    temperature=0.5,
                    json_mode=json_mode,
                )
            except ConfigurationError:
                raise
            except ProviderError as e:
                logger.warning("Outline attempt %d/%d failed: %s", attempt, attempts, e)
            else:
                result = format_scenes(last_raw, target)
                if result.ok and within_bounds(result.beats, min_chapters, max_chapters):
                    logger.info("Outline created: %d chapters (%s)", result.count, result.tag.value)
                    return result.beats
                logger.warning(
                    "Outline attempt %d/%d rejected: tag=%s, chapters=%d, bounds=[%d, %d]",
                    attempt, attempts, result.tag.value, result.count, min_chapters, max_chapters,
                )
            if attempt < attempts:
                await self._sleep(self.settings.outline_retry_delay)

        raise MalformedOutputError(
            f"Failed to create outline after {attempts} attempts",
            raw_output=last_raw,
            attempts=attempts,
        )

    async def generate_characters(self, outline: list[str]) -> str:
        """Write the character roster for an outline.

        Raises:
            MalformedOutputError: No roster after the bounded attempts.
        """
        if not outline:
            raise ValidationError("An outline is required to generate characters")
        prompt = self._extract_section(self._characters_template, "Instructions").format(
            outline="\n".join(outline),
        )
        messages = [{"role": "user", "content": prompt}]

        attempts = self.settings.character_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                text = await self.provider.complete(
                    messages,
                    model=self._model(self.settings.character_model),
                    temperature=0.7,
                    max_tokens=4000,
                )
            except ConfigurationError:
                raise
            except ProviderError as e:
                logger.warning("Character generation attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt == attempts:
                    raise
                continue
            if text.strip():
                return text.strip()
            logger.warning("Character generation attempt %d/%d returned nothing", attempt, attempts)

        raise MalformedOutputError("Failed to generate characters", attempts=attempts)

    async def create_title(self, text: str) -> str:
        """Generate a title; falls back to 'Untitled Story'."""
        system_prompt = self._extract_section(self._title_template, "System Prompt")
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ]
        attempts = self.settings.title_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                raw = await self.provider.complete(
                    messages,
                    model=self._model(self.settings.title_model),
                    temperature=0.9,
                )
            except ConfigurationError:
                raise
            except ProviderError as e:
                logger.warning("Title attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt < attempts:
                    await self._sleep(self.settings.outline_retry_delay)
                continue

            title = clean_title(raw)
            if 0 < len(title) <= MAX_TITLE_CHARS:
                return title
            logger.debug("Rejected title of %d chars", len(title))

        logger.warning("Falling back to default title after %d attempts", attempts)
        return DEFAULT_TITLE

    async def generate_sequel_idea(self, story: Story) -> str:
        """Write a sequel premise that continues the given story."""
        prompt = self._extract_section(self._sequel_template, "Instructions").format(
            title=story.title,
            premise=story.premise,
            outline=json.dumps(story.outline, ensure_ascii=False),
        )
        idea = await self.provider.complete(
            [{"role": "user", "content": prompt}],
            model=self._model(self.settings.reasoning_model),
            temperature=0.7,
        )
        idea = idea.strip()
        if not idea:
            raise MalformedOutputError("Failed to generate sequel idea")
        return idea

    async def create_story(
        self,
        premise: str,
        user_id: str,
        store: RecordStore,
        parent: Optional[Story] = None,
    ) -> Story:
        """Title, outline and roster for a premise, saved as a new story record."""
        title = await self.create_title(premise)
        outline = await self.create_outline(premise)
        characters = await self.generate_characters(outline)

        story = Story(
            user_id=user_id,
            title=title,
            premise=premise.strip(),
            outline=outline,
            characters=characters,
            chapters=chapters_from_outline(outline),
            parent_story_id=parent.id if parent else None,
            is_sequel=parent is not None,
        )
        await asyncio.to_thread(store.create_story, story)
        logger.info("Story '%s' ready with %d chapters", story.title, len(story.chapters))
        return story

    async def create_sequel(self, parent: Story, store: RecordStore) -> Story:
        """Generate a sequel idea and build a linked story from it."""
        idea = await self.generate_sequel_idea(parent)
        return await self.create_story(idea, parent.user_id, store, parent=parent)
