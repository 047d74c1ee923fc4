"""Chunked Rewrite Engine: rewrite narrative sections, pass dialogue through."""

import logging
from typing import AsyncIterator, Optional

from agents.base_agent import BaseAgent
from config.exceptions import ProviderError
from config.settings import Settings
from models.enums import SectionKind
from tools.provider_client import ProviderClient
from tools.sections import Section, split_into_sections
from tools.text_utils import replace_words

logger = logging.getLogger(__name__)


def _edges(text: str) -> tuple[str, str]:
    """Leading and trailing whitespace of a section."""
    stripped = text.strip()
    if not stripped:
        return text, ""
    start = text.index(stripped)
    return text[:start], text[start + len(stripped):]


class ChunkedRewriteEngine(BaseAgent):
    """Streams a chapter back section by section with narrative rewritten."""

    def __init__(
        self,
        provider: Optional[ProviderClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(provider, settings)
        self._system_prompt = self._extract_section(self._load_prompt("rewrite"), "System Prompt")

    async def rewrite_section(self, section: Section) -> str:
        """Rewrite one narrative section; falls back to the original text.

        Provider faults and empty output keep the original. Configuration
        errors propagate.
        """
        lead, trail = _edges(section.text)
        stream = self.provider.stream(
            [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": section.text.strip()},
            ],
            model=self._model(self.settings.rewriting_model),
            temperature=1.0,
        )
        parts = []
        try:
            async for delta in stream:
                parts.append(delta)
        except ProviderError as e:
            logger.warning("Rewrite of a %d-char section failed, keeping original: %s", len(section.text), e)
            return section.text
        finally:
            await stream.aclose()

        rewritten = replace_words("".join(parts)).strip()
        if not rewritten:
            logger.warning("Rewrite returned nothing, keeping original section")
            return section.text
        return f"{lead}{rewritten}{trail}"

    async def refine(self, text: str) -> AsyncIterator[str]:
        """Yield the chapter in original section order.

        Dialogue and whitespace sections are yielded unchanged; each narrative
        section is yielded once its rewrite is complete.
        """
        sections = split_into_sections(text)
        narrative = sum(1 for s in sections if s.kind == SectionKind.NARRATIVE)
        logger.info("Refining %d sections (%d narrative)", len(sections), narrative)
        for section in sections:
            if section.kind == SectionKind.NARRATIVE:
                yield await self.rewrite_section(section)
            else:
                yield section.text

    async def rewrite_text(self, text: str) -> str:
        """Collect a full refine pass into one string."""
        return "".join([chunk async for chunk in self.refine(text)])
