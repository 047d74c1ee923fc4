"""Lossless segmentation of prose into dialogue, narrative and whitespace."""

import re
from dataclasses import dataclass

from models.enums import SectionKind

# Any whitespace run that contains a line break is a paragraph boundary
_BOUNDARY_RE = re.compile(r"(\s*\n\s*)")

_QUOTE_CHARS = ('"', "“", "”", "'", "‘", "’", "«", "「", "『")


@dataclass(frozen=True)
class Section:
    kind: SectionKind
    text: str


def classify(segment: str) -> SectionKind:
    stripped = segment.strip()
    if not stripped:
        return SectionKind.WHITESPACE
    if stripped.startswith(_QUOTE_CHARS):
        return SectionKind.DIALOGUE
    return SectionKind.NARRATIVE


def split_into_sections(text: str) -> list[Section]:
    """Partition text on paragraph boundaries.

    Boundaries are kept as their own whitespace sections, so
    ``join_sections(split_into_sections(text)) == text`` for every input.
    """
    if not text:
        return []
    return [Section(classify(part), part) for part in _BOUNDARY_RE.split(text) if part]


def join_sections(sections: list[Section]) -> str:
    return "".join(section.text for section in sections)
