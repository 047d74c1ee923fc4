"""Tools package — provider client, outline parser, sections and text utilities."""

from tools.provider_client import ProviderClient, format_model, validate_model
from tools.outline_parser import ParseResult, format_scenes, within_bounds
from tools.sections import Section, join_sections, split_into_sections
from tools.text_utils import (
    word_count,
    is_chapter_complete,
    split_into_paragraphs,
    replace_words,
    strip_emphasis,
)

__all__ = [
    "ProviderClient",
    "format_model",
    "validate_model",
    "ParseResult",
    "format_scenes",
    "within_bounds",
    "Section",
    "join_sections",
    "split_into_sections",
    "word_count",
    "is_chapter_complete",
    "split_into_paragraphs",
    "replace_words",
    "strip_emphasis",
]
