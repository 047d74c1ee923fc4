"""Prose utilities: word counting, paragraph slicing and cleanup passes."""

import re

# Replaced after a rewrite pass; phrases first, then single words
_PHRASE_BANK = {
    "I frowned. ": "",
    ", frowning": "",
    "I frowned and ": "I ",
}

_WORD_BANK = {
    "shifted": "moved",
    "shift": "change",
    "shifting": "changing",
    "bravado": "bravery",
    "loomed": "appeared",
}

_WORD_BANK_RES = [
    (re.compile(rf"\b{re.escape(old)}\b", re.IGNORECASE), new)
    for old, new in _WORD_BANK.items()
]

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


def word_count(text: str) -> int:
    """Count whitespace-separated words."""
    if not text:
        return 0
    return len(text.split())


def is_chapter_complete(content: str, threshold: int) -> bool:
    """A chapter counts as complete once it reaches the word threshold."""
    return word_count(content) >= threshold


def split_into_paragraphs(text: str) -> list[str]:
    """Split text on blank lines, dropping empty paragraphs."""
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text or "") if p.strip()]


def last_paragraphs(text: str, count: int) -> list[str]:
    """Return the last `count` paragraphs of a chapter."""
    if count <= 0:
        return []
    return split_into_paragraphs(text)[-count:]


def first_paragraphs(text: str, count: int) -> list[str]:
    """Return the first `count` paragraphs of a chapter."""
    if count <= 0:
        return []
    return split_into_paragraphs(text)[:count]


def strip_emphasis(text: str) -> str:
    """Remove asterisk emphasis markers the models like to emit."""
    return text.replace("*", "")


def replace_words(text: str) -> str:
    """Swap overused words and phrases for plainer ones."""
    for old, new in _PHRASE_BANK.items():
        if old in text:
            text = text.replace(old, new)
    for pattern, new in _WORD_BANK_RES:
        text = pattern.sub(new, text)
    return text


def truncate_head(text: str, limit: int, marker: str = "...") -> str:
    """Keep the last `limit` characters, marking the cut at the front."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return marker + text[len(text) - limit:]
