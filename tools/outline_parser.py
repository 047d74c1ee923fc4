"""Layered parser that turns free-form model output into an ordered beat list.

The parser is a chain of pure stage functions. Output that carries JSON-like
structure goes through structural decoding and then field-level recovery;
output without any structure goes through plain-text segmentation heuristics.
The first stage that yields beats decides the tag of the result.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from models.enums import ParseTag
from tools.text_utils import split_into_paragraphs

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\r?\n?|\s*```")

# C0/C1 control characters except tab, newline and carriage return
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")

# Tolerates raw newlines and tabs inside JSON strings
_LENIENT_DECODER = json.JSONDecoder(strict=False)

_BEAT_KEYS = ("scene_beat", "chapter_beat", "beat", "summary", "description", "content", "text")
_LIST_KEYS = ("scenes", "chapters", "outline", "beats", "plot_outline", "items")

_FIELD_NAMES = r"(?:scene_beat|chapter_beat|beat|summary|description)"
_FIELD_RE = re.compile(rf'"{_FIELD_NAMES}"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
_FIELD_LINE_RE = re.compile(rf'"{_FIELD_NAMES}"\s*:\s*"?(.*)$')
_FIELD_NAME_RE = re.compile(rf'"{_FIELD_NAMES}"\s*:')

# An opening bracket followed by something that only JSON would put there
_STRUCTURE_RE = re.compile(r'[\[{]\s*["{\[]')

_HEADER_WORDS = (
    r"(?:\d+|[ivxlc]+|one|two|three|four|five|six|seven|eight|nine|ten|"
    r"eleven|twelve|thirteen|fourteen|fifteen|sixteen|seventeen|eighteen|"
    r"nineteen|twenty)"
)
_HEADER_RE = re.compile(
    rf"^[ \t]*(?:#{{1,6}}[ \t]*)?(?:\*\*)?[ \t]*(?:chapter|scene|part)[ \t]+{_HEADER_WORDS}\b[^\n]*$",
    re.IGNORECASE | re.MULTILINE,
)
_HEADER_LABEL_RE = re.compile(
    rf"^[ \t]*(?:#{{1,6}}[ \t]*)?(?:\*\*)?[ \t]*(?:chapter|scene|part)[ \t]+{_HEADER_WORDS}\b"
    r"(?:\*\*)?[ \t]*[:.)\-–—]?[ \t]*",
    re.IGNORECASE,
)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|(?<=[.!?][\"”’)])\s+")


@dataclass(frozen=True)
class ParseResult:
    """Tagged outcome of the parser chain."""
    tag: ParseTag
    beats: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.tag != ParseTag.FAILED and bool(self.beats)

    @property
    def count(self) -> int:
        return len(self.beats)


# ---------------------------------------------------------------------------
# Cleaning helpers
# ---------------------------------------------------------------------------

def strip_fences(text: str) -> str:
    """Remove markdown code-fence markers (```json, ```)."""
    return _FENCE_RE.sub("", text)


def strip_control_chars(text: str) -> str:
    return _CONTROL_RE.sub("", text)


def has_structure(text: str) -> bool:
    """True when the text carries JSON-like brackets or beat field names."""
    return bool(_STRUCTURE_RE.search(text) or _FIELD_NAME_RE.search(text))


def _next_open(text: str, offset: int = 0) -> int:
    starts = [i for i in (text.find("[", offset), text.find("{", offset)) if i != -1]
    return min(starts) if starts else -1


def extract_balanced(text: str, offset: int = 0) -> Optional[str]:
    """Slice from the first opening bracket/brace at or after offset to its matching closer.

    Brackets inside quoted strings are skipped. If the structure never closes
    (truncated output) the remainder of the text is returned.
    """
    start = _next_open(text, offset)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def _unescape(value: str) -> str:
    try:
        return _LENIENT_DECODER.decode(f'"{value}"')
    except json.JSONDecodeError:
        return value.replace('\\"', '"')


# ---------------------------------------------------------------------------
# Structured stages
# ---------------------------------------------------------------------------

def _find_items(payload) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _LIST_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
        for value in payload.values():
            if isinstance(value, list):
                return value
        if any(key in payload for key in _BEAT_KEYS):
            return [payload]
    return None


def _beat_text(item) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for key in _BEAT_KEYS:
            value = item.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return ""


def beats_from_payload(payload) -> list[str]:
    """Pull beat strings out of a decoded JSON value."""
    items = _find_items(payload)
    if not items:
        return []
    beats = []
    for item in items:
        text = _beat_text(item).strip()
        if text:
            beats.append(text)
    return beats


def parse_structured(text: str, target: Optional[int] = None) -> list[str]:
    """Decode the first balanced JSON slice of the text that yields beats.

    A slice that fails to decode or holds no beats is skipped whole.
    """
    offset = 0
    while True:
        candidate = extract_balanced(text, offset)
        if candidate is None:
            return []
        try:
            payload = _LENIENT_DECODER.decode(strip_control_chars(candidate))
        except json.JSONDecodeError as e:
            logger.debug("Structural decode failed: %s", e)
        else:
            beats = beats_from_payload(payload)
            if beats:
                return beats
        offset = _next_open(text, offset) + len(candidate)


def recover_fields(text: str, target: Optional[int] = None) -> list[str]:
    """Extract beat field values straight from broken JSON."""
    cleaned = strip_control_chars(text)
    beats = []
    end = 0
    for match in _FIELD_RE.finditer(cleaned):
        value = _unescape(match.group(1)).strip()
        if value:
            beats.append(value)
        end = match.end()

    # Unterminated values after the last complete one: rest of the line
    for line in cleaned[end:].splitlines():
        match = _FIELD_LINE_RE.search(line)
        if not match:
            continue
        value = match.group(1).rstrip().rstrip("}],").rstrip()
        if value.endswith('"'):
            value = value[:-1]
        value = _unescape(value).strip()
        if value:
            beats.append(value)
    return beats


# ---------------------------------------------------------------------------
# Plain-text stages
# ---------------------------------------------------------------------------

def group_evenly(items: list[str], target: Optional[int]) -> list[list[str]]:
    """Split items into `target` contiguous groups of near-equal size."""
    if not items:
        return []
    n = max(1, min(target or len(items), len(items)))
    size, extra = divmod(len(items), n)
    groups = []
    start = 0
    for i in range(n):
        end = start + size + (1 if i < extra else 0)
        groups.append(items[start:end])
        start = end
    return groups


def split_on_headers(text: str, target: Optional[int] = None) -> list[str]:
    """One beat per explicit 'Chapter N' / 'Scene N' / 'Part N' header."""
    matches = list(_HEADER_RE.finditer(text))
    if len(matches) < 2:
        return []
    beats = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        heading = _HEADER_LABEL_RE.sub("", match.group(0), count=1).strip().strip("*").strip()
        body = text[match.end():end].strip()
        beat = "\n".join(part for part in (heading, body) if part).strip()
        if beat:
            beats.append(beat)
    return beats


def group_paragraphs(text: str, target: Optional[int] = None) -> list[str]:
    paragraphs = split_into_paragraphs(text)
    if len(paragraphs) < 2:
        return []
    return ["\n\n".join(group) for group in group_evenly(paragraphs, target)]


def group_sentences(text: str, target: Optional[int] = None) -> list[str]:
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(text.strip()) if s.strip()]
    if len(sentences) < 2:
        return []
    return [" ".join(group) for group in group_evenly(sentences, target)]


def whole_text(text: str, target: Optional[int] = None) -> list[str]:
    stripped = text.strip()
    return [stripped] if stripped else []


Stage = Callable[[str, Optional[int]], list[str]]

STRUCTURED_STAGES: tuple[tuple[ParseTag, Stage], ...] = (
    (ParseTag.PARSED, parse_structured),
    (ParseTag.FIELD_RECOVERED, recover_fields),
)

PLAIN_TEXT_STAGES: tuple[tuple[ParseTag, Stage], ...] = (
    (ParseTag.HEURISTIC_SEGMENTED, split_on_headers),
    (ParseTag.HEURISTIC_SEGMENTED, group_paragraphs),
    (ParseTag.HEURISTIC_SEGMENTED, group_sentences),
    (ParseTag.HEURISTIC_SEGMENTED, whole_text),
)


def format_scenes(raw_text: str, target: Optional[int] = None) -> ParseResult:
    """Turn raw model output into an ordered list of trimmed beats.

    Args:
        raw_text: Whatever the model returned.
        target: Chapter count the plain-text heuristics group towards.

    Returns:
        A ParseResult; ``tag`` is FAILED when no stage produced beats.
    """
    text = strip_fences(raw_text or "").strip()
    if not text:
        return ParseResult(ParseTag.FAILED)

    stages = STRUCTURED_STAGES if has_structure(text) else PLAIN_TEXT_STAGES
    for tag, stage in stages:
        beats = stage(text, target)
        if beats:
            logger.debug("format_scenes: %s via %s (%d beats)", tag.value, stage.__name__, len(beats))
            return ParseResult(tag, beats)

    logger.debug("format_scenes: no stage produced beats")
    return ParseResult(ParseTag.FAILED)


def within_bounds(beats: list[str], min_count: int, max_count: int) -> bool:
    return min_count <= len(beats) <= max_count
