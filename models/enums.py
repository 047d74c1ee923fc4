"""Enumerations for providers, generation sessions and parsing outcomes."""

from enum import Enum


class Provider(str, Enum):
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class SessionKind(str, Enum):
    WRITE = "write"
    REVISE = "revise"
    TRANSITION = "transition"
    REFINE = "refine"


class SectionKind(str, Enum):
    DIALOGUE = "dialogue"
    NARRATIVE = "narrative"
    WHITESPACE = "whitespace"


class ParseTag(str, Enum):
    PARSED = "parsed"
    FIELD_RECOVERED = "field_recovered"
    HEURISTIC_SEGMENTED = "heuristic_segmented"
    FAILED = "failed"


class RecoveryAction(str, Enum):
    NO_SNAPSHOT = "no_snapshot"
    PROMPT = "prompt"
    USE_REMOTE = "use_remote"
