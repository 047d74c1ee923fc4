"""Agents package — outline, scene writing and rewrite agents."""

from agents.base_agent import BaseAgent
from agents.outline_agent import OutlineSynthesizer
from agents.writer_agent import SceneWriter
from agents.rewrite_agent import ChunkedRewriteEngine

__all__ = [
    "BaseAgent",
    "OutlineSynthesizer",
    "SceneWriter",
    "ChunkedRewriteEngine",
]
