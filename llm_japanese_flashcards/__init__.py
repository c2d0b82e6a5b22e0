"""
LLM Japanese Flashcards

Kanji, katakana and vocabulary flashcards with per-item mastery levels,
LLM-generated explanations and drawing recognition.
"""

from . import structured
from . import db
from . import gateway
from . import state
from . import progress
from . import stats
from . import recognition
from . import speech
from . import plugin

__version__ = "0.1.0"
__all__ = ["structured", "db", "gateway", "state", "progress", "stats", "recognition", "speech", "plugin"]
