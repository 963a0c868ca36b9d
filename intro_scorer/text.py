from __future__ import annotations

import math
import re
from typing import Iterable, List, Optional

WORD_RE = re.compile(r"[A-Za-z']+")
ALPHA_RE = re.compile(r"\b[a-z]+\b")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` uses banker's rounding)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def count_words(text: str) -> int:
    return len(text.split())


def clean_duration(duration_seconds: Optional[float]) -> float:
    """Missing, negative or non-finite durations all mean no duration."""
    if not duration_seconds or not math.isfinite(duration_seconds) or duration_seconds < 0:
        return 0.0
    return float(duration_seconds)


def words_per_minute(word_count: int, duration_seconds: float) -> int:
    duration_seconds = clean_duration(duration_seconds)
    if not duration_seconds:
        return 0
    return half_up(word_count / duration_seconds * 60)


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def tokenize(text: str) -> List[str]:
    return WORD_RE.findall(text.lower())


def alpha_tokens(text: str) -> List[str]:
    return ALPHA_RE.findall(text.lower())


def phrases_in(text_lower: str, phrases: Iterable[str]) -> List[str]:
    # plain substring containment, no word boundaries
    return [p for p in phrases if p in text_lower]
