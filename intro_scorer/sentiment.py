from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .handles import LazyHandle
from .text import tokenize


@dataclass(frozen=True)
class SentimentCounts:
    positive: Tuple[str, ...] = ()
    negative: Tuple[str, ...] = ()

    @property
    def positivity(self) -> float:
        total = len(self.positive) + len(self.negative)
        if total == 0:
            return 0.5
        return len(self.positive) / total


def _vader() -> Any:
    from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

    return SentimentIntensityAnalyzer()


class LexiconSentiment:
    """
    Count positive and negative words using the VADER lexicon.

    Only the word valences are used, not VADER's compound score: a token is
    positive when its valence is above zero and negative when below.
    """

    def __init__(self, analyzer: Optional[Any] = None):
        if analyzer is not None:
            self._handle = LazyHandle(lambda: analyzer, "sentiment lexicon")
        else:
            self._handle = LazyHandle(_vader, "VADER sentiment lexicon")

    def analyze(self, text: str) -> SentimentCounts:
        lexicon = self._handle.get().lexicon
        positive, negative = [], []
        for token in tokenize(text):
            valence = lexicon.get(token.strip("'"))
            if not valence:
                continue
            if valence > 0:
                positive.append(token)
            else:
                negative.append(token)
        return SentimentCounts(positive=tuple(positive), negative=tuple(negative))
