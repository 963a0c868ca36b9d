"""
Semantic analysis of a transcript.

- Coherence: cosine similarity between consecutive sentence embeddings
  (sentence-transformers, all-MiniLM-L6-v2 by default)
- Core-message density: an extractive summary, then a check of which required
  keywords survive it

The embedding model is the only heavy dependency in the scoring path. It is
loaded lazily, once, and any failure to load or run it turns into a neutral
``Fallback`` instead of an exception.
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from .handles import LazyHandle
from .models import CoherenceIssue, CoherenceReport, ConcisenessAnalysis
from .outcome import Fallback, Ok, Outcome, guarded
from .rubric import Lexicon
from .text import clamp, half_up, split_sentences

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

NEUTRAL_COHERENCE = 5
NEUTRAL_DENSITY = 5
LOW_SIMILARITY = 0.3
MAX_SUMMARY_SENTENCES = 4


def _load_sentence_transformer(model_name: str) -> Any:
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


class EmbeddingModel:
    """Long-lived handle to a sentence-embedding model, loaded on first use."""

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        loader: Optional[Callable[[str], Any]] = None,
    ):
        self.model_name = model_name
        load = loader or _load_sentence_transformer
        self._handle = LazyHandle(lambda: load(model_name), f"sentence embedder {model_name}")

    @property
    def loaded(self) -> bool:
        return self._handle.loaded

    def encode(self, sentences: Sequence[str]) -> np.ndarray:
        model = self._handle.get()
        return np.asarray(model.encode(list(sentences), normalize_embeddings=True), dtype=float)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> Optional[float]:
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0 or norm_b == 0:
        return None
    return float(np.dot(a, b) / (norm_a * norm_b))


def extractive_summary(text: str, keywords: Sequence[str], limit: int = MAX_SUMMARY_SENTENCES) -> str:
    """
    Pick up to ``limit`` sentences and keep them in their original order.

    Each sentence earns 2 points per keyword it contains plus a centrality
    bonus in [0, 1] that peaks in the middle of the transcript.
    """
    sentences = split_sentences(text)
    if not sentences:
        return ""
    half = len(sentences) / 2
    scored = []
    for index, sentence in enumerate(sentences):
        lowered = sentence.lower()
        score = 2.0 * sum(1 for k in keywords if k in lowered)
        score += 1 - abs(index - half) / half
        scored.append((score, index, sentence))
    scored.sort(key=lambda item: item[0], reverse=True)
    top = sorted(scored[:limit], key=lambda item: item[1])
    return ". ".join(s for _, _, s in top) + "."


class SemanticAnalyzer:
    def __init__(self, embedder: Optional[EmbeddingModel] = None):
        self._embedder = embedder

    @property
    def available(self) -> bool:
        return self._embedder is not None

    def coherence(self, text: str) -> Outcome[CoherenceReport]:
        sentences = split_sentences(text)
        if len(sentences) < 2:
            return Ok(CoherenceReport(score=NEUTRAL_COHERENCE, sentence_count=len(sentences), too_short=True))

        default = CoherenceReport(score=NEUTRAL_COHERENCE, sentence_count=len(sentences))
        if self._embedder is None:
            return Fallback(default, "no embedding model configured")
        return guarded("coherence analysis", lambda: self._coherence(sentences), default)

    def _coherence(self, sentences: List[str]) -> CoherenceReport:
        vectors = self._embedder.encode(sentences)
        if len(vectors) != len(sentences):
            raise ValueError(f"embedder returned {len(vectors)} vectors for {len(sentences)} sentences")

        total = 0.0
        issues = []
        for i in range(len(sentences) - 1):
            similarity = cosine_similarity(vectors[i], vectors[i + 1])
            if similarity is None:
                continue
            total += similarity
            if similarity < LOW_SIMILARITY:
                issues.append(
                    CoherenceIssue(sentence_index=i + 1, sentence=sentences[i + 1], similarity=round(similarity, 4))
                )

        average = total / (len(sentences) - 1)
        return CoherenceReport(
            score=int(clamp(half_up(average * 10), 2, 10)),
            average_similarity=round(average, 4),
            issues=issues,
            sentence_count=len(sentences),
        )

    def core_message(self, text: str, lexicon: Lexicon) -> Outcome[ConcisenessAnalysis]:
        default = ConcisenessAnalysis(
            original_length=len(text),
            summary="",
            core_message_density=NEUTRAL_DENSITY,
            missing_keywords=[],
            compression_ratio=0.0,
            keyword_coverage=0.0,
        )
        return guarded("core message analysis", lambda: self._core_message(text, lexicon), default)

    @staticmethod
    def _core_message(text: str, lexicon: Lexicon) -> ConcisenessAnalysis:
        summary = extractive_summary(text, lexicon.summary_keywords)
        summary_lower = summary.lower()
        required = lexicon.required_keywords
        missing = [k for k in required if k not in summary_lower]
        return ConcisenessAnalysis(
            original_length=len(text),
            summary=summary,
            core_message_density=max(0, 10 - 2 * len(missing)),
            missing_keywords=missing,
            compression_ratio=round(len(summary) / len(text), 4) if text else 0.0,
            keyword_coverage=round((len(required) - len(missing)) / len(required), 4) if required else 1.0,
        )
