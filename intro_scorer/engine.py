"""
Scoring engine: the two public entry points.

- ``score``: the standard rubric, local heuristics only
- ``score_advanced``: the advanced rubric; coherence, core-message density and
  (optionally) model enrichment run concurrently on the engine's thread pool
  while the local metrics are computed on the calling thread

Every slow branch is joined against one shared deadline. A branch that fails
or times out contributes its fallback value and a note; it never fails the
request.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Dict, List, Optional

from .aggregate import build_criterion, overall_score
from .config import Settings
from .enrichment import EnrichmentClient, HuggingFaceInferenceTransport, LocalPipelineTransport, fallback_report
from .feedback import grade_for, improvements, strengths, synthesize
from .metrics import DEFERRED_METRICS, EvaluationContext, build_context, evaluate
from .models import (
    CoherenceReport,
    ConcisenessAnalysis,
    CriterionScore,
    EnrichmentReport,
    Insights,
    Metric,
    ScoreResult,
    TieredRecommendations,
)
from .outcome import Fallback, Outcome, guarded, resolve
from .rubric import REQUIRED_RUBRICS, Rubric, RubricDocument, RubricStore
from .semantic import NEUTRAL_COHERENCE, NEUTRAL_DENSITY, EmbeddingModel, SemanticAnalyzer
from .sentiment import LexiconSentiment
from .text import clean_duration

logger = logging.getLogger(__name__)

STANDARD, ADVANCED = REQUIRED_RUBRICS


def _criteria(rubric: Rubric, metrics: Dict[str, Metric]) -> List[CriterionScore]:
    return [build_criterion(spec, [metrics[m.id] for m in spec.metrics]) for spec in rubric.criteria]


class ScoringEngine:
    def __init__(
        self,
        rubrics: Optional[RubricStore] = None,
        semantic: Optional[SemanticAnalyzer] = None,
        enrichment: Optional[EnrichmentClient] = None,
        sentiment: Optional[LexiconSentiment] = None,
        branch_timeout: float = 20.0,
        max_workers: int = 4,
    ):
        self.rubrics = rubrics or RubricStore()
        self.semantic = semantic or SemanticAnalyzer()
        self.enrichment = enrichment
        self.sentiment = sentiment or LexiconSentiment()
        self.branch_timeout = branch_timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="intro-scorer")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringEngine":
        embedder = EmbeddingModel(settings.embedding_model) if settings.embedding_model else None

        transport = None
        if settings.enrichment == "remote":
            if settings.huggingface_api_key:
                transport = HuggingFaceInferenceTransport(settings.huggingface_api_key, settings.inference_url)
            else:
                logger.warning("HUGGINGFACE_API_KEY is not set; remote enrichment disabled")
        elif settings.enrichment == "local":
            transport = LocalPipelineTransport()

        enrichment = None
        if transport is not None:
            enrichment = EnrichmentClient(transport, timeout=settings.request_timeout)

        return cls(
            rubrics=RubricStore(settings.rubric_path),
            semantic=SemanticAnalyzer(embedder),
            enrichment=enrichment,
            branch_timeout=settings.branch_timeout,
            max_workers=settings.max_workers,
        )

    # ---------------- Public API ----------------

    def score(self, transcript: str, duration: float = 0) -> ScoreResult:
        """Score against the standard rubric using local heuristics only."""
        document = self.rubrics.current()
        if not transcript or not transcript.strip():
            return self._empty(document, duration, "basic-rubric")

        rubric = document.rubric(STANDARD)
        ctx = build_context(transcript, duration, document, self.sentiment.analyze(transcript))
        metrics = {m.id: evaluate(ctx, m) for c in rubric.criteria for m in c.metrics}
        criteria = _criteria(rubric, metrics)
        overall = overall_score(criteria, document.aggregation)

        insights = Insights(
            recommendations=synthesize(criteria, ctx.speech_rate, document.bands["speech_rate"]),
            grade=grade_for(overall),
            strengths=strengths(criteria),
            improvements=improvements(criteria),
            scoring_method="basic-rubric",
        )
        return self._result(ctx, overall, criteria, insights, document)

    def score_advanced(self, transcript: str, duration: float = 0) -> ScoreResult:
        """Score against the advanced rubric, with semantic analysis and optional enrichment."""
        document = self.rubrics.current()
        if not transcript or not transcript.strip():
            return self._empty(document, duration, "advanced-nlp")

        rubric = document.rubric(ADVANCED)
        deadline = time.monotonic() + self.branch_timeout

        coherence_future = self._pool.submit(self.semantic.coherence, transcript)
        core_future = self._pool.submit(self.semantic.core_message, transcript, document.lexicon)
        enrichment_future = None
        if self.enrichment is not None:
            enrichment_future = self._pool.submit(
                guarded,
                "enrichment",
                partial(self.enrichment.enrich, transcript, document.lexicon),
                fallback_report(transcript, document.lexicon, "enrichment failed"),
            )

        ctx = build_context(transcript, duration, document, self.sentiment.analyze(transcript), with_insights=True)
        specs = [m for c in rubric.criteria for m in c.metrics]
        metrics = {m.id: evaluate(ctx, m) for m in specs if m.id not in DEFERRED_METRICS}

        # join point
        notes: List[str] = []
        ctx.coherence = self._join(
            "coherence analysis",
            coherence_future,
            deadline,
            CoherenceReport(score=NEUTRAL_COHERENCE),
            notes,
        )
        metrics.update({m.id: evaluate(ctx, m) for m in specs if m.id in DEFERRED_METRICS})
        conciseness = self._join(
            "core message analysis",
            core_future,
            deadline,
            ConcisenessAnalysis(
                original_length=len(transcript),
                summary="",
                core_message_density=NEUTRAL_DENSITY,
                missing_keywords=[],
                compression_ratio=0.0,
                keyword_coverage=0.0,
            ),
            notes,
        ).value
        report: Optional[EnrichmentReport] = None
        if enrichment_future is not None:
            report = self._join(
                "enrichment",
                enrichment_future,
                deadline,
                fallback_report(transcript, document.lexicon, "enrichment timed out"),
                notes,
            ).value

        criteria = _criteria(rubric, metrics)
        overall = overall_score(criteria, document.aggregation)
        enriched = report is not None and report.confidence > 0
        insights = Insights(
            recommendations=synthesize(criteria, ctx.speech_rate, document.bands["speech_rate"], conciseness),
            grade=grade_for(overall),
            strengths=strengths(criteria),
            improvements=improvements(criteria),
            scoring_method="model-enriched" if enriched else "advanced-nlp",
            confidence=report.confidence if report is not None else None,
            coherence=ctx.coherence.value,
            enrichment=report,
            notes=notes,
        )
        return self._result(ctx, overall, criteria, insights, document, conciseness)

    def close(self) -> None:
        self._pool.shutdown(wait=False)
        if self.enrichment is not None:
            self.enrichment.close()

    def __enter__(self) -> "ScoringEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------------- Internals ----------------

    @staticmethod
    def _join(label, future, deadline, default, notes: List[str]) -> Outcome:
        outcome = resolve(label, future, deadline - time.monotonic(), default)
        if isinstance(outcome, Fallback):
            notes.append(f"{label} used fallback: {outcome.reason}")
        return outcome

    @staticmethod
    def _result(
        ctx: EvaluationContext,
        overall: int,
        criteria: List[CriterionScore],
        insights: Insights,
        document: RubricDocument,
        conciseness: Optional[ConcisenessAnalysis] = None,
    ) -> ScoreResult:
        logger.info(
            "Scored transcript: %d words, %d WPM, overall %d (%s, %s)",
            ctx.word_count,
            ctx.speech_rate,
            overall,
            insights.grade,
            insights.scoring_method,
        )
        return ScoreResult(
            overall_score=overall,
            word_count=ctx.word_count,
            duration=ctx.duration,
            speech_rate=ctx.speech_rate,
            criteria=criteria,
            insights=insights,
            conciseness_analysis=conciseness,
            aggregation=document.aggregation,
        )

    @staticmethod
    def _empty(document: RubricDocument, duration: float, method: str) -> ScoreResult:
        return ScoreResult(
            overall_score=0,
            word_count=0,
            duration=clean_duration(duration),
            speech_rate=0,
            criteria=[],
            insights=Insights(
                recommendations=TieredRecommendations(rule_based=["Please enter a transcript to score"]),
                grade=grade_for(0),
                strengths=[],
                improvements=[],
                scoring_method=method,
                notes=["No transcript provided"],
            ),
            aggregation=document.aggregation,
        )
