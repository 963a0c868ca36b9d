"""
Feedback for a scored transcript.

Three channels are produced and kept apart:

- rule_based: every metric below 70% of its max
- semantic: speech-rate commentary and missing core-message keywords
- model_based: the per-metric recommendations attached by the advanced tier

plus a letter grade and criterion-level strengths / improvements.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .models import ConcisenessAnalysis, CriterionScore, TieredRecommendations
from .rubric import BandTable

GRADE_THRESHOLDS = (
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "C-"),
    (45, "D+"),
    (40, "D"),
    (35, "D-"),
)
FAILING_GRADE = "F"

WEAK_METRIC_RATIO = 0.7
STRONG_CRITERION_RATIO = 0.8
WEAK_CRITERION_RATIO = 0.7
MAX_METRIC_STRENGTHS = 5


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return FAILING_GRADE


def rule_based_feedback(criteria: Sequence[CriterionScore]) -> List[str]:
    return [
        f"{m.name}: only scored {m.score}/{m.max_score}"
        for c in criteria
        for m in c.metrics
        if m.score < m.max_score * WEAK_METRIC_RATIO
    ]


def semantic_feedback(
    speech_rate: int,
    speech_bands: BandTable,
    conciseness: Optional[ConcisenessAnalysis] = None,
) -> List[str]:
    feedback = []
    # a rate of 0 means no duration was supplied
    if speech_rate > 0:
        ideal = speech_bands.best
        target = f"aim for {ideal.lower:g}-{ideal.upper - 1:g} WPM"
        if speech_rate >= ideal.upper:
            feedback.append(f"Speech rate too fast - {target}")
        elif speech_rate < ideal.lower:
            feedback.append(f"Speech rate too slow - {target}")
    if conciseness is not None and conciseness.missing_keywords:
        feedback.append(f"Core message missing key elements: {', '.join(conciseness.missing_keywords)}")
    return feedback


def model_based_feedback(criteria: Sequence[CriterionScore]) -> List[str]:
    feedback: List[str] = []
    for c in criteria:
        for m in c.metrics:
            if m.insights is not None:
                feedback.extend(m.insights.recommendations)
    return feedback


def synthesize(
    criteria: Sequence[CriterionScore],
    speech_rate: int,
    speech_bands: BandTable,
    conciseness: Optional[ConcisenessAnalysis] = None,
) -> TieredRecommendations:
    return TieredRecommendations(
        rule_based=rule_based_feedback(criteria),
        semantic=semantic_feedback(speech_rate, speech_bands, conciseness),
        model_based=model_based_feedback(criteria),
    )


def strengths(criteria: Sequence[CriterionScore]) -> List[str]:
    found = [f"{c.name} is strong" for c in criteria if c.ratio >= STRONG_CRITERION_RATIO]
    metric_strengths = [
        s for c in criteria for m in c.metrics if m.insights is not None for s in m.insights.detected_strengths
    ]
    return found + metric_strengths[:MAX_METRIC_STRENGTHS]


def improvements(criteria: Sequence[CriterionScore]) -> List[str]:
    return [f"Improve {c.name}" for c in criteria if c.ratio < WEAK_CRITERION_RATIO]
