"""
Rubric metric evaluators.

Each evaluator is a pure function ``(ctx, spec) -> Metric``: it reads the
transcript and lexicon from the request context, never mutates shared state
and always returns a score inside ``[0, spec.max_score]``. Lexicon lookups are
plain case-insensitive substring tests, so "hi" also matches inside "this";
that is how the rubric was authored and it is kept on purpose.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .models import CoherenceReport, Metric, MetricInsights
from .outcome import Fallback, Outcome
from .rubric import BandTable, Lexicon, MetricSpec, RubricDocument, ScoringBand
from .semantic import NEUTRAL_COHERENCE
from .sentiment import SentimentCounts
from .text import (
    alpha_tokens,
    clamp,
    clean_duration,
    count_words,
    half_up,
    phrases_in,
    split_sentences,
    words_per_minute,
)

FLOW_GATE_POINTS = 5

# metrics that can only be scored after the semantic branches have joined
DEFERRED_METRICS = frozenset({"flow_coherence"})


@dataclass
class EvaluationContext:
    transcript: str
    duration: float
    lexicon: Lexicon
    bands: Dict[str, BandTable]
    sentiment: SentimentCounts
    with_insights: bool = False
    coherence: Optional[Outcome[CoherenceReport]] = None
    lower: str = field(init=False)
    word_count: int = field(init=False)
    speech_rate: int = field(init=False)

    def __post_init__(self) -> None:
        self.duration = clean_duration(self.duration)
        self.lower = self.transcript.lower()
        self.word_count = count_words(self.transcript)
        self.speech_rate = words_per_minute(self.word_count, self.duration)


def build_context(
    transcript: str,
    duration: float,
    document: RubricDocument,
    sentiment: SentimentCounts,
    with_insights: bool = False,
) -> EvaluationContext:
    return EvaluationContext(
        transcript=transcript,
        duration=duration,
        lexicon=document.lexicon,
        bands=document.bands,
        sentiment=sentiment,
        with_insights=with_insights,
    )


def _metric(
    ctx: EvaluationContext,
    spec: MetricSpec,
    score: float,
    details: str,
    insights: Optional[MetricInsights] = None,
) -> Metric:
    return Metric(
        id=spec.id,
        name=spec.name,
        score=int(clamp(score, 0, spec.max_score)),
        max_score=spec.max_score,
        details=details,
        insights=insights if ctx.with_insights else None,
    )


def _band(ctx: EvaluationContext, table: str, value: float) -> Tuple[Optional[ScoringBand], int]:
    bands = ctx.bands[table]
    band = bands.lookup(value)
    if band is None:
        return None, bands.fallback_score
    return band, band.score


# ---------------- Content & Structure ----------------

def score_salutation(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    for tier in ctx.lexicon.salutation:
        found = phrases_in(ctx.lower, tier.phrases)
        if found:
            return _metric(ctx, spec, tier.score, f"{tier.level} - greeting '{found[0]}' detected")
    return _metric(ctx, spec, 0, "No salutation detected")


def score_keywords(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    must, good = ctx.lexicon.must_have, ctx.lexicon.good_to_have
    found_must = phrases_in(ctx.lower, must.keywords)
    found_good = phrases_in(ctx.lower, good.keywords)
    must_score = min(len(found_must) * must.score_each, must.max_score)
    good_score = min(len(found_good) * good.score_each, good.max_score)

    details = (
        f"Must-have found: [{', '.join(found_must)}] ({must_score}/{must.max_score}), "
        f"Good-to-have found: [{', '.join(found_good)}] ({good_score}/{good.max_score})"
    )
    insights = MetricInsights(
        model_analysis=f"Found {len(found_must)} must-have and {len(found_good)} good-to-have keywords",
        recommendations=[
            "Include your name, age, class, and school",
            "Mention your family and hobbies/interests",
        ] if must_score < must.max_score else [],
        detected_issues=[f"Missing must-have keyword: {k}" for k in must.keywords if k not in found_must],
        detected_strengths=[
            "Good coverage of must-have keywords",
            "Comprehensive personal information provided",
        ] if len(found_must) > 3 else [],
    )
    return _metric(ctx, spec, must_score + good_score, details, insights)


def flow_gates(ctx: EvaluationContext) -> Dict[str, bool]:
    return {gate: bool(phrases_in(ctx.lower, phrases)) for gate, phrases in ctx.lexicon.flow_gates.items()}


def score_flow(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    gates = flow_gates(ctx)
    missing = [g for g, present in gates.items() if not present]
    if missing:
        return _metric(ctx, spec, 0, f"Flow needs improvement (missing: {', '.join(missing)})")
    return _metric(ctx, spec, spec.max_score, "Proper flow followed")


def score_flow_coherence(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    gates = flow_gates(ctx)
    flow_points = FLOW_GATE_POINTS if all(gates.values()) else 0

    outcome = ctx.coherence
    if outcome is None:
        outcome = Fallback(CoherenceReport(score=NEUTRAL_COHERENCE), "coherence was not computed")
    report = outcome.value
    score = half_up((flow_points + report.score) / 2)

    if report.too_short:
        analysis = "Too few sentences for discourse coherence analysis"
    elif report.average_similarity is not None:
        analysis = (
            f"Discourse coherence analysis shows {report.average_similarity:.2f} "
            f"average similarity between sentences"
        )
    else:
        analysis = "Discourse coherence analysis unavailable"

    recommendations: List[str] = []
    if report.issues:
        recommendations = [
            f'Consider improving the transition: "{issue.sentence[:50]}..."' for issue in report.issues[:2]
        ]
        recommendations += [
            "Add transition phrases between topics",
            "Ensure smooth logical flow between ideas",
        ]
    insights = MetricInsights(
        model_analysis=analysis,
        recommendations=recommendations,
        detected_issues=[
            f"Sentence {issue.sentence_index + 1} has low coherence ({issue.similarity * 100:.0f}% similarity)"
            for issue in report.issues
        ],
        detected_strengths=[
            "Good logical flow between sentences",
            "Well-structured discourse",
            "Coherent narrative progression",
        ] if report.score >= 8 else [],
        error=None if outcome.ok else outcome.reason,
    )
    details = f"{score}/{spec.max_score} - Basic flow: {flow_points}/{FLOW_GATE_POINTS}, Coherence: {report.score}/10"
    return _metric(ctx, spec, score, details, insights)


# ---------------- Speech Rate ----------------

def score_speech_rate(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    rate = ctx.speech_rate
    band, score = _band(ctx, "speech_rate", rate)
    if band is None:
        details = f"{rate} WPM outside all bands"
    else:
        details = f"{band.name}: {rate} WPM"
    if ctx.duration <= 0:
        details += " (no duration provided)"

    ideal = ctx.bands["speech_rate"].best
    recommendations: List[str] = []
    strengths: List[str] = []
    if ctx.duration > 0:
        if rate >= ideal.upper:
            recommendations = [
                "Consider speaking slightly slower for better clarity",
                "Add brief pauses between key points",
            ]
        elif rate < ideal.lower:
            recommendations = [
                "Consider speaking slightly faster to maintain engagement",
                "Practice with a metronome to improve pacing",
            ]
        else:
            strengths = ["Optimal speech rate for engagement and clarity"]
    insights = MetricInsights(
        model_analysis=(
            f"Speech rate analysis indicates {band.name if band else 'out-of-range'} "
            f"speaking pace at {rate} words per minute"
        ),
        recommendations=recommendations,
        detected_strengths=strengths,
    )
    return _metric(ctx, spec, score, details, insights)


# ---------------- Language & Grammar ----------------

def count_grammar_errors(ctx: EvaluationContext) -> Dict[str, int]:
    hits = {p.name: sum(1 for _ in p.regex.finditer(ctx.transcript)) for p in ctx.lexicon.grammar_patterns}
    hits["lowercase sentence start"] = sum(1 for s in split_sentences(ctx.transcript) if not s[0].isupper())
    return hits


def score_grammar(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    hits = count_grammar_errors(ctx)
    errors = sum(hits.values())
    errors_per_100 = errors / ctx.word_count * 100 if ctx.word_count else 0.0
    grammar = max(0.0, 1 - min(errors_per_100 / 10, 1))

    band, score = _band(ctx, "grammar", grammar)
    if band is None:
        details = f"grammar score {grammar:.2f} outside all bands ({errors} errors)"
    else:
        details = f"{band.name}: {errors} errors detected, score: {grammar:.2f}"
    insights = MetricInsights(
        model_analysis=(
            f"Grammar analysis revealed {errors} issues in {ctx.word_count} words "
            f"({errors_per_100:.1f} errors per 100 words)"
        ),
        recommendations=[
            "Check for proper capitalization at sentence beginnings",
            "Review for double spaces or punctuation",
            "Ensure proper verb usage and sentence structure",
        ] if errors > 2 else [],
        detected_issues=[f"{name}: {count}" for name, count in hits.items() if count],
        detected_strengths=[
            "Excellent grammar with no detected errors",
            "Professional level writing quality",
        ] if errors == 0 else [],
    )
    return _metric(ctx, spec, score, details, insights)


def score_vocabulary(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    tokens = alpha_tokens(ctx.transcript)
    unique = len(set(tokens))
    ttr = unique / len(tokens) if tokens else 0.0

    band, score = _band(ctx, "vocabulary", ttr)
    label = band.name if band else "Out of range"
    insights = MetricInsights(
        model_analysis=(
            f"Type-Token Ratio analysis shows {ttr:.3f} vocabulary diversity with "
            f"{unique} unique words from {len(tokens)} total words"
        ),
        recommendations=[
            "Use a wider variety of vocabulary",
            "Avoid repetitive words and phrases",
            "Introduce synonyms for commonly used terms",
        ] if ttr < 0.5 else [],
        detected_strengths=["Excellent vocabulary diversity", "Rich lexical variety"] if ttr >= 0.7 else [],
    )
    return _metric(ctx, spec, score, f"{label}: TTR = {ttr:.2f} ({unique}/{len(tokens)})", insights)


# ---------------- Clarity ----------------

def count_fillers(ctx: EvaluationContext) -> Tuple[int, int]:
    words = ctx.lower.split()
    count = sum(1 for filler in ctx.lexicon.filler_words for word in words if filler in word)
    return count, len(words)


def score_filler_rate(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    count, total = count_fillers(ctx)
    rate = count / total * 100 if total else 0.0

    band, score = _band(ctx, "filler_rate", rate)
    label = band.name if band else "Out of range"
    insights = MetricInsights(
        model_analysis=(
            f"Clarity analysis detected {count} filler words ({rate:.1f}% filler rate) "
            f"out of {total} total words"
        ),
        recommendations=[
            "Practice speaking without filler words",
            "Record yourself and count filler usage",
            "Use brief pauses instead of filler words",
        ] if rate > 6 else [],
        detected_strengths=[
            "Excellent clarity with minimal filler words",
            "Confident and articulate speech",
        ] if rate <= 3 else [],
    )
    return _metric(ctx, spec, score, f"{label}: {count} filler words, {rate:.1f}% rate", insights)


# ---------------- Engagement ----------------

def score_sentiment(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    counts = ctx.sentiment
    positivity = counts.positivity
    band, score = _band(ctx, "sentiment", positivity)
    label = band.name if band else "Out of range"
    details = (
        f"{label}: positivity score {positivity:.2f}, "
        f"positive words: {len(counts.positive)}, negative: {len(counts.negative)}"
    )
    insights = MetricInsights(
        model_analysis=(
            f"Sentiment analysis shows {positivity:.2f} positivity with {len(counts.positive)} "
            f"positive and {len(counts.negative)} negative words"
        ),
        recommendations=[
            "Add more positive language and enthusiasm",
            "Include expressions of excitement or gratitude",
            "Focus on strengths and achievements",
        ] if positivity < 0.6 else [],
        detected_strengths=[
            "Excellent positive sentiment",
            "Engaging and enthusiastic tone",
            "Good emotional connection",
        ] if positivity >= 0.8 else [],
    )
    return _metric(ctx, spec, score, details, insights)


# ---------------- Tone & Register ----------------

def score_politeness(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    polite = phrases_in(ctx.lower, ctx.lexicon.polite)
    positive = len(ctx.sentiment.positive)
    score = min(10, len(polite) * 2 + (2 if positive > 0 else 0))
    insights = MetricInsights(
        model_analysis=f"Detected {len(polite)} politeness indicators and {positive} positive words",
        recommendations=[
            "Add polite greetings like 'Good morning' or 'Hello everyone'",
            "Include expressions of gratitude like 'Thank you for listening'",
            "Use formal closing statements",
        ] if score < 6 else [],
        detected_issues=[
            "Insufficient politeness indicators",
            "Could benefit from more formal language",
        ] if score < 6 else [],
        detected_strengths=[
            "Good use of polite expressions",
            "Positive tone detected",
            "Professional register maintained",
        ] if score >= 8 else [],
    )
    return _metric(ctx, spec, score, f"{int(clamp(score, 0, spec.max_score))}/{spec.max_score} politeness detected", insights)


def score_professionalism(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    professional = phrases_in(ctx.lower, ctx.lexicon.professional)
    informal = phrases_in(ctx.lower, ctx.lexicon.informal)
    score = max(2, 10 - len(informal) * 2 + (2 if professional else 0))
    shown = int(clamp(score, 0, spec.max_score))
    insights = MetricInsights(
        model_analysis=(
            f"Detected {len(professional)} professional indicators and "
            f"{len(informal)} informal expressions"
        ),
        recommendations=[
            "Replace informal expressions with professional alternatives",
            "Use industry-appropriate terminology",
            "Maintain consistent formal tone",
        ] if shown < 6 else [],
        detected_issues=[f"Informal expression: '{w}'" for w in informal] if shown < 6 else [],
        detected_strengths=[
            "Professional language use",
            "Appropriate formality level",
            "Consistent professional tone",
        ] if shown >= 8 else [],
    )
    return _metric(ctx, spec, score, f"{shown}/{spec.max_score} professional level", insights)


Evaluator = Callable[[EvaluationContext, MetricSpec], Metric]

EVALUATORS: Dict[str, Evaluator] = {
    "salutation": score_salutation,
    "keywords": score_keywords,
    "flow": score_flow,
    "flow_coherence": score_flow_coherence,
    "speech_rate": score_speech_rate,
    "grammar": score_grammar,
    "vocabulary": score_vocabulary,
    "filler_rate": score_filler_rate,
    "sentiment": score_sentiment,
    "politeness": score_politeness,
    "professionalism": score_professionalism,
}


def evaluate(ctx: EvaluationContext, spec: MetricSpec) -> Metric:
    return EVALUATORS[spec.id](ctx, spec)
