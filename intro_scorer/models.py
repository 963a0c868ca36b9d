"""
Result types returned by the scoring engine.

Everything here is a plain dataclass with a ``to_dict()`` that produces JSON-ready
data and a ``from_dict()`` that rebuilds the same structure, so a
``ScoreResult`` can cross an HTTP boundary and come back unchanged.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

MAX_OVERALL_SCORE = 100


@dataclass
class MetricInsights:
    model_analysis: str = ""
    recommendations: List[str] = field(default_factory=list)
    detected_issues: List[str] = field(default_factory=list)
    detected_strengths: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class Metric:
    id: str
    name: str
    score: int
    max_score: int
    details: str
    insights: Optional[MetricInsights] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Metric":
        insights = data.get("insights")
        return cls(
            id=data["id"],
            name=data["name"],
            score=data["score"],
            max_score=data["max_score"],
            details=data["details"],
            insights=MetricInsights(**insights) if insights is not None else None,
        )


@dataclass
class CriterionScore:
    name: str
    score: int
    max_score: int
    weight: float
    metrics: List[Metric]

    @property
    def ratio(self) -> float:
        return self.score / self.max_score if self.max_score else 0.0

    def metric(self, metric_id: str) -> Metric:
        for m in self.metrics:
            if m.id == metric_id:
                return m
        raise KeyError(metric_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "score": self.score,
            "max_score": self.max_score,
            "weight": self.weight,
            "score_normalized_0_1": round(self.ratio, 3),
            "metrics": [m.to_dict() for m in self.metrics],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriterionScore":
        return cls(
            name=data["name"],
            score=data["score"],
            max_score=data["max_score"],
            weight=data["weight"],
            metrics=[Metric.from_dict(m) for m in data["metrics"]],
        )


@dataclass
class CoherenceIssue:
    sentence_index: int
    sentence: str
    similarity: float


@dataclass
class CoherenceReport:
    score: int
    average_similarity: Optional[float] = None
    issues: List[CoherenceIssue] = field(default_factory=list)
    sentence_count: int = 0
    too_short: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CoherenceReport":
        return cls(**{**data, "issues": [CoherenceIssue(**i) for i in data.get("issues", [])]})


@dataclass
class ConcisenessAnalysis:
    original_length: int
    summary: str
    core_message_density: int
    missing_keywords: List[str]
    compression_ratio: float
    keyword_coverage: float


@dataclass
class EnrichmentReport:
    """Model-based view of the transcript; every 0-1 value falls back to 0.5."""

    analysis: Dict[str, float]
    sentiment: float
    classification: str
    model_score: int
    grade: str
    confidence: float
    feedback: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    calls: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)


@dataclass
class TieredRecommendations:
    rule_based: List[str] = field(default_factory=list)
    semantic: List[str] = field(default_factory=list)
    model_based: List[str] = field(default_factory=list)


@dataclass
class Insights:
    recommendations: TieredRecommendations
    grade: str
    strengths: List[str]
    improvements: List[str]
    scoring_method: str
    confidence: Optional[float] = None
    coherence: Optional[CoherenceReport] = None
    enrichment: Optional[EnrichmentReport] = None
    notes: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Insights":
        coherence = data.get("coherence")
        enrichment = data.get("enrichment")
        return cls(
            recommendations=TieredRecommendations(**data["recommendations"]),
            grade=data["grade"],
            strengths=list(data["strengths"]),
            improvements=list(data["improvements"]),
            scoring_method=data["scoring_method"],
            confidence=data.get("confidence"),
            coherence=CoherenceReport.from_dict(coherence) if coherence is not None else None,
            enrichment=EnrichmentReport(**enrichment) if enrichment is not None else None,
            notes=list(data.get("notes", [])),
        )


@dataclass
class ScoreResult:
    overall_score: int
    word_count: int
    duration: float
    speech_rate: int
    criteria: List[CriterionScore]
    insights: Insights
    max_overall_score: int = MAX_OVERALL_SCORE
    conciseness_analysis: Optional[ConcisenessAnalysis] = None
    aggregation: str = "normalized"

    def criterion(self, name: str) -> CriterionScore:
        for c in self.criteria:
            if c.name == name:
                return c
        raise KeyError(name)

    def metric(self, metric_id: str) -> Metric:
        for c in self.criteria:
            for m in c.metrics:
                if m.id == metric_id:
                    return m
        raise KeyError(metric_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "max_overall_score": self.max_overall_score,
            "word_count": self.word_count,
            "duration": self.duration,
            "speech_rate": self.speech_rate,
            "aggregation": self.aggregation,
            "criteria": [c.to_dict() for c in self.criteria],
            "insights": asdict(self.insights),
            "conciseness_analysis": (
                asdict(self.conciseness_analysis) if self.conciseness_analysis is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreResult":
        conciseness = data.get("conciseness_analysis")
        return cls(
            overall_score=data["overall_score"],
            max_overall_score=data.get("max_overall_score", MAX_OVERALL_SCORE),
            word_count=data["word_count"],
            duration=data["duration"],
            speech_rate=data["speech_rate"],
            aggregation=data.get("aggregation", "normalized"),
            criteria=[CriterionScore.from_dict(c) for c in data["criteria"]],
            insights=Insights.from_dict(data["insights"]),
            conciseness_analysis=ConcisenessAnalysis(**conciseness) if conciseness is not None else None,
        )
