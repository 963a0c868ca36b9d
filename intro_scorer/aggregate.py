"""
Combine metric scores into criterion scores and one overall number.

Two overall formulas exist:

- ``normalized``: each criterion contributes ``weight * score / max_score``,
  scaled to 0-100. This is the default and what the rubric document declares.
- ``raw_weighted``: ``sum(score * weight)`` over raw criterion points. Kept so
  results from older reports can be reproduced; it tops out far below 100.
"""

from __future__ import annotations

from typing import Sequence

from .errors import RubricError
from .models import MAX_OVERALL_SCORE, CriterionScore, Metric
from .rubric import CriterionSpec
from .text import clamp, half_up


def build_criterion(spec: CriterionSpec, metrics: Sequence[Metric]) -> CriterionScore:
    # metric scores are already clamped to their caps, and the caps add up to
    # the criterion max, so the sum never needs clamping again
    return CriterionScore(
        name=spec.name,
        score=sum(m.score for m in metrics),
        max_score=spec.max_score,
        weight=spec.weight,
        metrics=list(metrics),
    )


def normalized_score(criteria: Sequence[CriterionScore]) -> int:
    total = sum(c.weight * c.ratio * MAX_OVERALL_SCORE for c in criteria)
    return int(clamp(half_up(total), 0, MAX_OVERALL_SCORE))


def raw_weighted_score(criteria: Sequence[CriterionScore]) -> int:
    return int(clamp(half_up(sum(c.score * c.weight for c in criteria)), 0, MAX_OVERALL_SCORE))


def overall_score(criteria: Sequence[CriterionScore], method: str = "normalized") -> int:
    if method == "normalized":
        return normalized_score(criteria)
    if method == "raw_weighted":
        return raw_weighted_score(criteria)
    raise RubricError(f"unknown aggregation method {method!r}")
