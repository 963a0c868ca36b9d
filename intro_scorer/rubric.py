"""
Rubric document: lexicon, pattern bank, scoring bands and weighted criteria.

The document is a single JSON file (``data/rubric.json`` by default) so it can
be versioned and edited without touching code. Everything in it is validated
when it is loaded; a bad document raises ``RubricError`` before any transcript
is scored. ``RubricStore`` re-reads the file when its mtime changes, which lets
a running engine pick up a new rubric between requests.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import RubricError

logger = logging.getLogger(__name__)

DEFAULT_RUBRIC_PATH = Path(__file__).parent / "data" / "rubric.json"

WEIGHT_TOLERANCE = 1e-6

AGGREGATIONS = ("normalized", "raw_weighted")

METRIC_IDS = (
    "salutation",
    "keywords",
    "flow",
    "flow_coherence",
    "speech_rate",
    "grammar",
    "vocabulary",
    "filler_rate",
    "sentiment",
    "politeness",
    "professionalism",
)

REQUIRED_BANDS = ("speech_rate", "grammar", "vocabulary", "filler_rate", "sentiment")

REQUIRED_RUBRICS = ("standard", "advanced")

FLOW_GATES = ("salutation", "basic_details", "additional_details", "closing")


# ---------------- Bands ----------------

@dataclass(frozen=True)
class ScoringBand:
    name: str
    lower: float
    upper: float
    score: int

    def contains(self, value: float) -> bool:
        return self.lower <= value < self.upper


@dataclass(frozen=True)
class BandTable:
    """Contiguous, ascending bands; the top band is closed at its upper edge."""

    levels: Tuple[ScoringBand, ...]
    fallback_score: int

    def lookup(self, value: float) -> Optional[ScoringBand]:
        for band in self.levels:
            if band.contains(value):
                return band
        top = self.levels[-1]
        if value == top.upper:
            return top
        return None

    @property
    def best(self) -> ScoringBand:
        return max(self.levels, key=lambda b: b.score)


# ---------------- Lexicon ----------------

@dataclass(frozen=True)
class SalutationTier:
    level: str
    score: int
    phrases: Tuple[str, ...]


@dataclass(frozen=True)
class KeywordPool:
    keywords: Tuple[str, ...]
    score_each: int
    max_score: int


@dataclass(frozen=True)
class GrammarPattern:
    name: str
    regex: "re.Pattern[str]"


@dataclass(frozen=True)
class Lexicon:
    salutation: Tuple[SalutationTier, ...]
    must_have: KeywordPool
    good_to_have: KeywordPool
    flow_gates: Dict[str, Tuple[str, ...]]
    filler_words: Tuple[str, ...]
    polite: Tuple[str, ...]
    professional: Tuple[str, ...]
    informal: Tuple[str, ...]
    grammar_patterns: Tuple[GrammarPattern, ...]
    summary_keywords: Tuple[str, ...]
    required_keywords: Tuple[str, ...]
    engaging_words: Tuple[str, ...]


# ---------------- Criteria ----------------

@dataclass(frozen=True)
class MetricSpec:
    id: str
    name: str
    max_score: int


@dataclass(frozen=True)
class CriterionSpec:
    name: str
    weight: float
    max_score: int
    metrics: Tuple[MetricSpec, ...]


@dataclass(frozen=True)
class Rubric:
    name: str
    total_points: int
    criteria: Tuple[CriterionSpec, ...]

    def criterion(self, name: str) -> CriterionSpec:
        for crit in self.criteria:
            if crit.name == name:
                return crit
        raise KeyError(name)


@dataclass(frozen=True)
class RubricDocument:
    version: str
    aggregation: str
    lexicon: Lexicon
    bands: Dict[str, BandTable]
    rubrics: Dict[str, Rubric]

    def rubric(self, name: str) -> Rubric:
        try:
            return self.rubrics[name]
        except KeyError:
            raise RubricError(f"rubric {name!r} is not defined (have: {sorted(self.rubrics)})") from None


# ---------------- Parsing ----------------

def _require(mapping: Dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(mapping, dict) or key not in mapping:
        raise RubricError(f"{where}: missing required key {key!r}")
    return mapping[key]


def _phrases(values: Any, where: str) -> Tuple[str, ...]:
    if not isinstance(values, list) or not all(isinstance(v, str) and v for v in values):
        raise RubricError(f"{where}: expected a list of non-empty strings")
    return tuple(v.lower() for v in values)


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RubricError(f"{where}: expected a number, got {value!r}")
    return value


def _parse_band_table(name: str, raw: Dict[str, Any]) -> BandTable:
    where = f"bands.{name}"
    levels = []
    for i, lvl in enumerate(_require(raw, "levels", where)):
        lw = f"{where}.levels[{i}]"
        band = ScoringBand(
            name=str(_require(lvl, "name", lw)),
            lower=_number(_require(lvl, "min", lw), lw),
            upper=_number(_require(lvl, "max", lw), lw),
            score=int(_number(_require(lvl, "score", lw), lw)),
        )
        if band.lower >= band.upper:
            raise RubricError(f"{lw}: min must be below max")
        levels.append(band)
    if not levels:
        raise RubricError(f"{where}: at least one band is required")

    levels.sort(key=lambda b: b.lower)
    for prev, nxt in zip(levels, levels[1:]):
        if prev.upper != nxt.lower:
            raise RubricError(
                f"{where}: bands {prev.name!r} and {nxt.name!r} leave a gap or overlap "
                f"({prev.upper} vs {nxt.lower})"
            )
    fallback = int(_number(_require(raw, "fallback_score", where), where))
    return BandTable(levels=tuple(levels), fallback_score=fallback)


def _parse_pool(raw: Dict[str, Any], where: str) -> KeywordPool:
    return KeywordPool(
        keywords=_phrases(_require(raw, "keywords", where), where),
        score_each=int(_number(_require(raw, "score_each", where), where)),
        max_score=int(_number(_require(raw, "max_score", where), where)),
    )


def _parse_grammar_patterns(raw: Any) -> Tuple[GrammarPattern, ...]:
    if not isinstance(raw, list):
        raise RubricError("lexicon.grammar_patterns: expected a list")
    patterns = []
    for i, item in enumerate(raw):
        where = f"lexicon.grammar_patterns[{i}]"
        flags = re.IGNORECASE if item.get("ignore_case") else 0
        try:
            regex = re.compile(_require(item, "pattern", where), flags)
        except re.error as exc:
            raise RubricError(f"{where}: invalid pattern: {exc}") from exc
        patterns.append(GrammarPattern(name=str(_require(item, "name", where)), regex=regex))
    return tuple(patterns)


def _parse_lexicon(raw: Dict[str, Any]) -> Lexicon:
    tiers = []
    for i, tier in enumerate(_require(raw, "salutation", "lexicon")):
        where = f"lexicon.salutation[{i}]"
        tiers.append(
            SalutationTier(
                level=str(_require(tier, "level", where)),
                score=int(_number(_require(tier, "score", where), where)),
                phrases=_phrases(_require(tier, "phrases", where), where),
            )
        )
    # strongest tier first; the first matching tier wins
    tiers.sort(key=lambda t: t.score, reverse=True)

    keywords = _require(raw, "keywords", "lexicon")
    flow = _require(raw, "flow", "lexicon")
    tone = _require(raw, "tone", "lexicon")
    return Lexicon(
        salutation=tuple(tiers),
        must_have=_parse_pool(_require(keywords, "must_have", "lexicon.keywords"), "lexicon.keywords.must_have"),
        good_to_have=_parse_pool(
            _require(keywords, "good_to_have", "lexicon.keywords"), "lexicon.keywords.good_to_have"
        ),
        flow_gates={g: _phrases(_require(flow, g, "lexicon.flow"), f"lexicon.flow.{g}") for g in FLOW_GATES},
        filler_words=_phrases(_require(raw, "filler_words", "lexicon"), "lexicon.filler_words"),
        polite=_phrases(_require(tone, "polite", "lexicon.tone"), "lexicon.tone.polite"),
        professional=_phrases(_require(tone, "professional", "lexicon.tone"), "lexicon.tone.professional"),
        informal=_phrases(_require(tone, "informal", "lexicon.tone"), "lexicon.tone.informal"),
        grammar_patterns=_parse_grammar_patterns(_require(raw, "grammar_patterns", "lexicon")),
        summary_keywords=_phrases(_require(raw, "summary_keywords", "lexicon"), "lexicon.summary_keywords"),
        required_keywords=_phrases(_require(raw, "required_keywords", "lexicon"), "lexicon.required_keywords"),
        engaging_words=_phrases(_require(raw, "engaging_words", "lexicon"), "lexicon.engaging_words"),
    )


def _parse_rubric(name: str, raw: Dict[str, Any]) -> Rubric:
    where = f"rubrics.{name}"
    total_points = int(_number(_require(raw, "total_points", where), where))
    criteria = []
    for i, crit in enumerate(_require(raw, "criteria", where)):
        cw = f"{where}.criteria[{i}]"
        metrics = []
        for j, metric in enumerate(_require(crit, "metrics", cw)):
            mw = f"{cw}.metrics[{j}]"
            metric_id = str(_require(metric, "id", mw))
            if metric_id not in METRIC_IDS:
                raise RubricError(f"{mw}: unknown metric id {metric_id!r}")
            metrics.append(
                MetricSpec(
                    id=metric_id,
                    name=str(_require(metric, "name", mw)),
                    max_score=int(_number(_require(metric, "max_score", mw), mw)),
                )
            )
        spec = CriterionSpec(
            name=str(_require(crit, "name", cw)),
            weight=float(_number(_require(crit, "weight", cw), cw)),
            max_score=int(_number(_require(crit, "max_score", cw), cw)),
            metrics=tuple(metrics),
        )
        if not 0 < spec.weight <= 1:
            raise RubricError(f"{cw}: weight must be in (0, 1], got {spec.weight}")
        if not metrics:
            raise RubricError(f"{cw}: a criterion needs at least one metric")
        metric_total = sum(m.max_score for m in metrics)
        if metric_total != spec.max_score:
            raise RubricError(
                f"{cw}: max_score {spec.max_score} does not match its metrics' total {metric_total}"
            )
        criteria.append(spec)

    if not criteria:
        raise RubricError(f"{where}: no criteria defined")
    weight_total = sum(c.weight for c in criteria)
    if abs(weight_total - 1.0) > WEIGHT_TOLERANCE:
        raise RubricError(f"{where}: criterion weights sum to {weight_total:.6f}, expected 1.0")
    points = sum(c.max_score for c in criteria)
    if points != total_points:
        raise RubricError(f"{where}: criterion max scores sum to {points}, expected {total_points}")

    ids = [m.id for c in criteria for m in c.metrics]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise RubricError(f"{where}: metric ids used more than once: {duplicates}")
    return Rubric(name=name, total_points=total_points, criteria=tuple(criteria))


def parse_rubric_document(data: Dict[str, Any]) -> RubricDocument:
    aggregation = str(data.get("aggregation", "normalized"))
    if aggregation not in AGGREGATIONS:
        raise RubricError(f"aggregation must be one of {AGGREGATIONS}, got {aggregation!r}")

    raw_bands = _require(data, "bands", "document")
    missing = [b for b in REQUIRED_BANDS if b not in raw_bands]
    if missing:
        raise RubricError(f"bands: missing required band tables {missing}")
    bands = {name: _parse_band_table(name, raw) for name, raw in raw_bands.items()}

    raw_rubrics = _require(data, "rubrics", "document")
    if not isinstance(raw_rubrics, dict):
        raise RubricError("rubrics: must be an object keyed by rubric name")
    missing = [r for r in REQUIRED_RUBRICS if r not in raw_rubrics]
    if missing:
        raise RubricError(f"rubrics: missing required rubrics {missing}")

    return RubricDocument(
        version=str(data.get("version", "unversioned")),
        aggregation=aggregation,
        lexicon=_parse_lexicon(_require(data, "lexicon", "document")),
        bands=bands,
        rubrics={name: _parse_rubric(name, raw) for name, raw in raw_rubrics.items()},
    )


def load_rubric(path: "os.PathLike[str] | str" = DEFAULT_RUBRIC_PATH) -> RubricDocument:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except OSError as exc:
        raise RubricError(f"cannot read rubric {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RubricError(f"rubric {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise RubricError(f"rubric {path}: top level must be an object")
    return parse_rubric_document(data)


class RubricStore:
    """Holds the current rubric document and reloads it when the file changes.

    The first load is fatal on error. Later reloads that fail keep serving the
    last good document.
    """

    def __init__(self, path: "os.PathLike[str] | str | None" = None):
        self.path = Path(path) if path else DEFAULT_RUBRIC_PATH
        self._lock = threading.Lock()
        try:
            self._mtime = os.stat(self.path).st_mtime_ns
        except OSError as exc:
            raise RubricError(f"cannot read rubric {self.path}: {exc}") from exc
        self._document = load_rubric(self.path)
        logger.info("Loaded rubric %s (version %s)", self.path, self._document.version)

    def current(self) -> RubricDocument:
        try:
            mtime = os.stat(self.path).st_mtime_ns
        except OSError as exc:
            logger.warning("Rubric %s is unreadable (%s); keeping version %s", self.path, exc, self._document.version)
            return self._document
        if mtime == self._mtime:
            return self._document

        with self._lock:
            if mtime != self._mtime:
                self._mtime = mtime
                try:
                    document = load_rubric(self.path)
                except RubricError:
                    logger.exception("Rubric reload failed; keeping version %s", self._document.version)
                else:
                    self._document = document
                    logger.info("Reloaded rubric %s (version %s)", self.path, document.version)
        return self._document
