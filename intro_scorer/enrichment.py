"""
Optional model-based enrichment.

Four independent inference calls (sentiment, introduction classification,
clarity via summarisation, professionalism rating) run concurrently. Each has
its own timeout and no retry; a call that fails or times out contributes a
neutral 0.5 and lowers ``confidence``. Completeness, engagement and structure
are always computed locally.

Transports:

- ``HuggingFaceInferenceTransport``: hosted inference over HTTP (requests)
- ``LocalPipelineTransport``: ``transformers.pipeline`` in-process

Both return the raw provider payload; the normalisers below turn the
different shapes (label/score arrays, generated text, summaries) into 0-1
values.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .errors import EnrichmentError
from .feedback import grade_for
from .handles import LazyHandle
from .models import EnrichmentReport
from .outcome import Outcome, guarded, resolve
from .rubric import Lexicon
from .text import count_words, half_up, split_sentences

logger = logging.getLogger(__name__)

DEFAULT_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models"

NEUTRAL = 0.5

DEFAULT_MODELS = {
    "sentiment": "cardiffnlp/twitter-roberta-base-sentiment-latest",
    "classification": "microsoft/DialoGPT-medium",
    "clarity": "facebook/bart-large-cnn",
    "professionalism": "microsoft/DialoGPT-medium",
}

PIPELINE_TASKS = {
    "sentiment": "sentiment-analysis",
    "classification": "text-generation",
    "clarity": "summarization",
    "professionalism": "text-generation",
}

SUMMARY_PARAMETERS = {"max_length": 150, "min_length": 30, "do_sample": False}

ANALYSIS_WEIGHTS = {
    "clarity": 0.25,
    "completeness": 0.30,
    "professionalism": 0.20,
    "engagement": 0.15,
    "structure": 0.10,
}

COMPLETENESS_CHECKS = (
    (re.compile(r"\b(name|i am|i'm)\b"), 0.20),
    (re.compile(r"\b(age|years? old)\b"), 0.15),
    (re.compile(r"\b(school|class|grade|study|student)\b"), 0.15),
    (re.compile(r"\b(family|mother|father|parent|brother|sister)\b"), 0.15),
    (re.compile(r"\b(hobby|interest|like|enjoy|play)\b"), 0.15),
    (re.compile(r"\b(goal|dream|future|want|become|aspire)\b"), 0.10),
    (re.compile(r"\b(thank|appreciate|pleasure)\b"), 0.10),
)

RATING_RE = re.compile(r"\b(10|[0-9])\b")


# ---------------- Transports ----------------

class HuggingFaceInferenceTransport:
    """POST ``{"inputs": ..., "parameters": ...}`` to a hosted model endpoint."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_INFERENCE_URL, session: Optional[Any] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()

    def infer(
        self,
        model: str,
        task: str,
        inputs: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: float = 8.0,
    ) -> Any:
        payload: Dict[str, Any] = {"inputs": inputs}
        if parameters:
            payload["parameters"] = parameters
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._session.post(f"{self.base_url}/{model}", json=payload, headers=headers, timeout=timeout)
        except requests.RequestException as exc:
            raise EnrichmentError(f"{model}: request failed: {exc}") from exc

        if response.status_code != 200:
            raise EnrichmentError(f"{model}: HTTP {response.status_code}: {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise EnrichmentError(f"{model}: response is not JSON") from exc
        if isinstance(body, dict) and "error" in body:
            raise EnrichmentError(f"{model}: {body['error']}")
        return body

    def close(self) -> None:
        self._session.close()


def _load_pipeline(task: str, model: str) -> Any:
    from transformers import pipeline

    return pipeline(task, model=model)


class LocalPipelineTransport:
    """Run the same models in-process; each (task, model) pipeline loads once."""

    def __init__(self, factory: Optional[Callable[[str, str], Any]] = None):
        self._factory = factory or _load_pipeline
        self._handles: Dict[Tuple[str, str], LazyHandle] = {}
        self._lock = threading.Lock()

    def _pipeline(self, task: str, model: str) -> Any:
        with self._lock:
            handle = self._handles.get((task, model))
            if handle is None:
                handle = LazyHandle(partial(self._factory, task, model), f"{task} pipeline {model}")
                self._handles[(task, model)] = handle
        return handle.get()

    def infer(
        self,
        model: str,
        task: str,
        inputs: str,
        parameters: Optional[Dict[str, Any]] = None,
        timeout: float = 8.0,
    ) -> Any:
        pipe = self._pipeline(task, model)
        try:
            return pipe(inputs, **(parameters or {}))
        except Exception as exc:
            raise EnrichmentError(f"{model}: local {task} pipeline failed: {exc}") from exc

    def close(self) -> None:
        pass


# ---------------- Normalisers ----------------

def _first_record(raw: Any, key: str, model: str) -> Dict[str, Any]:
    if isinstance(raw, list) and raw and isinstance(raw[0], dict) and key in raw[0]:
        return raw[0]
    raise EnrichmentError(f"{model}: expected a list of records with {key!r}, got {type(raw).__name__}")


def normalize_sentiment(raw: Any) -> float:
    """
    Positive-class probability from a label/score payload.

    Accepts the nested form ``[[{label, score}, ...]]`` returned by the hosted
    API and the flat ``[{label, score}]`` returned by a local pipeline. When
    only a negative top label is present its complement is used.
    """
    if isinstance(raw, list) and raw and isinstance(raw[0], list):
        raw = raw[0]
    if not isinstance(raw, list) or not raw or not all(isinstance(r, dict) and "label" in r for r in raw):
        raise EnrichmentError(f"sentiment: unreadable payload {str(raw)[:100]}")

    for item in raw:
        if "pos" in str(item["label"]).lower():
            return float(item["score"])
    if len(raw) == 1 and str(raw[0]["label"]).lower().startswith("neg"):
        return 1.0 - float(raw[0]["score"])
    return NEUTRAL


def strip_prompt(raw: Any, prompt: str) -> Any:
    """Drop the echoed prompt from text-generation output so its own words are not scored."""
    if not isinstance(raw, list):
        return raw
    stripped = []
    for record in raw:
        if isinstance(record, dict) and str(record.get("generated_text", "")).startswith(prompt):
            record = {**record, "generated_text": record["generated_text"][len(prompt):]}
        stripped.append(record)
    return stripped


def normalize_classification(raw: Any) -> Tuple[str, float]:
    text = str(_first_record(raw, "generated_text", "classification")["generated_text"]).lower()
    if "excellent" in text:
        return "Excellent", 0.9
    if "good" in text:
        return "Good", 0.75
    if "poor" in text:
        return "Poor", 0.25
    return "Average", NEUTRAL


def normalize_rating(raw: Any) -> float:
    text = str(_first_record(raw, "generated_text", "professionalism")["generated_text"])
    match = RATING_RE.search(text)
    if match is None:
        return NEUTRAL
    return int(match.group(1)) / 10


def basic_clarity(text: str) -> float:
    sentences = split_sentences(text)
    if not sentences:
        return 0.4
    words_per_sentence = count_words(text) / len(sentences)
    if 10 <= words_per_sentence <= 25:
        return 0.7
    if 8 <= words_per_sentence <= 30:
        return 0.6
    return 0.4


def normalize_clarity(raw: Any, text: str) -> float:
    summary = str(_first_record(raw, "summary_text", "clarity")["summary_text"])
    ratio = len(summary) / len(text) if text else 0.0
    if 0.3 <= ratio <= 0.7:
        return 0.8
    if 0.2 <= ratio <= 0.8:
        return 0.6
    return basic_clarity(text)


# ---------------- Local heuristics ----------------

def completeness(text: str) -> float:
    lowered = text.lower()
    return min(1.0, sum(weight for pattern, weight in COMPLETENESS_CHECKS if pattern.search(lowered)))


def engagement(text: str, engaging_words) -> float:
    lowered = text.lower()
    return min(1.0, sum(1 for w in engaging_words if w in lowered) / 3)


def structure(text: str) -> float:
    sentences = [s.lower() for s in split_sentences(text)]
    score = 0.3
    if sentences and any(g in sentences[0] for g in ("hello", "hi", "good morning", "good afternoon")):
        score += 0.2
    if len(sentences) > 1 and any(c in sentences[-1] for c in ("thank", "appreciate", "pleasure")):
        score += 0.2
    if 3 <= len(sentences) <= 8:
        score += 0.3
    return min(1.0, round(score, 4))


def weighted_model_score(analysis: Dict[str, float]) -> int:
    return half_up(sum(analysis[k] * w * 100 for k, w in ANALYSIS_WEIGHTS.items()))


def _report_feedback(score: int, grade: str, analysis: Dict[str, float]) -> Tuple[List[str], List[str], List[str]]:
    strengths, improvements = [], []
    checks = (
        ("clarity", 0.8, "Clear and well-structured communication",
         "Work on making your introduction clearer and more organized"),
        ("completeness", 0.8, "Comprehensive introduction covering all key aspects",
         "Include more essential information about yourself"),
        ("professionalism", 0.8, "Professional tone and appropriate language",
         "Use more professional language and tone"),
        ("engagement", 0.7, "Engaging and positive presentation",
         "Add more enthusiasm and engaging language"),
        ("structure", 0.8, "Well-structured introduction with proper opening and closing",
         "Improve the structure with better opening and closing"),
    )
    for key, threshold, good, bad in checks:
        if analysis[key] >= threshold:
            strengths.append(good)
        else:
            improvements.append(bad)

    feedback = [f"Your introduction scored {score}/100 ({grade})"]
    if score >= 85:
        feedback.append("Excellent self-introduction! Very well done.")
    elif score >= 70:
        feedback.append("Good introduction with room for improvement.")
    elif score >= 55:
        feedback.append("Fair introduction that needs some enhancement.")
    else:
        feedback.append("Introduction needs significant improvement.")
    return feedback, strengths, improvements


def _build_report(
    analysis: Dict[str, float],
    sentiment: float,
    classification: str,
    confidence: float,
    calls: Dict[str, Dict[str, Optional[str]]],
) -> EnrichmentReport:
    score = weighted_model_score(analysis)
    grade = grade_for(score)
    feedback, strengths, improvements = _report_feedback(score, grade, analysis)
    return EnrichmentReport(
        analysis=analysis,
        sentiment=round(sentiment, 4),
        classification=classification,
        model_score=score,
        grade=grade,
        confidence=confidence,
        feedback=feedback,
        strengths=strengths,
        improvements=improvements,
        calls=calls,
    )


def fallback_report(text: str, lexicon: Lexicon, reason: str = "enrichment unavailable") -> EnrichmentReport:
    """Report built from local heuristics only, used when the whole branch fails."""
    analysis = {
        "clarity": min(1.0, count_words(text) / 100),
        "completeness": completeness(text),
        "professionalism": NEUTRAL,
        "engagement": engagement(text, lexicon.engaging_words),
        "structure": structure(text),
    }
    calls = {name: {"model": model, "error": reason} for name, model in DEFAULT_MODELS.items()}
    return _build_report(analysis, NEUTRAL, "Average", 0.0, calls)


# ---------------- Client ----------------

@dataclass(frozen=True)
class _Call:
    name: str
    inputs: Callable[[str], str]
    normalize: Callable[[Any, str], Any]
    default: Any
    parameters: Optional[Dict[str, Any]] = None


CALLS = (
    _Call("sentiment", lambda t: t, lambda raw, t: normalize_sentiment(raw), NEUTRAL),
    _Call(
        "classification",
        lambda t: f'Classify this self-introduction as "Excellent", "Good", "Average", or "Poor": "{t[:500]}"',
        lambda raw, t: normalize_classification(raw),
        ("Average", NEUTRAL),
    ),
    _Call("clarity", lambda t: t, normalize_clarity, NEUTRAL, SUMMARY_PARAMETERS),
    _Call(
        "professionalism",
        lambda t: (
            f'Rate the professionalism of this introduction from 0-10: "{t[:300]}". '
            "Consider language, tone, and appropriateness."
        ),
        lambda raw, t: normalize_rating(raw),
        NEUTRAL,
    ),
)


class EnrichmentClient:
    """
    Fan the four inference calls out on a private thread pool and wait for
    them against one deadline.

    The pool is separate from the engine's so an enrichment branch running on
    the engine's pool never waits on its own workers.
    """

    def __init__(
        self,
        transport: Any,
        timeout: float = 8.0,
        max_workers: int = 4,
        models: Optional[Dict[str, str]] = None,
    ):
        self.transport = transport
        self.timeout = timeout
        self.models = {**DEFAULT_MODELS, **(models or {})}
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="enrichment")

    def _run(self, call: _Call, text: str) -> Any:
        model = self.models[call.name]
        prompt = call.inputs(text)
        raw = self.transport.infer(
            model,
            PIPELINE_TASKS[call.name],
            prompt,
            parameters=call.parameters,
            timeout=self.timeout,
        )
        return call.normalize(strip_prompt(raw, prompt), text)

    def enrich(self, text: str, lexicon: Lexicon) -> EnrichmentReport:
        deadline = time.monotonic() + self.timeout
        futures = {
            call.name: self._pool.submit(
                guarded, f"{call.name} enrichment", partial(self._run, call, text), call.default
            )
            for call in CALLS
        }
        outcomes: Dict[str, Outcome[Any]] = {
            call.name: resolve(
                f"{call.name} enrichment", futures[call.name], deadline - time.monotonic(), call.default
            )
            for call in CALLS
        }

        succeeded = sum(1 for o in outcomes.values() if o.ok)
        classification, _ = outcomes["classification"].value
        analysis = {
            "clarity": outcomes["clarity"].value,
            "completeness": completeness(text),
            "professionalism": outcomes["professionalism"].value,
            "engagement": engagement(text, lexicon.engaging_words),
            "structure": structure(text),
        }
        calls = {name: {"model": self.models[name], "error": o.reason} for name, o in outcomes.items()}
        report = _build_report(
            analysis,
            outcomes["sentiment"].value,
            classification,
            round(succeeded / len(CALLS), 4),
            calls,
        )
        logger.info("Enrichment finished: %d/%d calls succeeded", succeeded, len(CALLS))
        return report

    def close(self) -> None:
        self._pool.shutdown(wait=False)
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()
