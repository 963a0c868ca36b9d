import json
import threading

import pytest

from intro_scorer.config import Settings
from intro_scorer.engine import ScoringEngine
from intro_scorer.enrichment import EnrichmentClient
from intro_scorer.models import ScoreResult
from intro_scorer.rubric import RubricStore
from intro_scorer.semantic import SemanticAnalyzer

from .conftest import CASE_STUDY, CASE_STUDY_DURATION, GIBBERISH, BrokenEmbedder, FakeEmbedder
from .test_enrichment import FakeTransport


def test_case_study_standard(engine):
    result = engine.score(CASE_STUDY, CASE_STUDY_DURATION)
    assert result.word_count == 134
    assert result.speech_rate == 155
    assert result.criterion("Content & Structure").score == 31
    assert result.criterion("Speech Rate").score == 6
    assert result.criterion("Language & Grammar").score == 16
    assert result.criterion("Clarity").score == 15
    assert result.criterion("Engagement").score == 12
    # with 100 points and weight == max/100 the normalized score is the plain sum
    assert result.overall_score == sum(c.score for c in result.criteria) == 80
    assert result.aggregation == "normalized"
    assert result.insights.grade == "A-"
    assert result.insights.scoring_method == "basic-rubric"
    assert result.insights.recommendations.semantic == ["Speech rate too fast - aim for 111-140 WPM"]
    assert "Speech Rate: only scored 6/10" in result.insights.recommendations.rule_based
    assert result.insights.recommendations.model_based == []
    assert all(m.insights is None for c in result.criteria for m in c.metrics)


@pytest.mark.parametrize("text", ["", "   \n\t "])
def test_empty_transcript(engine, text):
    for result in (engine.score(text, 30), engine.score_advanced(text, 30)):
        assert result.overall_score == 0
        assert result.criteria == []
        assert result.insights.grade == "F"
        assert result.insights.notes == ["No transcript provided"]
        assert result.insights.recommendations.rule_based == ["Please enter a transcript to score"]


def test_local_scoring_is_deterministic(engine, advanced_engine):
    assert engine.score(CASE_STUDY, CASE_STUDY_DURATION) == engine.score(CASE_STUDY, CASE_STUDY_DURATION)
    first = advanced_engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert advanced_engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION) == first


def test_nan_duration_is_treated_as_missing(engine):
    result = engine.score(CASE_STUDY, float("nan"))
    assert result.speech_rate == 0
    assert "no duration provided" in result.metric("speech_rate").details


def test_gibberish_is_low_but_nonzero(engine):
    # 16 words in 10 s is 96 WPM; only speech rate, grammar, vocabulary, filler and sentiment score
    result = engine.score(GIBBERISH, 10)
    assert result.overall_score == 36
    assert result.criterion("Content & Structure").score == 0


def test_scores_stay_in_bounds(engine, advanced_engine):
    samples = [CASE_STUDY, GIBBERISH, "Hi.", "um " * 200, "Hello everyone! " * 50]
    for text in samples:
        for result in (engine.score(text, 30), advanced_engine.score_advanced(text, 30)):
            assert 0 <= result.overall_score <= 100
            for crit in result.criteria:
                assert 0 <= crit.score <= crit.max_score
                for metric in crit.metrics:
                    assert 0 <= metric.score <= metric.max_score


def test_case_study_advanced(advanced_engine):
    result = advanced_engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert [c.name for c in result.criteria] == [
        "Content & Structure",
        "Tone & Register",
        "Speech Rate",
        "Language & Grammar",
        "Clarity",
        "Engagement",
    ]
    # all four flow gates pass and the fake embedder is perfectly coherent
    assert result.metric("flow_coherence").score == 8
    assert result.metric("politeness").score == 6
    assert result.metric("professionalism").score == 10
    assert result.insights.scoring_method == "advanced-nlp"
    assert result.insights.confidence is None
    assert result.insights.coherence.score == 10
    assert result.insights.notes == []
    assert result.conciseness_analysis is not None
    assert result.metric("grammar").insights is not None
    assert result.metric("salutation").insights is None
    assert result.insights.recommendations.model_based


def test_advanced_without_embedder_notes_fallback(sentiment):
    with ScoringEngine(rubrics=RubricStore(), sentiment=sentiment, branch_timeout=5) as engine:
        result = engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert result.insights.coherence.score == 5
    assert result.metric("flow_coherence").insights.error == "no embedding model configured"
    assert any("coherence analysis used fallback" in n for n in result.insights.notes)


def test_broken_embedder_does_not_fail_request(sentiment):
    engine = ScoringEngine(
        rubrics=RubricStore(), semantic=SemanticAnalyzer(BrokenEmbedder()), sentiment=sentiment, branch_timeout=5
    )
    with engine:
        result = engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert result.metric("flow_coherence").score == 5
    assert "model weights missing" in result.metric("flow_coherence").insights.error


def test_enrichment_marks_scoring_method(sentiment):
    client = EnrichmentClient(FakeTransport(), timeout=2)
    engine = ScoringEngine(
        rubrics=RubricStore(), semantic=SemanticAnalyzer(FakeEmbedder()), enrichment=client, sentiment=sentiment
    )
    with engine:
        result = engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert result.insights.scoring_method == "model-enriched"
    assert result.insights.confidence == 1.0
    assert result.insights.enrichment.classification == "Good"


def test_failed_enrichment_falls_back_to_local(sentiment):
    transport = FakeTransport(fail={"sentiment-analysis", "text-generation", "summarization"})
    client = EnrichmentClient(transport, timeout=2)
    engine = ScoringEngine(
        rubrics=RubricStore(), semantic=SemanticAnalyzer(FakeEmbedder()), enrichment=client, sentiment=sentiment
    )
    with engine:
        result = engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    assert result.insights.scoring_method == "advanced-nlp"
    assert result.insights.confidence == 0.0
    assert result.overall_score > 0


def test_slow_branch_times_out(sentiment):
    gate = threading.Event()

    class SlowEmbedder(FakeEmbedder):
        def encode(self, sentences):
            gate.wait(5)
            return super().encode(sentences)

    engine = ScoringEngine(
        rubrics=RubricStore(), semantic=SemanticAnalyzer(SlowEmbedder()), sentiment=sentiment, branch_timeout=0.2
    )
    try:
        result = engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    finally:
        gate.set()
        engine.close()
    assert result.insights.coherence.score == 5
    assert any("timed out" in n for n in result.insights.notes)


def test_result_round_trips_through_json(advanced_engine):
    result = advanced_engine.score_advanced(CASE_STUDY, CASE_STUDY_DURATION)
    data = json.loads(json.dumps(result.to_dict()))
    assert ScoreResult.from_dict(data) == result
    assert ScoreResult.from_dict(data).to_dict() == result.to_dict()


def test_from_settings_without_models():
    settings = Settings(embedding_model=None, enrichment="remote", huggingface_api_key=None)
    with ScoringEngine.from_settings(settings) as engine:
        assert engine.enrichment is None
        assert not engine.semantic.available
        assert engine.score("Hello, my name is Riya.", 5).overall_score > 0
