import pytest

from intro_scorer.metrics import EVALUATORS, build_context, evaluate
from intro_scorer.models import CoherenceIssue, CoherenceReport
from intro_scorer.outcome import Fallback, Ok
from intro_scorer.rubric import METRIC_IDS, MetricSpec
from intro_scorer.sentiment import SentimentCounts
from intro_scorer.text import half_up, words_per_minute

from .conftest import CASE_STUDY, CASE_STUDY_DURATION, GIBBERISH

SPECS = {
    "salutation": MetricSpec("salutation", "Salutation Level", 5),
    "keywords": MetricSpec("keywords", "Key Word Presence", 30),
    "flow": MetricSpec("flow", "Flow", 5),
    "flow_coherence": MetricSpec("flow_coherence", "Flow & Coherence", 10),
    "speech_rate": MetricSpec("speech_rate", "Speech Rate", 10),
    "grammar": MetricSpec("grammar", "Grammar Errors", 10),
    "vocabulary": MetricSpec("vocabulary", "Vocabulary Richness (TTR)", 10),
    "filler_rate": MetricSpec("filler_rate", "Filler Word Rate", 15),
    "sentiment": MetricSpec("sentiment", "Sentiment/Positivity", 15),
    "politeness": MetricSpec("politeness", "Politeness Level", 10),
    "professionalism": MetricSpec("professionalism", "Professionalism", 10),
}


def run(document, sentiment, metric_id, text, duration=0, with_insights=False, coherence=None):
    ctx = build_context(text, duration, document, sentiment.analyze(text), with_insights=with_insights)
    ctx.coherence = coherence
    return evaluate(ctx, SPECS[metric_id])


def test_every_metric_id_has_an_evaluator():
    assert set(EVALUATORS) == set(METRIC_IDS)


def test_half_up_rounding():
    assert half_up(2.5) == 3
    assert half_up(154.6) == 155
    assert half_up(0.49) == 0


def test_words_per_minute():
    assert words_per_minute(134, 52) == 155
    assert words_per_minute(134, 0) == 0
    assert words_per_minute(134, -3) == 0
    assert words_per_minute(134, float("nan")) == 0
    assert words_per_minute(134, float("inf")) == 0


def test_case_study_metrics(document, sentiment):
    scores = {
        mid: run(document, sentiment, mid, CASE_STUDY, CASE_STUDY_DURATION)
        for mid in ("salutation", "keywords", "flow", "speech_rate", "grammar", "vocabulary", "filler_rate", "sentiment")
    }
    assert scores["salutation"].score == 4
    assert scores["keywords"].score == 22
    assert "[class, school, family, play] (16/20)" in scores["keywords"].details
    assert "[from, fun fact, interesting] (6/10)" in scores["keywords"].details
    assert scores["flow"].score == 5
    assert scores["speech_rate"].score == 6
    assert scores["speech_rate"].details == "Fast: 155 WPM"
    assert scores["grammar"].score == 10
    assert scores["vocabulary"].score == 6
    assert "(84/131)" in scores["vocabulary"].details
    assert scores["filler_rate"].score == 15
    assert "1 filler words" in scores["filler_rate"].details
    assert scores["sentiment"].score == 12


def test_gibberish_scores_low_but_not_zero(document, sentiment):
    assert run(document, sentiment, "keywords", GIBBERISH).score == 0
    assert run(document, sentiment, "salutation", GIBBERISH).score == 0
    assert run(document, sentiment, "flow", GIBBERISH).score == 0
    assert run(document, sentiment, "vocabulary", GIBBERISH).score == 2
    assert run(document, sentiment, "grammar", GIBBERISH).score == 4
    assert run(document, sentiment, "filler_rate", GIBBERISH).score == 15
    assert run(document, sentiment, "sentiment", GIBBERISH).score == 9


@pytest.mark.parametrize(
    "text, expected",
    [
        ("I am so excited to be here.", 5),
        ("Good morning, I am Riya.", 4),
        ("Hi, I am Riya.", 2),
        ("My name is Riya.", 0),
    ],
)
def test_salutation_tiers(document, sentiment, text, expected):
    assert run(document, sentiment, "salutation", text).score == expected


def test_salutation_matches_inside_words(document, sentiment):
    # "this" contains "hi"
    assert run(document, sentiment, "salutation", "This is Riya.").score == 2


def test_keyword_pools_are_capped(document, sentiment):
    text = (
        "My name is Riya, age 12, class 7 at Sunrise school. My family likes to play; my hobbies and "
        "interests vary. About family: I am from Pune, my ambition and goal and dream is unique. "
        "Fun fact: my strength is an achievement, interesting!"
    )
    metric = run(document, sentiment, "keywords", text)
    assert metric.score == 30
    assert "(20/20)" in metric.details
    assert "(10/10)" in metric.details


QUALIFYING_FLOW = "Hello. I study in class 5. I love my family. Thank you."


def test_flow_requires_every_gate(document, sentiment):
    assert run(document, sentiment, "flow", QUALIFYING_FLOW).score == 5


@pytest.mark.parametrize(
    "text",
    [
        "Greetings. I study in class 5. I love my family. Thank you.",
        "Hello. I love my family. Thank you.",
        "Hello. I study in class 5. Thank you.",
        "Hello. I study in class 5. I love my family.",
    ],
)
def test_flow_is_all_or_nothing(document, sentiment, text):
    metric = run(document, sentiment, "flow", text)
    assert metric.score == 0
    assert "missing" in metric.details


@pytest.mark.parametrize(
    "words, duration, expected",
    [
        (100, 60, 6),
        (120, 60, 10),
        (140, 60, 10),
        (141, 60, 6),
        (170, 60, 2),
        (50, 60, 2),
    ],
)
def test_speech_rate_bands(document, sentiment, words, duration, expected):
    text = " ".join(["word"] * words)
    assert run(document, sentiment, "speech_rate", text, duration).score == expected


def test_speech_rate_without_duration(document, sentiment):
    metric = run(document, sentiment, "speech_rate", "Hello there friends", 0)
    assert metric.score == 2
    assert "no duration" in metric.details


def test_speech_rate_band_miss_uses_fallback(document, sentiment):
    # 450 WPM is above every declared band
    text = " ".join(["word"] * 450)
    metric = run(document, sentiment, "speech_rate", text, 60)
    assert metric.score == document.bands["speech_rate"].fallback_score
    assert "outside all bands" in metric.details


def test_grammar_counts_patterns(document, sentiment):
    text = "i dont know.. What  to say. Im here"
    metric = run(document, sentiment, "grammar", text)
    # lowercase start, "dont", "..", doubled space, "Im"
    assert "5 errors" in metric.details
    assert metric.score < 10


def test_filler_counts_substrings(document, sentiment):
    text = "um so I basically like uh play"
    metric = run(document, sentiment, "filler_rate", text)
    assert "5 filler words" in metric.details
    assert metric.score == 3


def test_sentiment_without_hits_is_neutral(document, sentiment):
    metric = run(document, sentiment, "sentiment", "The table is wooden.")
    assert "0.50" in metric.details
    assert metric.score == 9


def test_sentiment_only_negative(document, sentiment):
    metric = run(document, sentiment, "sentiment", "I hate boring sad days.")
    assert metric.score == 3


def test_politeness_and_professionalism(document, sentiment):
    polite = run(document, sentiment, "politeness", "Hello, thank you, it is a pleasure. I am happy.")
    assert polite.score == 8
    casual = run(document, sentiment, "professionalism", "Hey guys, this stuff is awesome and cool, bro.")
    assert casual.score == 2
    formal = run(document, sentiment, "professionalism", "I am a certified and experienced tutor.")
    assert formal.score == 10


def test_scores_are_clamped(document, sentiment):
    text = "please thank thanks excuse me sorry pardon hello respect appreciate grateful pleasure"
    assert run(document, sentiment, "politeness", text).score == 10


def test_insights_only_when_requested(document, sentiment):
    plain = run(document, sentiment, "grammar", CASE_STUDY)
    detailed = run(document, sentiment, "grammar", CASE_STUDY, with_insights=True)
    assert plain.insights is None
    assert detailed.insights is not None
    assert detailed.insights.detected_strengths


def test_flow_coherence_combines_gates_and_coherence(document, sentiment):
    report = CoherenceReport(score=9, average_similarity=0.9, sentence_count=4)
    metric = run(document, sentiment, "flow_coherence", QUALIFYING_FLOW, with_insights=True, coherence=Ok(report))
    assert metric.score == 7
    assert metric.insights.error is None


def test_flow_coherence_reports_issues(document, sentiment):
    issue = CoherenceIssue(sentence_index=2, sentence="Bananas are yellow", similarity=0.1)
    report = CoherenceReport(score=4, average_similarity=0.4, issues=[issue], sentence_count=4)
    metric = run(document, sentiment, "flow_coherence", QUALIFYING_FLOW, with_insights=True, coherence=Ok(report))
    assert metric.score == 5
    assert any("Bananas are yellow" in r for r in metric.insights.recommendations)
    assert metric.insights.detected_issues == ["Sentence 3 has low coherence (10% similarity)"]


def test_flow_coherence_fallback_carries_error(document, sentiment):
    fallback = Fallback(CoherenceReport(score=5), "RuntimeError: no model")
    metric = run(document, sentiment, "flow_coherence", "hmm", with_insights=True, coherence=fallback)
    assert metric.score == 3
    assert metric.insights.error == "RuntimeError: no model"


def test_sentiment_counts_positivity():
    assert SentimentCounts().positivity == 0.5
    assert SentimentCounts(positive=("a", "b", "c"), negative=("d",)).positivity == 0.75


@pytest.mark.parametrize(
    "metric_id", ["salutation", "keywords", "flow", "filler_rate", "sentiment", "politeness", "professionalism"]
)
def test_lexical_metrics_ignore_case(document, sentiment, metric_id):
    upper = run(document, sentiment, metric_id, CASE_STUDY.upper(), CASE_STUDY_DURATION)
    lower = run(document, sentiment, metric_id, CASE_STUDY.lower(), CASE_STUDY_DURATION)
    assert upper.score == lower.score


def test_grammar_is_case_sensitive_on_sentence_starts(document, sentiment):
    # capitalization is the one signal grammar reads from letter case
    upper = run(document, sentiment, "grammar", "HELLO EVERYONE")
    lower = run(document, sentiment, "grammar", "hello everyone")
    assert upper.score > lower.score
