import numpy as np
import pytest

from intro_scorer.engine import ScoringEngine
from intro_scorer.rubric import RubricStore, load_rubric
from intro_scorer.semantic import SemanticAnalyzer
from intro_scorer.sentiment import LexiconSentiment

CASE_STUDY = """Hello everyone, myself Muskan, studying in class 8th B section from Christ Public School.
I am 13 years old. I live with my family. There are 3 people in my family, me, my mother and my father.
One special thing about my family is that they are very kind hearted to everyone and soft spoken. One thing I really enjoy is play - playing cricket and taking wickets.
A fun fact about me is that I see in mirror and talk by myself. One thing people don't know about me is that I once stole a toy from one of my cousin.
 My favorite subject is science because it is very interesting. Through science I can explore the whole world and make the discoveries and improve the lives of others.
Thank you for listening."""

CASE_STUDY_DURATION = 52

GIBBERISH = " ".join(["asdf jkl; qwer zxcv"] * 4)


class FakeVader:
    """Stands in for SentimentIntensityAnalyzer; only ``.lexicon`` is read."""

    lexicon = {
        "special": 1.7,
        "kind": 1.9,
        "enjoy": 2.2,
        "fun": 2.3,
        "favorite": 2.0,
        "interesting": 1.7,
        "excited": 1.4,
        "love": 3.2,
        "great": 3.1,
        "happy": 2.7,
        "thank": 1.5,
        "stole": -2.2,
        "hate": -2.7,
        "boring": -1.3,
        "sad": -2.1,
    }


class FakeEmbedder:
    """Returns a fixed vector per sentence; unknown sentences get ``default``."""

    def __init__(self, vectors=None, default=(1.0, 0.0)):
        self.vectors = vectors or {}
        self.default = default
        self.calls = 0

    def encode(self, sentences):
        self.calls += 1
        return np.array([self.vectors.get(s, self.default) for s in sentences], dtype=float)


class BrokenEmbedder:
    def encode(self, sentences):
        raise RuntimeError("model weights missing")


@pytest.fixture
def document():
    return load_rubric()


@pytest.fixture
def lexicon(document):
    return document.lexicon


@pytest.fixture
def sentiment():
    return LexiconSentiment(FakeVader())


@pytest.fixture
def engine(sentiment):
    eng = ScoringEngine(rubrics=RubricStore(), sentiment=sentiment, branch_timeout=5)
    yield eng
    eng.close()


@pytest.fixture
def advanced_engine(sentiment):
    eng = ScoringEngine(
        rubrics=RubricStore(),
        semantic=SemanticAnalyzer(FakeEmbedder()),
        sentiment=sentiment,
        branch_timeout=5,
    )
    yield eng
    eng.close()
