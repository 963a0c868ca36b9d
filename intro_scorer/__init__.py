from .config import Settings
from .engine import ScoringEngine
from .errors import EnrichmentError, IntroScorerError, RubricError
from .models import CriterionScore, Metric, ScoreResult
from .rubric import RubricStore, load_rubric

__all__ = [
    "CriterionScore",
    "EnrichmentError",
    "IntroScorerError",
    "Metric",
    "RubricError",
    "RubricStore",
    "ScoreResult",
    "ScoringEngine",
    "Settings",
    "load_rubric",
]

__version__ = "0.1.0"
