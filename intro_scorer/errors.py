"""Exception hierarchy for the introduction scorer."""


class IntroScorerError(Exception):
    """Base class for every error raised by this package."""


class RubricError(IntroScorerError):
    """The rubric document is missing, malformed or internally inconsistent.

    Raised at load time only; an engine never starts with a bad rubric.
    """


class EnrichmentError(IntroScorerError):
    """A model-enrichment call failed or returned something unreadable."""
