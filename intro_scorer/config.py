from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .enrichment import DEFAULT_INFERENCE_URL
from .errors import IntroScorerError
from .rubric import DEFAULT_RUBRIC_PATH
from .semantic import DEFAULT_EMBEDDING_MODEL

ENRICHMENT_MODES = ("off", "remote", "local")


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise IntroScorerError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class Settings:
    rubric_path: str = str(DEFAULT_RUBRIC_PATH)
    embedding_model: Optional[str] = DEFAULT_EMBEDDING_MODEL
    enrichment: str = "off"
    huggingface_api_key: Optional[str] = None
    inference_url: str = DEFAULT_INFERENCE_URL
    request_timeout: float = 8.0
    branch_timeout: float = 20.0
    max_workers: int = 4
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.enrichment not in ENRICHMENT_MODES:
            raise IntroScorerError(f"enrichment must be one of {ENRICHMENT_MODES}, got {self.enrichment!r}")
        if self.max_workers < 1:
            raise IntroScorerError("max_workers must be at least 1")

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the environment, after loading a ``.env`` file if one is found."""
        load_dotenv(find_dotenv(usecwd=True))
        # an empty INTRO_SCORER_EMBEDDING_MODEL turns the semantic analyzer off
        embedding_model = os.getenv("INTRO_SCORER_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL) or None
        return cls(
            rubric_path=os.getenv("INTRO_SCORER_RUBRIC_PATH") or str(DEFAULT_RUBRIC_PATH),
            embedding_model=embedding_model,
            enrichment=os.getenv("INTRO_SCORER_ENRICHMENT", "off").strip().lower(),
            huggingface_api_key=os.getenv("HUGGINGFACE_API_KEY") or None,
            inference_url=os.getenv("INTRO_SCORER_INFERENCE_URL") or DEFAULT_INFERENCE_URL,
            request_timeout=_float("INTRO_SCORER_REQUEST_TIMEOUT", 8.0),
            branch_timeout=_float("INTRO_SCORER_BRANCH_TIMEOUT", 20.0),
            max_workers=int(_float("INTRO_SCORER_MAX_WORKERS", 4)),
            log_level=os.getenv("INTRO_SCORER_LOG_LEVEL", "INFO").upper(),
        )
