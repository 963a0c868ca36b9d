"""
Command-line scorer.

    python -m intro_scorer transcript.txt --duration 52 --advanced
    echo "Hello everyone, ..." | python -m intro_scorer - --duration 30

Prints the ``ScoreResult`` as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

from .config import ENRICHMENT_MODES, Settings
from .engine import ScoringEngine
from .errors import IntroScorerError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="intro_scorer", description="Score a spoken self-introduction transcript.")
    parser.add_argument("transcript", help="path to a UTF-8 transcript file, or '-' to read stdin")
    parser.add_argument("--duration", type=float, default=0, help="speaking time in seconds")
    parser.add_argument("--advanced", action="store_true", help="use the advanced rubric with semantic analysis")
    parser.add_argument("--enrichment", choices=ENRICHMENT_MODES, help="override INTRO_SCORER_ENRICHMENT")
    parser.add_argument("--rubric", help="override INTRO_SCORER_RUBRIC_PATH")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.enrichment:
        settings = replace(settings, enrichment=args.enrichment)
    if args.rubric:
        settings = replace(settings, rubric_path=args.rubric)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.transcript == "-":
        transcript = sys.stdin.read()
    else:
        with open(args.transcript, "r", encoding="utf-8") as fh:
            transcript = fh.read()

    try:
        engine = ScoringEngine.from_settings(settings)
    except IntroScorerError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    with engine:
        if args.advanced:
            result = engine.score_advanced(transcript, args.duration)
        else:
            result = engine.score(transcript, args.duration)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
