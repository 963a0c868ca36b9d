"""
Explicit per-branch results.

Every optional or slow branch of a scoring request (coherence, core message,
each enrichment call) ends in either ``Ok(value)`` or ``Fallback(value, reason)``.
Both carry a usable value, so the aggregator never has to guess whether a
number is real or a default; it just checks ``outcome.ok``.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    ok = True
    reason = None


@dataclass(frozen=True)
class Fallback(Generic[T]):
    value: T
    reason: str

    ok = False


Outcome = Union[Ok[T], Fallback[T]]


def guarded(label: str, fn: Callable[[], T], default: T) -> "Outcome[T]":
    """Run ``fn``; any exception becomes a ``Fallback`` carrying ``default``."""
    try:
        return Ok(fn())
    except Exception as exc:  # branch boundary: failures become fallbacks
        logger.warning("%s failed, using fallback: %s", label, exc)
        return Fallback(default, f"{type(exc).__name__}: {exc}")


def resolve(label: str, future: "Future[Outcome[T]]", timeout: float, default: T) -> "Outcome[T]":
    """Wait for a submitted branch; a timeout or crash becomes a ``Fallback``."""
    try:
        return future.result(timeout=max(0.0, timeout))
    except FutureTimeout:
        future.cancel()
        logger.warning("%s timed out after %.1fs, using fallback", label, timeout)
        return Fallback(default, f"timed out after {timeout:.1f}s")
    except Exception as exc:  # branch boundary: failures become fallbacks
        logger.warning("%s failed, using fallback: %s", label, exc)
        return Fallback(default, f"{type(exc).__name__}: {exc}")
