from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LazyHandle(Generic[T]):
    """
    Load an expensive object (an embedding model, a pipeline) once and hand the
    same instance to every caller.

    Concurrent first callers block on a lock so the factory runs exactly once.
    If the factory raises, nothing is cached and the next caller tries again.
    """

    def __init__(self, factory: Callable[[], T], label: str = "model"):
        self._factory = factory
        self._label = label
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self) -> T:
        if self._loaded:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._loaded:
                logger.info("Loading %s", self._label)
                self._value = self._factory()
                self._loaded = True
        return self._value  # type: ignore[return-value]
