"""Learned mapping from schema fingerprints to the generation method that works.

The cache is owned by whoever builds the orchestrator and passed in
explicitly; there is no module-level instance. Entries live for the lifetime
of the process and are overwritten whenever a different method succeeds.
"""

from __future__ import annotations

import logging
import threading

from ..types import GenerationMethod

log = logging.getLogger(__name__)


class MethodCache:
    """Thread-safe fingerprint -> ``GenerationMethod`` map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._decisions: dict[str, GenerationMethod] = {}

    def get(self, fingerprint: str) -> GenerationMethod | None:
        with self._lock:
            return self._decisions.get(fingerprint)

    def put(self, fingerprint: str, method: GenerationMethod) -> None:
        """Record the method that last succeeded for ``fingerprint``.

        Raises:
            ValueError: For methods that are not cacheable decisions.
        """
        method = GenerationMethod(method)
        if not method.cacheable:
            raise ValueError(f"'{method}' is not a cacheable generation method")
        with self._lock:
            previous = self._decisions.get(fingerprint)
            self._decisions[fingerprint] = method
        if previous is not None and previous is not method:
            log.info(
                "Method for schema %s changed from %s to %s",
                fingerprint[:12],
                previous,
                method,
            )

    def invalidate(self, fingerprint: str) -> bool:
        """Drop the entry for ``fingerprint``. Returns whether one existed."""
        with self._lock:
            return self._decisions.pop(fingerprint, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._decisions.clear()

    def snapshot(self) -> dict[str, GenerationMethod]:
        with self._lock:
            return dict(self._decisions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._decisions)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._decisions
