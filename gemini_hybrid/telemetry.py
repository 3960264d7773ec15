"""Telemetry scopes and reporter interfaces.

Disabled telemetry costs one shared, immutable no-op object. When enabled
(``GEMINI_HYBRID_TELEMETRY=1`` or ``force=True``) nested scopes record timings
and counters, with their parent scope and depth, to every attached reporter.
"""

from collections import defaultdict, deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from typing import Any, Protocol, runtime_checkable

log = logging.getLogger(__name__)

_scope_stack_var: ContextVar[tuple[str, ...]] = ContextVar("scope_stack", default=())

TELEMETRY_ENV_VAR = "GEMINI_HYBRID_TELEMETRY"


def telemetry_enabled() -> bool:
    return os.getenv(TELEMETRY_ENV_VAR) == "1"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Duck-typed protocol for telemetry reporters."""

    def record_timing(self, scope: str, duration: float, **metadata) -> None: ...
    def record_metric(self, scope: str, value: Any, **metadata) -> None: ...


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    """An immutable and stateless no-op context."""

    def __call__(self, name: str, **metadata):
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None

    def metric(self, name: str, value: Any, **metadata):
        pass

    def count(self, name: str, increment: int = 1, **metadata):
        pass

    def gauge(self, name: str, value: float, **metadata):
        pass


class _EnabledTelemetryContext:
    """Telemetry context that forwards scopes and metrics to reporters."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    def __call__(self, name: str, **metadata):
        return self._create_scope(name, **metadata)

    @contextmanager
    def _create_scope(self, name: str, **metadata):
        if not name or not isinstance(name, str):
            raise ValueError("Scope name must be a non-empty string")

        stack = _scope_stack_var.get()
        scope_path = ".".join((*stack, name))
        token = _scope_stack_var.set((*stack, name))
        start_time = time.perf_counter()
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            duration = time.perf_counter() - start_time
            _scope_stack_var.reset(token)
            enhanced_metadata = {
                "depth": len(stack),
                "parent_scope": ".".join(stack) if stack else None,
                "failed": failed,
                **metadata,
            }
            self._dispatch("record_timing", scope_path, duration, enhanced_metadata)

    def metric(self, name: str, value: Any, **metadata):
        """Record a metric within the current scope"""
        stack = _scope_stack_var.get()
        scope_path = ".".join((*stack, name))
        enhanced_metadata = {
            "depth": len(stack),
            "parent_scope": ".".join(stack) if stack else None,
            **metadata,
        }
        self._dispatch("record_metric", scope_path, value, enhanced_metadata)

    def count(self, name: str, increment: int = 1, **metadata):
        """Record a counter metric"""
        self.metric(name, increment, metric_type="counter", **metadata)

    def gauge(self, name: str, value: float, **metadata):
        """Record a gauge metric"""
        self.metric(name, value, metric_type="gauge", **metadata)

    def _dispatch(self, method: str, scope: str, value: Any, metadata: dict) -> None:
        # A failing reporter must never break generation.
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )


_NO_OP_SINGLETON = _NoOpTelemetryContext()

type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(  # noqa: N802
    *reporters: TelemetryReporter, force: bool = False
) -> TelemetryContextProtocol:
    """
    Factory that returns a reporting context when telemetry is enabled
    (``GEMINI_HYBRID_TELEMETRY=1`` or ``force=True``) and reporters are
    given, or the shared no-op instance otherwise.
    """
    if reporters and (force or telemetry_enabled()):
        return _EnabledTelemetryContext(*reporters)
    return _NO_OP_SINGLETON


def _matches(scope: str, name: str) -> bool:
    return scope == name or scope.endswith("." + name)


class InMemoryReporter:
    """Collects timings and metrics in memory.

    Useful for diagnostics and for asserting on runtime behaviour in tests.
    """

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque] = defaultdict(
            lambda: deque(maxlen=self.max_entries)
        )
        self.metrics: dict[str, deque] = defaultdict(
            lambda: deque(maxlen=self.max_entries)
        )

    def record_timing(self, scope: str, duration: float, **metadata) -> None:
        self.timings[scope].append((duration, metadata))

    def record_metric(self, scope: str, value: Any, **metadata) -> None:
        self.metrics[scope].append((value, metadata))

    def total(self, name: str) -> float:
        """Sum of metric values named ``name``, whatever scope they were in."""
        return sum(
            value
            for scope, entries in self.metrics.items()
            if _matches(scope, name)
            for value, _ in entries
        )

    def calls(self, name: str) -> int:
        """Number of completed timing scopes named ``name``."""
        return sum(
            len(entries)
            for scope, entries in self.timings.items()
            if _matches(scope, name)
        )

    def reset(self) -> None:
        self.timings.clear()
        self.metrics.clear()

    def as_dict(self) -> dict[str, Any]:
        return {
            "timings": {
                scope: {
                    "count": len(entries),
                    "total": sum(d for d, _ in entries),
                }
                for scope, entries in self.timings.items()
            },
            "metrics": {
                scope: [value for value, _ in entries]
                for scope, entries in self.metrics.items()
            },
        }
