"""
Classification of raw provider failures into the typed error taxonomy
"""

import re
from typing import Any

from ..exceptions import (
    GeminiHybridError,
    ProviderError,
    QuotaExceededError,
    SessionTerminatedError,
)
from ..types import ProviderKind

_QUOTA_MARKERS = ("quota", "resource_exhausted", "resource exhausted", "rate limit", "429")
_TERMINATED_MARKERS = (
    "session has been destroyed",
    "session was destroyed",
    "session destroyed",
    "session is closed",
    "session closed",
    "invalidstateerror",
)
_RETRY_AFTER = re.compile(r"retry(?:[ _-]?after| in)[^\d]{0,10}(\d+(?:\.\d+)?)\s*s", re.I)


class ProviderErrorHandler:
    """Maps provider exceptions to ``QuotaExceededError``,
    ``SessionTerminatedError`` or ``ProviderError``.

    Errors that are already typed keep their class; missing context fields
    are filled in.
    """

    def __init__(self, provider: ProviderKind):
        self.provider = provider

    def classify(
        self,
        error: Exception,
        *,
        rung: str | None = None,
        schema_name: str | None = None,
    ) -> GeminiHybridError:
        if isinstance(error, GeminiHybridError):
            error.provider = error.provider or self.provider.value
            error.rung = error.rung or rung
            error.schema_name = error.schema_name or schema_name
            return error

        context: dict[str, Any] = {
            "provider": self.provider.value,
            "rung": rung,
            "schema_name": schema_name,
        }
        error_str = f"{type(error).__name__}: {error}".lower()
        code = getattr(error, "code", None)

        if code == 429 or any(marker in error_str for marker in _QUOTA_MARKERS):
            match = _RETRY_AFTER.search(str(error))
            return QuotaExceededError(
                f"Provider quota exceeded ({type(error).__name__})",
                retry_after=float(match.group(1)) if match else None,
                **context,
            )

        if self.provider is ProviderKind.STATEFUL and any(
            marker in error_str for marker in _TERMINATED_MARKERS
        ):
            return SessionTerminatedError(
                f"Native session terminated ({type(error).__name__})", **context
            )

        return ProviderError(f"Provider call failed ({type(error).__name__})", **context)

    def raise_classified(self, error: Exception, **context: Any) -> None:
        """Raise the classified form of ``error`` chained to the original."""
        classified = self.classify(error, **context)
        if classified is error:
            raise error
        raise classified from error
