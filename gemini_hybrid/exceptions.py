"""
Typed errors for adaptive generation and session handling

Every error carries the context needed to act on it (which provider, which
generation rung, which schema) and never the raw provider payload.
"""

from typing import Any


class GeminiHybridError(Exception):
    """Base exception for gemini-hybrid errors"""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        rung: str | None = None,
        schema_name: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.rung = rung
        self.schema_name = schema_name

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for logs and agent-facing error reports."""
        return {
            "kind": self.kind,
            "message": self.message,
            "provider": self.provider,
            "rung": self.rung,
            "schema_name": self.schema_name,
        }


class ConfigurationError(GeminiHybridError):
    """Raised when settings cannot be resolved or validated"""

    kind = "configuration"


class TruncationError(GeminiHybridError):
    """Raised when a structured response is shorter than the truncation floor"""

    kind = "truncation"

    def __init__(self, message: str, *, length: int = 0, **context: Any):
        super().__init__(message, **context)
        self.length = length


class InvalidJSONError(GeminiHybridError):
    """Raised when a response cannot be recovered into conforming JSON"""

    kind = "invalid_json"


class ProviderError(GeminiHybridError):
    """Raised when a provider call fails for reasons other than quota"""

    kind = "provider"


class ProviderUnavailableError(ProviderError):
    """Raised when no usable provider can be constructed"""

    kind = "provider_unavailable"


class SessionTerminatedError(GeminiHybridError):
    """Raised when a stateful native session was destroyed out from under us"""

    kind = "session_terminated"


class QuotaExceededError(GeminiHybridError):
    """Raised when the provider reports an exhausted quota"""

    kind = "quota_exceeded"

    def __init__(self, message: str, *, retry_after: float | None = None, **context: Any):
        super().__init__(message, **context)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class TerminalGenerationError(GeminiHybridError):
    """Raised when every generation rung failed for a request"""

    kind = "terminal_generation"

    def __init__(self, message: str, *, attempts: tuple[str, ...] = (), **context: Any):
        super().__init__(message, **context)
        self.attempts = tuple(attempts)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = list(self.attempts)
        return data
