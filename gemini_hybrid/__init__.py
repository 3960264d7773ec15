"""
Gemini Hybrid: adaptive structured generation over stateful and stateless models
"""

import importlib.metadata
import logging

from .analysis.schema_analyzer import ComplexityAnalyzer, fingerprint
from .config import HybridSettings, resolve_config
from .exceptions import (
    ConfigurationError,
    GeminiHybridError,
    InvalidJSONError,
    ProviderError,
    ProviderUnavailableError,
    QuotaExceededError,
    SessionTerminatedError,
    TerminalGenerationError,
    TruncationError,
)
from .generation import (
    GenerationOrchestrator,
    MethodCache,
    PlainTextGenerator,
    StructuredGenerator,
)
from .prompts import SchemaDescriber
from .response import ResponseSanitizer
from .schema import Schema, SchemaKind, coerce_schema
from .session import SessionHandle, SessionManager, StatefulSession, StatelessSession
from .telemetry import InMemoryReporter, TelemetryContext
from .types import (
    GenerationMethod,
    GenerationRequest,
    GenerationResult,
    Message,
    ProviderKind,
    Role,
)

# Version handling
try:
    __version__ = importlib.metadata.version("gemini-hybrid")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"

# Set up a null handler for the library's root logger.
logging.getLogger(__name__).addHandler(logging.NullHandler())


__all__ = [
    # Sessions
    "SessionManager",
    "SessionHandle",
    "StatefulSession",
    "StatelessSession",
    # Generation
    "GenerationOrchestrator",
    "StructuredGenerator",
    "PlainTextGenerator",
    "MethodCache",
    "ComplexityAnalyzer",
    "SchemaDescriber",
    "ResponseSanitizer",
    "fingerprint",
    # Types
    "Schema",
    "SchemaKind",
    "coerce_schema",
    "Message",
    "Role",
    "GenerationMethod",
    "GenerationRequest",
    "GenerationResult",
    "ProviderKind",
    # Configuration & telemetry
    "HybridSettings",
    "resolve_config",
    "TelemetryContext",
    "InMemoryReporter",
    # Exceptions
    "GeminiHybridError",
    "ConfigurationError",
    "TruncationError",
    "InvalidJSONError",
    "ProviderError",
    "ProviderUnavailableError",
    "SessionTerminatedError",
    "QuotaExceededError",
    "TerminalGenerationError",
]
