"""Provider interfaces and implementations.

``providers.gemini`` imports the Google GenAI SDK and is not imported here.
"""

from .base import (
    CompletionClient,
    NativeSessionClient,
    NativeSessionHandle,
    StreamingSessionHandle,
    render_transcript,
)
from .error_handler import ProviderErrorHandler
from .mock import MockCompletionClient, MockNativeClient, MockNativeSession

__all__ = [
    "CompletionClient",
    "MockCompletionClient",
    "MockNativeClient",
    "MockNativeSession",
    "NativeSessionClient",
    "NativeSessionHandle",
    "ProviderErrorHandler",
    "StreamingSessionHandle",
    "render_transcript",
]
