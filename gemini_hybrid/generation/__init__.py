from .backend import GenerationBackend, StatefulBackend, StatelessBackend
from .method_cache import MethodCache
from .orchestrator import GenerationOrchestrator
from .plaintext import PlainTextGenerator
from .structured import StructuredGenerator

__all__ = [
    "GenerationBackend",
    "GenerationOrchestrator",
    "MethodCache",
    "PlainTextGenerator",
    "StatefulBackend",
    "StatelessBackend",
    "StructuredGenerator",
]
