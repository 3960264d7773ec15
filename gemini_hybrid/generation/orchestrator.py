"""Method selection and the structured -> plaintext -> bare fallback ladder.

For a request with a schema the orchestrator:

1. looks up the schema fingerprint in the ``MethodCache`` and, on a hit,
   runs the cached method first
2. otherwise (or when the cached method fails) scores the schema: low
   complexity tries ``structured`` then ``plaintext``; high complexity goes
   straight to ``plaintext``
3. falls back to a ``bare`` completion with no instructions at all
4. raises ``TerminalGenerationError`` when every rung has failed

Each rung runs at most once per call. Successful ``structured`` or
``plaintext`` runs are written back to the cache; a ``bare`` success drops
any stale entry so the next call re-learns.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..analysis.schema_analyzer import ComplexityAnalyzer, fingerprint
from ..constants import (
    T_CACHE_HIT,
    T_CACHE_MISS,
    T_GENERATION_BARE,
    T_GENERATION_PLAINTEXT,
    T_GENERATION_STRUCTURED,
    T_GENERATION_UNCONSTRAINED,
)
from ..exceptions import (
    GeminiHybridError,
    InvalidJSONError,
    ProviderError,
    TerminalGenerationError,
    TruncationError,
)
from ..telemetry import TelemetryContext
from ..types import GenerationMethod, GenerationRequest, GenerationResult
from .method_cache import MethodCache
from .plaintext import PlainTextGenerator
from .structured import StructuredGenerator

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..config import HybridSettings
    from ..schema import Schema
    from ..telemetry import TelemetryContextProtocol
    from .backend import GenerationBackend

log = logging.getLogger(__name__)

# Failures the ladder absorbs. Quota and session termination always propagate.
RECOVERABLE_ERRORS = (TruncationError, InvalidJSONError, ProviderError)

_SCOPES = {
    GenerationMethod.STRUCTURED: T_GENERATION_STRUCTURED,
    GenerationMethod.PLAINTEXT: T_GENERATION_PLAINTEXT,
    GenerationMethod.BARE: T_GENERATION_BARE,
}


class GenerationOrchestrator:
    """Chooses and runs generation methods for one backend call at a time.

    The ``MethodCache`` is injected so callers decide whether learning is
    shared between sessions.
    """

    def __init__(
        self,
        *,
        cache: MethodCache,
        analyzer: ComplexityAnalyzer | None = None,
        structured: StructuredGenerator | None = None,
        plaintext: PlainTextGenerator | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ):
        self.cache = cache
        self.analyzer = analyzer or ComplexityAnalyzer()
        self.structured = structured or StructuredGenerator()
        self.plaintext = plaintext or PlainTextGenerator()
        self._telemetry = telemetry or TelemetryContext()

    @classmethod
    def from_settings(
        cls,
        settings: HybridSettings,
        *,
        cache: MethodCache | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> GenerationOrchestrator:
        return cls(
            cache=cache if cache is not None else MethodCache(),
            analyzer=ComplexityAnalyzer.from_settings(settings),
            structured=StructuredGenerator(min_chars=settings.min_structured_chars),
            telemetry=telemetry,
        )

    def rungs(
        self, schema: Schema, cached: GenerationMethod | None
    ) -> Iterator[GenerationMethod]:
        """Yield rungs in the order they should be tried.

        The schema is only scored once the cached method (if any) has failed.
        """
        if cached is not None:
            yield cached
        if self.analyzer.is_complex(schema):
            path = (GenerationMethod.PLAINTEXT,)
        else:
            path = (GenerationMethod.STRUCTURED, GenerationMethod.PLAINTEXT)
        for method in path:
            if method is not cached:
                yield method
        yield GenerationMethod.BARE

    async def generate(
        self, request: GenerationRequest, backend: GenerationBackend
    ) -> GenerationResult:
        schema = request.schema
        if schema is None:
            return await self._unconstrained(request, backend)

        key = fingerprint(schema)
        cached = self.cache.get(key)
        from_cache = cached is not None
        self._telemetry.count(T_CACHE_HIT if from_cache else T_CACHE_MISS)

        attempts: list[GenerationMethod] = []
        last_error: GeminiHybridError | None = None
        for method in self.rungs(schema, cached):
            attempts.append(method)
            log.debug("Attempting %s generation for schema '%s'", method, schema.name)
            try:
                with self._telemetry(_SCOPES[method], provider=backend.provider.value):
                    result = await self._run(method, request, schema, backend)
            except RECOVERABLE_ERRORS as e:
                last_error = e
                log.warning(
                    "%s generation failed for schema '%s' on %s provider: %s",
                    method,
                    schema.name,
                    backend.provider,
                    e,
                )
                continue

            self._learn(key, method)
            return GenerationResult(
                text=result.text,
                method=result.method,
                provider=result.provider,
                attempts=tuple(attempts),
                usage=result.usage,
                from_cache=from_cache and len(attempts) == 1,
            )

        log.error(
            "All generation methods failed for schema '%s' (%s)",
            schema.name,
            ", ".join(attempts),
        )
        raise TerminalGenerationError(
            f"All generation methods failed for schema '{schema.name}' "
            f"(last error: {last_error.kind if last_error else 'none'})",
            attempts=tuple(m.value for m in attempts),
            provider=backend.provider.value,
            rung=GenerationMethod.BARE.value,
            schema_name=schema.name,
        ) from last_error

    async def _run(
        self,
        method: GenerationMethod,
        request: GenerationRequest,
        schema: Schema,
        backend: GenerationBackend,
    ) -> GenerationResult:
        if method is GenerationMethod.STRUCTURED:
            return await self.structured.generate(request, schema, backend)
        if method is GenerationMethod.PLAINTEXT:
            return await self.plaintext.generate(request, schema, backend)
        return await self.plaintext.generate_bare(request, schema, backend)

    def _learn(self, key: str, method: GenerationMethod) -> None:
        if method.cacheable:
            self.cache.put(key, method)
        elif self.cache.invalidate(key):
            log.info("Dropped stale method for schema %s after bare fallback", key[:12])

    async def _unconstrained(
        self, request: GenerationRequest, backend: GenerationBackend
    ) -> GenerationResult:
        """One plain completion; the text is returned as produced."""
        try:
            with self._telemetry(T_GENERATION_UNCONSTRAINED, provider=backend.provider.value):
                completion = await backend.complete(request.messages, stream=request.stream)
        except ProviderError as e:
            raise TerminalGenerationError(
                f"Unconstrained completion failed ({e.kind})",
                attempts=(GenerationMethod.BARE.value,),
                provider=backend.provider.value,
                rung=GenerationMethod.BARE.value,
            ) from e
        return GenerationResult(
            text=completion.text,
            method=None,
            provider=backend.provider,
            attempts=(GenerationMethod.BARE,),
            usage={**completion.usage, "raw_chars": len(completion.text)},
        )
