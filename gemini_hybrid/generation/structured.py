"""Native schema-constrained generation."""

from __future__ import annotations

import logging

from ..constants import DEFAULT_MIN_STRUCTURED_CHARS
from ..exceptions import GeminiHybridError, TruncationError
from ..response.sanitizer import ResponseSanitizer
from ..response.validation import ensure_conforms
from ..schema import Schema
from ..types import GenerationMethod, GenerationRequest, GenerationResult
from .backend import GenerationBackend

log = logging.getLogger(__name__)


def annotate(
    error: GeminiHybridError,
    method: GenerationMethod,
    schema: Schema,
    backend: GenerationBackend,
) -> None:
    """Fill in provider, rung and schema context on a typed error."""
    error.provider = error.provider or backend.provider.value
    error.rung = error.rung or method.value
    error.schema_name = error.schema_name or schema.name


class StructuredGenerator:
    """Asks the backend to enforce the schema itself.

    Backends truncate silently on shapes they cannot handle, so any payload
    shorter than ``min_chars`` is rejected as truncated.
    """

    method = GenerationMethod.STRUCTURED

    def __init__(
        self,
        *,
        min_chars: int = DEFAULT_MIN_STRUCTURED_CHARS,
        sanitizer: ResponseSanitizer | None = None,
    ):
        self.min_chars = min_chars
        self.sanitizer = sanitizer or ResponseSanitizer()

    async def generate(
        self,
        request: GenerationRequest,
        schema: Schema,
        backend: GenerationBackend,
    ) -> GenerationResult:
        try:
            completion = await backend.complete(
                request.messages,
                response_schema=schema.to_json_schema(),
                stream=request.stream,
            )
            raw = completion.text.strip()
            if len(raw) < self.min_chars:
                raise TruncationError(
                    f"Structured response of {len(raw)} chars is below the "
                    f"{self.min_chars}-char floor; treating it as truncated",
                    length=len(raw),
                )
            text = self.sanitizer.clean(raw, expect_array=schema.root_is_array)
            ensure_conforms(
                self.sanitizer.parse(text, expect_array=schema.root_is_array), schema
            )
        except GeminiHybridError as e:
            annotate(e, self.method, schema, backend)
            raise

        return GenerationResult(
            text=text,
            method=self.method,
            provider=backend.provider,
            usage={**completion.usage, "raw_chars": len(completion.text), "text_chars": len(text)},
        )
