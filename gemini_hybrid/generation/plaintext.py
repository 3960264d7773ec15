"""Prompt-engineered generation without a schema-enforcement parameter."""

from __future__ import annotations

import logging

from ..analysis.schema_analyzer import fingerprint
from ..exceptions import GeminiHybridError
from ..prompts.schema_describer import SchemaDescriber
from ..response.sanitizer import ResponseSanitizer
from ..response.validation import ensure_conforms
from ..schema import Schema
from ..types import GenerationMethod, GenerationRequest, GenerationResult, Message
from .backend import GenerationBackend
from .structured import annotate

log = logging.getLogger(__name__)


class PlainTextGenerator:
    """Universal fallback: instructions in the prompt, JSON recovered afterwards.

    ``generate`` prepends the schema description as a system message unless
    the backend already holds it.
    ``generate_bare`` is the last rung and sends the request unchanged.
    Both route the raw output through the sanitizer and check it against
    the schema.
    """

    def __init__(
        self,
        *,
        describer: SchemaDescriber | None = None,
        sanitizer: ResponseSanitizer | None = None,
    ):
        self.describer = describer or SchemaDescriber()
        self.sanitizer = sanitizer or ResponseSanitizer()

    async def generate(
        self,
        request: GenerationRequest,
        schema: Schema,
        backend: GenerationBackend,
    ) -> GenerationResult:
        messages = request.messages
        if fingerprint(schema) not in backend.instructed:
            messages = (Message.system(self.describer.describe(schema)), *messages)
        return await self._run(
            messages,
            request,
            schema,
            backend,
            GenerationMethod.PLAINTEXT,
        )

    async def generate_bare(
        self,
        request: GenerationRequest,
        schema: Schema,
        backend: GenerationBackend,
    ) -> GenerationResult:
        return await self._run(
            request.messages, request, schema, backend, GenerationMethod.BARE
        )

    async def _run(
        self,
        messages: tuple[Message, ...],
        request: GenerationRequest,
        schema: Schema,
        backend: GenerationBackend,
        method: GenerationMethod,
    ) -> GenerationResult:
        try:
            completion = await backend.complete(
                messages, response_schema=None, stream=request.stream
            )
            text = self.sanitizer.clean(completion.text, expect_array=schema.root_is_array)
            ensure_conforms(
                self.sanitizer.parse(text, expect_array=schema.root_is_array), schema
            )
        except GeminiHybridError as e:
            annotate(e, method, schema, backend)
            raise

        return GenerationResult(
            text=text,
            method=method,
            provider=backend.provider,
            usage={**completion.usage, "raw_chars": len(completion.text), "text_chars": len(text)},
        )
