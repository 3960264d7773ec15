"""Uniform completion surface over both provider kinds.

Generators talk to a ``GenerationBackend`` and never to a provider client
directly. Each adapter converts raw provider failures into typed errors
tagged with its provider kind.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any, Protocol

from ..providers.base import CompletionClient, NativeSessionHandle, render_transcript
from ..providers.error_handler import ProviderErrorHandler
from ..types import Completion, Message, ProviderKind

log = logging.getLogger(__name__)


class GenerationBackend(Protocol):
    provider: ProviderKind
    # fingerprints of schemas whose plaintext instructions the provider already holds
    instructed: frozenset[str]

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion: ...


class StatelessBackend:
    """Sends the given messages as the complete context of one call."""

    provider = ProviderKind.STATELESS
    instructed: frozenset[str] = frozenset()

    def __init__(self, client: CompletionClient):
        self.client = client
        self._errors = ProviderErrorHandler(self.provider)

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion:
        try:
            return await self.client.generate(
                messages, response_schema=response_schema, stream=stream
            )
        except Exception as e:
            self._errors.raise_classified(e)


class StatefulBackend:
    """Prompts a live native session with only the messages given.

    The native session keeps prior turns itself, so callers pass incremental
    messages only. ``instructed`` names the schemas whose instructions were
    sent when the session was opened.
    """

    provider = ProviderKind.STATEFUL

    def __init__(
        self, handle: NativeSessionHandle, *, instructed: frozenset[str] = frozenset()
    ):
        self.handle = handle
        self.instructed = instructed
        self._errors = ProviderErrorHandler(self.provider)

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion:
        text = render_transcript(messages)
        try:
            if stream and hasattr(self.handle, "prompt_streaming"):
                chunks = [
                    chunk
                    async for chunk in self.handle.prompt_streaming(
                        text, response_constraint=response_schema
                    )
                ]
                reply = "".join(chunks)
            else:
                reply = await self.handle.prompt(text, response_constraint=response_schema)
        except Exception as e:
            self._errors.raise_classified(e)
        return Completion(text=reply or "")
