"""Provider interfaces consumed by the runtime.

Two kinds of backend are supported:

- a native, stateful session client (create / prompt / destroy) that keeps
  its own conversation history
- a stateless completion client that receives the full context each call

Both are duck-typed protocols; concrete implementations live in
``providers.gemini`` (remote) and ``providers.mock`` (deterministic, in
process). Native clients are normally supplied by the host environment.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from ..types import Completion, Message


@runtime_checkable
class NativeSessionHandle(Protocol):
    """A live native conversation. History is held by the provider."""

    async def prompt(
        self, text: str, *, response_constraint: Mapping[str, Any] | None = None
    ) -> str: ...

    def destroy(self) -> None: ...


@runtime_checkable
class StreamingSessionHandle(NativeSessionHandle, Protocol):
    """Native handle that can also stream its response in chunks."""

    def prompt_streaming(
        self, text: str, *, response_constraint: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]: ...


@runtime_checkable
class NativeSessionClient(Protocol):
    """Factory for native sessions."""

    async def availability(self) -> str:
        """One of ``available``/``readily``, ``downloadable``, ``downloading``, ``unavailable``."""
        ...

    async def create(
        self,
        *,
        initial_prompts: Sequence[Message],
        temperature: float | None = None,
        top_k: int | None = None,
    ) -> NativeSessionHandle: ...


@runtime_checkable
class CompletionClient(Protocol):
    """Stateless text completion over a full message list."""

    async def generate(
        self,
        contents: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion: ...


def render_transcript(messages: Sequence[Message]) -> str:
    """Flatten messages into a single prompt for a native session.

    A lone user message is sent verbatim; anything else is rendered as
    ``Role: content`` blocks.
    """
    if len(messages) == 1 and messages[0].role == "user":
        return messages[0].content
    return "\n\n".join(f"{m.role.value.capitalize()}: {m.content}" for m in messages)
