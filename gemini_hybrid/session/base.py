"""Task-scoped conversation sessions.

A ``Session`` owns the system prompt and accumulated history of one agent
task and serializes its ``invoke`` calls. There are exactly two
implementations: ``StatefulSession`` (native provider keeps the history) and
``StatelessSession`` (full context rebuilt every call).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Iterable
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import SessionTerminatedError
from ..schema import Schema, coerce_schema
from ..telemetry import TelemetryContext
from ..types import (
    GenerationResult,
    Message,
    MessageLike,
    ProviderKind,
    as_messages,
)

if TYPE_CHECKING:
    from ..generation.orchestrator import GenerationOrchestrator
    from ..telemetry import TelemetryContextProtocol

log = logging.getLogger(__name__)


class Session(ABC):
    """Common contract of both session kinds.

    History is appended only after a step succeeds, so a failed or cancelled
    ``invoke`` leaves the session exactly as it was.
    """

    provider: ProviderKind

    def __init__(
        self,
        *,
        system_prompt: str,
        history: Iterable[Message] = (),
        orchestrator: GenerationOrchestrator,
        default_schema: Schema | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ):
        self.system_prompt = system_prompt
        self._history: list[Message] = list(history)
        self.orchestrator = orchestrator
        self.default_schema = default_schema
        self._telemetry = telemetry or TelemetryContext()
        self._lock = asyncio.Lock()
        self._destroyed = False

    @property
    def history(self) -> tuple[Message, ...]:
        return tuple(self._history)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def invoke(
        self,
        incremental: Iterable[MessageLike] | MessageLike,
        schema: Any = None,
        *,
        stream: bool = False,
    ) -> str:
        """Run one agent step and return its text."""
        result = await self.invoke_result(incremental, schema, stream=stream)
        return result.text

    async def invoke_result(
        self,
        incremental: Iterable[MessageLike] | MessageLike,
        schema: Any = None,
        *,
        stream: bool = False,
    ) -> GenerationResult:
        """Like ``invoke`` but returns the full ``GenerationResult``."""
        messages = as_messages(incremental)
        if not messages:
            raise ValueError("invoke needs at least one message")
        resolved = coerce_schema(schema) if schema is not None else self.default_schema

        async with self._lock:
            if self._destroyed:
                raise SessionTerminatedError(
                    "Session has already been destroyed", provider=self.provider.value
                )
            result = await self._generate(messages, resolved, stream)
            self._history.extend(messages)
            self._history.append(Message.assistant(result.text))
            return result

    async def destroy(self) -> bool:
        """Release provider resources. Returns False if already destroyed."""
        if self._destroyed:
            return False
        self._destroyed = True
        log.debug("Destroying %s session", self.provider)
        await self._release()
        return True

    @abstractmethod
    async def _generate(
        self, messages: tuple[Message, ...], schema: Schema | None, stream: bool
    ) -> GenerationResult: ...

    async def _release(self) -> None:
        return None

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else "live"
        return f"<{type(self).__name__} {state} turns={len(self._history)}>"
