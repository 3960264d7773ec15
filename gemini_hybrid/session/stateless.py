"""Session over a stateless completion provider."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import TYPE_CHECKING

from ..constants import CONTEXT_ELISION_NOTICE, T_SYSTEM_PROMPT_SENT
from ..generation.backend import StatelessBackend
from ..types import GenerationRequest, GenerationResult, Message, ProviderKind
from .base import Session

if TYPE_CHECKING:
    from ..providers.base import CompletionClient
    from ..schema import Schema

log = logging.getLogger(__name__)


class StatelessSession(Session):
    """Presents a session over a provider that remembers nothing.

    Every call sends the cached system prompt, the accumulated history and
    the new messages. With ``max_context_chars`` set, the oldest history
    turns are dropped first when the rebuilt context would exceed it.
    """

    provider = ProviderKind.STATELESS

    def __init__(
        self,
        client: CompletionClient,
        *,
        system_prompt: str,
        history: Iterable[Message] = (),
        max_context_chars: int | None = None,
        **kwargs,
    ):
        super().__init__(system_prompt=system_prompt, history=history, **kwargs)
        self.backend = StatelessBackend(client)
        self.max_context_chars = max_context_chars
        self._system_messages: tuple[Message, ...] = (
            (Message.system(system_prompt),) if system_prompt else ()
        )
        if self.default_schema is not None:
            # Warm the describer so per-step calls reuse the instruction text.
            self.orchestrator.plaintext.describer.describe(self.default_schema)

    def build_context(self, messages: tuple[Message, ...]) -> tuple[Message, ...]:
        """System prompt + history + ``messages``, fitted to the context budget."""
        history = self._history
        if self.max_context_chars is not None:
            history = self._fit(history, messages)
        return (*self._system_messages, *history, *messages)

    def _fit(self, history: list[Message], messages: tuple[Message, ...]) -> list[Message]:
        fixed = sum(len(m.content) for m in (*self._system_messages, *messages))
        budget = self.max_context_chars - fixed
        kept: list[Message] = []
        used = 0
        for message in reversed(history):
            if used + len(message.content) > budget:
                break
            kept.append(message)
            used += len(message.content)
        dropped = len(history) - len(kept)
        if not dropped:
            return history
        log.warning(
            "Context budget of %d chars exceeded; omitting %d oldest message(s)",
            self.max_context_chars,
            dropped,
        )
        notice = Message.system(CONTEXT_ELISION_NOTICE.format(count=dropped))
        return [notice, *reversed(kept)]

    async def _generate(
        self, messages: tuple[Message, ...], schema: Schema | None, stream: bool
    ) -> GenerationResult:
        context = self.build_context(messages)
        if self._system_messages:
            self._telemetry.count(T_SYSTEM_PROMPT_SENT, provider=self.provider.value)
        request = GenerationRequest(messages=context, schema=schema, stream=stream)
        return await self.orchestrator.generate(request, self.backend)
