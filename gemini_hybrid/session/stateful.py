"""Session over a native, history-keeping provider."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import logging
from typing import TYPE_CHECKING

from ..analysis.schema_analyzer import fingerprint
from ..constants import T_SCHEMA_INSTRUCTIONS_SENT, T_SYSTEM_PROMPT_SENT
from ..exceptions import SessionTerminatedError
from ..generation.backend import StatefulBackend
from ..types import GenerationRequest, GenerationResult, Message, ProviderKind
from .base import Session

if TYPE_CHECKING:
    from ..providers.base import NativeSessionClient, NativeSessionHandle
    from ..schema import Schema

log = logging.getLogger(__name__)


class StatefulSession(Session):
    """Wraps one native session handle.

    The system prompt and initial history are sent once, when the native
    session is created; each ``invoke`` then sends only its own messages.
    With a ``default_schema`` its plaintext instructions are sent once in the
    same initial prompts, and plaintext steps against that schema do not
    repeat them.

    If a step fails or is cancelled the native session may hold turns our
    history does not, so the handle is rebuilt from ``(system_prompt,
    history)`` before the next step.
    """

    provider = ProviderKind.STATEFUL

    def __init__(
        self,
        client: NativeSessionClient,
        *,
        system_prompt: str,
        history: Iterable[Message] = (),
        temperature: float | None = None,
        top_k: int | None = None,
        on_release: Callable[[], None] | None = None,
        **kwargs,
    ):
        super().__init__(system_prompt=system_prompt, history=history, **kwargs)
        self.client = client
        self.temperature = temperature
        self.top_k = top_k
        self._on_release = on_release
        self._handle: NativeSessionHandle | None = None
        self._stale = False
        self._instructed = (
            frozenset({fingerprint(self.default_schema)})
            if self.default_schema is not None
            else frozenset()
        )

    @classmethod
    async def create(
        cls, client: NativeSessionClient, **kwargs
    ) -> StatefulSession:
        """Build the session and open its native handle."""
        session = cls(client, **kwargs)
        await session._open()
        return session

    @property
    def handle(self) -> NativeSessionHandle | None:
        return self._handle

    def initial_prompts(self) -> tuple[Message, ...]:
        system = (Message.system(self.system_prompt),) if self.system_prompt else ()
        instructions = ()
        if self.default_schema is not None:
            describer = self.orchestrator.plaintext.describer
            instructions = (Message.system(describer.describe(self.default_schema)),)
        return (*system, *instructions, *self._history)

    async def _open(self) -> None:
        self._handle = await self.client.create(
            initial_prompts=self.initial_prompts(),
            temperature=self.temperature,
            top_k=self.top_k,
        )
        self._stale = False
        if self.system_prompt:
            self._telemetry.count(T_SYSTEM_PROMPT_SENT, provider=self.provider.value)
        if self._instructed:
            self._telemetry.count(T_SCHEMA_INSTRUCTIONS_SENT, provider=self.provider.value)

    async def _rebuild(self) -> None:
        log.info("Rebuilding native session from %d history message(s)", len(self._history))
        self._close_handle()
        try:
            await self._open()
        except Exception as e:
            self._stale = True
            raise SessionTerminatedError(
                f"Native session could not be rebuilt ({type(e).__name__})",
                provider=self.provider.value,
            ) from e

    async def _generate(
        self, messages: tuple[Message, ...], schema: Schema | None, stream: bool
    ) -> GenerationResult:
        if self._stale or self._handle is None:
            await self._rebuild()
        request = GenerationRequest(messages=messages, schema=schema, stream=stream)
        try:
            return await self.orchestrator.generate(
                request, StatefulBackend(self._handle, instructed=self._instructed)
            )
        except (Exception, asyncio.CancelledError):
            self._stale = True
            raise

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.destroy()
        except Exception as e:
            log.warning("Native session destroy failed: %s", e)

    async def _release(self) -> None:
        self._close_handle()
        if self._on_release is not None:
            callback, self._on_release = self._on_release, None
            callback()
