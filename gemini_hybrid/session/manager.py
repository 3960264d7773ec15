"""Session creation, provider fallback and lifecycle management.

``SessionManager.create_session`` prefers a native stateful session and
uses the stateless provider when the native one is missing, not ready, out
of slots or fails to start. The returned ``SessionHandle`` is what agents
talk to: if its stateful session dies mid-task, the handle rebuilds a
stateless session from the explicit ``(system_prompt, history)`` pair and
retries the step, so the agent never sees the switch.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from ..config import HybridSettings, normalize_provider
from ..constants import NATIVE_READY_STATES, T_SESSION_FAILOVER
from ..exceptions import (
    GeminiHybridError,
    ProviderUnavailableError,
    SessionTerminatedError,
)
from ..generation.method_cache import MethodCache
from ..generation.orchestrator import GenerationOrchestrator
from ..schema import coerce_schema
from ..telemetry import TelemetryContext
from ..types import GenerationResult, Message, MessageLike, ProviderKind, as_messages
from .base import Session
from .stateful import StatefulSession
from .stateless import StatelessSession

if TYPE_CHECKING:
    from ..providers.base import CompletionClient, NativeSessionClient
    from ..telemetry import TelemetryContextProtocol

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ManagerStatus:
    """Point-in-time view of provider availability and session usage."""

    native_availability: str
    stateless_configured: bool
    live_stateful_sessions: int
    max_stateful_sessions: int
    preferred_provider: str
    last_error: dict[str, Any] | None


class SessionHandle:
    """Agent-facing view of one task's session.

    Serializes steps, performs the one-time stateful -> stateless switch on
    ``SessionTerminatedError`` and guarantees the underlying session is
    destroyed exactly once.
    """

    def __init__(self, manager: SessionManager, session: Session):
        self._manager = manager
        self._session = session
        self._lock = asyncio.Lock()
        self._closed = False
        self.failovers = 0

    @property
    def session(self) -> Session:
        return self._session

    @property
    def provider(self) -> ProviderKind:
        return self._session.provider

    @property
    def system_prompt(self) -> str:
        return self._session.system_prompt

    @property
    def history(self) -> tuple[Message, ...]:
        return self._session.history

    @property
    def closed(self) -> bool:
        return self._closed

    async def invoke(
        self,
        incremental: Iterable[MessageLike] | MessageLike,
        schema: Any = None,
        *,
        stream: bool = False,
    ) -> str:
        """Run one agent step and return its text.

        Raises:
            QuotaExceededError: The provider reported exhausted quota.
            TerminalGenerationError: Every generation method failed.
        """
        result = await self.invoke_result(incremental, schema, stream=stream)
        return result.text

    async def invoke_result(
        self,
        incremental: Iterable[MessageLike] | MessageLike,
        schema: Any = None,
        *,
        stream: bool = False,
    ) -> GenerationResult:
        async with self._lock:
            if self._closed:
                raise SessionTerminatedError(
                    "Session handle has already been destroyed",
                    provider=self.provider.value,
                )
            session = self._session
            try:
                return await session.invoke_result(incremental, schema, stream=stream)
            except SessionTerminatedError as e:
                if session.provider is not ProviderKind.STATEFUL:
                    raise
                self._session = await self._manager._failover(session, e)
                self.failovers += 1
            return await self._session.invoke_result(incremental, schema, stream=stream)

    async def destroy(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._session.destroy()
        self._manager._forget(self)

    async def __aenter__(self) -> SessionHandle:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.destroy()

    def __repr__(self) -> str:
        return f"<SessionHandle provider={self.provider} closed={self._closed}>"


class SessionManager:
    """Creates task-scoped sessions over the configured providers.

    Native sessions are a scarce resource: at most ``max_stateful_sessions``
    are live at once. Extra tasks wait for a slot when
    ``wait_for_stateful_slot`` is set, otherwise they use the stateless path.
    """

    def __init__(
        self,
        *,
        native_client: NativeSessionClient | None = None,
        completion_client: CompletionClient | None = None,
        settings: HybridSettings | None = None,
        cache: MethodCache | None = None,
        orchestrator: GenerationOrchestrator | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ):
        self.settings = settings or HybridSettings()
        self.native_client = native_client
        self.completion_client = completion_client
        self._telemetry = telemetry or TelemetryContext()
        self.cache = cache if cache is not None else MethodCache()
        self.orchestrator = orchestrator or GenerationOrchestrator.from_settings(
            self.settings, cache=self.cache, telemetry=self._telemetry
        )
        self._slots = asyncio.Semaphore(self.settings.max_stateful_sessions)
        self._live_stateful = 0
        self._handles: set[SessionHandle] = set()
        self._last_error: GeminiHybridError | None = None

    @classmethod
    def from_settings(
        cls,
        settings: HybridSettings | None = None,
        *,
        native_client: NativeSessionClient | None = None,
        **kwargs: Any,
    ) -> SessionManager:
        """Build a manager with a Gemini stateless client when a key is configured."""
        from ..providers.gemini import GoogleGenAIClient

        settings = settings or HybridSettings()
        completion_client = kwargs.pop("completion_client", None)
        if completion_client is None and settings.api_key:
            completion_client = GoogleGenAIClient.from_settings(settings)
        return cls(
            native_client=native_client,
            completion_client=completion_client,
            settings=settings,
            **kwargs,
        )

    # --- Session creation ---

    async def create_session(
        self,
        system_prompt: str,
        initial_history: Iterable[MessageLike] = (),
        preferred_provider: str | None = None,
        *,
        schema: Any = None,
    ) -> SessionHandle:
        """Open a session for one agent task.

        Raises:
            ProviderUnavailableError: Neither provider can serve the session.
        """
        history = as_messages(initial_history) if initial_history else ()
        default_schema = coerce_schema(schema) if schema is not None else None
        preference = self._preference(preferred_provider)

        session: Session | None = None
        if preference is ProviderKind.STATEFUL:
            session = await self._try_stateful(system_prompt, history, default_schema)
        if session is None:
            session = self._stateless(system_prompt, history, default_schema)

        handle = SessionHandle(self, session)
        self._handles.add(handle)
        log.debug("Created %s session with %d history message(s)", session.provider, len(history))
        return handle

    @asynccontextmanager
    async def task_session(
        self,
        system_prompt: str,
        initial_history: Iterable[MessageLike] = (),
        preferred_provider: str | None = None,
        *,
        schema: Any = None,
    ) -> AsyncIterator[SessionHandle]:
        """``create_session`` whose handle is destroyed when the block exits."""
        handle = await self.create_session(
            system_prompt, initial_history, preferred_provider, schema=schema
        )
        try:
            yield handle
        finally:
            await handle.destroy()

    def _preference(self, preferred_provider: str | None) -> ProviderKind:
        if preferred_provider is None:
            return ProviderKind(self.settings.preferred_provider)
        return ProviderKind(normalize_provider(preferred_provider))

    async def _native_availability(self) -> str:
        if self.native_client is None:
            return "unavailable"
        try:
            return await self.native_client.availability()
        except Exception as e:
            self._record(ProviderUnavailableError(
                f"Native availability check failed ({type(e).__name__})",
                provider=ProviderKind.STATEFUL.value,
            ))
            return "unavailable"

    async def _try_stateful(
        self, system_prompt: str, history: tuple[Message, ...], default_schema
    ) -> StatefulSession | None:
        availability = await self._native_availability()
        if availability not in NATIVE_READY_STATES:
            log.info("Native provider not ready (%s); using stateless", availability)
            return None

        if self._slots.locked() and not self.settings.wait_for_stateful_slot:
            log.info(
                "All %d native session slots in use; using stateless",
                self.settings.max_stateful_sessions,
            )
            return None
        await self._slots.acquire()
        self._live_stateful += 1

        try:
            return await StatefulSession.create(
                self.native_client,
                system_prompt=system_prompt,
                history=history,
                orchestrator=self.orchestrator,
                default_schema=default_schema,
                telemetry=self._telemetry,
                temperature=self.settings.temperature,
                top_k=self.settings.top_k,
                on_release=self._release_slot,
            )
        except asyncio.CancelledError:
            self._release_slot()
            raise
        except Exception as e:
            self._release_slot()
            self._record(ProviderUnavailableError(
                f"Native session creation failed ({type(e).__name__})",
                provider=ProviderKind.STATEFUL.value,
            ))
            log.warning("Native session creation failed; using stateless: %s", e)
            return None

    def _stateless(
        self, system_prompt: str, history: tuple[Message, ...], default_schema
    ) -> StatelessSession:
        if self.completion_client is None:
            error = ProviderUnavailableError(
                "No provider available: native sessions cannot be created and "
                "no stateless client is configured",
                provider=ProviderKind.STATELESS.value,
            )
            self._record(error)
            raise error
        return StatelessSession(
            self.completion_client,
            system_prompt=system_prompt,
            history=history,
            max_context_chars=self.settings.max_context_chars,
            orchestrator=self.orchestrator,
            default_schema=default_schema,
            telemetry=self._telemetry,
        )

    # --- Fallback & lifecycle ---

    async def _failover(
        self, session: Session, error: SessionTerminatedError
    ) -> StatelessSession:
        """Replace a dead stateful session with a stateless one."""
        self._record(error)
        log.warning(
            "Stateful session terminated (%s); continuing with %d history "
            "message(s) on the stateless provider",
            error,
            len(session.history),
        )
        self._telemetry.count(T_SESSION_FAILOVER)
        await session.destroy()
        try:
            return self._stateless(session.system_prompt, session.history, session.default_schema)
        except ProviderUnavailableError as e:
            raise ProviderUnavailableError(
                "Stateful session terminated and no stateless fallback is available",
                provider=ProviderKind.STATELESS.value,
            ) from e

    def _release_slot(self) -> None:
        self._live_stateful -= 1
        self._slots.release()

    def _forget(self, handle: SessionHandle) -> None:
        self._handles.discard(handle)

    def _record(self, error: GeminiHybridError) -> None:
        self._last_error = error

    async def status(self) -> ManagerStatus:
        return ManagerStatus(
            native_availability=await self._native_availability(),
            stateless_configured=self.completion_client is not None,
            live_stateful_sessions=self._live_stateful,
            max_stateful_sessions=self.settings.max_stateful_sessions,
            preferred_provider=self.settings.preferred_provider,
            last_error=self._last_error.to_dict() if self._last_error else None,
        )

    @property
    def open_sessions(self) -> int:
        return len(self._handles)

    async def shutdown(self) -> None:
        """Destroy every session still open."""
        for handle in list(self._handles):
            await handle.destroy()
