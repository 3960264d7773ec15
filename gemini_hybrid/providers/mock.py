"""Deterministic in-process providers.

Both mocks are scriptable: pass a list of responses (strings, or exceptions
to raise) consumed in order, or a ``responder`` callable that computes the
response from the call. Every call is recorded for inspection.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from dataclasses import dataclass
import inspect
import itertools
import logging
from typing import Any

from ..exceptions import ProviderError
from ..types import Completion, Message, ProviderKind

log = logging.getLogger(__name__)

Response = str | BaseException


@dataclass(frozen=True, slots=True)
class CompletionCall:
    contents: tuple[Message, ...]
    response_schema: Mapping[str, Any] | None
    stream: bool


@dataclass(frozen=True, slots=True)
class PromptCall:
    text: str
    response_constraint: Mapping[str, Any] | None
    streaming: bool = False


async def _resolve(value: Any) -> Response:
    if inspect.isawaitable(value):
        value = await value
    return value


def _emit(response: Response) -> str:
    if isinstance(response, BaseException):
        raise response
    return response


class _Script:
    """Response source shared by both mocks."""

    def __init__(self, responses: Sequence[Response] | None, responder: Callable | None):
        self._responses = list(responses or [])
        self._responder = responder

    async def next(self, *args: Any) -> Response:
        if self._responses:
            return self._responses.pop(0)
        if self._responder is not None:
            return await _resolve(self._responder(*args))
        raise ProviderError("Mock provider has no scripted response left")

    def extend(self, *responses: Response) -> None:
        self._responses.extend(responses)


class MockCompletionClient:
    """Stateless ``CompletionClient`` double.

    ``responder(contents, response_schema)`` may be sync or async.
    """

    def __init__(
        self,
        responses: Sequence[Response] | None = None,
        *,
        responder: Callable[..., Any] | None = None,
    ):
        self._script = _Script(responses, responder or _echo_completion)
        self.calls: list[CompletionCall] = []

    def queue(self, *responses: Response) -> None:
        self._script.extend(*responses)

    async def generate(
        self,
        contents: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion:
        contents = tuple(contents)
        self.calls.append(CompletionCall(contents, response_schema, stream))
        text = _emit(await self._script.next(contents, response_schema))
        return Completion(
            text=text,
            usage={
                "prompt_tokens": sum(len(m.content) for m in contents) // 4,
                "output_tokens": len(text) // 4,
            },
        )


def _echo_completion(contents: Sequence[Message], response_schema: Any) -> str:
    return f"echo: {contents[-1].content}" if contents else "echo:"


class MockNativeSession:
    """Native session double holding its own transcript."""

    _ids = itertools.count(1)

    def __init__(self, client: MockNativeClient, initial_prompts: tuple[Message, ...]):
        self.id = next(self._ids)
        self._client = client
        self.initial_prompts = initial_prompts
        self.prompts: list[PromptCall] = []
        self.replies: list[str] = []
        self.destroy_calls = 0
        self.terminated = False

    @property
    def destroyed(self) -> bool:
        return self.destroy_calls > 0 or self.terminated

    def terminate(self) -> None:
        """Simulate the host tearing the session down."""
        self.terminated = True

    def transcript(self) -> list[Message]:
        """Everything this session has seen, oldest first."""
        out = list(self.initial_prompts)
        for call, reply in zip(self.prompts, self.replies, strict=False):
            out.append(Message.user(call.text))
            out.append(Message.assistant(reply))
        return out

    async def prompt(
        self, text: str, *, response_constraint: Mapping[str, Any] | None = None
    ) -> str:
        return await self._prompt(PromptCall(text, response_constraint))

    async def prompt_streaming(
        self, text: str, *, response_constraint: Mapping[str, Any] | None = None
    ) -> AsyncIterator[str]:
        reply = await self._prompt(PromptCall(text, response_constraint, streaming=True))
        for i in range(0, len(reply), 16):
            yield reply[i : i + 16]

    async def _prompt(self, call: PromptCall) -> str:
        if self.destroyed:
            raise RuntimeError("InvalidStateError: The session has been destroyed.")
        self.prompts.append(call)
        try:
            reply = _emit(
                await self._client._script.next(self, call.text, call.response_constraint)
            )
        except BaseException:
            self.prompts.pop()
            raise
        self.replies.append(reply)
        return reply

    def destroy(self) -> None:
        self.destroy_calls += 1


class MockNativeClient:
    """Native session factory double.

    ``responder(session, text, response_constraint)`` may be sync or async.
    """

    provider = ProviderKind.STATEFUL

    def __init__(
        self,
        responses: Sequence[Response] | None = None,
        *,
        responder: Callable[..., Any] | None = None,
        availability: str = "available",
        create_error: BaseException | None = None,
    ):
        self._script = _Script(responses, responder or _echo_prompt)
        self._availability = availability
        self.create_error = create_error
        self.sessions: list[MockNativeSession] = []
        self.create_options: list[dict[str, Any]] = []

    def queue(self, *responses: Response) -> None:
        self._script.extend(*responses)

    def set_availability(self, value: str) -> None:
        self._availability = value

    async def availability(self) -> str:
        return self._availability

    async def create(
        self,
        *,
        initial_prompts: Sequence[Message],
        temperature: float | None = None,
        top_k: int | None = None,
    ) -> MockNativeSession:
        if self.create_error is not None:
            raise self.create_error
        session = MockNativeSession(self, tuple(initial_prompts))
        self.sessions.append(session)
        self.create_options.append({"temperature": temperature, "top_k": top_k})
        log.debug("Created mock native session %d", session.id)
        return session

    @property
    def live_sessions(self) -> list[MockNativeSession]:
        return [s for s in self.sessions if not s.destroyed]


def _echo_prompt(session: MockNativeSession, text: str, constraint: Any) -> str:
    return f"echo: {text}"


__all__ = [
    "CompletionCall",
    "MockCompletionClient",
    "MockNativeClient",
    "MockNativeSession",
    "PromptCall",
]
