"""Core data types shared across generation and session handling."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from .schema import Schema


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class GenerationMethod(StrEnum):
    """Generation rungs, in ladder order."""

    STRUCTURED = "structured"
    PLAINTEXT = "plaintext"
    BARE = "bare"

    @property
    def cacheable(self) -> bool:
        return self is not GenerationMethod.BARE


class ProviderKind(StrEnum):
    STATEFUL = "stateful"
    STATELESS = "stateless"


@dataclass(frozen=True, slots=True)
class Message:
    """A single conversation turn."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", Role(self.role))
        if not isinstance(self.content, str):
            raise TypeError("Message content must be a string")

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(Role.ASSISTANT, content)


_ROLE_VALUES = frozenset(role.value for role in Role)

MessageLike: TypeAlias = Message | tuple[str, str] | Mapping[str, Any] | str


def as_message(value: MessageLike) -> Message:
    """Coerce a loose message shape into a ``Message``.

    Bare strings are treated as user turns.
    """
    if isinstance(value, Message):
        return value
    if isinstance(value, str):
        return Message(Role.USER, value)
    if isinstance(value, tuple) and len(value) == 2:
        return Message(Role(value[0]), value[1])
    if isinstance(value, Mapping):
        try:
            return Message(Role(value["role"]), value["content"])
        except KeyError as e:
            raise ValueError(f"Message mapping is missing {e}") from e
    raise TypeError(f"Cannot interpret {type(value).__name__} as a message")


def as_messages(values: Iterable[MessageLike] | MessageLike) -> tuple[Message, ...]:
    """Coerce one message or an ordered sequence of messages. Order is kept."""
    if isinstance(values, (Message, str, Mapping)):
        return (as_message(values),)
    if (
        isinstance(values, tuple)
        and len(values) == 2
        and isinstance(values[0], str)
        and values[0] in _ROLE_VALUES
    ):
        return (as_message(values),)
    return tuple(as_message(v) for v in values)


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Ordered messages plus an optional output schema."""

    messages: tuple[Message, ...]
    schema: Schema | None = None
    stream: bool = False

    def with_messages(self, messages: tuple[Message, ...]) -> GenerationRequest:
        return GenerationRequest(messages=messages, schema=self.schema, stream=self.stream)


@dataclass(frozen=True, slots=True)
class Completion:
    """Raw text returned by a provider call."""

    text: str
    usage: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of one generation request."""

    text: str
    method: GenerationMethod | None
    provider: ProviderKind
    attempts: tuple[GenerationMethod, ...] = ()
    usage: Mapping[str, int] = field(default_factory=dict)
    from_cache: bool = False
