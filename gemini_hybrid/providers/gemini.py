"""Stateless provider backed by the Google GenAI SDK."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import TYPE_CHECKING, Any

from google import genai
from google.genai import types

from ..constants import DEFAULT_MODEL
from ..exceptions import ProviderError, ProviderUnavailableError
from ..types import Completion, Message, ProviderKind, Role
from .error_handler import ProviderErrorHandler

if TYPE_CHECKING:
    from ..config import HybridSettings

log = logging.getLogger(__name__)


class GoogleGenAIClient:
    """``CompletionClient`` for Gemini models.

    System-role messages are merged into ``system_instruction``; assistant
    turns are sent with the ``model`` role. A ``response_schema`` switches the
    call to JSON mode with that schema enforced by the service.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        temperature: float | None = None,
        top_k: int | None = None,
        client: genai.Client | None = None,
    ):
        if client is None:
            if not api_key:
                raise ProviderUnavailableError(
                    "A Gemini API key is required for the stateless provider. "
                    "Set GEMINI_API_KEY or GEMINI_HYBRID_API_KEY.",
                    provider=ProviderKind.STATELESS.value,
                )
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self.temperature = temperature
        self.top_k = top_k
        self._errors = ProviderErrorHandler(ProviderKind.STATELESS)

    @classmethod
    def from_settings(cls, settings: HybridSettings) -> GoogleGenAIClient:
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            temperature=settings.temperature,
            top_k=settings.top_k,
        )

    async def generate(
        self,
        contents: Sequence[Message],
        *,
        response_schema: Mapping[str, Any] | None = None,
        stream: bool = False,
    ) -> Completion:
        system_instruction, turns = to_genai_contents(contents)
        config = self._build_config(system_instruction, response_schema)
        log.debug(
            "Calling %s with %d turn(s), schema=%s, stream=%s",
            self.model,
            len(turns),
            response_schema is not None,
            stream,
        )
        try:
            if stream:
                text, usage = await self._generate_streamed(turns, config)
            else:
                response = await self._client.aio.models.generate_content(
                    model=self.model, contents=turns, config=config
                )
                text, usage = response.text or "", response.usage_metadata
        except Exception as e:
            self._errors.raise_classified(e)
        return Completion(text=text, usage=extract_usage(usage))

    async def _generate_streamed(
        self, turns: list[types.Content], config: types.GenerateContentConfig
    ) -> tuple[str, Any]:
        chunks: list[str] = []
        usage = None
        stream = await self._client.aio.models.generate_content_stream(
            model=self.model, contents=turns, config=config
        )
        async for chunk in stream:
            if chunk.text:
                chunks.append(chunk.text)
            if chunk.usage_metadata is not None:
                usage = chunk.usage_metadata
        return "".join(chunks), usage

    def _build_config(
        self,
        system_instruction: str | None,
        response_schema: Mapping[str, Any] | None,
    ) -> types.GenerateContentConfig:
        config_params: dict[str, Any] = {}
        if system_instruction:
            config_params["system_instruction"] = system_instruction
        if response_schema is not None:
            config_params["response_mime_type"] = "application/json"
            config_params["response_json_schema"] = dict(response_schema)
        if self.temperature is not None:
            config_params["temperature"] = self.temperature
        if self.top_k is not None:
            config_params["top_k"] = self.top_k
        return types.GenerateContentConfig(**config_params)


def to_genai_contents(
    messages: Sequence[Message],
) -> tuple[str | None, list[types.Content]]:
    """Split messages into a system instruction and SDK content turns.

    Raises:
        ProviderError: If there is nothing to send besides system text.
    """
    system_parts = [m.content for m in messages if m.role is Role.SYSTEM]
    turns = [
        types.Content(
            role="model" if m.role is Role.ASSISTANT else "user",
            parts=[types.Part.from_text(text=m.content)],
        )
        for m in messages
        if m.role is not Role.SYSTEM
    ]
    if not turns:
        raise ProviderError(
            "Request contains no user or assistant turns",
            provider=ProviderKind.STATELESS.value,
        )
    return ("\n\n".join(system_parts) or None), turns


def _token_count(usage: Any, attr_name: str) -> int:
    value = getattr(usage, attr_name, None)
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


def extract_usage(usage: Any) -> dict[str, int]:
    """Token counts from an SDK ``usage_metadata`` object (zeros when absent)."""
    if usage is None:
        return {}
    prompt_tokens = _token_count(usage, "prompt_token_count")
    output_tokens = _token_count(usage, "candidates_token_count")
    total = _token_count(usage, "total_token_count") or prompt_tokens + output_tokens
    return {
        "prompt_tokens": prompt_tokens,
        "output_tokens": output_tokens,
        "total_tokens": total,
    }
