import pytest

from gemini_hybrid.analysis.schema_analyzer import fingerprint
from gemini_hybrid.exceptions import (
    InvalidJSONError,
    ProviderError,
    QuotaExceededError,
    TruncationError,
)
from gemini_hybrid.generation.backend import StatefulBackend, StatelessBackend
from gemini_hybrid.generation.plaintext import PlainTextGenerator
from gemini_hybrid.generation.structured import StructuredGenerator
from gemini_hybrid.providers.mock import MockCompletionClient, MockNativeClient
from gemini_hybrid.types import GenerationMethod, GenerationRequest, Message, ProviderKind, Role

pytestmark = pytest.mark.unit


def _request(schema, text="Summarise the report"):
    return GenerationRequest(messages=(Message.user(text),), schema=schema)


# --- StructuredGenerator ---


@pytest.mark.asyncio
async def test_structured_sends_clean_schema_constraint(flat_schema, flat_payload):
    client = MockCompletionClient([flat_payload])
    result = await StructuredGenerator().generate(
        _request(flat_schema), flat_schema, StatelessBackend(client)
    )

    assert result.text == flat_payload
    assert result.method is GenerationMethod.STRUCTURED
    assert result.provider is ProviderKind.STATELESS
    assert result.usage["raw_chars"] == len(flat_payload)
    assert client.calls[0].response_schema == flat_schema.to_json_schema()


@pytest.mark.asyncio
async def test_short_structured_payload_is_treated_as_truncated(flat_schema):
    payload = '{"title": "Quarterly", "summar'
    assert len(payload) == 30
    client = MockCompletionClient([payload])
    with pytest.raises(TruncationError) as exc_info:
        await StructuredGenerator().generate(
            _request(flat_schema), flat_schema, StatelessBackend(client)
        )

    error = exc_info.value
    assert error.length == 30
    assert error.rung == "structured"
    assert error.provider == "stateless"
    assert error.schema_name == "Report"


@pytest.mark.asyncio
async def test_truncation_floor_is_configurable(flat_schema):
    client = MockCompletionClient(['{"title": "t", "summary": "s", "done": true}'])
    result = await StructuredGenerator(min_chars=10).generate(
        _request(flat_schema), flat_schema, StatelessBackend(client)
    )
    assert result.method is GenerationMethod.STRUCTURED


@pytest.mark.asyncio
async def test_structured_rejects_nonconforming_json(flat_schema):
    payload = '{"title": "A long enough title", "summary": "but the done flag is missing"}'
    client = MockCompletionClient([payload])
    with pytest.raises(InvalidJSONError, match="missing required property 'done'"):
        await StructuredGenerator().generate(
            _request(flat_schema), flat_schema, StatelessBackend(client)
        )


@pytest.mark.asyncio
async def test_structured_wraps_provider_failures(flat_schema):
    client = MockCompletionClient([RuntimeError("backend exploded")])
    with pytest.raises(ProviderError) as exc_info:
        await StructuredGenerator().generate(
            _request(flat_schema), flat_schema, StatelessBackend(client)
        )
    assert exc_info.value.rung == "structured"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_structured_on_native_session_passes_response_constraint(flat_schema, flat_payload):
    native = MockNativeClient([flat_payload])
    handle = await native.create(initial_prompts=[])
    result = await StructuredGenerator().generate(
        _request(flat_schema), flat_schema, StatefulBackend(handle)
    )

    assert result.provider is ProviderKind.STATEFUL
    assert handle.prompts[0].text == "Summarise the report"
    assert handle.prompts[0].response_constraint == flat_schema.to_json_schema()


# --- PlainTextGenerator ---


@pytest.mark.asyncio
async def test_plaintext_prepends_instructions_without_schema_param(flat_schema, flat_payload):
    client = MockCompletionClient([f"Sure!\n```json\n{flat_payload}\n```"])
    generator = PlainTextGenerator()
    result = await generator.generate(_request(flat_schema), flat_schema, StatelessBackend(client))

    call = client.calls[0]
    assert call.response_schema is None
    assert call.contents[0].role is Role.SYSTEM
    assert call.contents[0].content == generator.describer.describe(flat_schema)
    assert call.contents[1:] == (Message.user("Summarise the report"),)
    assert result.text == flat_payload
    assert result.method is GenerationMethod.PLAINTEXT


@pytest.mark.asyncio
async def test_plaintext_skips_instructions_the_native_session_already_holds(
    flat_schema, action_schema, flat_payload
):
    native = MockNativeClient([flat_payload, flat_payload])
    handle = await native.create(initial_prompts=[])
    backend = StatefulBackend(handle, instructed=frozenset({fingerprint(flat_schema)}))
    generator = PlainTextGenerator()

    await generator.generate(_request(flat_schema), flat_schema, backend)
    assert handle.prompts[0].text == "Summarise the report"

    other = StatefulBackend(handle, instructed=frozenset({fingerprint(action_schema)}))
    await generator.generate(_request(flat_schema), flat_schema, other)
    assert generator.describer.describe(flat_schema) in handle.prompts[1].text


@pytest.mark.asyncio
async def test_plaintext_accepts_short_payloads(flat_schema):
    short = '{"title":"t","summary":"s","done":false}'
    client = MockCompletionClient([short])
    result = await PlainTextGenerator().generate(
        _request(flat_schema), flat_schema, StatelessBackend(client)
    )
    assert result.text == short


@pytest.mark.asyncio
async def test_plaintext_without_json_raises_invalid_json(flat_schema):
    client = MockCompletionClient(["I cannot help with that."])
    with pytest.raises(InvalidJSONError) as exc_info:
        await PlainTextGenerator().generate(
            _request(flat_schema), flat_schema, StatelessBackend(client)
        )
    assert exc_info.value.rung == "plaintext"


@pytest.mark.asyncio
async def test_bare_sends_request_unchanged(flat_schema, flat_payload):
    client = MockCompletionClient([flat_payload])
    result = await PlainTextGenerator().generate_bare(
        _request(flat_schema), flat_schema, StatelessBackend(client)
    )

    assert client.calls[0].contents == (Message.user("Summarise the report"),)
    assert client.calls[0].response_schema is None
    assert result.method is GenerationMethod.BARE


@pytest.mark.asyncio
async def test_quota_errors_pass_through_typed(flat_schema):
    client = MockCompletionClient([RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded")])
    with pytest.raises(QuotaExceededError) as exc_info:
        await PlainTextGenerator().generate(
            _request(flat_schema), flat_schema, StatelessBackend(client)
        )
    assert exc_info.value.rung == "plaintext"
    assert exc_info.value.provider == "stateless"
