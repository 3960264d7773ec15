import pytest

from gemini_hybrid.types import (
    GenerationMethod,
    GenerationRequest,
    Message,
    Role,
    as_message,
    as_messages,
)

pytestmark = pytest.mark.unit


def test_message_roles_are_coerced():
    message = Message("assistant", "hi")
    assert message.role is Role.ASSISTANT
    assert message == Message.assistant("hi")


def test_message_rejects_unknown_role_and_non_text():
    with pytest.raises(ValueError):
        Message("tool", "x")
    with pytest.raises(TypeError):
        Message.user(42)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("plain text", Message.user("plain text")),
        (("system", "rules"), Message.system("rules")),
        ({"role": "assistant", "content": "ok"}, Message.assistant("ok")),
        (Message.user("same"), Message.user("same")),
    ],
)
def test_as_message_shapes(value, expected):
    assert as_message(value) == expected


def test_mapping_without_content_is_rejected():
    with pytest.raises(ValueError, match="missing"):
        as_message({"role": "user"})


def test_as_message_rejects_other_types():
    with pytest.raises(TypeError):
        as_message(3.14)


def test_as_messages_single_and_sequence_forms():
    assert as_messages("hi") == (Message.user("hi"),)
    assert as_messages(("user", "hi")) == (Message.user("hi"),)
    assert as_messages([("user", "a"), "b", {"role": "assistant", "content": "c"}]) == (
        Message.user("a"),
        Message.user("b"),
        Message.assistant("c"),
    )


def test_pair_of_plain_strings_is_two_messages():
    assert as_messages(("first", "second")) == (Message.user("first"), Message.user("second"))


def test_generation_method_cacheability():
    assert GenerationMethod.STRUCTURED.cacheable
    assert GenerationMethod.PLAINTEXT.cacheable
    assert not GenerationMethod.BARE.cacheable


def test_with_messages_keeps_schema_and_stream(flat_schema):
    request = GenerationRequest(messages=(Message.user("a"),), schema=flat_schema, stream=True)
    replaced = request.with_messages((Message.user("b"),))
    assert replaced.schema is flat_schema
    assert replaced.stream is True
    assert replaced.messages == (Message.user("b"),)
