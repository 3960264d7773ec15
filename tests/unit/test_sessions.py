import asyncio

import pytest

from gemini_hybrid.exceptions import SessionTerminatedError, TerminalGenerationError
from gemini_hybrid.providers.mock import MockCompletionClient, MockNativeClient
from gemini_hybrid.session.stateful import StatefulSession
from gemini_hybrid.session.stateless import StatelessSession
from gemini_hybrid.types import Message, ProviderKind, Role

pytestmark = pytest.mark.unit

SYSTEM = "You are a browser automation agent."


# --- StatelessSession ---


@pytest.mark.asyncio
async def test_stateless_rebuilds_full_context_every_call(completion_client, orchestrator):
    session = StatelessSession(completion_client, system_prompt=SYSTEM, orchestrator=orchestrator)

    assert await session.invoke("step 1") == "echo: step 1"
    assert await session.invoke("step 2") == "echo: step 2"

    assert completion_client.calls[1].contents == (
        Message.system(SYSTEM),
        Message.user("step 1"),
        Message.assistant("echo: step 1"),
        Message.user("step 2"),
    )
    assert session.provider is ProviderKind.STATELESS


@pytest.mark.asyncio
async def test_initial_history_is_part_of_the_context(completion_client, orchestrator):
    history = [Message.user("open the inbox"), Message.assistant("done")]
    session = StatelessSession(
        completion_client, system_prompt=SYSTEM, history=history, orchestrator=orchestrator
    )
    await session.invoke([("user", "now read it")])

    assert completion_client.calls[0].contents[1:] == (*history, Message.user("now read it"))


@pytest.mark.asyncio
async def test_failed_step_leaves_history_untouched(orchestrator):
    client = MockCompletionClient([RuntimeError("backend down")])
    session = StatelessSession(client, system_prompt=SYSTEM, orchestrator=orchestrator)

    with pytest.raises(TerminalGenerationError):
        await session.invoke("step 1")
    assert session.history == ()

    assert await session.invoke("step 1") == "echo: step 1"
    assert len(session.history) == 2


@pytest.mark.asyncio
async def test_schema_step_records_sanitized_reply(orchestrator, flat_schema, flat_payload):
    client = MockCompletionClient([flat_payload])
    session = StatelessSession(
        client, system_prompt=SYSTEM, orchestrator=orchestrator, default_schema=flat_schema
    )

    text = await session.invoke("report please")

    assert text == flat_payload
    assert session.history[-1] == Message.assistant(flat_payload)
    assert client.calls[0].response_schema == flat_schema.to_json_schema()


@pytest.mark.asyncio
async def test_context_budget_drops_oldest_history(completion_client, orchestrator):
    history = [
        Message.user("a" * 30),
        Message.assistant("b" * 30),
        Message.user("c" * 10),
    ]
    session = StatelessSession(
        completion_client,
        system_prompt="sys",
        history=history,
        max_context_chars=60,
        orchestrator=orchestrator,
    )
    await session.invoke("hi")

    sent = completion_client.calls[0].contents
    assert sent[0] == Message.system("sys")
    assert sent[1].role is Role.SYSTEM
    assert "1 earlier message(s) omitted" in sent[1].content
    assert sent[2:] == (history[1], history[2], Message.user("hi"))
    assert len(session.history) == 5


@pytest.mark.asyncio
async def test_system_prompt_is_counted_per_stateless_call(completion_client, orchestrator, telemetry, reporter):
    session = StatelessSession(
        completion_client, system_prompt=SYSTEM, orchestrator=orchestrator, telemetry=telemetry
    )
    await session.invoke("one")
    await session.invoke("two")
    assert reporter.total("session.system_prompt_sent") == 2


@pytest.mark.asyncio
async def test_destroy_is_idempotent_and_blocks_further_steps(completion_client, orchestrator):
    session = StatelessSession(completion_client, system_prompt=SYSTEM, orchestrator=orchestrator)

    assert await session.destroy() is True
    assert await session.destroy() is False
    with pytest.raises(SessionTerminatedError):
        await session.invoke("late")


@pytest.mark.asyncio
async def test_empty_step_is_rejected(completion_client, orchestrator):
    session = StatelessSession(completion_client, system_prompt=SYSTEM, orchestrator=orchestrator)
    with pytest.raises(ValueError):
        await session.invoke([])


# --- StatefulSession ---


@pytest.mark.asyncio
async def test_stateful_sends_system_prompt_once_and_only_increments(native_client, orchestrator):
    history = [Message.user("earlier"), Message.assistant("ok")]
    session = await StatefulSession.create(
        native_client, system_prompt=SYSTEM, history=history, orchestrator=orchestrator
    )

    await session.invoke("step 1")
    await session.invoke("step 2")

    (native,) = native_client.sessions
    assert native.initial_prompts == (Message.system(SYSTEM), *history)
    assert [p.text for p in native.prompts] == ["step 1", "step 2"]
    assert len(session.history) == 6
    assert session.provider is ProviderKind.STATEFUL


@pytest.mark.asyncio
async def test_stateful_passes_sampling_options(native_client, orchestrator):
    await StatefulSession.create(
        native_client, system_prompt=SYSTEM, orchestrator=orchestrator, temperature=0.2, top_k=3
    )
    assert native_client.create_options == [{"temperature": 0.2, "top_k": 3}]


@pytest.mark.asyncio
async def test_stateful_streaming_collects_chunks(native_client, orchestrator):
    session = await StatefulSession.create(
        native_client, system_prompt=SYSTEM, orchestrator=orchestrator
    )
    text = await session.invoke("a fairly long message that spans chunks", stream=True)

    assert text == "echo: a fairly long message that spans chunks"
    assert native_client.sessions[0].prompts[0].streaming is True


@pytest.mark.asyncio
async def test_cancelled_step_rebuilds_native_session(orchestrator):
    started = asyncio.Event()
    gate = asyncio.Event()

    async def responder(session, text, constraint):
        if text == "hang":
            started.set()
            await gate.wait()
        return f"echo: {text}"

    native_client = MockNativeClient(responder=responder)
    session = await StatefulSession.create(
        native_client, system_prompt=SYSTEM, orchestrator=orchestrator
    )

    task = asyncio.create_task(session.invoke("hang"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert session.history == ()
    assert await session.invoke("next") == "echo: next"

    first, second = native_client.sessions
    assert first.destroy_calls == 1
    assert second.initial_prompts == (Message.system(SYSTEM),)
    assert [p.text for p in second.prompts] == ["next"]


@pytest.mark.asyncio
async def test_stateful_destroy_releases_handle_once(native_client, orchestrator):
    released = []
    session = await StatefulSession.create(
        native_client,
        system_prompt=SYSTEM,
        orchestrator=orchestrator,
        on_release=lambda: released.append(True),
    )

    assert await session.destroy() is True
    assert await session.destroy() is False
    assert native_client.sessions[0].destroy_calls == 1
    assert released == [True]
    assert native_client.live_sessions == []


@pytest.mark.asyncio
async def test_terminated_native_session_raises_session_terminated(native_client, orchestrator):
    session = await StatefulSession.create(
        native_client, system_prompt=SYSTEM, orchestrator=orchestrator
    )
    native_client.sessions[0].terminate()

    with pytest.raises(SessionTerminatedError) as exc_info:
        await session.invoke("step")
    assert exc_info.value.provider == "stateful"
    assert session.history == ()


@pytest.mark.asyncio
async def test_failed_rebuild_raises_session_terminated(orchestrator):
    started = asyncio.Event()

    async def responder(session, text, constraint):
        if text == "hang":
            started.set()
            await asyncio.Event().wait()
        return f"echo: {text}"

    native_client = MockNativeClient(responder=responder)
    session = await StatefulSession.create(
        native_client, system_prompt=SYSTEM, orchestrator=orchestrator
    )
    task = asyncio.create_task(session.invoke("hang"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    crash = RuntimeError("InvalidStateError: the model process crashed")
    native_client.create_error = crash
    with pytest.raises(SessionTerminatedError) as exc_info:
        await session.invoke("next")

    assert exc_info.value.provider == "stateful"
    assert exc_info.value.__cause__ is crash
    assert "crashed" not in exc_info.value.message
    assert session.history == ()


@pytest.mark.asyncio
async def test_default_schema_instructions_are_sent_once(
    orchestrator, action_schema, action_payload, telemetry, reporter
):
    native_client = MockNativeClient(responder=lambda s, text, c: action_payload)
    session = await StatefulSession.create(
        native_client,
        system_prompt=SYSTEM,
        orchestrator=orchestrator,
        default_schema=action_schema,
        telemetry=telemetry,
    )
    for i in range(5):
        await session.invoke(f"Observation {i}")

    instructions = orchestrator.plaintext.describer.describe(action_schema)
    (native,) = native_client.sessions
    assert native.initial_prompts == (Message.system(SYSTEM), Message.system(instructions))
    assert [p.text for p in native.prompts] == [f"Observation {i}" for i in range(5)]
    assert all(p.response_constraint is None for p in native.prompts)
    assert reporter.total("session.schema_instructions_sent") == 1
    assert len(session.history) == 10
