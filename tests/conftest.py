"""
Global test configuration and shared fixtures.
"""

import json
import os

import pytest

from gemini_hybrid.generation.method_cache import MethodCache
from gemini_hybrid.generation.orchestrator import GenerationOrchestrator
from gemini_hybrid.providers.mock import MockCompletionClient, MockNativeClient
from gemini_hybrid.schema import Schema
from gemini_hybrid.telemetry import InMemoryReporter, TelemetryContext

ACTION_NAMES = (
    "click_element",
    "input_text",
    "go_to_url",
    "go_back",
    "scroll_down",
    "scroll_up",
    "send_keys",
    "switch_tab",
    "open_tab",
    "extract_content",
    "wait",
    "done",
)


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_gemini_env(request, monkeypatch):
    """Ensure a clean GEMINI_* environment for each test.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the current env.
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return
    for key in list(os.environ.keys()):
        if key.startswith("GEMINI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "integration: Component integration tests with mocked providers",
        "api: Real API integration tests (requires API key)",
        "allow_env_pollution: Keep GEMINI_* environment variables for this test",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


def pytest_collection_modifyitems(config, items):  # noqa: ARG001
    """Automatically skip API tests when an API key is unavailable."""
    if not (os.getenv("GEMINI_API_KEY") and os.getenv("ENABLE_API_TESTS")):
        skip_api = pytest.mark.skip(
            reason="API tests require GEMINI_API_KEY and ENABLE_API_TESTS=1",
        )
        for item in items:
            if "api" in item.keywords:
                item.add_marker(skip_api)


# --- Schemas ---


@pytest.fixture
def flat_schema():
    """Three required scalar fields (score 3.0)."""
    return Schema.object(
        {
            "title": Schema.string("Short title"),
            "summary": Schema.string("One-sentence summary"),
            "done": Schema.boolean(),
        },
        title="Report",
    )


@pytest.fixture
def flat_payload():
    return json.dumps(
        {
            "title": "Quarterly report",
            "summary": "Revenue grew by twelve percent year on year",
            "done": True,
        }
    )


@pytest.fixture
def action_schema():
    """Agent step with a tagged union of twelve actions keyed by name."""
    params = {
        "click_element": {"index": Schema.integer()},
        "input_text": {"index": Schema.integer(), "text": Schema.string()},
        "go_to_url": {"url": Schema.string()},
        "go_back": {"reason": Schema.string()},
        "scroll_down": {"amount": Schema.integer()},
        "scroll_up": {"amount": Schema.integer()},
        "send_keys": {"keys": Schema.string()},
        "switch_tab": {"tab_id": Schema.integer()},
        "open_tab": {"url": Schema.string()},
        "extract_content": {"goal": Schema.string()},
        "wait": {"seconds": Schema.integer()},
        "done": {"text": Schema.string(), "success": Schema.boolean()},
    }
    variants = [
        Schema.object({name: Schema.object(fields)}, title=name) for name, fields in params.items()
    ]
    return Schema.object(
        {
            "current_state": Schema.object(
                {
                    "evaluation_previous_goal": Schema.string(),
                    "memory": Schema.string(),
                    "next_goal": Schema.string(),
                }
            ),
            "action": Schema.array(Schema.union(*variants)),
        },
        title="AgentStep",
    )


@pytest.fixture
def action_payload():
    return json.dumps(
        {
            "current_state": {
                "evaluation_previous_goal": "Success",
                "memory": "Inbox opened",
                "next_goal": "Open the first unread message",
            },
            "action": [{"click_element": {"index": 4}}],
        }
    )


# --- Runtime components ---


@pytest.fixture
def cache():
    return MethodCache()


@pytest.fixture
def reporter():
    return InMemoryReporter()


@pytest.fixture
def telemetry(reporter):
    return TelemetryContext(reporter, force=True)


@pytest.fixture
def orchestrator(cache, telemetry):
    return GenerationOrchestrator(cache=cache, telemetry=telemetry)


@pytest.fixture
def completion_client():
    return MockCompletionClient()


@pytest.fixture
def native_client():
    return MockNativeClient()
