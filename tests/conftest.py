import json
import os
from unittest.mock import patch

import pytest

from llmwire.providers import (
    AnthropicAdapter,
    GeminiAdapter,
    GrokAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
)
from llmwire.registry import ProviderRegistry
from llmwire.types import Message, StandardRequest, ToolDefinition


@pytest.fixture
def mock_env(monkeypatch):
    """Mock environment variables for API keys."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test-anthropic")
    monkeypatch.setenv("GOOGLE_API_KEY", "AIza-test-google")
    monkeypatch.setenv("XAI_API_KEY", "xai-test")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")


@pytest.fixture
def clean_env():
    """Remove every variable the settings loader reads.

    The whole environment is restored afterwards, including variables a
    test's ``.env`` file added.
    """
    with patch.dict(os.environ):
        for name in (
            "OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_ORGANIZATION",
            "ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL",
            "GOOGLE_API_KEY", "GEMINI_API_KEY", "GEMINI_BASE_URL",
            "XAI_API_KEY", "XAI_BASE_URL",
            "OPENROUTER_API_KEY", "OPENROUTER_BASE_URL",
            "OPENROUTER_HTTP_REFERER", "OPENROUTER_APP_TITLE",
            "LLMWIRE_TIMEOUT", "LLMWIRE_LOG_LEVEL",
        ):
            os.environ.pop(name, None)
        yield


# SDK clients are only used for model listing; keep them out of the tests.

@pytest.fixture
def openai_adapter():
    with patch("llmwire.providers.openai.AsyncOpenAI"):
        return OpenAIAdapter(api_key="sk-test-openai")


@pytest.fixture
def anthropic_adapter():
    with patch("llmwire.providers.anthropic.AsyncAnthropic"):
        return AnthropicAdapter(api_key="sk-test-anthropic")


@pytest.fixture
def gemini_adapter():
    with patch("llmwire.providers.gemini.genai"):
        return GeminiAdapter(api_key="AIza-test-google")


@pytest.fixture
def registry(openai_adapter, anthropic_adapter, gemini_adapter):
    with patch("llmwire.providers.openai.AsyncOpenAI"):
        aliases = [GrokAdapter(api_key="xai-test"), OpenRouterAdapter(api_key="sk-or-test")]
    return ProviderRegistry([openai_adapter, anthropic_adapter, gemini_adapter, *aliases])


@pytest.fixture
def weather_tool():
    return ToolDefinition(
        name="get_weather",
        description="Get the weather for a city",
        parameters={
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    )


@pytest.fixture
def basic_request():
    return StandardRequest(
        messages=(
            Message(role="system", content="You are terse."),
            Message(role="user", content="Hello"),
        ),
        model="test-model",
    )


def sse(*events, sentinel=False):
    """Encode payloads as a server-sent events body.

    Each item is either a payload dict or an ``(event_name, payload)`` pair.
    """
    lines = []
    for item in events:
        if isinstance(item, tuple):
            name, payload = item
            lines.append(f"event: {name}")
        else:
            payload = item
        lines.append(f"data: {json.dumps(payload)}")
        lines.append("")
    if sentinel:
        lines.append("data: [DONE]")
        lines.append("")
    return ("\n".join(lines) + "\n").encode("utf-8")
