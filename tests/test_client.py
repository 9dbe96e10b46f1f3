import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import sse
from llmwire.client import UnifiedChatClient
from llmwire.errors import ErrorKind, MissingContinuationContextError, UnknownProviderError
from llmwire.transport import HttpxTransport
from llmwire.types import (
    ContinuationContext,
    FinishReason,
    Message,
    StandardRequest,
    ToolCall,
    ToolResult,
)

OPENAI_RESPONSE = {
    "id": "resp_1",
    "object": "response",
    "status": "completed",
    "model": "gpt-4o",
    "output": [
        {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "Hi!"}]}
    ],
    "usage": {"input_tokens": 3, "output_tokens": 2, "total_tokens": 5},
}

OPENAI_STREAM = sse(
    {"type": "response.created", "response": {"id": "resp_2", "model": "gpt-4o"}},
    {"type": "response.output_text.delta", "delta": "Hel"},
    {"type": "response.output_text.delta", "delta": "lo"},
    {
        "type": "response.completed",
        "response": {
            "id": "resp_2",
            "model": "gpt-4o",
            "status": "completed",
            "output": [],
            "usage": {"input_tokens": 1, "output_tokens": 2, "total_tokens": 3},
        },
    },
)


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given network reads."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def make_client(registry, handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UnifiedChatClient(registry, transport=HttpxTransport(client=http))


@pytest.fixture
def request_hi():
    return StandardRequest(messages=(Message(role="user", content="hi"),), model="gpt-4o")


class TestSend:

    @pytest.mark.asyncio
    async def test_send_success(self, registry, request_hi):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=OPENAI_RESPONSE)

        client = make_client(registry, handler)
        response = await client.send(request_hi.with_stream(True), "openai")

        assert response.success is True
        assert response.content == "Hi!"
        assert response.usage.total_tokens == 5
        assert seen["url"] == "https://api.openai.com/v1/responses"
        assert seen["auth"] == "Bearer sk-test-openai"
        # send() never streams
        assert "stream" not in seen["body"]

    @pytest.mark.asyncio
    async def test_send_rate_limited(self, registry, request_hi):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "Too many requests"}})

        response = await make_client(registry, handler).send(request_hi, "openai")

        assert response.success is False
        assert response.error.kind is ErrorKind.RATE_LIMITED
        assert response.error.status_code == 429

    @pytest.mark.asyncio
    async def test_send_transport_failure(self, registry, request_hi):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        response = await make_client(registry, handler).send(request_hi, "openai")

        assert response.success is False
        assert response.error.kind is ErrorKind.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_send_unknown_provider(self, registry, request_hi):
        client = make_client(registry, lambda request: httpx.Response(200))
        with pytest.raises(UnknownProviderError):
            await client.send(request_hi, "mistral")


class TestStream:

    @pytest.mark.asyncio
    async def test_stream_delivers_chunks_in_order(self, registry, request_hi):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            pieces = [OPENAI_STREAM[i:i + 17] for i in range(0, len(OPENAI_STREAM), 17)]
            return httpx.Response(200, stream=ChunkedStream(pieces))

        chunks = []
        response = await make_client(registry, handler).stream(request_hi, "openai", chunks.append)

        assert seen["body"]["stream"] is True
        assert "".join(c.content for c in chunks) == "Hello"
        assert [c.done for c in chunks].count(True) == 1
        assert chunks[-1].done is True
        assert response.success is True
        assert response.content == "Hello"
        assert response.response_id == "resp_2"
        assert response.usage.total_tokens == 3
        assert response.finish_reason is FinishReason.STOP

    @pytest.mark.asyncio
    async def test_stream_async_callback(self, registry, request_hi):
        def handler(request):
            return httpx.Response(200, stream=ChunkedStream([OPENAI_STREAM]))

        received = []

        async def on_chunk(chunk):
            received.append(chunk.content)

        response = await make_client(registry, handler).stream(request_hi, "openai", on_chunk)

        assert "".join(received) == "Hello"
        assert response.success is True

    @pytest.mark.asyncio
    async def test_stream_http_error(self, registry, request_hi):
        def handler(request):
            return httpx.Response(401, json={"error": {"type": "authentication_error", "message": "bad key"}})

        chunks = []
        response = await make_client(registry, handler).stream(request_hi, "anthropic", chunks.append)

        assert chunks == []
        assert response.success is False
        assert response.error.kind is ErrorKind.AUTH_ERROR
        assert response.error.message == "bad key"

    @pytest.mark.asyncio
    async def test_stream_closed_before_completion(self, registry, request_hi):
        truncated = OPENAI_STREAM[:OPENAI_STREAM.index(b"response.completed")]

        def handler(request):
            return httpx.Response(200, stream=ChunkedStream([truncated]))

        response = await make_client(registry, handler).stream(request_hi, "openai")

        assert response.success is False
        assert response.error.kind is ErrorKind.UPSTREAM_UNAVAILABLE
        assert response.content == "Hello"

    @pytest.mark.asyncio
    async def test_stream_answered_with_error_body(self, registry, request_hi):
        error_body = b'{"error": {"message": "quota exceeded", "code": "insufficient_quota"}}'

        def handler(request):
            return httpx.Response(200, stream=ChunkedStream([error_body[:20], error_body[20:]]))

        chunks = []
        response = await make_client(registry, handler).stream(request_hi, "openrouter", chunks.append)

        assert [c.done for c in chunks] == [True]
        assert response.success is False
        assert response.error.kind is ErrorKind.RATE_LIMITED
        assert response.error.message == "quota exceeded"

    @pytest.mark.asyncio
    async def test_stream_connection_drop(self, registry, request_hi):
        def handler(request):
            first = OPENAI_STREAM[:OPENAI_STREAM.index(b"response.completed")]
            return httpx.Response(
                200, stream=ChunkedStream([first], error=httpx.ReadError("connection reset"))
            )

        response = await make_client(registry, handler).stream(request_hi, "openai")

        assert response.success is False
        assert response.error.kind is ErrorKind.UPSTREAM_UNAVAILABLE
        assert "connection reset" in response.error.message


class TestToolContinuation:

    def test_continue_with_tool_results(self, registry):
        client = make_client(registry, lambda request: httpx.Response(200))
        wire = client.continue_with_tool_results(
            [ToolResult("c1", "sunny")], ContinuationContext.from_response_id("resp_1"), "openrouter"
        )
        assert wire.body["previous_response_id"] == "resp_1"
        assert wire.url == "https://openrouter.ai/api/v1/responses"

    def test_missing_context(self, registry):
        client = make_client(registry, lambda request: httpx.Response(200))
        with pytest.raises(MissingContinuationContextError):
            client.continue_with_tool_results([ToolResult("c1", "sunny")], None, "openai")

    @pytest.mark.asyncio
    async def test_send_tool_results_replays_history(self, registry):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "id": "msg_2",
                "type": "message",
                "model": "claude-sonnet-4",
                "content": [{"type": "text", "text": "It is sunny."}],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": 30, "output_tokens": 5},
            })

        request = StandardRequest(
            messages=(Message(role="user", content="Weather in Paris?"),),
            model="claude-sonnet-4",
            stream=True,
        )
        history = request.messages + (
            Message(role="assistant", tool_calls=(ToolCall("toolu_1", "get_weather", {"city": "Paris"}),)),
        )
        context = ContinuationContext.from_history(history, request=request)

        response = await make_client(registry, handler).send_tool_results(
            [ToolResult("toolu_1", "sunny")], context, "claude"
        )

        assert response.success is True
        assert response.content == "It is sunny."
        assert "stream" not in seen["body"]
        assert seen["body"]["messages"][-1]["content"][0]["type"] == "tool_result"


class TestConnectionCheck:

    @pytest.mark.asyncio
    async def test_connection_success(self, registry):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=OPENAI_RESPONSE)

        result = await make_client(registry, handler).test_connection("openai")

        assert result.success is True
        assert result.provider == "openai"
        assert result.message == "Successfully connected to OpenAI API"
        assert result.model == "gpt-4o"
        assert result.content == "Hi!"
        assert result.error is None
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["max_output_tokens"] == 16
        assert "stream" not in seen["body"]

    @pytest.mark.asyncio
    async def test_connection_bad_gemini_key(self, registry):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(400, json={
                "error": {
                    "code": 400,
                    "message": "API key not valid. Please pass a valid API key.",
                    "status": "INVALID_ARGUMENT",
                    "details": [{"@type": "type.googleapis.com/google.rpc.ErrorInfo", "reason": "API_KEY_INVALID"}],
                }
            })

        result = await make_client(registry, handler).test_connection("google", model="gemini-1.5-pro")

        assert seen["url"].endswith("/models/gemini-1.5-pro:generateContent")
        assert result.success is False
        assert result.provider == "gemini"
        assert result.model == "gemini-1.5-pro"
        assert result.error.kind is ErrorKind.AUTH_ERROR
        assert result.message == "Gemini API error: API key not valid. Please pass a valid API key."

    @pytest.mark.asyncio
    async def test_connection_unreachable(self, registry):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        result = await make_client(registry, handler).test_connection("claude")

        assert result.success is False
        assert result.provider == "anthropic"
        assert result.model == "claude-3-5-haiku-latest"
        assert result.error.kind is ErrorKind.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_connection_unknown_provider(self, registry):
        client = make_client(registry, lambda request: httpx.Response(200))
        with pytest.raises(UnknownProviderError):
            await client.test_connection("mistral")


class TestClientLifecycle:

    @pytest.mark.asyncio
    async def test_list_models_delegation(self, registry):
        client = make_client(registry, lambda request: httpx.Response(200))
        registry.get("openai").get_models = AsyncMock(return_value=["model-a", "model-b"])

        assert await client.list_models("openai") == ["model-a", "model-b"]

    @pytest.mark.asyncio
    async def test_list_models_invalid_provider(self, registry):
        client = make_client(registry, lambda request: httpx.Response(200))
        with pytest.raises(UnknownProviderError):
            await client.list_models("mistral")

    @pytest.mark.asyncio
    async def test_from_env(self, clean_env, mock_env):
        with patch("llmwire.providers.openai.AsyncOpenAI"), \
                patch("llmwire.providers.anthropic.AsyncAnthropic"), \
                patch("llmwire.providers.gemini.genai"):
            client = UnifiedChatClient.from_env(env_file=None)

        assert client.registry.ids() == ["anthropic", "gemini", "grok", "openai", "openrouter"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self, registry):
        transport = AsyncMock()
        async with UnifiedChatClient(registry, transport=transport) as client:
            assert client.transport is transport
        transport.aclose.assert_awaited_once()
