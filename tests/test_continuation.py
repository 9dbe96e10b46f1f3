import pytest

from llmwire.continuation import ToolContinuationNormalizer, build_continuation
from llmwire.errors import (
    InvalidRequestError,
    MissingContinuationContextError,
    UnknownProviderError,
)
from llmwire.types import (
    ContinuationContext,
    Message,
    StandardRequest,
    StandardResponse,
    ToolCall,
    ToolResult,
)

HISTORY = (
    Message(role="user", content="What's the weather in Paris?"),
    Message(
        role="assistant",
        tool_calls=(ToolCall("c1", "get_weather", {"city": "Paris"}),),
    ),
)


class TestServerStateContinuation:

    def test_references_previous_response(self, openai_adapter):
        wire = build_continuation(
            [ToolResult("c1", "sunny")],
            ContinuationContext.from_response_id("resp_1"),
            openai_adapter,
        )

        assert wire.url == "https://api.openai.com/v1/responses"
        assert wire.body["previous_response_id"] == "resp_1"
        assert wire.body["input"] == [
            {"type": "function_call_output", "call_id": "c1", "output": "sunny"}
        ]
        # without a template the server reuses the stored settings
        assert "model" not in wire.body

    def test_template_supplies_model_and_tools(self, openai_adapter, weather_tool):
        template = StandardRequest(messages=HISTORY[:1], model="gpt-4o", tools=(weather_tool,))
        wire = build_continuation(
            [ToolResult("c1", "sunny")],
            ContinuationContext.from_response_id("resp_1", request=template),
            openai_adapter,
        )

        assert wire.body["model"] == "gpt-4o"
        assert wire.body["tools"][0]["name"] == "get_weather"

    def test_results_keep_caller_order(self, openai_adapter):
        results = [ToolResult("c2", "b"), ToolResult("c1", "a"), ToolResult("c2", "b")]
        wire = build_continuation(
            results, ContinuationContext.from_response_id("resp_1"), openai_adapter
        )
        assert [item["call_id"] for item in wire.body["input"]] == ["c2", "c1", "c2"]

    @pytest.mark.parametrize(
        "context",
        [None, ContinuationContext(), ContinuationContext(response_id=""), ContinuationContext(messages=HISTORY)],
    )
    def test_missing_response_id(self, openai_adapter, context):
        with pytest.raises(MissingContinuationContextError):
            build_continuation([ToolResult("c1", "sunny")], context, openai_adapter)

    def test_adapter_method_delegates(self, openai_adapter):
        wire = openai_adapter.build_continuation(
            [ToolResult("c1", "sunny")], ContinuationContext.from_response_id("resp_1")
        )
        assert wire.body["previous_response_id"] == "resp_1"


class TestHistoryReplayContinuation:

    def test_anthropic_appends_one_message(self, anthropic_adapter):
        template = StandardRequest(messages=HISTORY[:1], model="claude-sonnet-4")
        context = ContinuationContext.from_history(HISTORY, request=template)
        prefix = anthropic_adapter.build_request(template.with_messages(HISTORY)).body["messages"]

        wire = build_continuation([ToolResult("c1", "sunny")], context, anthropic_adapter)
        messages = wire.body["messages"]

        assert len(messages) == len(HISTORY) + 1
        assert messages[:-1] == prefix
        assert messages[-1] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "c1", "content": "sunny"}],
        }
        assert wire.body["model"] == "claude-sonnet-4"

    def test_gemini_resolves_function_name(self, gemini_adapter):
        template = StandardRequest(messages=HISTORY[:1], model="gemini-2.0-flash")
        context = ContinuationContext.from_history(HISTORY, request=template)

        wire = build_continuation([ToolResult("c1", "sunny")], context, gemini_adapter)
        last = wire.body["contents"][-1]

        assert len(wire.body["contents"]) == len(HISTORY) + 1
        assert last == {
            "role": "user",
            "parts": [{"functionResponse": {"name": "get_weather", "response": {"result": "sunny"}}}],
        }

    def test_from_turn(self, gemini_adapter):
        request = StandardRequest(messages=HISTORY[:1], model="gemini-2.0-flash")
        response = StandardResponse(
            success=True,
            provider="gemini",
            tool_calls=(ToolCall("gemini_get_weather_0", "get_weather", {"city": "Paris"}),),
        )
        context = ContinuationContext.from_turn(request, response)

        wire = build_continuation(
            [ToolResult("gemini_get_weather_0", "sunny")], context, gemini_adapter
        )
        contents = wire.body["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[2]["parts"][0]["functionResponse"]["name"] == "get_weather"

    def test_missing_model(self, anthropic_adapter):
        context = ContinuationContext.from_history(HISTORY)
        with pytest.raises(InvalidRequestError):
            build_continuation([ToolResult("c1", "sunny")], context, anthropic_adapter)

    @pytest.mark.parametrize(
        "context",
        [
            None,
            ContinuationContext(response_id="msg_1"),
            ContinuationContext(messages=()),
            ContinuationContext(messages=("not a message",)),
        ],
    )
    def test_missing_history(self, anthropic_adapter, context):
        with pytest.raises(MissingContinuationContextError):
            build_continuation([ToolResult("c1", "sunny")], context, anthropic_adapter)

    def test_context_is_not_mutated(self, anthropic_adapter):
        template = StandardRequest(messages=HISTORY[:1], model="claude-sonnet-4")
        context = ContinuationContext.from_history(HISTORY, request=template)
        build_continuation([ToolResult("c1", "sunny")], context, anthropic_adapter)
        assert context.messages == HISTORY
        assert context.request is template

    @pytest.mark.parametrize("adapter_fixture", ["anthropic_adapter", "gemini_adapter"])
    def test_no_response_id_continuation(self, request, adapter_fixture):
        adapter = request.getfixturevalue(adapter_fixture)
        with pytest.raises(InvalidRequestError) as excinfo:
            adapter.build_response_continuation("msg_1", [ToolResult("c1", "sunny")])
        assert excinfo.value.provider == adapter.provider_id
        assert "from_history" in excinfo.value.hint


class TestToolContinuationNormalizer:

    def test_resolves_provider(self, registry):
        normalizer = ToolContinuationNormalizer(registry)
        wire = normalizer.build(
            [ToolResult("c1", "sunny")], ContinuationContext.from_response_id("resp_1"), "grok"
        )
        assert wire.provider == "grok"
        assert wire.url == "https://api.x.ai/v1/responses"

    def test_unknown_provider(self, registry):
        normalizer = ToolContinuationNormalizer(registry)
        with pytest.raises(UnknownProviderError):
            normalizer.build([], ContinuationContext.from_response_id("r"), "mistral")
