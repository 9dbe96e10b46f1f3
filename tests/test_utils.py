import pytest

from llmwire.client import UnifiedChatClient
from llmwire.types import Message, ToolCall, ToolDefinition, ToolResult
from llmwire.utils import clamp_temperature, decode_json, parse_arguments, tool_result_message


class TestUtils:

    def test_create_message_text(self):
        msg = UnifiedChatClient.create_message("user", "Hello world")
        assert msg == Message(role="user", content="Hello world")

    def test_create_message_joins_parts(self):
        msg = UnifiedChatClient.create_message("system", ["Rule one.", "Rule two."])
        assert msg.content == "Rule one.\n\nRule two."

    def test_create_tool(self):
        tool = UnifiedChatClient.create_tool(
            "get_weather",
            "Get weather",
            {"city": {"type": "string"}},
            required=["city"],
        )
        assert tool == ToolDefinition(
            name="get_weather",
            description="Get weather",
            parameters={
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        )

    def test_create_tool_result(self):
        result = UnifiedChatClient.create_tool_result("call_1", "22C", name="get_weather")
        assert result == ToolResult(tool_call_id="call_1", output="22C", name="get_weather")

    def test_create_assistant_message_with_tool_calls(self):
        calls = [ToolCall("call_1", "get_weather", {"city": "Paris"})]
        msg = UnifiedChatClient.create_assistant_message_with_tool_calls("", calls)
        assert msg.role == "assistant"
        assert msg.tool_calls == tuple(calls)

    def test_tool_result_message(self):
        msg = tool_result_message(ToolResult("call_1", "22C"), name="get_weather")
        assert msg == Message(role="tool", content="22C", tool_call_id="call_1", name="get_weather")

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ({"a": 1}, {"a": 1}),
            ("{\"a\": 1}", {"a": 1}),
            ("", {}),
            (None, {}),
            ("[1, 2]", {"_raw": "[1, 2]"}),
            ("{oops", {"_raw": "{oops"}),
        ],
    )
    def test_parse_arguments(self, raw, expected):
        assert parse_arguments(raw) == expected

    def test_parse_arguments_copies_objects(self):
        raw = {"filter": {"city": "Paris"}}
        parsed = parse_arguments(raw)
        raw["filter"]["city"] = "Rome"
        assert parsed == {"filter": {"city": "Paris"}}

    def test_decode_json_rejects_garbage(self):
        with pytest.raises(ValueError):
            decode_json(b"\xff\xfe")
        with pytest.raises(ValueError):
            decode_json("not json")

    def test_clamp_temperature(self):
        assert clamp_temperature(None) is None
        assert clamp_temperature(1.7) == 1.0
        assert clamp_temperature(-1) == 0.0
