import copy
import json
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from .types import Message, ToolCall, ToolDefinition, ToolResult

# =============================================================================
# Message Helpers
# =============================================================================


def create_message(
    role: Literal["system", "user", "assistant"],
    content: Union[str, Sequence[str]],
) -> Message:
    """
    Create a standardized Message object.

    A list of strings is joined with blank lines into a single text body.

    Args:
        role (str): The role of the message sender ('system', 'user', 'assistant').
        content (Union[str, List[str]]): The content of the message.

    Returns:
        Message: The message value.
    """
    if isinstance(content, str):
        return Message(role=role, content=content)
    return Message(role=role, content="\n\n".join(content))


def create_assistant_message_with_tool_calls(
    content: str,
    tool_calls: Sequence[ToolCall],
) -> Message:
    """
    Create an assistant message that includes tool calls.

    This represents a model's request to execute one or more tools and is
    what history-replay providers need to see before the tool results.

    Args:
        content (str): Optional text content accompanying the tool calls (can be empty).
        tool_calls (List[ToolCall]): Tool calls made by the model.

    Returns:
        Message: A message with role='assistant'.
    """
    return Message(role="assistant", content=content, tool_calls=tuple(tool_calls))


# =============================================================================
# Tool Calling Helpers
# =============================================================================

def create_tool(
    name: str,
    description: str,
    parameters: Dict[str, Any],
    required: Optional[List[str]] = None,
) -> ToolDefinition:
    """
    Create a standardized Tool definition for function calling.

    Args:
        name (str): The name of the function/tool to be called.
        description (str): A clear description of what the tool does.
        parameters (Dict): JSON Schema properties keyed by argument name.
        required (List[str], optional): A list of parameter names that are required.

    Returns:
        ToolDefinition: The tool definition.
    """
    return ToolDefinition(
        name=name,
        description=description,
        parameters={
            "type": "object",
            "properties": parameters,
            "required": required or [],
        },
    )


def create_tool_result(tool_call_id: str, content: str, name: Optional[str] = None) -> ToolResult:
    """
    Create a tool result to send back to the LLM.

    Args:
        tool_call_id (str): The ID of the tool call this result corresponds to.
        content (str): The stringified result of the tool execution.
        name (str, optional): Function name, needed by Gemini when the
            history does not carry the originating call.

    Returns:
        ToolResult: The result value.
    """
    return ToolResult(tool_call_id=tool_call_id, output=content, name=name)


def tool_result_message(result: ToolResult, name: Optional[str] = None) -> Message:
    """Turn a ToolResult into a role='tool' message for history replay."""
    return Message(
        role="tool",
        content=result.output,
        tool_call_id=result.tool_call_id,
        name=result.name or name,
    )


# =============================================================================
# JSON Helpers
# =============================================================================

def as_dict(value: Any) -> Dict[str, Any]:
    """Return ``value`` if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    """Return ``value`` if it is a list, else an empty list."""
    return value if isinstance(value, list) else []


def decode_json(body: Union[bytes, bytearray, str]) -> Any:
    """
    Decode a JSON response body.

    Raises:
        ValueError: If the body is not valid UTF-8 JSON
            (``json.JSONDecodeError`` and ``UnicodeDecodeError`` are both
            ValueError subclasses).
    """
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8")
    return json.loads(body)


def parse_arguments(raw: Any) -> Mapping[str, Any]:
    """
    Parse tool-call arguments into a mapping.

    Vendors send arguments either as a JSON string (OpenAI) or as an object
    (Anthropic, Gemini). Safe handling of JSON parsing: text that does not
    decode to an object is kept under ``_raw``.
    """
    if isinstance(raw, dict):
        return copy.deepcopy(raw)
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
        if isinstance(value, dict):
            return value
        return {"_raw": raw}
    return {"_raw": raw}


def generated_call_id(provider: str, name: str, index: int) -> str:
    """Deterministic id for vendors that do not assign tool-call ids."""
    return f"{provider}_{name}_{index}"


def clamp_temperature(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return max(0.0, min(1.0, float(value)))
