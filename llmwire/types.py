import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Tuple

from .errors import ErrorInfo, InvalidRequestError

# =============================================================================
# Type Definitions
# =============================================================================

# Supported LLM providers
Provider = Literal["openai", "anthropic", "gemini", "grok", "openrouter"]

Role = Literal["system", "user", "assistant", "tool"]

ROLES = ("system", "user", "assistant", "tool")


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"
    UNKNOWN = "unknown"


# =============================================================================
# Tool Calling Type Definitions
# =============================================================================

@dataclass(frozen=True)
class ToolDefinition:
    """
    Tool the model may call.

    ``parameters`` is a JSON Schema object describing the arguments.
    """
    name: str
    description: str = ""
    parameters: Mapping[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass(frozen=True)
class ToolCall:
    """
    Tool call from an LLM response.

    ``arguments`` is always a parsed mapping. Argument text that is not a JSON
    object is preserved under the ``_raw`` key.
    """
    call_id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def arguments_json(self) -> str:
        return json.dumps(dict(self.arguments))


@dataclass(frozen=True)
class ToolResult:
    """
    Output of one executed tool call, sent back to the model.

    ``name`` is only needed by providers that key results by function name
    (Gemini); it is looked up from the replayed history when omitted.
    """
    tool_call_id: str
    output: str
    name: Optional[str] = None


# =============================================================================
# Message and Request Types
# =============================================================================

@dataclass(frozen=True)
class Message:
    """
    Chat message.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response, optionally carrying the tool calls it made
    - "tool": Tool execution result (``tool_call_id`` references the call)
    """
    role: Role
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class StandardRequest:
    """
    Provider-agnostic chat request.

    Attributes:
        messages: Ordered, non-empty conversation.
        model: Model identifier; every provider requires one.
        tools: Tool definitions with unique names.
        temperature: Sampling temperature in [0, 1].
        max_tokens: Maximum number of output tokens.
        stream: Whether the provider should stream the answer.
    """
    messages: Tuple[Message, ...]
    model: str = ""
    tools: Tuple[ToolDefinition, ...] = ()
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False

    def validate(self) -> None:
        """
        Check the request invariants.

        Raises:
            InvalidRequestError: If messages are empty or malformed, tool names
                collide, or a generation control is out of range.
        """
        if not self.messages:
            raise InvalidRequestError("Messages array cannot be empty")
        for msg in self.messages:
            if not isinstance(msg, Message) or msg.role not in ROLES:
                raise InvalidRequestError(f"Invalid message: {msg!r}")
        names = [t.name for t in self.tools]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise InvalidRequestError(f"Duplicate tool names: {', '.join(duplicates)}")
        if self.temperature is not None and not 0.0 <= self.temperature <= 1.0:
            raise InvalidRequestError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise InvalidRequestError(f"max_tokens must be positive, got {self.max_tokens}")

    def with_messages(self, messages) -> "StandardRequest":
        return replace(self, messages=tuple(messages))

    def with_stream(self, stream: bool = True) -> "StandardRequest":
        return replace(self, stream=stream)


@dataclass(frozen=True)
class WireRequest:
    """Vendor HTTP request ready for a transport."""
    provider: str
    url: str
    headers: Mapping[str, str]
    body: Mapping[str, Any]
    method: str = "POST"
    stream: bool = False

    def json(self) -> str:
        return json.dumps(self.body)


# =============================================================================
# Response Types
# =============================================================================

@dataclass(frozen=True)
class Usage:
    """Token usage normalized across providers."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class StandardResponse:
    """
    Provider-agnostic result of one turn.

    ``error`` is set exactly when ``success`` is False. ``raw`` keeps the
    decoded vendor payload for diagnostics.
    """
    success: bool
    provider: str
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    finish_reason: FinishReason = FinishReason.UNKNOWN
    error: Optional[ErrorInfo] = None
    response_id: Optional[str] = None
    raw: Any = field(default=None, repr=False)

    def __post_init__(self):
        if self.success == (self.error is not None):
            raise ValueError("StandardResponse.error must be set exactly when success is False")


@dataclass(frozen=True)
class ConnectionTestResult:
    """
    Outcome of a connection check against one provider.

    Attributes:
        success: Whether the provider answered a minimal request.
        provider: Provider id.
        message: Human readable summary.
        model: Model reported by the provider (or the one requested).
        content: Text of the reply, when there was one.
        error: Normalized failure, set exactly when ``success`` is False.
    """
    success: bool
    provider: str
    message: str
    model: str = ""
    content: str = ""
    error: Optional[ErrorInfo] = None


# =============================================================================
# Streaming Types
# =============================================================================

@dataclass(frozen=True)
class ToolCallDelta:
    """
    Incremental fragment of a streamed tool call.

    Fragments for one call share ``call_id`` (or ``index`` before the decoder
    resolves it); the caller concatenates ``arguments_delta`` per call id.
    """
    index: Optional[int] = None
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments_delta: str = ""


@dataclass(frozen=True)
class ChunkMetadata:
    """Metadata carried by a stream chunk; fields are None when not reported."""
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    response_id: Optional[str] = None


@dataclass(frozen=True)
class StreamChunk:
    """One incremental fragment of a streamed turn."""
    provider: str
    content: str = ""
    done: bool = False
    tool_calls: Tuple[ToolCallDelta, ...] = ()
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    finish_reason: Optional[FinishReason] = None
    error: Optional[ErrorInfo] = None


# =============================================================================
# Continuation
# =============================================================================

@dataclass(frozen=True)
class ContinuationContext:
    """
    What a provider needs to resume a turn after tool execution.

    Server-side state providers read ``response_id``; history-replay providers
    read ``messages``. ``request`` optionally supplies model, tools and
    generation controls for the continuation request.
    """
    response_id: Optional[str] = None
    messages: Optional[Tuple[Message, ...]] = None
    request: Optional[StandardRequest] = None

    @classmethod
    def from_response_id(
        cls, response_id: str, request: Optional[StandardRequest] = None
    ) -> "ContinuationContext":
        return cls(response_id=response_id, request=request)

    @classmethod
    def from_history(
        cls, messages, request: Optional[StandardRequest] = None
    ) -> "ContinuationContext":
        return cls(messages=tuple(messages), request=request)

    @classmethod
    def from_turn(cls, request: StandardRequest, response: StandardResponse) -> "ContinuationContext":
        """
        Build a context from a completed turn.

        The replayed history is the request's messages followed by the
        assistant message the response represents (text plus tool calls).
        """
        assistant = Message(
            role="assistant",
            content=response.content,
            tool_calls=tuple(response.tool_calls),
        )
        return cls(
            response_id=response.response_id,
            messages=tuple(request.messages) + (assistant,),
            request=request,
        )


