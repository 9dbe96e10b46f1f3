from .client import UnifiedChatClient
from .config import ProviderSettings, Settings, load_settings
from .continuation import ToolContinuationNormalizer, build_continuation
from .errors import (
    AuthError,
    ErrorInfo,
    ErrorKind,
    InvalidRequestError,
    LLMWireError,
    MalformedPayloadError,
    MissingContinuationContextError,
    RateLimitedError,
    UnknownError,
    UnknownProviderError,
    UpstreamUnavailableError,
)
from .log import configure_logging
from .providers import (
    AnthropicAdapter,
    BaseProviderAdapter,
    GeminiAdapter,
    GrokAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
)
from .registry import ProviderRegistry, build_registry
from .streaming import SSEEvent, SSEParser, StreamAccumulator, StreamDecoder
from .tools import ToolExecutor, tool_definitions_from_mcp
from .transport import HttpxTransport, Transport, TransportError, TransportResponse
from .types import (
    ChunkMetadata,
    ConnectionTestResult,
    ContinuationContext,
    FinishReason,
    Message,
    Provider,
    StandardRequest,
    StandardResponse,
    StreamChunk,
    ToolCall,
    ToolCallDelta,
    ToolDefinition,
    ToolResult,
    Usage,
    WireRequest,
)

__all__ = [
    "UnifiedChatClient",
    "ProviderSettings",
    "Settings",
    "load_settings",
    "ToolContinuationNormalizer",
    "build_continuation",
    "AuthError",
    "ErrorInfo",
    "ErrorKind",
    "InvalidRequestError",
    "LLMWireError",
    "MalformedPayloadError",
    "MissingContinuationContextError",
    "RateLimitedError",
    "UnknownError",
    "UnknownProviderError",
    "UpstreamUnavailableError",
    "configure_logging",
    "AnthropicAdapter",
    "BaseProviderAdapter",
    "GeminiAdapter",
    "GrokAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "ProviderRegistry",
    "build_registry",
    "SSEEvent",
    "SSEParser",
    "StreamAccumulator",
    "StreamDecoder",
    "ToolExecutor",
    "tool_definitions_from_mcp",
    "HttpxTransport",
    "Transport",
    "TransportError",
    "TransportResponse",
    "ChunkMetadata",
    "ConnectionTestResult",
    "ContinuationContext",
    "FinishReason",
    "Message",
    "Provider",
    "StandardRequest",
    "StandardResponse",
    "StreamChunk",
    "ToolCall",
    "ToolCallDelta",
    "ToolDefinition",
    "ToolResult",
    "Usage",
    "WireRequest",
]
