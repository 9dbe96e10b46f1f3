import inspect
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Sequence, Union

from .config import DEFAULT_TIMEOUT, load_settings
from .continuation import ToolContinuationNormalizer
from .errors import normalize_error
from .log import configure_logging
from .providers.base import BaseProviderAdapter
from .registry import ProviderRegistry, build_registry
from .streaming import StreamAccumulator, StreamDecoder
from .transport import HttpxTransport, Transport, TransportError
from .types import (
    ConnectionTestResult,
    ContinuationContext,
    Message,
    StandardRequest,
    StandardResponse,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    ToolResult,
    WireRequest,
)
from .utils import (
    create_assistant_message_with_tool_calls,
    create_message,
    create_tool,
    create_tool_result,
)

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[StreamChunk], Union[None, Awaitable[None]]]

CONNECTION_TEST_PROMPT = 'Test connection - respond with "OK"'
# OpenAI rejects max_output_tokens below 16
CONNECTION_TEST_MAX_TOKENS = 16


class UnifiedChatClient:
    """
    Unified client for interacting with multiple LLM providers.

    This class provides a single interface for OpenAI, Claude (Anthropic),
    Gemini (Google), Grok (xAI) and OpenRouter. Requests and responses use
    the standard data model; the provider adapters translate to and from
    each vendor's wire format.

    Args:
        registry (ProviderRegistry): Adapters by provider id.
        transport (Transport, optional): Network transport. Defaults to an
            ``httpx`` based transport owned by this client.
        timeout (float): Timeout for the default transport, in seconds.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        transport: Optional[Transport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.registry = registry
        self.transport = transport or HttpxTransport(timeout=timeout)
        self.continuations = ToolContinuationNormalizer(registry)

    @classmethod
    def from_env(cls, env_file: Optional[str] = ".env", transport: Optional[Transport] = None) -> "UnifiedChatClient":
        """
        Build a client from environment variables (and ``env_file``).

        Only providers whose API key is set are registered.
        """
        settings = load_settings(env_file)
        if settings.log_level:
            configure_logging(settings.log_level)
        return cls(build_registry(settings), transport=transport, timeout=settings.timeout)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "UnifiedChatClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    # ==========================================================================
    # Message and Tool Helpers - Re-exported from utils
    # ==========================================================================

    @classmethod
    def create_message(
        cls,
        role: Literal["system", "user", "assistant"],
        content: Union[str, Sequence[str]],
    ) -> Message:
        return create_message(role, content)

    @staticmethod
    def create_tool(
        name: str,
        description: str,
        parameters: Dict[str, Any],
        required: Optional[List[str]] = None,
    ) -> ToolDefinition:
        return create_tool(name, description, parameters, required)

    @staticmethod
    def create_tool_result(tool_call_id: str, content: str, name: Optional[str] = None) -> ToolResult:
        return create_tool_result(tool_call_id, content, name)

    @staticmethod
    def create_assistant_message_with_tool_calls(
        content: str,
        tool_calls: Sequence[ToolCall],
    ) -> Message:
        return create_assistant_message_with_tool_calls(content, tool_calls)

    # ==========================================================================
    # Unified Chat Methods
    # ==========================================================================

    async def list_models(self, provider: str) -> List[str]:
        """
        Get the list of available models for a specific provider.

        Args:
            provider (str): The name of the provider (e.g., 'openai', 'anthropic', 'gemini').
                           Aliases like 'claude' -> 'anthropic' are automatically handled.

        Returns:
            List[str]: A list of model identifiers available for the provider.

        Raises:
            UnknownProviderError: If the provider is not configured or not supported.
        """
        return await self.registry.get(provider).get_models()

    async def send(self, request: StandardRequest, provider: str) -> StandardResponse:
        """
        Send a non-streaming chat request to the specified provider.

        Args:
            request (StandardRequest): The request. Its ``stream`` flag is ignored.
            provider (str): The provider id (e.g., 'openai', 'anthropic', 'gemini').

        Returns:
            StandardResponse: The parsed turn. HTTP, transport and payload
                failures are reported with ``success=False``.

        Raises:
            UnknownProviderError: If the provider is not registered.
            InvalidRequestError: If the request is malformed.
        """
        adapter = self.registry.get(provider)
        wire = adapter.build_request(request.with_stream(False))
        return await self._send_wire(adapter, wire)

    async def stream(
        self,
        request: StandardRequest,
        provider: str,
        on_chunk: Optional[ChunkHandler] = None,
    ) -> StandardResponse:
        """
        Stream a chat response from the specified provider.

        Every decoded chunk is passed to ``on_chunk`` (sync or async) in
        arrival order, and the whole turn is folded into a summary response.

        Args:
            request (StandardRequest): The request. Streaming is forced on.
            provider (str): The provider id.
            on_chunk (Callable, optional): Receives each StreamChunk.

        Returns:
            StandardResponse: Summary of the turn. A stream that ends without
                a completion event is reported as ``UpstreamUnavailable``.
        """
        adapter = self.registry.get(provider)
        wire = adapter.build_request(request.with_stream(True))
        decoder = StreamDecoder(adapter)
        accumulator = StreamAccumulator(adapter.provider_id)

        async def deliver(chunks: List[StreamChunk]) -> None:
            for chunk in chunks:
                accumulator.add(chunk)
                if on_chunk is not None:
                    result = on_chunk(chunk)
                    if inspect.isawaitable(result):
                        await result

        async def on_fragment(fragment: bytes) -> None:
            await deliver(decoder.feed(fragment))

        try:
            response = await self.transport.stream(wire, on_fragment)
        except TransportError as exc:
            logger.warning("%s stream interrupted: %s", adapter.provider_id, exc)
            accumulator.fail(exc.to_info())
            return accumulator.to_response()

        if response.status >= 400:
            info = normalize_error(response.status, response.body, adapter.provider_id)
            return adapter.failure(info, raw=response.body.decode("utf-8", errors="replace"))

        await deliver(decoder.close())
        if not decoder.done:
            logger.warning("%s stream closed before completion", adapter.provider_id)
        return accumulator.to_response()

    def continue_with_tool_results(
        self,
        tool_results: Sequence[ToolResult],
        context: Optional[ContinuationContext],
        provider: str,
    ) -> WireRequest:
        """
        Build the request that hands tool results back to the model.

        Raises:
            UnknownProviderError: If the provider is not registered.
            MissingContinuationContextError: If ``context`` lacks the response
                id (OpenAI, Grok, OpenRouter) or the history (Anthropic, Gemini).
        """
        return self.continuations.build(tool_results, context, provider)

    async def send_tool_results(
        self,
        tool_results: Sequence[ToolResult],
        context: Optional[ContinuationContext],
        provider: str,
    ) -> StandardResponse:
        """Build a non-streaming continuation and send it."""
        if context is not None and context.request is not None:
            context = replace(context, request=context.request.with_stream(False))
        adapter = self.registry.get(provider)
        wire = self.continuations.build(tool_results, context, provider)
        return await self._send_wire(adapter, wire)

    async def test_connection(self, provider: str, model: Optional[str] = None) -> ConnectionTestResult:
        """
        Check that a provider is reachable and accepts the configured key.

        Sends a minimal non-streaming request and reports the outcome instead
        of raising.

        Args:
            provider (str): The provider id. Aliases are accepted.
            model (str, optional): Model to test with. Defaults to a cheap
                model of the provider.

        Returns:
            ConnectionTestResult: Success with the reply, or the normalized error.

        Raises:
            UnknownProviderError: If the provider is not registered.
        """
        adapter = self.registry.get(provider)
        name = adapter.display_name or adapter.provider_id
        request = StandardRequest(
            messages=(Message(role="user", content=CONNECTION_TEST_PROMPT),),
            model=model or adapter.connection_test_model,
            max_tokens=CONNECTION_TEST_MAX_TOKENS,
        )
        response = await self._send_wire(adapter, adapter.build_request(request))

        if not response.success:
            logger.info("%s connection test failed: %s", adapter.provider_id, response.error.message)
            return ConnectionTestResult(
                success=False,
                provider=adapter.provider_id,
                message=f"{name} API error: {response.error.message}",
                model=request.model,
                error=response.error,
            )
        return ConnectionTestResult(
            success=True,
            provider=adapter.provider_id,
            message=f"Successfully connected to {name} API",
            model=response.model or request.model,
            content=response.content,
        )

    async def _send_wire(self, adapter: BaseProviderAdapter, wire: WireRequest) -> StandardResponse:
        try:
            response = await self.transport.send(wire)
        except TransportError as exc:
            logger.warning("%s request failed: %s", adapter.provider_id, exc)
            return adapter.failure(exc.to_info())
        return adapter.parse_response(response.body, response.status)
