import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import ErrorInfo, ErrorKind, InvalidRequestError, normalize_error
from ..types import (
    ContinuationContext,
    FinishReason,
    StandardRequest,
    StandardResponse,
    StreamChunk,
    ToolCall,
    ToolResult,
    Usage,
    WireRequest,
)
from ..utils import as_dict, decode_json

logger = logging.getLogger(__name__)


class ContinuationMode(str, Enum):
    """How a provider resumes a conversation after tool execution."""

    # Server keeps the conversation; the client references the prior response id.
    RESPONSE_ID = "response_id"
    # Client replays the full message history every turn.
    HISTORY = "history"


class BaseProviderAdapter(ABC):
    """
    Abstract base class for provider wire adapters.

    An adapter translates between the standard data model and one vendor's
    JSON wire format. It never performs I/O for chat turns: ``build_request``
    produces a :class:`WireRequest` for a transport, and the ``parse_*``
    methods consume what the transport received. Every parsing method is pure,
    so one adapter instance can serve any number of concurrent turns.
    """

    provider_id: str = ""
    display_name: str = ""
    default_base_url: str = ""
    continuation_mode: ContinuationMode = ContinuationMode.HISTORY
    # Cheap model used by connection checks when the caller names none
    connection_test_model: str = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider_name: Optional[str] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        if provider_name:
            self.provider_id = provider_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider_id={self.provider_id!r}, base_url={self.base_url!r})"

    # ==========================================================================
    # Vendor-specific operations
    # ==========================================================================

    @abstractmethod
    def build_request(self, request: StandardRequest) -> WireRequest:
        """
        Map a standard request onto the vendor's wire format.

        Args:
            request (StandardRequest): The request to translate.

        Returns:
            WireRequest: URL, headers and JSON body for the transport.

        Raises:
            InvalidRequestError: If the request is malformed or a required
                vendor field (such as the model id) cannot be derived.
        """

    @abstractmethod
    def parse_payload(self, payload: Dict[str, Any]) -> StandardResponse:
        """Translate a decoded, successful vendor response body."""

    @abstractmethod
    def parse_stream_chunk(
        self,
        payload: Mapping[str, Any],
        event: Optional[str] = None,
    ) -> Optional[StreamChunk]:
        """
        Translate one decoded stream event payload.

        Args:
            payload (dict): The JSON payload of one event.
            event (str, optional): The SSE ``event:`` name, when the vendor sends one.

        Returns:
            Optional[StreamChunk]: The chunk, or None when the event carries
                no new information (pings, bookkeeping events).
        """

    @abstractmethod
    def tool_calls_from_payload(self, payload: Mapping[str, Any]) -> List[ToolCall]:
        """Collect every tool call embedded in a raw vendor payload."""

    @abstractmethod
    async def get_models(self) -> List[str]:
        """
        Get list of available models from the provider.

        Returns:
            List[str]: Model identifiers; empty when unavailable.
        """

    # ==========================================================================
    # Shared behaviour
    # ==========================================================================

    def parse_response(self, body: Union[bytes, str], status: int = 200) -> StandardResponse:
        """
        Parse a buffered vendor response.

        Args:
            body (bytes | str): Raw response body.
            status (int): HTTP status code.

        Returns:
            StandardResponse: ``success=False`` for HTTP errors (normalized
                through the error taxonomy) and for bodies that are not JSON
                objects (``MalformedPayload``).
        """
        if status >= 400:
            info = normalize_error(status, body, self.provider_id)
            logger.debug("%s returned HTTP %s: %s", self.provider_id, status, info.message)
            return self.failure(info, raw=self._raw_body(body))

        try:
            payload = decode_json(body)
        except ValueError as exc:
            logger.warning("Invalid JSON response from %s: %s", self.provider_id, exc)
            return self.failure(
                ErrorInfo(
                    ErrorKind.MALFORMED_PAYLOAD,
                    f"Invalid JSON response from {self.provider_id} API",
                    status,
                ),
                raw=self._raw_body(body),
            )
        if not isinstance(payload, dict):
            return self.failure(
                ErrorInfo(
                    ErrorKind.MALFORMED_PAYLOAD,
                    f"Unexpected {type(payload).__name__} response from {self.provider_id} API",
                    status,
                ),
                raw=payload,
            )
        return self.parse_payload(payload)

    def extract_tool_calls(self, source: Union[StandardResponse, Mapping[str, Any]]) -> List[ToolCall]:
        """
        Project the tool calls out of a response.

        Accepts either a parsed :class:`StandardResponse` or a raw vendor
        payload, so call identity can be re-derived when the caller did not
        keep the parsed response.
        """
        if isinstance(source, StandardResponse):
            return list(source.tool_calls)
        return self.tool_calls_from_payload(as_dict(source))

    def build_continuation(
        self,
        tool_results: Sequence[ToolResult],
        context: Optional[ContinuationContext],
    ) -> WireRequest:
        """
        Build the request that returns tool results to this provider.

        See :func:`llmwire.continuation.build_continuation`.
        """
        from ..continuation import build_continuation

        return build_continuation(tool_results, context, self)

    def build_response_continuation(
        self,
        response_id: str,
        tool_results: Sequence[ToolResult],
        template: Optional[StandardRequest] = None,
    ) -> WireRequest:
        """
        Build a continuation that references a server-side response id.

        Adapters whose ``continuation_mode`` is ``ContinuationMode.RESPONSE_ID``
        override this; :func:`llmwire.continuation.build_continuation` only
        calls it for them. History-replay providers keep no conversation on
        the server, so a call here is a usage error.

        Raises:
            InvalidRequestError: Always, on history-replay providers.
        """
        raise InvalidRequestError(
            f"{self.provider_id} does not keep conversation state",
            provider=self.provider_id,
            hint="Continue from the message history with ContinuationContext.from_history()",
        )

    def sentinel_chunk(self) -> StreamChunk:
        """Terminal chunk for the ``[DONE]`` stream sentinel."""
        return StreamChunk(provider=self.provider_id, done=True)

    def failure(self, info: ErrorInfo, raw: Any = None) -> StandardResponse:
        """Build a failed StandardResponse tagged with this provider."""
        return StandardResponse(
            success=False,
            provider=self.provider_id,
            finish_reason=FinishReason.ERROR,
            error=info,
            raw=raw,
        )

    def error_chunk(self, info: ErrorInfo) -> StreamChunk:
        """Terminal chunk for an error reported inside the stream."""
        return StreamChunk(
            provider=self.provider_id,
            done=True,
            finish_reason=FinishReason.ERROR,
            error=info,
        )

    def _require_model(self, request: StandardRequest) -> str:
        if not request.model:
            raise InvalidRequestError(
                f"{self.provider_id} request requires a model id",
                provider=self.provider_id,
            )
        return request.model

    def _wire(self, url: str, body: Dict[str, Any], *, stream: bool = False) -> WireRequest:
        logger.debug("%s request to %s (stream=%s)", self.provider_id, url, stream)
        return WireRequest(
            provider=self.provider_id,
            url=url,
            headers=self._headers(),
            body=body,
            stream=stream,
        )

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    @staticmethod
    def _raw_body(body: Union[bytes, str]) -> Any:
        if isinstance(body, (bytes, bytearray)):
            return bytes(body).decode("utf-8", errors="replace")
        return body

    @staticmethod
    def normalize_usage(
        *,
        input_tokens: Optional[int],
        output_tokens: Optional[int],
        total_tokens: Optional[int] = None,
    ) -> Usage:
        """
        Normalize token usage information across providers.

        Missing counts become 0; the total is calculated when the vendor does
        not report it.
        """
        prompt = int(input_tokens or 0)
        completion = int(output_tokens or 0)
        # Calculate total if not provided
        total = int(total_tokens) if total_tokens is not None else prompt + completion
        return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    @staticmethod
    def _join_text(parts: Sequence[str]) -> str:
        return "".join(p for p in parts if isinstance(p, str))
