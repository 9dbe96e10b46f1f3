import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from anthropic import AsyncAnthropic

from .base import BaseProviderAdapter, ContinuationMode
from ..errors import normalize_error
from ..types import (
    ChunkMetadata,
    FinishReason,
    Message,
    StandardRequest,
    StandardResponse,
    StreamChunk,
    ToolCall,
    ToolCallDelta,
    ToolDefinition,
    WireRequest,
)
from ..utils import as_dict, as_list, clamp_temperature, generated_call_id, parse_arguments

logger = logging.getLogger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024

_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "pause_turn": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
}


class AnthropicAdapter(BaseProviderAdapter):
    """
    Adapter for the Anthropic Messages API.

    Anthropic keeps no conversation state, so tool results are sent by
    replaying the whole history followed by ``tool_result`` blocks.
    """

    provider_id = "anthropic"
    display_name = "Anthropic"
    default_base_url = ANTHROPIC_BASE_URL
    continuation_mode = ContinuationMode.HISTORY
    connection_test_model = "claude-3-5-haiku-latest"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        super().__init__(api_key, base_url)
        # The SDK appends the /v1 prefix itself
        self.client = (
            AsyncAnthropic(api_key=api_key, base_url=self.base_url.removesuffix("/v1"))
            if api_key else None
        )

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["x-api-key"] = self.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    # ==========================================================================
    # Requests
    # ==========================================================================

    def build_request(self, request: StandardRequest) -> WireRequest:
        """
        Build a Messages API request.

        Handles:
        - System prompt extraction (sent as separate parameter).
        - The mandatory ``max_tokens`` (defaults to 1024).
        - Tool definitions, which use ``input_schema`` instead of ``parameters``.
        """
        request.validate()
        system_text, converted = self._convert_messages(request.messages)

        body: Dict[str, Any] = {
            "model": self._require_model(request),
            "messages": converted,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        optional_params = {
            "system": system_text,
            "temperature": clamp_temperature(request.temperature),
            "tools": self._convert_tools(request.tools) or None,
        }
        body.update({k: v for k, v in optional_params.items() if v is not None})
        if request.stream:
            body["stream"] = True
        return self._wire(f"{self.base_url}/messages", body, stream=request.stream)

    @staticmethod
    def _convert_messages(
        messages: Sequence[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Claude format.

        Anthropic's API differs from OpenAI's in that 'system' messages are passed
        as a separate top-level parameter, not within the `messages` list. Tool
        results travel as user messages holding a ``tool_result`` block.

        Args:
            messages (List[Message]): Internal message list.

        Returns:
            Tuple containing:
            - system_text: Extracted system prompt string (or None)
            - converted: List of message dicts suitable for the API
        """
        system_parts = []
        converted = []

        for msg in messages:
            # Extract system messages to be sent separately
            if msg.role == "system":
                system_parts.append(msg.content)
                continue

            if msg.role == "tool":
                converted.append({
                    "role": "user",
                    "content": [{
                        "type": "tool_result",
                        "tool_use_id": msg.tool_call_id or "",
                        "content": msg.content,
                    }],
                })
                continue

            if msg.role == "assistant" and msg.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.call_id,
                        "name": tc.name,
                        "input": dict(tc.arguments),
                    })
                converted.append({"role": "assistant", "content": blocks})
                continue

            converted.append({"role": msg.role, "content": msg.content})

        system_text = "\n\n".join(system_parts) if system_parts else None
        return system_text, converted

    @staticmethod
    def _convert_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": dict(tool.parameters),
            }
            for tool in tools
        ]

    # ==========================================================================
    # Buffered responses
    # ==========================================================================

    def parse_payload(self, payload: Dict[str, Any]) -> StandardResponse:
        if payload.get("type") == "error" or (payload.get("error") and "content" not in payload):
            return self.failure(normalize_error(None, payload, self.provider_id), raw=payload)

        text = "".join(
            as_dict(block).get("text") or ""
            for block in as_list(payload.get("content"))
            if as_dict(block).get("type") == "text"
        )
        tool_calls = self.tool_calls_from_payload(payload)
        usage = as_dict(payload.get("usage"))
        return StandardResponse(
            success=True,
            provider=self.provider_id,
            content=text,
            tool_calls=tuple(tool_calls),
            usage=self.normalize_usage(
                input_tokens=usage.get("input_tokens"),
                output_tokens=usage.get("output_tokens"),
            ),
            model=payload.get("model") or "",
            finish_reason=self._finish_reason(payload.get("stop_reason"), bool(tool_calls)),
            response_id=payload.get("id"),
            raw=payload,
        )

    def tool_calls_from_payload(self, payload: Mapping[str, Any]) -> List[ToolCall]:
        """
        Parse tool calls from a Claude response.

        Extracts tool use blocks from the response content.
        """
        tool_calls: List[ToolCall] = []
        for block in as_list(payload.get("content")):
            block = as_dict(block)
            if block.get("type") != "tool_use":
                continue
            name = block.get("name") or ""
            tool_calls.append(ToolCall(
                call_id=block.get("id") or generated_call_id(self.provider_id, name, len(tool_calls)),
                name=name,
                arguments=parse_arguments(block.get("input")),
            ))
        return tool_calls

    @staticmethod
    def _finish_reason(stop_reason: Optional[str], has_tool_calls: bool) -> FinishReason:
        if stop_reason is None:
            return FinishReason.TOOL_CALLS if has_tool_calls else FinishReason.UNKNOWN
        return _STOP_REASONS.get(stop_reason, FinishReason.UNKNOWN)

    # ==========================================================================
    # Streaming
    # ==========================================================================

    def parse_stream_chunk(
        self,
        payload: Mapping[str, Any],
        event: Optional[str] = None,
    ) -> Optional[StreamChunk]:
        kind = payload.get("type") or event

        if kind == "content_block_delta":
            delta = as_dict(payload.get("delta"))
            if delta.get("type") == "text_delta":
                text = delta.get("text")
                return StreamChunk(provider=self.provider_id, content=text) if text else None
            if delta.get("type") == "input_json_delta":
                partial = delta.get("partial_json")
                if not partial:
                    return None
                return StreamChunk(
                    provider=self.provider_id,
                    tool_calls=(ToolCallDelta(index=payload.get("index"), arguments_delta=partial),),
                )
            return None

        if kind == "content_block_start":
            block = as_dict(payload.get("content_block"))
            if block.get("type") == "text" and block.get("text"):
                return StreamChunk(provider=self.provider_id, content=block["text"])
            if block.get("type") != "tool_use":
                return None
            return StreamChunk(
                provider=self.provider_id,
                tool_calls=(ToolCallDelta(
                    index=payload.get("index"),
                    call_id=block.get("id") or None,
                    name=block.get("name") or None,
                ),),
            )

        if kind == "message_start":
            message = as_dict(payload.get("message"))
            usage = as_dict(message.get("usage"))
            return StreamChunk(
                provider=self.provider_id,
                metadata=ChunkMetadata(
                    model=message.get("model"),
                    response_id=message.get("id"),
                    prompt_tokens=usage.get("input_tokens"),
                ),
            )

        if kind == "message_delta":
            stop_reason = as_dict(payload.get("delta")).get("stop_reason")
            usage = as_dict(payload.get("usage"))
            return StreamChunk(
                provider=self.provider_id,
                finish_reason=self._finish_reason(stop_reason, False) if stop_reason else None,
                metadata=ChunkMetadata(completion_tokens=usage.get("output_tokens")),
            )

        if kind == "message_stop":
            return StreamChunk(provider=self.provider_id, done=True)

        if kind == "error":
            return self.error_chunk(normalize_error(None, payload, self.provider_id))

        # ping, content_block_stop
        return None

    # ==========================================================================
    # Model catalog
    # ==========================================================================

    async def get_models(self) -> List[str]:
        """
        Get list of available models from Anthropic API.

        Returns:
            List[str]: List of model identifiers.
        """
        if not self.client:
            return []

        try:
            models = await self.client.models.list()
            return [m.id for m in models.data]
        except Exception as exc:
            logger.warning("Could not list %s models: %s", self.provider_id, exc)
            return []
