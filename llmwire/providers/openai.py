import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openai import AsyncOpenAI

from .base import BaseProviderAdapter, ContinuationMode
from ..errors import ErrorInfo, ErrorKind, normalize_error
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
    ToolResult,
    WireRequest,
)
from ..utils import as_dict, as_list, clamp_temperature, generated_call_id, parse_arguments

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"

_CHAT_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.ERROR,
}


class OpenAIAdapter(BaseProviderAdapter):
    """
    Adapter for the OpenAI Responses API.

    The conversation state lives on the server: a tool-result continuation
    only references the previous response id. Payloads in the older
    chat-completions shape (``choices``) are understood as well, since several
    OpenAI-compatible vendors still answer with them.
    """

    provider_id = "openai"
    display_name = "OpenAI"
    default_base_url = OPENAI_BASE_URL
    continuation_mode = ContinuationMode.RESPONSE_ID
    connection_test_model = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider_name: Optional[str] = None,
        organization: Optional[str] = None,
    ):
        super().__init__(api_key, base_url, provider_name)
        self.organization = organization
        self.client = AsyncOpenAI(api_key=api_key, base_url=self.base_url) if api_key else None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/responses"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    # ==========================================================================
    # Requests
    # ==========================================================================

    def build_request(self, request: StandardRequest) -> WireRequest:
        request.validate()
        body: Dict[str, Any] = {
            "model": self._require_model(request),
            "input": self._convert_messages(request.messages),
        }
        body.update(self._generation_options(request))
        if request.stream:
            body["stream"] = True
        return self._wire(self.endpoint, body, stream=request.stream)

    def build_response_continuation(
        self,
        response_id: str,
        tool_results: Sequence[ToolResult],
        template: Optional[StandardRequest] = None,
    ) -> WireRequest:
        """
        Build the follow-up request that answers tool calls of a stored response.

        Args:
            response_id (str): Id of the response that requested the tools.
            tool_results (List[ToolResult]): Results in caller order.
            template (StandardRequest, optional): Supplies model, tools and
                generation controls. Without it only the id and the results
                are sent, and the server reuses the stored settings.

        Returns:
            WireRequest: The continuation request.
        """
        body: Dict[str, Any] = {}
        stream = False
        if template is not None:
            if template.model:
                body["model"] = template.model
            body.update(self._generation_options(template))
            stream = template.stream
        body["previous_response_id"] = response_id
        body["input"] = [
            {
                "type": "function_call_output",
                "call_id": result.tool_call_id,
                "output": result.output,
            }
            for result in tool_results
        ]
        if stream:
            body["stream"] = True
        return self._wire(self.endpoint, body, stream=stream)

    def _generation_options(self, request: StandardRequest) -> Dict[str, Any]:
        optional_params = {
            "max_output_tokens": request.max_tokens,
            "temperature": clamp_temperature(request.temperature),
            "tools": self._convert_tools(request.tools) or None,
        }
        return {k: v for k, v in optional_params.items() if v is not None}

    @staticmethod
    def _convert_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        # Responses API tools are flat, without the chat-completions "function" wrapper
        return [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description,
                "parameters": dict(tool.parameters),
            }
            for tool in tools
        ]

    @staticmethod
    def _convert_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
        """
        Convert messages to Responses API input items.

        Handles:
        - Plain role/content messages (system, user, assistant)
        - Assistant tool calls, replayed as ``function_call`` items
        - Tool results, sent as ``function_call_output`` items

        Args:
            messages (List[Message]): Internal message list.

        Returns:
            List[Dict]: Responses API input items.
        """
        items: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                items.append({
                    "type": "function_call_output",
                    "call_id": msg.tool_call_id or "",
                    "output": msg.content,
                })
                continue

            if msg.content or not msg.tool_calls:
                items.append({"role": msg.role, "content": msg.content})

            for tc in msg.tool_calls:
                items.append({
                    "type": "function_call",
                    "call_id": tc.call_id,
                    "name": tc.name,
                    "arguments": tc.arguments_json(),
                })
        return items

    # ==========================================================================
    # Buffered responses
    # ==========================================================================

    def parse_payload(self, payload: Dict[str, Any]) -> StandardResponse:
        if isinstance(payload.get("choices"), list):
            return self._parse_chat_completion(payload)
        if isinstance(payload.get("output"), list) or payload.get("object") == "response":
            return self._parse_responses(payload)
        if payload.get("error"):
            return self.failure(normalize_error(None, payload, self.provider_id), raw=payload)
        return self.failure(
            ErrorInfo(ErrorKind.MALFORMED_PAYLOAD, f"Invalid {self.provider_id} response format"),
            raw=payload,
        )

    def _parse_responses(self, payload: Dict[str, Any]) -> StandardResponse:
        status = payload.get("status")
        if status == "failed" or (payload.get("error") and status != "completed"):
            error = as_dict(payload.get("error"))
            return self.failure(
                normalize_error(None, {"error": error} if error else payload, self.provider_id),
                raw=payload,
            )

        texts: List[str] = []
        for item in as_list(payload.get("output")):
            item = as_dict(item)
            if item.get("type") == "message":
                for part in as_list(item.get("content")):
                    part = as_dict(part)
                    if part.get("type") in ("output_text", "text"):
                        texts.append(part.get("text") or "")
            elif item.get("type") == "output_text":
                texts.append(item.get("text") or "")

        tool_calls = self.tool_calls_from_payload(payload)
        usage = as_dict(payload.get("usage"))
        return StandardResponse(
            success=True,
            provider=self.provider_id,
            content=self._join_text(texts),
            tool_calls=tuple(tool_calls),
            usage=self.normalize_usage(
                input_tokens=usage.get("input_tokens"),
                output_tokens=usage.get("output_tokens"),
                total_tokens=usage.get("total_tokens"),
            ),
            model=payload.get("model") or "",
            finish_reason=self._responses_finish_reason(payload, bool(tool_calls)),
            response_id=payload.get("id"),
            raw=payload,
        )

    def _parse_chat_completion(self, payload: Dict[str, Any]) -> StandardResponse:
        texts: List[str] = []
        finish: Optional[str] = None
        for choice in as_list(payload.get("choices")):
            choice = as_dict(choice)
            texts.append(self._content_text(as_dict(choice.get("message")).get("content")))
            if choice.get("finish_reason"):
                finish = choice["finish_reason"]

        tool_calls = self.tool_calls_from_payload(payload)
        usage = as_dict(payload.get("usage"))
        return StandardResponse(
            success=True,
            provider=self.provider_id,
            content=self._join_text(texts),
            tool_calls=tuple(tool_calls),
            usage=self.normalize_usage(
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
            ),
            model=payload.get("model") or "",
            finish_reason=self._chat_finish_reason(finish, bool(tool_calls)),
            response_id=payload.get("id"),
            raw=payload,
        )

    def tool_calls_from_payload(self, payload: Mapping[str, Any]) -> List[ToolCall]:
        # Stream terminal events wrap the response object
        if isinstance(payload.get("response"), dict):
            payload = payload["response"]

        calls: List[ToolCall] = []
        for item in as_list(payload.get("output")):
            item = as_dict(item)
            if item.get("type") != "function_call":
                continue
            function = as_dict(item.get("function_call"))
            name = item.get("name") or function.get("name") or ""
            raw_args = item["arguments"] if "arguments" in item else function.get("arguments")
            calls.append(ToolCall(
                call_id=item.get("call_id") or item.get("id")
                or generated_call_id(self.provider_id, name, len(calls)),
                name=name,
                arguments=parse_arguments(raw_args),
            ))

        for choice in as_list(payload.get("choices")):
            message = as_dict(as_dict(choice).get("message"))
            for tc in as_list(message.get("tool_calls")):
                tc = as_dict(tc)
                function = as_dict(tc.get("function"))
                name = function.get("name") or ""
                calls.append(ToolCall(
                    call_id=tc.get("id") or generated_call_id(self.provider_id, name, len(calls)),
                    name=name,
                    arguments=parse_arguments(function.get("arguments")),
                ))
        return calls

    @staticmethod
    def _content_text(content: Any) -> str:
        # Handle both list and string content
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                part.get("text", "") for part in content
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            )
        return ""

    @staticmethod
    def _responses_finish_reason(response: Mapping[str, Any], has_tool_calls: bool) -> FinishReason:
        status = response.get("status")
        if status == "incomplete":
            reason = as_dict(response.get("incomplete_details")).get("reason")
            return FinishReason.LENGTH if reason == "max_output_tokens" else FinishReason.UNKNOWN
        if status == "failed":
            return FinishReason.ERROR
        if has_tool_calls:
            return FinishReason.TOOL_CALLS
        if status in (None, "completed"):
            return FinishReason.STOP
        return FinishReason.UNKNOWN

    @staticmethod
    def _chat_finish_reason(reason: Optional[str], has_tool_calls: bool) -> FinishReason:
        if reason is None:
            return FinishReason.TOOL_CALLS if has_tool_calls else FinishReason.UNKNOWN
        return _CHAT_FINISH_REASONS.get(reason, FinishReason.UNKNOWN)

    # ==========================================================================
    # Streaming
    # ==========================================================================

    def parse_stream_chunk(
        self,
        payload: Mapping[str, Any],
        event: Optional[str] = None,
    ) -> Optional[StreamChunk]:
        """
        Translate one streamed event.

        Responses API events are typed (``response.output_text.delta``,
        ``response.completed``, ...) and carry their own terminal events.
        Chat-completions chunks are untyped and the stream ends with the
        ``[DONE]`` sentinel, which the decoder handles.
        """
        if "choices" in payload:
            return self._parse_chat_chunk(payload)

        kind = payload.get("type") or event
        if kind == "response.output_text.delta":
            delta = payload.get("delta")
            if not isinstance(delta, str) or not delta:
                return None
            return StreamChunk(provider=self.provider_id, content=delta)

        if kind == "response.output_item.added":
            item = as_dict(payload.get("item"))
            if item.get("type") != "function_call":
                return None
            return StreamChunk(
                provider=self.provider_id,
                tool_calls=(ToolCallDelta(
                    index=payload.get("output_index"),
                    call_id=item.get("call_id") or None,
                    name=item.get("name") or None,
                    arguments_delta=item.get("arguments") or "",
                ),),
            )

        if kind == "response.function_call_arguments.delta":
            delta = payload.get("delta")
            if not isinstance(delta, str) or not delta:
                return None
            return StreamChunk(
                provider=self.provider_id,
                tool_calls=(ToolCallDelta(
                    index=payload.get("output_index"),
                    arguments_delta=delta,
                ),),
            )

        if kind == "response.created":
            response = as_dict(payload.get("response"))
            return StreamChunk(
                provider=self.provider_id,
                metadata=ChunkMetadata(
                    model=response.get("model"),
                    response_id=response.get("id"),
                ),
            )

        if kind in ("response.completed", "response.incomplete"):
            response = as_dict(payload.get("response"))
            usage = as_dict(response.get("usage"))
            has_tool_calls = any(
                as_dict(item).get("type") == "function_call"
                for item in as_list(response.get("output"))
            )
            return StreamChunk(
                provider=self.provider_id,
                done=True,
                finish_reason=self._responses_finish_reason(response, has_tool_calls),
                metadata=self._usage_metadata(
                    response.get("model"),
                    response.get("id"),
                    usage.get("input_tokens"),
                    usage.get("output_tokens"),
                    usage.get("total_tokens"),
                ),
            )

        if kind == "response.failed":
            error = as_dict(as_dict(payload.get("response")).get("error"))
            return self.error_chunk(normalize_error(None, {"error": error}, self.provider_id))

        if kind == "error":
            error = payload.get("error") if isinstance(payload.get("error"), dict) else payload
            return self.error_chunk(normalize_error(None, {"error": error}, self.provider_id))

        return None

    def _parse_chat_chunk(self, payload: Mapping[str, Any]) -> Optional[StreamChunk]:
        texts: List[str] = []
        deltas: List[ToolCallDelta] = []
        finish: Optional[str] = None
        for choice in as_list(payload.get("choices")):
            choice = as_dict(choice)
            delta = as_dict(choice.get("delta"))
            texts.append(self._content_text(delta.get("content")))
            for tc in as_list(delta.get("tool_calls")):
                tc = as_dict(tc)
                function = as_dict(tc.get("function"))
                deltas.append(ToolCallDelta(
                    index=tc.get("index"),
                    call_id=tc.get("id") or None,
                    name=function.get("name") or None,
                    arguments_delta=function.get("arguments") or "",
                ))
            if choice.get("finish_reason"):
                finish = choice["finish_reason"]

        content = self._join_text(texts)
        usage = payload.get("usage")
        if not content and not deltas and finish is None and not usage:
            return None

        usage = as_dict(usage)
        return StreamChunk(
            provider=self.provider_id,
            content=content,
            tool_calls=tuple(deltas),
            finish_reason=self._chat_finish_reason(finish, False) if finish else None,
            metadata=self._usage_metadata(
                payload.get("model"),
                payload.get("id"),
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                usage.get("total_tokens"),
            ),
        )

    @staticmethod
    def _usage_metadata(model, response_id, prompt, completion, total) -> ChunkMetadata:
        if total is None and (prompt is not None or completion is not None):
            total = (prompt or 0) + (completion or 0)
        return ChunkMetadata(
            model=model,
            response_id=response_id,
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total,
        )

    # ==========================================================================
    # Model catalog
    # ==========================================================================

    async def get_models(self) -> List[str]:
        """
        Get list of available models from the provider API.

        Returns:
            List[str]: List of model ids. Empty if the client is not
                configured or the API call fails.
        """
        if not self.client:
            return []

        try:
            models = await self.client.models.list()
            return [m.id for m in models.data]
        except Exception as exc:
            logger.warning("Could not list %s models: %s", self.provider_id, exc)
            return []
