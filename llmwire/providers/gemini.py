import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from google import genai

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
    WireRequest,
)
from ..utils import as_dict, as_list, clamp_temperature, generated_call_id, parse_arguments

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.ERROR,
    "RECITATION": FinishReason.ERROR,
    "BLOCKLIST": FinishReason.ERROR,
    "PROHIBITED_CONTENT": FinishReason.ERROR,
    "SPII": FinishReason.ERROR,
    "MALFORMED_FUNCTION_CALL": FinishReason.ERROR,
}


class GeminiAdapter(BaseProviderAdapter):
    """
    Adapter for the Google Gemini ``generateContent`` REST API.

    Gemini does not assign ids to function calls; ids are generated as
    ``gemini_<name>_<index>`` so repeated parses of the same payload agree.
    Function responses are matched by function name, which is why tool
    results carry (or are resolved to) the name of the call they answer.
    """

    provider_id = "gemini"
    display_name = "Gemini"
    default_base_url = GEMINI_BASE_URL
    continuation_mode = ContinuationMode.HISTORY
    connection_test_model = "gemini-2.0-flash"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        super().__init__(api_key, base_url)
        if api_key:
            self.client = genai.Client(api_key=api_key)
        else:
            self.client = None

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    # ==========================================================================
    # Requests
    # ==========================================================================

    def build_request(self, request: StandardRequest) -> WireRequest:
        """
        Build a ``generateContent`` request.

        Handles:
        - Role mapping (assistant -> model).
        - System instruction extraction.
        - Generation config and function declarations.

        Streaming requests target ``streamGenerateContent`` with ``alt=sse``
        so the response arrives as server-sent events.
        """
        request.validate()
        model = self._require_model(request).removeprefix("models/")
        system_instruction, contents = self._convert_messages(request.messages)

        body: Dict[str, Any] = {"contents": contents}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        generation_config = {
            "temperature": clamp_temperature(request.temperature),
            "maxOutputTokens": request.max_tokens,
        }
        generation_config = {k: v for k, v in generation_config.items() if v is not None}
        if generation_config:
            body["generationConfig"] = generation_config
        if request.tools:
            body["tools"] = self._convert_tools(request.tools)

        if request.stream:
            url = f"{self.base_url}/models/{model}:streamGenerateContent?alt=sse"
        else:
            url = f"{self.base_url}/models/{model}:generateContent"
        return self._wire(url, body, stream=request.stream)

    @staticmethod
    def _convert_messages(
        messages: Sequence[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Gemini ``contents``.

        Args:
            messages (List[Message]): Internal message list.

        Returns:
            Tuple containing:
            - system_instruction: Joined system prompt (or None)
            - contents: List of ``{role, parts}`` dicts
        """
        system_parts = []
        contents = []
        # call id -> function name, for tool results that do not carry a name
        call_names: Dict[str, str] = {}

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
                continue

            if msg.role == "tool":
                name = msg.name or call_names.get(msg.tool_call_id or "")
                if not name:
                    logger.warning("No function name for tool result %r", msg.tool_call_id)
                    name = "unknown"
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {
                            "name": name,
                            "response": {"result": msg.content},
                        },
                    }],
                })
                continue

            # Map roles: "assistant" -> "model"
            role = "model" if msg.role == "assistant" else "user"
            parts: List[Dict[str, Any]] = []
            if msg.content:
                parts.append({"text": msg.content})
            for tc in msg.tool_calls:
                call_names[tc.call_id] = tc.name
                parts.append({"functionCall": {"name": tc.name, "args": dict(tc.arguments)}})
            if not parts:
                parts.append({"text": ""})
            contents.append({"role": role, "parts": parts})

        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    @staticmethod
    def _convert_tools(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        function_declarations = [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": dict(tool.parameters),
            }
            for tool in tools
        ]
        return [{"functionDeclarations": function_declarations}]

    # ==========================================================================
    # Buffered responses
    # ==========================================================================

    def parse_payload(self, payload: Dict[str, Any]) -> StandardResponse:
        if payload.get("error"):
            return self.failure(normalize_error(None, payload, self.provider_id), raw=payload)

        candidates = as_list(payload.get("candidates"))
        block_reason = as_dict(payload.get("promptFeedback")).get("blockReason")
        if not candidates and block_reason:
            return self.failure(
                ErrorInfo(ErrorKind.INVALID_REQUEST, f"Prompt blocked by Gemini: {block_reason}"),
                raw=payload,
            )

        texts: List[str] = []
        finish: Optional[str] = None
        for candidate in candidates:
            candidate = as_dict(candidate)
            for part in as_list(as_dict(candidate.get("content")).get("parts")):
                part = as_dict(part)
                # Thought summaries are not part of the answer
                if isinstance(part.get("text"), str) and not part.get("thought"):
                    texts.append(part["text"])
            if candidate.get("finishReason"):
                finish = candidate["finishReason"]

        tool_calls = self.tool_calls_from_payload(payload)
        usage = as_dict(payload.get("usageMetadata"))
        return StandardResponse(
            success=True,
            provider=self.provider_id,
            content=self._join_text(texts),
            tool_calls=tuple(tool_calls),
            usage=self.normalize_usage(
                input_tokens=usage.get("promptTokenCount"),
                output_tokens=usage.get("candidatesTokenCount"),
                total_tokens=usage.get("totalTokenCount"),
            ),
            model=payload.get("modelVersion") or "",
            finish_reason=self._finish_reason(finish, bool(tool_calls)),
            response_id=payload.get("responseId"),
            raw=payload,
        )

    def tool_calls_from_payload(self, payload: Mapping[str, Any]) -> List[ToolCall]:
        tool_calls: List[ToolCall] = []
        for name, args in self._function_calls(payload):
            tool_calls.append(ToolCall(
                call_id=generated_call_id(self.provider_id, name, len(tool_calls)),
                name=name,
                arguments=parse_arguments(args),
            ))
        return tool_calls

    @staticmethod
    def _function_calls(payload: Mapping[str, Any]) -> List[Tuple[str, Any]]:
        calls = []
        for candidate in as_list(payload.get("candidates")):
            for part in as_list(as_dict(as_dict(candidate).get("content")).get("parts")):
                call = as_dict(as_dict(part).get("functionCall"))
                if call:
                    calls.append((call.get("name") or "", call.get("args")))
        return calls

    @staticmethod
    def _finish_reason(reason: Optional[str], has_tool_calls: bool) -> FinishReason:
        if reason is None:
            return FinishReason.TOOL_CALLS if has_tool_calls else FinishReason.UNKNOWN
        mapped = _FINISH_REASONS.get(reason, FinishReason.UNKNOWN)
        if mapped is FinishReason.STOP and has_tool_calls:
            return FinishReason.TOOL_CALLS
        return mapped

    # ==========================================================================
    # Streaming
    # ==========================================================================

    def parse_stream_chunk(
        self,
        payload: Mapping[str, Any],
        event: Optional[str] = None,
    ) -> Optional[StreamChunk]:
        """
        Translate one ``streamGenerateContent`` SSE payload.

        Every payload is a partial ``GenerateContentResponse``. Function
        calls always arrive whole, so each becomes a single delta carrying
        the full arguments; the decoder assigns their ids.
        """
        if payload.get("error"):
            return self.error_chunk(normalize_error(None, payload, self.provider_id))

        candidates = as_list(payload.get("candidates"))
        block_reason = as_dict(payload.get("promptFeedback")).get("blockReason")
        if not candidates and block_reason:
            return self.error_chunk(
                ErrorInfo(ErrorKind.INVALID_REQUEST, f"Prompt blocked by Gemini: {block_reason}")
            )

        texts: List[str] = []
        finish: Optional[str] = None
        for candidate in candidates:
            candidate = as_dict(candidate)
            for part in as_list(as_dict(candidate.get("content")).get("parts")):
                part = as_dict(part)
                if isinstance(part.get("text"), str) and not part.get("thought"):
                    texts.append(part["text"])
            if candidate.get("finishReason"):
                finish = candidate["finishReason"]

        deltas = tuple(
            ToolCallDelta(name=name, arguments_delta=json.dumps(as_dict(args)))
            for name, args in self._function_calls(payload)
        )
        content = self._join_text(texts)
        usage = as_dict(payload.get("usageMetadata"))
        if not content and not deltas and finish is None and not usage:
            return None

        return StreamChunk(
            provider=self.provider_id,
            content=content,
            tool_calls=deltas,
            done=finish is not None,
            finish_reason=self._finish_reason(finish, bool(deltas)) if finish else None,
            metadata=ChunkMetadata(
                model=payload.get("modelVersion"),
                response_id=payload.get("responseId"),
                prompt_tokens=usage.get("promptTokenCount"),
                completion_tokens=usage.get("candidatesTokenCount"),
                total_tokens=usage.get("totalTokenCount"),
            ),
        )

    # ==========================================================================
    # Model catalog
    # ==========================================================================

    async def get_models(self) -> List[str]:
        """
        Get list of available models from Gemini API.

        Only models that support ``generateContent`` are returned, without
        the ``models/`` resource prefix.
        """
        if not self.client:
            return []

        def _list():
            names = []
            for m in self.client.models.list():
                actions = getattr(m, "supported_actions", None)
                if actions and "generateContent" not in actions:
                    continue
                names.append(m.name.removeprefix("models/"))
            return names

        # The top-level genai client is synchronous
        try:
            return await asyncio.to_thread(_list)
        except Exception as exc:
            logger.warning("Could not list %s models: %s", self.provider_id, exc)
            return []
