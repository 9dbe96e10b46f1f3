"""
Incremental stream decoding.

Vendors stream server-sent events over arbitrary network reads: a read can
end in the middle of a line or even inside a multibyte UTF-8 sequence. The
pipeline is

    transport fragment -> SSEParser -> SSEEvent -> adapter -> StreamChunk

and is driven entirely by :meth:`StreamDecoder.feed`; nothing here blocks or
keeps timers.
"""
import codecs
import json
import logging
import re
from dataclasses import dataclass, fields, replace
from typing import Dict, List, Optional, Set, Union

from .errors import ErrorInfo, ErrorKind, normalize_error
from .providers.base import BaseProviderAdapter
from .types import (
    ChunkMetadata,
    FinishReason,
    StandardResponse,
    StreamChunk,
    ToolCall,
    ToolCallDelta,
)
from .utils import decode_json, generated_call_id, parse_arguments

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

_LINE_END = re.compile(r"\r\n|\r|\n")


# =============================================================================
# SSE framing
# =============================================================================

@dataclass(frozen=True)
class SSEEvent:
    """One dispatched server-sent event."""
    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_sentinel(self) -> bool:
        return self.data.strip() == DONE_SENTINEL


class SSEParser:
    """
    Push-driven server-sent events parser.

    Partial lines are buffered across ``feed`` calls. ``\\n``, ``\\r\\n`` and
    ``\\r`` line endings are accepted; multiple ``data:`` lines of one event
    are joined with ``\\n``; comment lines and unknown fields are ignored.

    Lines that are not SSE fields at all are kept in :attr:`unframed`, so a
    proxy that answers a stream request with a bare JSON error body can still
    be reported.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._unframed: List[str] = []
        self._reset()

    @property
    def unframed(self) -> str:
        return "\n".join(self._unframed)

    def _reset(self) -> None:
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None

    def feed(self, fragment: Union[bytes, str]) -> List[SSEEvent]:
        """
        Consume one transport fragment.

        Returns:
            List[SSEEvent]: Events completed by this fragment, in order.
        """
        if isinstance(fragment, (bytes, bytearray)):
            fragment = self._decoder.decode(bytes(fragment))
        self._buffer += fragment

        events = []
        while True:
            match = _LINE_END.search(self._buffer)
            if match is None:
                break
            # A trailing \r may be the first half of a \r\n split across reads
            if match.group() == "\r" and match.end() == len(self._buffer):
                break
            line = self._buffer[:match.start()]
            self._buffer = self._buffer[match.end():]
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[SSEEvent]:
        """Dispatch whatever is left once the transport has closed."""
        self._buffer += self._decoder.decode(b"", final=True)
        events = []
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r\n"), ""
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self._id = value
        elif name != "retry":
            self._unframed.append(line)
        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if not self._data:
            self._reset()
            return None
        event = SSEEvent(data="\n".join(self._data), event=self._event, id=self._id)
        self._reset()
        return event


# =============================================================================
# Per-turn decoder
# =============================================================================

class StreamDecoder:
    """
    Turn a vendor byte stream into :class:`StreamChunk` values.

    One decoder serves exactly one streamed turn. It guarantees a single
    ``done`` chunk: anything arriving after it is ignored.

    Args:
        adapter (BaseProviderAdapter): Adapter of the provider being streamed.
    """

    def __init__(self, adapter: BaseProviderAdapter):
        self.adapter = adapter
        self._parser = SSEParser()
        self._done = False
        # vendor index -> call id, for argument fragments that omit the id
        self._call_ids: Dict[int, str] = {}
        self._seen_ids: Set[str] = set()

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, fragment: Union[bytes, str]) -> List[StreamChunk]:
        return self._route_all(self._parser.feed(fragment))

    def close(self) -> List[StreamChunk]:
        """
        Flush the parser after the transport closed.

        When the turn never completed and the body held a bare JSON error
        object instead of events, that error becomes the terminal chunk.
        """
        chunks = self._route_all(self._parser.flush())
        if not self._done:
            chunk = self._unframed_error()
            if chunk is not None:
                self._done = True
                chunks.append(chunk)
        return chunks

    def _unframed_error(self) -> Optional[StreamChunk]:
        text = self._parser.unframed
        if not text:
            return None
        try:
            payload = decode_json(text)
        except ValueError:
            return None
        if not isinstance(payload, dict) or "error" not in payload:
            return None
        logger.warning("%s stream answered with an error body", self.adapter.provider_id)
        return self.adapter.error_chunk(normalize_error(None, payload, self.adapter.provider_id))

    def _route_all(self, events: List[SSEEvent]) -> List[StreamChunk]:
        chunks = []
        for event in events:
            chunk = self._route(event)
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def _route(self, event: SSEEvent) -> Optional[StreamChunk]:
        if self._done:
            logger.debug("Ignoring %s event after stream completion", self.adapter.provider_id)
            return None

        if event.is_sentinel:
            chunk = self.adapter.sentinel_chunk()
        else:
            try:
                payload = json.loads(event.data)
            except json.JSONDecodeError as exc:
                logger.warning(
                    "Dropping undecodable %s stream payload: %s", self.adapter.provider_id, exc
                )
                return None
            if not isinstance(payload, dict):
                logger.warning(
                    "Dropping non-object %s stream payload", self.adapter.provider_id
                )
                return None
            chunk = self.adapter.parse_stream_chunk(payload, event.event)

        if chunk is None:
            return None
        if chunk.tool_calls:
            chunk = replace(chunk, tool_calls=tuple(self._resolve(d) for d in chunk.tool_calls))
        if chunk.done:
            self._done = True
        return chunk

    def _resolve(self, delta: ToolCallDelta) -> ToolCallDelta:
        if delta.call_id:
            if delta.index is not None:
                self._call_ids[delta.index] = delta.call_id
            self._seen_ids.add(delta.call_id)
            return delta

        if delta.index is not None and delta.index in self._call_ids:
            return replace(delta, call_id=self._call_ids[delta.index])

        call_id = generated_call_id(
            self.adapter.provider_id, delta.name or "call", len(self._seen_ids)
        )
        self._seen_ids.add(call_id)
        if delta.index is not None:
            self._call_ids[delta.index] = call_id
        return replace(delta, call_id=call_id)


# =============================================================================
# Caller-side accumulation
# =============================================================================

class StreamAccumulator:
    """
    Fold the chunks of one streamed turn into a summary response.

    Text is concatenated in arrival order; tool-call argument fragments are
    concatenated per call id; metadata fields keep their latest reported
    value.
    """

    def __init__(self, provider: str):
        self.provider = provider
        self.done = False
        self.finish_reason: Optional[FinishReason] = None
        self.error: Optional[ErrorInfo] = None
        self.metadata = ChunkMetadata()
        self._content: List[str] = []
        self._calls: Dict[str, Dict[str, object]] = {}

    def add(self, chunk: StreamChunk) -> None:
        if chunk.content:
            self._content.append(chunk.content)
        for delta in chunk.tool_calls:
            key = delta.call_id or f"index_{delta.index}"
            entry = self._calls.setdefault(key, {"name": None, "arguments": []})
            if delta.name:
                entry["name"] = delta.name
            if delta.arguments_delta:
                entry["arguments"].append(delta.arguments_delta)
        self.metadata = self._merge(self.metadata, chunk.metadata)
        if chunk.finish_reason is not None:
            self.finish_reason = chunk.finish_reason
        if chunk.error is not None:
            self.error = chunk.error
        if chunk.done:
            self.done = True

    def fail(self, info: ErrorInfo) -> None:
        """Record a failure that happened outside the stream (transport, HTTP)."""
        self.error = info

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [
            ToolCall(
                call_id=call_id,
                name=entry["name"] or "",
                arguments=parse_arguments("".join(entry["arguments"])),
            )
            for call_id, entry in self._calls.items()
        ]

    def to_response(self) -> StandardResponse:
        """
        Build the summary of the turn.

        A turn whose stream ended without a ``done`` chunk is reported as
        failed with ``UpstreamUnavailable``.
        """
        tool_calls = tuple(self.tool_calls)
        error = self.error
        if error is None and not self.done:
            error = ErrorInfo(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"{self.provider} stream ended before completion",
            )

        finish = self.finish_reason
        if error is not None:
            finish = FinishReason.ERROR
        elif tool_calls and finish in (None, FinishReason.STOP):
            finish = FinishReason.TOOL_CALLS
        elif finish is None:
            finish = FinishReason.STOP

        meta = self.metadata
        return StandardResponse(
            success=error is None,
            provider=self.provider,
            content=self.content,
            tool_calls=tool_calls,
            usage=BaseProviderAdapter.normalize_usage(
                input_tokens=meta.prompt_tokens,
                output_tokens=meta.completion_tokens,
                total_tokens=meta.total_tokens,
            ),
            model=meta.model or "",
            finish_reason=finish,
            error=error,
            response_id=meta.response_id,
        )

    @staticmethod
    def _merge(current: ChunkMetadata, update: ChunkMetadata) -> ChunkMetadata:
        changes = {
            f.name: getattr(update, f.name)
            for f in fields(ChunkMetadata)
            if getattr(update, f.name) is not None
        }
        return replace(current, **changes) if changes else current
