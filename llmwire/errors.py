"""
Error taxonomy and HTTP status / vendor error normalization.

Every vendor shapes its error bodies differently. OpenAI and Anthropic nest a
``message`` and a ``type``/``code`` under ``error``, Gemini adds a gRPC-style
``status`` string, and proxies occasionally answer with a bare string or a
plain-text page. This module folds all of them into one closed set of
:class:`ErrorKind` values plus a human readable message.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type, Union


class ErrorKind(str, Enum):
    """Closed error taxonomy shared by every provider."""

    UNKNOWN_PROVIDER = "UnknownProvider"
    INVALID_REQUEST = "InvalidRequest"
    AUTH_ERROR = "AuthError"
    RATE_LIMITED = "RateLimited"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    MALFORMED_PAYLOAD = "MalformedPayload"
    MISSING_CONTINUATION_CONTEXT = "MissingContinuationContext"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ErrorInfo:
    """
    Normalized description of a failed turn.

    Attributes:
        kind: Taxonomy entry.
        message: Best message found in the vendor body (or a generic one).
        status_code: HTTP status when the failure came from the wire.
    """
    kind: ErrorKind
    message: str
    status_code: Optional[int] = None


# =============================================================================
# Exceptions
# =============================================================================

class LLMWireError(Exception):
    """Base exception for all llmwire errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.hint = hint

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=str(self), status_code=self.status_code)


class UnknownProviderError(LLMWireError):
    """Provider id is not present in the registry."""

    kind = ErrorKind.UNKNOWN_PROVIDER


class InvalidRequestError(LLMWireError):
    """Malformed standard request or a vendor-side validation failure."""

    kind = ErrorKind.INVALID_REQUEST


class AuthError(LLMWireError):
    """Credentials were rejected (HTTP 401/403)."""

    kind = ErrorKind.AUTH_ERROR


class RateLimitedError(LLMWireError):
    """Provider rate-limited the request (HTTP 429)."""

    kind = ErrorKind.RATE_LIMITED


class UpstreamUnavailableError(LLMWireError):
    """Provider failed or could not be reached (HTTP 5xx, transport failure)."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class MalformedPayloadError(LLMWireError):
    """Response body could not be decoded."""

    kind = ErrorKind.MALFORMED_PAYLOAD


class MissingContinuationContextError(LLMWireError):
    """Continuation context lacks what the provider needs to resume a turn."""

    kind = ErrorKind.MISSING_CONTINUATION_CONTEXT


class UnknownError(LLMWireError):
    """Failure that fits no other kind."""

    kind = ErrorKind.UNKNOWN


_EXCEPTIONS: Dict[ErrorKind, Type[LLMWireError]] = {
    cls.kind: cls
    for cls in (
        UnknownProviderError,
        InvalidRequestError,
        AuthError,
        RateLimitedError,
        UpstreamUnavailableError,
        MalformedPayloadError,
        MissingContinuationContextError,
        UnknownError,
    )
}


def error_for(info: ErrorInfo, provider: Optional[str] = None) -> LLMWireError:
    """Build the exception matching an ``ErrorInfo``."""
    cls = _EXCEPTIONS.get(info.kind, UnknownError)
    return cls(info.message, status_code=info.status_code, provider=provider)


# =============================================================================
# Vendor error codes
# =============================================================================

# Matched case-insensitively against error.type / error.code / error.status
# and error.details[].reason.
_AUTH_CODES = {
    "api_key_invalid",
    "api_key_expired",
    "authentication_error",
    "permission_error",
    "invalid_api_key",
    "unauthenticated",
    "permission_denied",
    "unauthorized",
    "forbidden",
}
_RATE_LIMIT_CODES = {
    "rate_limit_error",
    "rate_limit_exceeded",
    "resource_exhausted",
    "insufficient_quota",
    "too_many_requests",
}
_INVALID_CODES = {
    "invalid_request_error",
    "invalid_argument",
    "invalid_request",
    "failed_precondition",
    "context_length_exceeded",
    "bad_request",
}
_UPSTREAM_CODES = {
    "overloaded_error",
    "api_error",
    "server_error",
    "internal",
    "unavailable",
    "deadline_exceeded",
    "service_unavailable",
}


def _decode_body(body: Any) -> Any:
    """Best-effort JSON decode; non-JSON text is returned as a stripped string."""
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        text = body.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return body


def _error_object(body: Any) -> Any:
    if isinstance(body, list) and body:
        body = body[0]
    if isinstance(body, dict):
        return body.get("error")
    return None


def extract_error_message(body: Union[bytes, str, Dict[str, Any], list, None]) -> Optional[str]:
    """
    Pull a human readable message out of an arbitrary vendor error body.

    Shapes are tried in a fixed order:

    1. ``{"error": {"message": ...}}`` (OpenAI, Anthropic, Gemini)
    2. ``{"error": {"details": ...}}``
    3. ``{"error": {"code" | "type" | "status": ...}}``
    4. ``{"error": "bare string"}``
    5. ``{"message": ...}`` / ``{"detail": ...}`` at the top level
    6. a list body, using its first element
    7. a plain-text body

    Returns:
        Optional[str]: The message, or None when nothing usable was found.
    """
    decoded = _decode_body(body)
    if decoded is None:
        return None
    if isinstance(decoded, str):
        return decoded[:500]
    if isinstance(decoded, list):
        return extract_error_message(decoded[0]) if decoded else None
    if not isinstance(decoded, dict):
        return None

    error = decoded.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
        details = error.get("details")
        if details:
            if isinstance(details, list):
                return ", ".join(str(d) for d in details)
            return str(details)
        for key in ("code", "type", "status"):
            value = error.get(key)
            if value:
                return f"API error: {value}"
    elif isinstance(error, str) and error:
        return error

    for key in ("message", "detail"):
        value = decoded.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _vendor_codes(body: Any) -> list:
    error = _error_object(_decode_body(body))
    codes = []
    if isinstance(error, dict):
        for key in ("type", "code", "status"):
            value = error.get(key)
            if isinstance(value, str):
                codes.append(value.lower())
        for detail in error.get("details") or []:
            if isinstance(detail, dict) and isinstance(detail.get("reason"), str):
                codes.append(detail["reason"].lower())
    elif isinstance(error, str):
        codes.append(error.lower())
    return codes


def classify(status: Optional[int], body: Any = None) -> ErrorKind:
    """
    Map an HTTP status and vendor body to an ``ErrorKind``.

    401/403, 429 and 5xx are decided by the status alone. Otherwise an
    auth-shaped vendor code wins (Gemini rejects a bad key with a 400 and an
    ``API_KEY_INVALID`` reason), then 400 means an invalid request, and the
    remaining vendor codes decide the rest (404, 409, 422, errors carried
    inside a 200 stream, ...).
    """
    if status in (401, 403):
        return ErrorKind.AUTH_ERROR
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status is not None and 500 <= status <= 599:
        return ErrorKind.UPSTREAM_UNAVAILABLE

    codes = _vendor_codes(body)
    if any(code in _AUTH_CODES for code in codes):
        return ErrorKind.AUTH_ERROR
    if status == 400:
        return ErrorKind.INVALID_REQUEST

    for code in codes:
        if code in _AUTH_CODES:
            return ErrorKind.AUTH_ERROR
        if code in _RATE_LIMIT_CODES:
            return ErrorKind.RATE_LIMITED
        if code in _INVALID_CODES:
            return ErrorKind.INVALID_REQUEST
        if code in _UPSTREAM_CODES:
            return ErrorKind.UPSTREAM_UNAVAILABLE
    return ErrorKind.UNKNOWN


def normalize_error(status: Optional[int], body: Any, provider: str) -> ErrorInfo:
    """
    Normalize a vendor failure into an ``ErrorInfo``.

    Args:
        status (int, optional): HTTP status code, None for errors reported
            inside a stream.
        body: Raw or decoded vendor error body.
        provider (str): Provider id, used for the fallback message.

    Returns:
        ErrorInfo: Kind, message and status.
    """
    message = extract_error_message(body)
    if not message:
        message = f"{provider} API error" + (f" (HTTP {status})" if status is not None else "")
    return ErrorInfo(kind=classify(status, body), message=message, status_code=status)
