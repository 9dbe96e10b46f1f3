import json

import pytest

from llmwire.errors import (
    AuthError,
    ErrorInfo,
    ErrorKind,
    LLMWireError,
    RateLimitedError,
    classify,
    error_for,
    extract_error_message,
    normalize_error,
)


class TestExtractErrorMessage:

    @pytest.mark.parametrize(
        "body, expected",
        [
            ({"error": {"message": "Invalid key", "type": "auth"}}, "Invalid key"),
            ({"error": {"details": ["a", "b"]}}, "a, b"),
            ({"error": {"code": "model_not_found"}}, "API error: model_not_found"),
            ({"error": "plain failure"}, "plain failure"),
            ({"message": "top level"}, "top level"),
            ({"detail": "Not Found"}, "Not Found"),
            ([{"error": {"message": "from list"}}], "from list"),
        ],
    )
    def test_shapes(self, body, expected):
        assert extract_error_message(json.dumps(body).encode()) == expected
        assert extract_error_message(body) == expected

    def test_plain_text_is_truncated(self):
        text = "x" * 600
        assert extract_error_message(text) == "x" * 500

    def test_nothing_usable(self):
        assert extract_error_message(b"") is None
        assert extract_error_message({"unrelated": 1}) is None


class TestClassify:

    @pytest.mark.parametrize(
        "status, kind",
        [
            (401, ErrorKind.AUTH_ERROR),
            (403, ErrorKind.AUTH_ERROR),
            (429, ErrorKind.RATE_LIMITED),
            (400, ErrorKind.INVALID_REQUEST),
            (500, ErrorKind.UPSTREAM_UNAVAILABLE),
            (529, ErrorKind.UPSTREAM_UNAVAILABLE),
            (418, ErrorKind.UNKNOWN),
        ],
    )
    def test_status_codes(self, status, kind):
        assert classify(status) is kind

    @pytest.mark.parametrize(
        "body, kind",
        [
            ({"error": {"type": "rate_limit_error"}}, ErrorKind.RATE_LIMITED),
            ({"error": {"status": "RESOURCE_EXHAUSTED"}}, ErrorKind.RATE_LIMITED),
            ({"error": {"code": "invalid_api_key"}}, ErrorKind.AUTH_ERROR),
            ({"error": {"type": "invalid_request_error"}}, ErrorKind.INVALID_REQUEST),
            ({"error": {"type": "overloaded_error"}}, ErrorKind.UPSTREAM_UNAVAILABLE),
            ({"error": {"type": "mystery"}}, ErrorKind.UNKNOWN),
        ],
    )
    def test_vendor_codes(self, body, kind):
        assert classify(None, body) is kind

    def test_rate_limit_status_wins_over_vendor_code(self):
        assert classify(429, {"error": {"type": "invalid_request_error"}}) is ErrorKind.RATE_LIMITED
        assert classify(503, {"error": {"type": "authentication_error"}}) is ErrorKind.UPSTREAM_UNAVAILABLE

    def test_gemini_bad_key_on_400_is_auth_error(self):
        body = {
            "error": {
                "code": 400,
                "message": "API key not valid. Please pass a valid API key.",
                "status": "INVALID_ARGUMENT",
                "details": [
                    {
                        "@type": "type.googleapis.com/google.rpc.ErrorInfo",
                        "reason": "API_KEY_INVALID",
                        "domain": "googleapis.com",
                    }
                ],
            }
        }
        assert classify(400, body) is ErrorKind.AUTH_ERROR
        assert classify(400, json.dumps(body).encode()) is ErrorKind.AUTH_ERROR
        info = normalize_error(400, body, "gemini")
        assert info.kind is ErrorKind.AUTH_ERROR
        assert info.message == "API key not valid. Please pass a valid API key."

    def test_auth_type_on_400_is_auth_error(self):
        body = {"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}
        assert classify(400, body) is ErrorKind.AUTH_ERROR

    def test_plain_400_is_invalid_request(self):
        assert classify(400, {"error": {"status": "INVALID_ARGUMENT"}}) is ErrorKind.INVALID_REQUEST


class TestNormalizeError:

    def test_generic_message(self):
        info = normalize_error(502, b"", "gemini")
        assert info == ErrorInfo(ErrorKind.UPSTREAM_UNAVAILABLE, "gemini API error (HTTP 502)", 502)

    def test_error_for_builds_matching_exception(self):
        exc = error_for(ErrorInfo(ErrorKind.RATE_LIMITED, "slow down", 429), provider="openai")

        assert isinstance(exc, RateLimitedError)
        assert isinstance(exc, LLMWireError)
        assert exc.status_code == 429
        assert exc.provider == "openai"
        assert exc.to_info() == ErrorInfo(ErrorKind.RATE_LIMITED, "slow down", 429)

    def test_exception_kind(self):
        assert AuthError("denied").kind is ErrorKind.AUTH_ERROR
        assert ErrorKind.AUTH_ERROR.value == "AuthError"
