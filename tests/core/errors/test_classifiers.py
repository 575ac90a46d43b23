"""
Tests for the query-service error classifier.
"""

import asyncio

import pytest

from core.errors import (
    KUSTO_ERROR_CODES,
    AuthError,
    KustoErrorClassifier,
    PermanentError,
    ThrottlingError,
    TransientError,
)
from core.errors.exceptions import (
    ConnectionError,
    KustoError,
    KustoQueryError,
    TimeoutError,
)


class TestClassifyResponse:

    def test_syntax_error_code(self):
        body = '{"error": {"code": "BadRequest_SyntaxError", "message": "Syntax error"}}'

        error = KustoErrorClassifier.classify_response(400, body)

        assert isinstance(error, KustoQueryError)
        assert not error.is_retryable
        assert error.context["error_code"] == "BadRequest_SyntaxError"
        assert error.context["http_status"] == 400

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("Unauthorized", AuthError),
            ("Forbidden", PermanentError),
            ("LimitsExceeded", PermanentError),
            ("ServiceUnavailable", KustoError),
            ("InternalServiceError", KustoError),
            ("SEM0100", KustoQueryError),
        ],
    )
    def test_known_codes(self, code, expected):
        error = KustoErrorClassifier.classify_response(500, f'{{"error": {{"code": "{code}"}}}}')

        assert type(error) is expected
        assert KUSTO_ERROR_CODES[code]

    def test_throttling_with_retry_after_ms(self):
        error = KustoErrorClassifier.classify_response(
            429, "TooManyRequests", headers={"x-ms-retry-after-ms": "1500"}
        )

        assert isinstance(error, ThrottlingError)
        assert error.retry_after == 1.5

    def test_throttling_by_status(self):
        error = KustoErrorClassifier.classify_response(
            429, "slow down", headers={"Retry-After": "7"}
        )

        assert isinstance(error, ThrottlingError)
        assert error.retry_after == 7.0

    def test_invalid_retry_after_ignored(self):
        error = KustoErrorClassifier.classify_response(
            429, "slow down", headers={"Retry-After": "soon"}
        )

        assert error.retry_after is None

    @pytest.mark.parametrize(
        "status,expected",
        [(401, AuthError), (404, PermanentError), (502, KustoError), (503, KustoError)],
    )
    def test_by_status(self, status, expected):
        assert type(KustoErrorClassifier.classify_response(status, "")) is expected

    def test_semantic_error_without_code(self):
        error = KustoErrorClassifier.classify_response(400, "Semantic error: 'Uri' not found")

        assert isinstance(error, KustoQueryError)

    def test_context_merged_and_body_truncated(self):
        error = KustoErrorClassifier.classify_response(
            503, "x" * 2000, context={"database": "db"}
        )

        assert error.context["database"] == "db"
        assert error.context["service"] == "kusto"
        assert len(error.message) < 600


class TestClassifyException:

    def test_passes_through_typed_errors(self):
        original = KustoQueryError("bad query")

        result = KustoErrorClassifier.classify_exception(original, {"attempt": 2})

        assert result is original
        assert result.context["attempt"] == 2

    def test_timeout(self):
        error = KustoErrorClassifier.classify_exception(asyncio.TimeoutError())

        assert isinstance(error, TimeoutError)
        assert error.is_retryable

    def test_connection(self):
        error = KustoErrorClassifier.classify_exception(OSError("connection refused"))

        assert isinstance(error, ConnectionError)

    def test_credential_failure(self):
        class ClientAuthenticationCredentialError(Exception):
            pass

        error = KustoErrorClassifier.classify_exception(
            ClientAuthenticationCredentialError("no account")
        )

        assert isinstance(error, AuthError)
        assert error.should_refresh_auth

    def test_permanent(self):
        error = KustoErrorClassifier.classify_exception(RuntimeError("403 forbidden"))

        assert isinstance(error, PermanentError)

    def test_unknown_becomes_kusto_error(self):
        error = KustoErrorClassifier.classify_exception(RuntimeError("odd"), {"operation": "x"})

        assert isinstance(error, KustoError)
        assert isinstance(error, TransientError)
        assert error.context == {"service": "kusto", "operation": "x"}
        assert isinstance(error.cause, RuntimeError)
