"""
Tests for the exception hierarchy and classification helpers.
"""

import pytest

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    DecodeError,
    ErrorCategory,
    KustoError,
    KustoQueryError,
    LogScanError,
    PermanentError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    UnsupportedTypeError,
    classify_exception,
    classify_http_status,
)


class TestLogScanError:

    def test_message_and_defaults(self):
        error = LogScanError("something failed")

        assert error.message == "something failed"
        assert error.cause is None
        assert error.context == {}
        assert error.category == ErrorCategory.UNKNOWN
        assert str(error) == "something failed"

    def test_str_includes_cause(self):
        cause = ValueError("bad value")
        error = LogScanError("wrapped", cause=cause, context={"url": "https://a"})

        assert str(error) == "wrapped | Caused by: bad value"
        assert error.context == {"url": "https://a"}

    def test_unknown_is_retryable(self):
        assert LogScanError("x").is_retryable


class TestCategories:

    @pytest.mark.parametrize(
        "error_class,category,retryable",
        [
            (AuthError, ErrorCategory.AUTH, True),
            (TransientError, ErrorCategory.TRANSIENT, True),
            (KustoError, ErrorCategory.TRANSIENT, True),
            (TimeoutError, ErrorCategory.TRANSIENT, True),
            (ConnectionError, ErrorCategory.TRANSIENT, True),
            (PermanentError, ErrorCategory.PERMANENT, False),
            (KustoQueryError, ErrorCategory.PERMANENT, False),
            (DecodeError, ErrorCategory.PERMANENT, False),
        ],
    )
    def test_category(self, error_class, category, retryable):
        error = error_class("x")

        assert error.category == category
        assert error.is_retryable is retryable
        assert isinstance(error, LogScanError)

    def test_auth_requests_refresh(self):
        assert AuthError("expired").should_refresh_auth
        assert not TransientError("blip").should_refresh_auth

    def test_throttling_retry_after(self):
        error = ThrottlingError("slow down", retry_after=2.5)

        assert error.retry_after == 2.5
        assert isinstance(error, TransientError)

    def test_timeout_does_not_shadow_builtin_catching(self):
        # The domain TimeoutError is a LogScanError, not the builtin
        assert not issubclass(TimeoutError, OSError)


class TestUnsupportedTypeError:

    def test_message_and_attributes(self):
        error = UnsupportedTypeError("dynamic", column="Payload")

        assert str(error) == "No type mapping for type 'dynamic' (column 'Payload')"
        assert error.declared_type == "dynamic"
        assert error.column == "Payload"
        assert error.context == {"declared_type": "dynamic", "column": "Payload"}
        assert isinstance(error, DecodeError)

    def test_without_column(self):
        assert str(UnsupportedTypeError("guid")) == "No type mapping for type 'guid'"


class TestClassifyHttpStatus:

    @pytest.mark.parametrize(
        "status,category",
        [
            (200, ErrorCategory.UNKNOWN),
            (401, ErrorCategory.AUTH),
            (403, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (429, ErrorCategory.TRANSIENT),
            (500, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
            (302, ErrorCategory.UNKNOWN),
        ],
    )
    def test_status(self, status, category):
        assert classify_http_status(status) == category


class TestClassifyException:

    def test_passes_through_logscan_errors(self):
        assert classify_exception(KustoQueryError("bad")) == ErrorCategory.PERMANENT

    @pytest.mark.parametrize(
        "exc,category",
        [
            (OSError("Connection reset by peer"), ErrorCategory.TRANSIENT),
            (RuntimeError("operation timeout"), ErrorCategory.TRANSIENT),
            (RuntimeError("401 Unauthorized"), ErrorCategory.AUTH),
            (RuntimeError("429 throttled"), ErrorCategory.TRANSIENT),
            (RuntimeError("503 unavailable"), ErrorCategory.TRANSIENT),
            (RuntimeError("404 not found"), ErrorCategory.PERMANENT),
            (RuntimeError("something odd"), ErrorCategory.UNKNOWN),
        ],
    )
    def test_markers(self, exc, category):
        assert classify_exception(exc) == category
