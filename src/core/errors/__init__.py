"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- LogScanError hierarchy for typed exceptions
- Classification utilities for error handling
- Query-service error classifier
"""

from core.errors.classifiers import KUSTO_ERROR_CODES, KustoErrorClassifier
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

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "LogScanError",
    "AuthError",
    "TransientError",
    "PermanentError",
    # Specific errors
    "ThrottlingError",
    "TimeoutError",
    "ConnectionError",
    "KustoError",
    "KustoQueryError",
    "DecodeError",
    "UnsupportedTypeError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "KUSTO_ERROR_CODES",
    "KustoErrorClassifier",
]
