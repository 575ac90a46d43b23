"""
Security validation module.

Provides input validation and sanitization for security-sensitive operations:
    - validate_scan_url(): Well-formed absolute http(s) URI check
    - sanitize_url(): Remove auth tokens (SAS signatures etc.) from logged URLs
    - sanitize_error_message(): Remove sensitive data from logged errors
"""

from core.security.exceptions import URLValidationError, ValidationError
from core.security.url_validation import (
    ALLOWED_SCHEMES,
    SENSITIVE_PARAMS,
    is_well_formed_url,
    sanitize_error_message,
    sanitize_url,
    validate_scan_url,
)

__all__ = [
    "validate_scan_url",
    "is_well_formed_url",
    "sanitize_url",
    "sanitize_error_message",
    "ALLOWED_SCHEMES",
    "SENSITIVE_PARAMS",
    "ValidationError",
    "URLValidationError",
]
