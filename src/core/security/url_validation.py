"""
URL validation and sanitization for scanned artifacts.

Log artifact URLs discovered from the query service are frequently
SAS-signed blob URLs, so anything written to logs goes through
sanitize_url / sanitize_error_message first.
"""

import re
from typing import Set
from urllib.parse import urlparse, urlunparse

from core.security.exceptions import URLValidationError

# Schemes the scanner can fetch
ALLOWED_SCHEMES: Set[str] = {"https", "http"}

# Characters that are never legal unescaped in a URI (RFC 3986)
_ILLEGAL_URI_CHARS = re.compile(r"[\s<>\"{}|\\^`\x00-\x1f\x7f]")

# Query parameters whose values grant access and must not be logged
SENSITIVE_PARAMS: Set[str] = {
    "sig",
    "signature",
    "token",
    "key",
    "secret",
    "password",
    "code",
    "x-amz-signature",
    "x-amz-credential",
    "x-amz-security-token",
}


def validate_scan_url(url: str) -> str:
    """
    Check that a URL is a well-formed absolute http(s) URI.

    Mirrors what an HTTP client needs before a request can even be attempted:
    a scheme we can fetch, a host, and no characters that would have to be
    escaped first.

    Returns:
        The URL, stripped of surrounding whitespace.

    Raises:
        URLValidationError: If the URL is empty, relative, uses an unsupported
            scheme, has no host or contains illegal characters.
    """
    if url is None or not isinstance(url, str):
        raise URLValidationError(f"URL must be a string, got {type(url).__name__}")

    candidate = url.strip()
    if not candidate:
        raise URLValidationError("Empty URL")

    if _ILLEGAL_URI_CHARS.search(candidate):
        raise URLValidationError("URL contains characters that are not allowed in a URI")

    try:
        parsed = urlparse(candidate)
        # Accessing port validates it is numeric and in range
        parsed.port
    except ValueError as e:
        raise URLValidationError(f"Malformed URL: {e}") from e

    if not parsed.scheme:
        raise URLValidationError("URL is not absolute (missing scheme)")

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise URLValidationError(
            f"Unsupported scheme '{parsed.scheme}', expected one of {sorted(ALLOWED_SCHEMES)}"
        )

    if not parsed.hostname:
        raise URLValidationError("URL has no host")

    return candidate


def is_well_formed_url(url: str) -> bool:
    """Return True if validate_scan_url() accepts the URL."""
    try:
        validate_scan_url(url)
    except URLValidationError:
        return False
    return True


def sanitize_url(url: str) -> str:
    """
    Remove sensitive query parameters from URL.

    Preserves the path and structure for debugging while removing
    tokens that could grant access if exposed in logs.

    Returns URL with sensitive parameters replaced with [REDACTED].
    """
    if not url:
        return url

    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    if not parsed.query:
        return url

    sanitized_params = []
    for param in parsed.query.split("&"):
        if "=" in param:
            key, _ = param.split("=", 1)
            if key.lower() in SENSITIVE_PARAMS:
                sanitized_params.append(f"{key}=[REDACTED]")
                continue
        sanitized_params.append(param)

    return urlunparse(parsed._replace(query="&".join(sanitized_params)))


# Patterns that may contain sensitive data in error messages
SENSITIVE_PATTERNS = [
    (re.compile(r'sig=[^&\s"\']+', re.IGNORECASE), "sig=[REDACTED]"),
    (re.compile(r'token=[^&\s"\']+', re.IGNORECASE), "token=[REDACTED]"),
    (re.compile(r'password=[^&\s"\']+', re.IGNORECASE), "password=[REDACTED]"),
    (re.compile(r'secret=[^&\s"\']+', re.IGNORECASE), "secret=[REDACTED]"),
    (re.compile(r"bearer\s+[a-zA-Z0-9\-_.]+", re.IGNORECASE), "bearer [REDACTED]"),
]

_URL_IN_TEXT = re.compile(r'https?://[^\s"\'<>]+')


def sanitize_error_message(msg: str, max_length: int = 500) -> str:
    """
    Remove potentially sensitive data from error messages.

    Applies pattern-based redaction and truncates to max_length.
    """
    if not msg:
        return msg

    for pattern, replacement in SENSITIVE_PATTERNS:
        msg = pattern.sub(replacement, msg)

    for match in _URL_IN_TEXT.finditer(msg):
        original_url = match.group(0)
        sanitized = sanitize_url(original_url)
        if sanitized != original_url:
            msg = msg.replace(original_url, sanitized)

    if len(msg) > max_length:
        msg = msg[: max_length - 3] + "..."

    return msg


__all__ = [
    "ALLOWED_SCHEMES",
    "SENSITIVE_PARAMS",
    "validate_scan_url",
    "is_well_formed_url",
    "sanitize_url",
    "sanitize_error_message",
]
