"""
Error classification for query-service operations.

Wraps Kusto REST failures (HTTP status + error payload, or a raw client
exception) into the typed LogScanError hierarchy so callers can decide
whether to retry, refresh credentials or abort.
"""

from collections.abc import Mapping

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    ErrorCategory,
    KustoError,
    KustoQueryError,
    LogScanError,
    PermanentError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    classify_exception,
    classify_http_status,
)

# Kusto error codes returned in the OneApi error payload
KUSTO_ERROR_CODES = {
    "General_BadRequest": "query",
    "BadRequest_SyntaxError": "query",
    "BadRequest_EntityNotFound": "query",
    "SEM0100": "query",
    "Forbidden": "permanent",
    "Unauthorized": "auth",
    "LimitsExceeded": "permanent",
    "TooManyRequests": "throttling",
    "ServiceUnavailable": "transient",
    "InternalServiceError": "transient",
}


def _retry_after_seconds(headers: Mapping[str, str] | None) -> float | None:
    if not headers:
        return None

    # Kusto uses x-ms-retry-after-ms, fall back to standard Retry-After (seconds)
    lowered = {k.lower(): v for k, v in headers.items()}
    if "x-ms-retry-after-ms" in lowered:
        try:
            return int(lowered["x-ms-retry-after-ms"]) / 1000.0
        except (ValueError, TypeError):
            return None
    if "retry-after" in lowered:
        try:
            return float(int(lowered["retry-after"]))
        except (ValueError, TypeError):
            return None
    return None


class KustoErrorClassifier:
    """Classify Kusto REST failures into LogScanError subclasses."""

    @staticmethod
    def classify_response(
        status_code: int,
        body: str,
        headers: Mapping[str, str] | None = None,
        context: dict | None = None,
    ) -> LogScanError:
        """
        Classify a non-2xx query response.

        Args:
            status_code: HTTP status from the query endpoint
            body: Response body (truncated by caller), usually a OneApi error
            headers: Response headers, used for Retry-After extraction
            context: Additional context merged into the error context

        Returns:
            Classified LogScanError subclass
        """
        ctx = {"service": "kusto", "http_status": status_code}
        if context:
            ctx.update(context)

        message = f"Kusto query failed with HTTP {status_code}: {body[:500]}"
        body_lower = body.lower()

        for code, kind in KUSTO_ERROR_CODES.items():
            if code.lower() in body_lower:
                ctx["error_code"] = code
                if kind == "query":
                    return KustoQueryError(message, context=ctx)
                if kind == "auth":
                    return AuthError(message, context=ctx)
                if kind == "throttling":
                    return ThrottlingError(
                        message, retry_after=_retry_after_seconds(headers), context=ctx
                    )
                if kind == "permanent":
                    return PermanentError(message, context=ctx)
                return KustoError(message, context=ctx)

        category = classify_http_status(status_code)
        if status_code == 429:
            return ThrottlingError(
                message, retry_after=_retry_after_seconds(headers), context=ctx
            )
        if category == ErrorCategory.AUTH:
            return AuthError(message, context=ctx)
        if category == ErrorCategory.PERMANENT:
            if "semantic error" in body_lower or "syntax error" in body_lower:
                return KustoQueryError(message, context=ctx)
            return PermanentError(message, context=ctx)
        return KustoError(message, context=ctx)

    @staticmethod
    def classify_exception(
        error: Exception, context: dict | None = None
    ) -> LogScanError:
        """
        Classify an exception raised while talking to the query service.

        Already-typed LogScanErrors pass through with the extra context merged.
        """
        ctx = {"service": "kusto"}
        if context:
            ctx.update(context)

        if isinstance(error, LogScanError):
            error.context.update(ctx)
            return error

        error_str = str(error).lower()
        error_type = type(error).__name__.lower()

        if "timeout" in error_type or "timeout" in error_str:
            return TimeoutError(f"Kusto query timeout: {error}", cause=error, context=ctx)

        category = classify_exception(error)
        if category == ErrorCategory.AUTH or "credential" in error_type:
            return AuthError(
                f"Kusto authentication failed: {error}", cause=error, context=ctx
            )
        if category == ErrorCategory.TRANSIENT:
            if "connect" in error_type or "connect" in error_str:
                return ConnectionError(
                    f"Kusto connection error: {error}", cause=error, context=ctx
                )
            return TransientError(f"Kusto service error: {error}", cause=error, context=ctx)
        if category == ErrorCategory.PERMANENT:
            return PermanentError(f"Kusto error: {error}", cause=error, context=ctx)

        return KustoError(f"Kusto error: {error}", cause=error, context=ctx)


__all__ = ["KUSTO_ERROR_CODES", "KustoErrorClassifier"]
