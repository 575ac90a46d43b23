"""Security validation exceptions."""


class ValidationError(ValueError):
    """Base class for validation errors."""

    pass


class URLValidationError(ValidationError):
    """Raised when a URL is not a well-formed absolute URI we can fetch."""

    pass
