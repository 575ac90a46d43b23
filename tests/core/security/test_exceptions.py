"""Tests for core.security.exceptions module."""

from core.security.exceptions import URLValidationError, ValidationError


class TestSecurityExceptions:
    def test_validation_error_is_value_error(self):
        err = ValidationError("invalid")
        assert isinstance(err, ValueError)

    def test_url_validation_error(self):
        err = URLValidationError("bad url")
        assert isinstance(err, ValidationError)
        assert str(err) == "bad url"
