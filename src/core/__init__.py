"""
Core library: reusable, domain-agnostic components.

Modules:
    errors      - Error classification and exception hierarchy
    logging     - Console and structured JSON logging with run/trace context
    security    - URL validation and log sanitization
    download    - Async HTTP streaming (aiohttp)

Design Principles:
    - No dependencies on the query service or the scan pipeline
    - All modules are independently testable
    - Async-first where applicable
"""

from core.errors.exceptions import ErrorCategory

__version__ = "0.1.0"

__all__ = ["ErrorCategory"]
