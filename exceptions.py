"""Custom exceptions raised by the LHV Connect client."""

from typing import Any, Dict, List, Optional


class ConnectError(Exception):
    """Base class for all client errors."""


class TransportError(ConnectError):
    """Raised when an HTTP call fails after retries, or returns an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ParseError(ConnectError):
    """Raised when a JSON envelope or XML payload cannot be parsed.

    `excerpt` holds the leading part of the offending payload for diagnosis.
    """

    def __init__(self, message: str, excerpt: Optional[str] = None) -> None:
        super().__init__(message)
        self.excerpt = excerpt


class ValidationError(ConnectError):
    """Raised when caller-supplied input is missing or invalid, before any network call."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class CorrelationError(ConnectError):
    """Raised when the bank returns no correlation id for an operation that needs one."""

    def __init__(self, message: str, operation: str) -> None:
        super().__init__(message)
        self.operation = operation
