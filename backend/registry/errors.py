"""
Error types for the registry client stack.

RegistryError is the protocol fault raised for non-OK registry responses.
TransportError is raised when a request could not be completed at all.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass
class HttpErrorInfo:
    """Structured diagnostic for requests that never reached the registry."""
    code: str  # MIXED_CONTENT or INCORRECT_URL
    url: str
    message: Optional[str] = None


Diagnostic = Union[HttpErrorInfo, str]


class RegistryError(Exception):
    """Non-OK response from a registry endpoint."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Any = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    def __repr__(self) -> str:
        return f"RegistryError(message={self.message!r}, code={self.code!r}, status={self.status!r})"


class TransportError(Exception):
    """The request failed before any HTTP status was received (offline, CORS, bad URL)."""

    def __init__(self, diagnostic: Diagnostic, url: str):
        self.diagnostic = diagnostic
        self.url = url
        if isinstance(diagnostic, HttpErrorInfo):
            message = diagnostic.message or f"{diagnostic.code}: {url}"
        else:
            message = diagnostic
        super().__init__(message)
