"""Infrastructure layer for the NissanConnect client.

This package contains core infrastructure components:
- Error definitions
- HTTP transport and clock
"""

from .errors import (
    NissanConnectConnectionError,
    NissanConnectError,
    NissanConnectInvalidResponseError,
    NissanConnectLoginError,
    NissanConnectMissingResultKeyError,
    NissanConnectNonJsonError,
    NissanConnectRequestError,
    NissanConnectTimeoutError,
    NissanConnectValidationError,
)
from .transport import AiohttpTransport, Clock, Transport, TransportResponse

__all__ = [
    # Errors
    "NissanConnectError",
    "NissanConnectConnectionError",
    "NissanConnectLoginError",
    "NissanConnectRequestError",
    "NissanConnectNonJsonError",
    "NissanConnectMissingResultKeyError",
    "NissanConnectTimeoutError",
    "NissanConnectInvalidResponseError",
    "NissanConnectValidationError",
    # Transport
    "AiohttpTransport",
    "Clock",
    "Transport",
    "TransportResponse",
]
