"""Custom exceptions for the NissanConnect client."""

from __future__ import annotations

from typing import Any

# Numeric codes carried by the errors, compatible with older clients.
ERROR_CODE_MISSING_RESULTKEY = 400
ERROR_CODE_LOGIN_FAILED = 403
ERROR_CODE_INVALID_RESPONSE = 405
ERROR_CODE_NOT_JSON = 406
ERROR_CODE_TIMEOUT = 408


class NissanConnectError(Exception):
    """Base exception for NissanConnect."""

    code: int | None = None

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        """Return a serializable view of the error for diagnostics."""
        return {
            "error_type": type(self).__name__,
            "message": str(self),
            "code": self.code,
            "path": self.path,
        }


class NissanConnectConnectionError(NissanConnectError):
    """Raised when the transport call itself fails (connection, DNS, TLS)."""


class NissanConnectLoginError(NissanConnectError):
    """Raised when credentials are rejected or the login response is incomplete."""

    code = ERROR_CODE_LOGIN_FAILED

    def __init__(
        self,
        message: str,
        *,
        response: Any = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.response = response

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["response"] = self.response
        return data


class NissanConnectRequestError(NissanConnectError):
    """Raised when an API call returns a non-success status."""

    def __init__(self, status: int, body: Any, *, path: str | None = None) -> None:
        super().__init__(
            f"Request for '{path}' failed with status {status}. Response received: {body!r}",
            path=path,
        )
        self.status = status
        self.body = body

    @property
    def code(self) -> int:  # type: ignore[override]
        return self.status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        data["body"] = self.body
        return data


class NissanConnectNonJsonError(NissanConnectError):
    """Raised when the transport succeeded but the body is not JSON."""

    code = ERROR_CODE_NOT_JSON

    def __init__(self, status: int, body: bytes, *, path: str | None = None) -> None:
        super().__init__(
            f"Non-JSON response received for request to '{path}'. Response received: {body[:200]!r}",
            path=path,
        )
        self.status = status
        self.body = body


class NissanConnectMissingResultKeyError(NissanConnectError):
    """Raised when a poll is requested with no outstanding asynchronous operation."""

    code = ERROR_CODE_MISSING_RESULTKEY


class NissanConnectTimeoutError(NissanConnectError):
    """Raised when waiting for a command result exceeds the configured ceiling."""

    code = ERROR_CODE_TIMEOUT


class NissanConnectInvalidResponseError(NissanConnectError):
    """Raised when a status record is missing or reports an unexpected result."""

    code = ERROR_CODE_INVALID_RESPONSE

    def __init__(self, message: str, *, response: Any = None, path: str | None = None) -> None:
        super().__init__(message, path=path)
        self.response = response


class NissanConnectValidationError(NissanConnectError):
    """Raised when input validation fails."""
