"""Authenticated request dispatch.

Every call to the gateway goes through RequestDispatcher: it injects the
session identity, decides whether the call succeeded according to the
protocol generation's response convention, records the result key of
asynchronous commands, and re-authenticates once when the server signals that
the session expired.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from .constants import SUCCESS_STATUS, BodyFormat, ResponseConvention
from .infrastructure.errors import (
    NissanConnectInvalidResponseError,
    NissanConnectNonJsonError,
    NissanConnectRequestError,
)
from .infrastructure.transport import Transport, TransportResponse
from .models import PendingOperation
from .protocol import ProtocolConfig

if TYPE_CHECKING:
    from .session import SessionManager

_LOGGER = logging.getLogger(__name__)

_REDACTED_KEYS = frozenset({"Password", "custom_sessionid", "authToken", "Cookie"})


def _redact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: "***" if key in _REDACTED_KEYS and value else value for key, value in values.items()}


class RetryBudget:
    """One-shot permission to retry a request after a session expiry.

    The budget starts available, is spent by the first retry and stays spent
    until reset(), so a server that keeps rejecting the session cannot cause a
    login loop.
    """

    def __init__(self, available: bool = True) -> None:
        self._available = available

    @property
    def available(self) -> bool:
        return self._available

    def consume(self) -> bool:
        """Spend the budget. Returns False if it was already spent."""
        if not self._available:
            return False
        self._available = False
        return True

    def reset(self) -> None:
        self._available = True


class RequestDispatcher:
    """Builds, sends and checks single authenticated API calls."""

    def __init__(
        self,
        config: ProtocolConfig,
        transport: Transport,
        session: SessionManager,
        retry_budget: RetryBudget,
        pending: PendingOperation,
        *,
        region: str,
        tz: str,
    ) -> None:
        self.config = config
        self.region = region
        self.tz = tz
        self._transport = transport
        self._session = session
        self._retry_budget = retry_budget
        self._pending = pending

    def _build_params(self, params: dict[str, Any] | None) -> dict[str, Any]:
        payload = dict(params or {})
        record = self._session.record
        for field, name in self.config.request_fields.items():
            payload[name] = getattr(record, field) or ""
        payload["initial_app_strings"] = self.config.initial_app_strings
        payload["RegionCode"] = self.region
        payload["lg"] = self.config.locale
        payload["tz"] = self.tz
        return payload

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        cookie = self._session.record.cookie
        if cookie:
            headers["Cookie"] = cookie
        return headers

    async def _transmit(self, endpoint: str, payload: dict[str, Any], method: str) -> TransportResponse:
        url = self.config.url(endpoint)
        headers = self._build_headers()
        _LOGGER.debug("Request: %s %s %s", method, url, _redact(payload))

        if method.upper() == "GET":
            return await self._transport.send(method, f"{url}?{urlencode(payload)}", headers=headers)
        if self.config.body_format is BodyFormat.JSON:
            return await self._transport.send(method, url, headers=headers, json=payload)
        return await self._transport.send(method, url, headers=headers, data=payload)

    def _decode(self, response: TransportResponse, endpoint: str) -> dict[str, Any]:
        try:
            body = json.loads(response.body) if response.body else None
        except ValueError:
            body = None

        if isinstance(body, dict):
            return body
        if response.status != SUCCESS_STATUS:
            # The HTTP status alone decides the outcome of this call
            return {"raw": response.body.decode("utf-8", errors="replace")}
        raise NissanConnectNonJsonError(response.status, response.body, path=endpoint)

    def _effective_status(self, response: TransportResponse, body: dict[str, Any], endpoint: str) -> int:
        if response.status != SUCCESS_STATUS:
            return response.status
        if self.config.response_convention is ResponseConvention.HTTP_STATUS:
            return response.status

        raw_status = body.get("status", SUCCESS_STATUS)
        try:
            return int(raw_status)
        except (TypeError, ValueError) as err:
            raise NissanConnectInvalidResponseError(
                f"Unreadable status {raw_status!r} in response to '{endpoint}'",
                response=body,
                path=endpoint,
            ) from err

    async def send(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        method: str = "POST",
        *,
        allow_session_retry: bool = True,
    ) -> dict[str, Any]:
        """Send one API call and return its decoded body.

        Args:
            endpoint: Script name relative to the protocol base URL.
            params: Call specific parameters; session identity is added.
            method: HTTP method.
            allow_session_retry: Whether a session-expiry status may trigger
                the one-shot re-login. Login calls disable it.

        Raises:
            NissanConnectRequestError: The effective status is not a success.
            NissanConnectNonJsonError: A successful response is not a JSON object.
            NissanConnectConnectionError: The transport failed.
        """
        body, _ = await self.send_with_response(
            endpoint, params, method, allow_session_retry=allow_session_retry
        )
        return body

    async def send_with_response(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        method: str = "POST",
        *,
        allow_session_retry: bool = True,
    ) -> tuple[dict[str, Any], TransportResponse]:
        """Same as send(), also returning the raw transport response."""
        response = await self._transmit(endpoint, self._build_params(params), method)
        body = self._decode(response, endpoint)

        result_key = body.get("resultKey")
        if result_key:
            self._pending.set(str(result_key))
            _LOGGER.debug("Found resultKey in response: %s", result_key)

        status = self._effective_status(response, body, endpoint)
        if status == SUCCESS_STATUS:
            body["status"] = SUCCESS_STATUS
            _LOGGER.debug("Response from %s: %s", endpoint, body)
            return body, response

        if (
            allow_session_retry
            and self.config.is_session_expired_status(status)
            and self._retry_budget.consume()
        ):
            _LOGGER.warning(
                "Request for '%s' failed with status %d, session probably expired. "
                "Logging in again and retrying once",
                endpoint,
                status,
            )
            await self._session.renew()
            return await self.send_with_response(
                endpoint, params, method, allow_session_retry=allow_session_retry
            )

        raise NissanConnectRequestError(status, body, path=endpoint)
