"""Login handshake."""

from __future__ import annotations

import logging
from http.cookies import CookieError, SimpleCookie
from typing import Any

from .cipher import PasswordCipher
from .dispatcher import RequestDispatcher
from .infrastructure.errors import NissanConnectLoginError, NissanConnectRequestError
from .infrastructure.transport import TransportResponse
from .models import SessionRecord, first_present
from .protocol import ProtocolConfig

_LOGGER = logging.getLogger(__name__)

# Identifiers that survive a re-login when the response omits them
_DURABLE_FIELDS = ("vin", "dcm_id")


class Authenticator:
    """Performs the login handshake and extracts the session identifiers.

    Steps:
    1. fetch the per-session encryption key (``baseprm``) when the protocol
       generation hands one out, otherwise use its static key
    2. encrypt the password with it
    3. submit username and encrypted password
    4. read every identifier from the response, trying each configured path
       in order, and the session cookie from the response headers
    """

    def __init__(
        self,
        config: ProtocolConfig,
        dispatcher: RequestDispatcher,
        cipher: PasswordCipher,
        username: str,
        password: str,
    ) -> None:
        self.config = config
        self.username = username
        self._password = password
        self._dispatcher = dispatcher
        self._cipher = cipher

    async def _fetch_base_prm(self) -> str:
        endpoint = self.config.endpoints.initial_app
        try:
            response = await self._dispatcher.send(endpoint, allow_session_retry=False)
        except NissanConnectRequestError as err:
            raise NissanConnectLoginError(
                f"Failed to get 'baseprm' using {endpoint}",
                response=err.body,
                path=endpoint,
            ) from err

        base_prm = response.get("baseprm")
        if not base_prm:
            raise NissanConnectLoginError(
                f"Failed to get 'baseprm' using {endpoint}. Response: {response}",
                response=response,
                path=endpoint,
            )
        return str(base_prm)

    def _extract_cookie(self, response: TransportResponse) -> str | None:
        for header in response.header_values("Set-Cookie"):
            cookie = SimpleCookie()
            try:
                cookie.load(header)
            except CookieError:
                _LOGGER.debug("Ignoring unparsable Set-Cookie header")
                continue
            morsel = cookie.get(self.config.cookie_name)
            if morsel is not None and morsel.value:
                return f"{morsel.key}={morsel.value}"
        return None

    def _extract(self, body: dict[str, Any], response: TransportResponse) -> dict[str, Any]:
        values = {}
        for field, paths in self.config.login_paths.items():
            value = first_present(body, paths)
            if value is not None:
                values[field] = value
        if self.config.cookie_name:
            cookie = self._extract_cookie(response)
            if cookie:
                values["cookie"] = cookie
        return values

    async def login(self, current: SessionRecord | None = None) -> SessionRecord:
        """Log in and return a complete session record.

        Args:
            current: Record held before the login. Its VIN and DCMID are kept
                when the login response does not carry them.

        Raises:
            NissanConnectLoginError: Credentials were rejected or a required
                identifier is missing from the response.
        """
        base_prm = self.config.static_base_prm
        if self.config.fetch_base_prm:
            base_prm = await self._fetch_base_prm()

        encrypted = await self._cipher.encrypt(self._password, base_prm)

        endpoint = self.config.endpoints.login
        params = {"UserId": self.username, "Password": encrypted.decode("ascii")}
        try:
            body, response = await self._dispatcher.send_with_response(
                endpoint, params, allow_session_retry=False
            )
        except NissanConnectRequestError as err:
            raise NissanConnectLoginError(
                f"Login rejected with status {err.status}",
                response=err.body,
                path=endpoint,
            ) from err

        values = self._extract(body, response)
        if current is not None:
            for field in _DURABLE_FIELDS:
                if not values.get(field) and getattr(current, field):
                    values[field] = getattr(current, field)
        record = SessionRecord(**values)

        missing = record.missing_fields(self.config.required_session_fields)
        if missing:
            raise NissanConnectLoginError(
                f"Login failed, or failed to find {', '.join(missing)} in response of login request: {body}",
                response=body,
                path=endpoint,
            )

        _LOGGER.info("Logged in as %s, vehicle %s", self.username, record.vin)
        return record
