"""Transport and clock used by the NissanConnect client.

The protocol code only needs ``send(method, url, headers, body)`` returning the
status, the raw body and the response headers, plus a clock to measure
deadlines and sleep between polls. Both are injectable so tests can replace
the network and the passage of time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Protocol

import aiohttp
from pydantic import BaseModel, Field

from ..constants import API_DEFAULTS
from .errors import NissanConnectConnectionError

_LOGGER = logging.getLogger(__name__)


class TransportResponse(BaseModel):
    """Raw result of one HTTP exchange."""

    status: int
    body: bytes = b""
    headers: list[tuple[str, str]] = Field(default_factory=list)

    def header_values(self, name: str) -> list[str]:
        name = name.lower()
        return [value for key, value in self.headers if key.lower() == name]


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json: Any = None,
    ) -> TransportResponse: ...


class AiohttpTransport:
    """HTTP transport backed by an aiohttp ClientSession.

    A session passed in by the caller is used as-is and never closed here;
    otherwise one is created lazily and closed by close().
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        request_timeout: float = API_DEFAULTS.REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.request_timeout = request_timeout

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session.

        Timeouts are set per-request, not on the session level.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session if we created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json: Any = None,
    ) -> TransportResponse:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        session = await self._get_session()
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=data,
                json=json,
                timeout=timeout,
            ) as response:
                body = await response.read()
                _LOGGER.debug("%s %s returned HTTP %d (%d bytes)", method, url, response.status, len(body))
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers=list(response.headers.items()),
                )
        except TimeoutError as err:
            raise NissanConnectConnectionError(
                f"Request to {url} timed out after {self.request_timeout}s", path=url
            ) from err
        except aiohttp.ClientError as err:
            raise NissanConnectConnectionError(f"Request to {url} failed: {err}", path=url) from err


class Clock:
    """Wall-clock time, monotonic time and sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
