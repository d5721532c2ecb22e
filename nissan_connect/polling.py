"""Waiting for asynchronous commands and fresh status data."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from .constants import API_DEFAULTS
from .dispatcher import RequestDispatcher
from .infrastructure.errors import (
    NissanConnectMissingResultKeyError,
    NissanConnectTimeoutError,
)
from .infrastructure.transport import Clock
from .models import FreshnessResult, PendingOperation

_LOGGER = logging.getLogger(__name__)


def is_response_flag_set(response: dict[str, Any]) -> bool:
    """Whether a result-check response reports that the car answered."""
    flag = response.get("responseFlag")
    if isinstance(flag, str):
        return flag.strip().lower() in ("1", "true")
    return bool(flag)


class AsyncOperationPoller:
    """Polls a result endpoint until the pending command completes.

    The interval between checks is constant; the only way to stop waiting
    early is the max_wait_time ceiling.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        pending: PendingOperation,
        clock: Clock,
        *,
        max_wait_time: float = API_DEFAULTS.MAX_WAIT_TIME,
        poll_interval: float = API_DEFAULTS.POLL_INTERVAL,
    ) -> None:
        self._dispatcher = dispatcher
        self._pending = pending
        self._clock = clock
        self.max_wait_time = max_wait_time
        self.poll_interval = poll_interval

    async def wait(self, endpoint: str) -> dict[str, Any]:
        """Wait until the car executed the previously sent command.

        Raises:
            NissanConnectMissingResultKeyError: No command is pending.
            NissanConnectTimeoutError: The car did not answer within max_wait_time.
        """
        result_key = self._pending.result_key
        if not result_key:
            raise NissanConnectMissingResultKeyError(
                f"Missing 'resultKey' to be able to wait for operation to complete using '{endpoint}'",
                path=endpoint,
            )

        params = {"resultKey": result_key}
        start = self._clock.monotonic()
        while True:
            response = await self._dispatcher.send(endpoint, params)
            if is_response_flag_set(response):
                self._pending.clear()
                return response
            elapsed = self._clock.monotonic() - start
            if elapsed > self.max_wait_time:
                raise NissanConnectTimeoutError(
                    f"Timeout waiting for result using {endpoint} after {elapsed:.0f}s",
                    path=endpoint,
                )
            _LOGGER.debug("Result of %s not available yet (%.0fs elapsed)", endpoint, elapsed)
            await self._clock.sleep(self.poll_interval)


class FreshnessGate:
    """Re-reads a status endpoint until its data is recent enough.

    The server may answer status reads from a cache that predates the refresh
    the car was just asked for. Each response timestamp is compared to the time
    the refresh was requested; once the ceiling is reached the last response is
    returned flagged as stale instead of failing.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        clock: Clock,
        timestamp_of: Callable[[dict[str, Any]], datetime | None],
        *,
        tolerance: float = API_DEFAULTS.FRESHNESS_TOLERANCE,
        ceiling: float = API_DEFAULTS.FRESHNESS_CEILING,
        interval: float = API_DEFAULTS.FRESHNESS_INTERVAL,
    ) -> None:
        self._dispatcher = dispatcher
        self._clock = clock
        self._timestamp_of = timestamp_of
        self.tolerance = tolerance
        self.ceiling = ceiling
        self.interval = interval

    def is_fresh(self, received: datetime | None, expected: datetime) -> bool:
        if received is None:
            return False
        return abs((received - expected).total_seconds()) < self.tolerance

    async def wait(
        self,
        endpoint: str,
        expected: datetime,
        params: dict[str, Any] | None = None,
    ) -> FreshnessResult:
        start = self._clock.monotonic()
        attempts = 0
        while True:
            response = await self._dispatcher.send(endpoint, params)
            attempts += 1
            received = self._timestamp_of(response)
            if self.is_fresh(received, expected):
                return FreshnessResult(response=response, fresh=True, attempts=attempts, received=received)

            elapsed = self._clock.monotonic() - start
            if elapsed >= self.ceiling:
                _LOGGER.warning(
                    "Data from %s is still stale after %d attempts (received %s, expected %s)",
                    endpoint,
                    attempts,
                    received,
                    expected,
                )
                return FreshnessResult(response=response, fresh=False, attempts=attempts, received=received)

            _LOGGER.debug("Data from %s is stale (received %s), retrying", endpoint, received)
            await self._clock.sleep(self.interval)
