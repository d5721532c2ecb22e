# nissan_connect_api.py
import logging
from datetime import date, datetime
from typing import Any

import aiohttp

from .auth import Authenticator
from .cipher import BlowfishCipher, PasswordCipher, RemoteCipher
from .constants import (
    API_DEFAULTS,
    DEFAULT_TIMEZONE,
    REGION_US,
    EncryptionMode,
    StatusQueryOption,
)
from .dispatcher import RequestDispatcher, RetryBudget
from .infrastructure.errors import NissanConnectValidationError
from .infrastructure.transport import AiohttpTransport, Clock, Transport
from .models import (
    DrivingHistory,
    PendingOperation,
    SessionRecord,
    VehicleLocation,
    VehicleStatus,
    get_path,
    parse_vendor_timestamp,
)
from .polling import AsyncOperationPoller, FreshnessGate
from .protocol import PROTOCOL_LEGACY, ProtocolConfig
from .session import SessionManager
from .session_store import FileSessionStore, SessionStore
from .validators import validate_pin, validate_region, validate_timezone, validate_vin

_LOGGER = logging.getLogger(__name__)


class NissanConnectAPI:
    """Remote control of a vehicle through the NissanConnect gateway.

    Every public operation first makes sure a complete session is available
    (from memory, from the session store or by logging in), then sends its
    command. Commands are asynchronous on the vendor side: the gateway answers
    with a result key, and waiting for the car means polling a result endpoint.

    Only one command may be in flight per instance; sending a second one before
    the first was waited for replaces its result key.
    """

    def __init__(
        self,
        username: str,
        password: str,
        tz: str = DEFAULT_TIMEZONE,
        region: str = REGION_US,
        vin: str | None = None,
        dcm_id: str | None = None,
        *,
        protocol: ProtocolConfig = PROTOCOL_LEGACY,
        encryption_mode: EncryptionMode | None = None,
        session_store: SessionStore | None = None,
        transport: Transport | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Clock | None = None,
        cipher: PasswordCipher | None = None,
        max_wait_time: float = API_DEFAULTS.MAX_WAIT_TIME,
        poll_interval: float = API_DEFAULTS.POLL_INTERVAL,
        freshness_tolerance: float = API_DEFAULTS.FRESHNESS_TOLERANCE,
        freshness_ceiling: float = API_DEFAULTS.FRESHNESS_CEILING,
        freshness_interval: float = API_DEFAULTS.FRESHNESS_INTERVAL,
    ):
        region = (region or "").strip().upper()
        for is_valid, error in (
            validate_region(region, protocol.regions),
            validate_timezone(tz),
            validate_vin(vin),
        ):
            if not is_valid:
                raise NissanConnectValidationError(error)

        self.username = username
        self.tz = tz
        self.region = region
        self.protocol = protocol
        self._clock = clock or Clock()
        self._transport = transport or AiohttpTransport(session)
        self._owns_transport = transport is None

        self._pending = PendingOperation()
        self._retry_budget = RetryBudget()
        self._session = SessionManager(
            session_store if session_store is not None else FileSessionStore(),
            username,
            protocol.required_session_fields,
            self._login,
            SessionRecord(vin=vin.strip().upper() if vin else None, dcm_id=dcm_id),
        )
        self._dispatcher = RequestDispatcher(
            protocol,
            self._transport,
            self._session,
            self._retry_budget,
            self._pending,
            region=region,
            tz=tz,
        )
        self._authenticator = Authenticator(
            protocol,
            self._dispatcher,
            cipher or self._build_cipher(encryption_mode or protocol.encryption_mode),
            username,
            password,
        )
        self._poller = AsyncOperationPoller(
            self._dispatcher,
            self._pending,
            self._clock,
            max_wait_time=max_wait_time,
            poll_interval=poll_interval,
        )
        self._freshness = FreshnessGate(
            self._dispatcher,
            self._clock,
            self._status_timestamp,
            tolerance=freshness_tolerance,
            ceiling=freshness_ceiling,
            interval=freshness_interval,
        )

    def _build_cipher(self, mode: EncryptionMode) -> PasswordCipher:
        if mode is EncryptionMode.REMOTE:
            if not self.protocol.encryption_proxy_url:
                raise NissanConnectValidationError(
                    f"Protocol {self.protocol.name} has no encryption proxy URL for remote encryption"
                )
            return RemoteCipher(self._transport, self.protocol.encryption_proxy_url)
        return BlowfishCipher()

    async def _login(self, current: SessionRecord) -> SessionRecord:
        return await self._authenticator.login(current)

    def _status_timestamp(self, response: dict[str, Any]) -> datetime | None:
        return parse_vendor_timestamp(
            get_path(response, self.protocol.status_timestamp_path),
            self.tz,
            utc=self.protocol.status_timestamp_utc,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        """Close the HTTP transport if this client created it."""
        if self._owns_transport:
            await self._transport.close()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    @property
    def session(self) -> SessionRecord:
        return self._session.record

    @property
    def pending_result_key(self) -> str | None:
        return self._pending.result_key

    @property
    def retry_budget_available(self) -> bool:
        return self._retry_budget.available

    def reset_retry_budget(self) -> None:
        """Allow one more automatic re-login after a session expiry."""
        self._retry_budget.reset()

    async def prepare(self, skip_cache: bool = False) -> SessionRecord:
        """Load the VIN and session identifiers from the store, or log in."""
        return await self._session.ensure(skip_cache=skip_cache)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def _command(self, endpoint: str, result_endpoint: str | None, wait_for_result: bool, params=None):
        await self.prepare()
        result = await self._dispatcher.send(endpoint, params)
        if wait_for_result and result_endpoint:
            _LOGGER.debug("Waiting for the car to execute %s", endpoint)
            return await self._poller.wait(result_endpoint)
        return result

    async def start_climate_control(self, wait_for_result: bool = False) -> dict[str, Any]:
        """Start the climate control.

        Args:
            wait_for_result: Wait until the car executed the command. This can
                take a few minutes.
        """
        endpoints = self.protocol.endpoints
        return await self._command(endpoints.ac_on, endpoints.ac_on_result, wait_for_result)

    async def stop_climate_control(self, wait_for_result: bool = False) -> dict[str, Any]:
        """Stop the climate control."""
        endpoints = self.protocol.endpoints
        return await self._command(endpoints.ac_off, endpoints.ac_off_result, wait_for_result)

    async def start_charge(self) -> dict[str, Any]:
        """Start charging. Returns e.g. {"status": 200, "message": "success"}."""
        return await self._command(self.protocol.endpoints.charge_start, None, False)

    async def stop_charge(self) -> dict[str, Any]:
        return await self._command(self.protocol.endpoints.charge_stop, None, False)

    async def lock_doors(self, pin: str, wait_for_result: bool = False) -> dict[str, Any]:
        """Lock the doors. The vendor API requires the account's 4-digit PIN."""
        is_valid, error = validate_pin(pin)
        if not is_valid:
            raise NissanConnectValidationError(error)
        endpoints = self.protocol.endpoints
        return await self._command(
            endpoints.door_lock, endpoints.door_lock_result, wait_for_result, {"PIN": pin}
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_status(self, option: StatusQueryOption = StatusQueryOption.NONE) -> VehicleStatus | None:
        """Get battery and climate control status.

        Args:
            option: NONE asks the car for fresh data and waits until the server
                holds it, ASYNC only asks the car to refresh and returns None,
                CACHED returns what the server currently holds.

        Returns:
            The status, flagged ``stale`` when fresh data could not be
            confirmed in time; None for ASYNC.
        """
        option = StatusQueryOption(option)
        endpoints = self.protocol.endpoints
        await self.prepare()

        if option is StatusQueryOption.ASYNC:
            await self._dispatcher.send(endpoints.status_check)
            return None

        stale = False
        if option is StatusQueryOption.CACHED:
            battery = await self._dispatcher.send(endpoints.battery_records)
        else:
            expected = self._clock.now()
            await self._dispatcher.send(endpoints.status_check)
            await self._poller.wait(endpoints.status_check_result)
            freshness = await self._freshness.wait(endpoints.battery_records, expected)
            battery = freshness.response
            stale = not freshness.fresh

        ac = await self._dispatcher.send(endpoints.ac_records)
        status = VehicleStatus.from_records(
            battery,
            ac,
            self.region,
            self.tz,
            timestamp_path=self.protocol.status_timestamp_path,
            timestamp_utc=self.protocol.status_timestamp_utc,
        )
        status.stale = stale
        return status

    async def get_location(self) -> VehicleLocation:
        """Ask the car for its position and wait for the answer."""
        endpoints = self.protocol.endpoints
        response = await self._command(endpoints.locate, endpoints.locate_result, True)
        return VehicleLocation.from_response(response, self.tz)

    async def get_driving_history(self, day: date) -> DrivingHistory:
        """Get the driving summary of one day."""
        await self.prepare()
        response = await self._dispatcher.send(
            self.protocol.endpoints.drive_analysis,
            {"DetailTargetDate": day.strftime("%Y-%m-%d")},
        )
        return DrivingHistory.from_response(day, response)
