"""Data models for the NissanConnect client.

This module provides Pydantic models for the session record persisted between
invocations and the user-facing objects built from vendor JSON. It also
includes helpers to walk nested vendor responses and to parse the timestamp
formats the gateway emits.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from .constants import (
    ALLOWED_OPERATION_RESULTS,
    METERS_TO_KM,
    METERS_TO_MILES,
    MILES_REGIONS,
    SESSION_TOKEN_FIELDS,
)
from .infrastructure.errors import NissanConnectInvalidResponseError

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%b %d, %Y %I:%M %p",
    "%d-%m-%Y %H:%M",
)


# Base model for all NissanConnect data models
class NissanConnectModel(BaseModel):
    """Base model for all NissanConnect data structures."""

    model_config = {"validate_assignment": True, "populate_by_name": True}


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Walk a dotted path through nested dicts and lists.

    Numeric segments index into lists.

    Example:
        >>> get_path({"a": [{"b": 1}]}, "a.0.b")
        1
        >>> get_path({"a": []}, "a.0.b", "missing")
        'missing'
    """
    current = data
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return default
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def first_present(data: Any, paths: tuple[str, ...] | list[str]) -> Any:
    """Return the first non-empty value found at any of the paths, in order."""
    for path in paths:
        value = get_path(data, path)
        if value not in (None, "", [], {}):
            return value
    return None


def parse_vendor_timestamp(value: Any, tz: str | None = None, *, utc: bool = False) -> datetime | None:
    """Parse a timestamp emitted by the vendor gateway.

    Naive values are interpreted in UTC when ``utc`` is set, otherwise in the
    ``tz`` timezone (or UTC when no timezone is given).

    Returns:
        An aware datetime, or None when the value cannot be parsed.

    Example:
        >>> parse_vendor_timestamp("2016-02-13 23:29:43", utc=True).isoformat()
        '2016-02-13T23:29:43+00:00'
    """
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        for fmt in _TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None

    if parsed.tzinfo is None:
        if utc or not tz:
            parsed = parsed.replace(tzinfo=timezone.utc)
        else:
            parsed = parsed.replace(tzinfo=ZoneInfo(tz))
    return parsed


def _to_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SessionRecord(NissanConnectModel):
    """Identifiers needed by every API call, persisted between invocations.

    The JSON keys of the first three fields match the file format written by
    older clients, so existing cache files keep working.
    """

    vin: str | None = Field(default=None, alias="vin")
    dcm_id: str | None = Field(default=None, alias="dcmid")
    custom_session_id: str | None = Field(default=None, alias="sessionid")
    auth_token: str | None = Field(default=None, alias="authToken")
    account_id: str | None = Field(default=None, alias="accountId")
    cookie: str | None = Field(default=None, alias="cookie")
    vehicle_bound_time: str | None = Field(default=None, alias="vehicleBoundTime")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: Any) -> Any:
        # Some generations return numeric identifiers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def is_complete(self, required_fields: tuple[str, ...] | list[str]) -> bool:
        """Whether every required field holds a non-empty value."""
        return all(getattr(self, name, None) for name in required_fields)

    def missing_fields(self, required_fields: tuple[str, ...] | list[str]) -> list[str]:
        return [name for name in required_fields if not getattr(self, name, None)]

    def without_tokens(self) -> SessionRecord:
        """Return a copy with every session token cleared.

        Durable identifiers (VIN, DCMID, bound time) are kept.
        """
        return self.model_copy(update={name: None for name in SESSION_TOKEN_FIELDS})

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PendingOperation:
    """Single slot holding the result key of the outstanding command.

    A second command issued before the first one is polled overwrites the key.
    """

    def __init__(self) -> None:
        self.result_key: str | None = None

    def set(self, result_key: str) -> None:
        self.result_key = result_key

    def clear(self) -> None:
        self.result_key = None

    def __bool__(self) -> bool:
        return bool(self.result_key)


class ChargeTime(NissanConnectModel):
    """Time left until the battery is full on one charger type."""

    hours: int = 0
    minutes: int = 0

    @property
    def formatted(self) -> str:
        parts = []
        if self.hours:
            parts.append(f"{self.hours}h")
        if self.minutes:
            parts.append(f"{self.minutes}m")
        return " ".join(parts)

    @classmethod
    def from_record(cls, record: Any) -> ChargeTime | None:
        if not isinstance(record, dict):
            return None
        hours = _to_int(record.get("HourRequiredToFull"))
        minutes = _to_int(record.get("MinutesRequiredToFull"))
        if not hours and not minutes:
            return None
        return cls(hours=hours or 0, minutes=minutes or 0)


def check_status_result(response: dict[str, Any], what: str) -> dict[str, Any]:
    """Validate a status records block and return it.

    Raises:
        NissanConnectInvalidResponseError: If the block is missing, or its
            OperationResult is absent or not one of START, START_BATTERY, FINISH.
    """
    path = f"{what}Request.php"
    records = response.get(what) if isinstance(response, dict) else None
    if not isinstance(records, dict) or not records:
        raise NissanConnectInvalidResponseError(
            f"Missing '{what}' in response received in call to '{path}'",
            response=response,
            path=path,
        )
    operation_result = records.get("OperationResult")
    if not operation_result:
        raise NissanConnectInvalidResponseError(
            f"Missing '{what}.OperationResult' in response received in call to '{path}'",
            response=response,
            path=path,
        )
    if operation_result not in ALLOWED_OPERATION_RESULTS:
        raise NissanConnectInvalidResponseError(
            f"Invalid 'OperationResult' received in call to '{path}': {operation_result}",
            response=response,
            path=path,
        )
    return records


class VehicleStatus(NissanConnectModel):
    """Battery and climate control status of the vehicle."""

    last_updated: datetime | None = None
    plugged_in: bool = False
    charging: bool = False
    battery_capacity: int | None = None
    battery_remaining_amount: int | None = None
    battery_remaining_amount_wh: float | None = None
    battery_remaining_amount_kwh: float | None = None
    time_required_to_full: ChargeTime | None = None
    time_required_to_full_200: ChargeTime | None = None
    time_required_to_full_200_6kw: ChargeTime | None = None
    cruising_range_ac_on: float | None = None
    cruising_range_ac_off: float | None = None
    cruising_range_unit: str = "km"
    remote_ac_running: bool = False
    remote_ac_last_changed: datetime | None = None
    ac_start_stop_url: str | None = None
    ac_duration_battery_sec: int | None = None
    ac_duration_plugged_sec: int | None = None
    stale: bool = Field(default=False, description="True when the car did not confirm fresh data in time")

    @classmethod
    def from_records(
        cls,
        battery_response: dict[str, Any],
        ac_response: dict[str, Any],
        region: str,
        tz: str | None = None,
        *,
        timestamp_path: str = "BatteryStatusRecords.OperationDateAndTime",
        timestamp_utc: bool = False,
    ) -> VehicleStatus:
        """Build the status from BatteryStatusRecords and RemoteACRecords responses.

        ``timestamp_path`` locates the battery reading time in the response. It
        is read in UTC when ``timestamp_utc`` is set, otherwise in ``tz``.
        """
        battery = check_status_result(battery_response, "BatteryStatusRecords")
        ac = check_status_result(ac_response, "RemoteACRecords")
        battery_status = battery.get("BatteryStatus") or {}

        if region in MILES_REGIONS:
            factor, unit = METERS_TO_MILES, "miles"
        else:
            factor, unit = METERS_TO_KM, "km"
        range_on = _to_float(battery.get("CruisingRangeAcOn"))
        range_off = _to_float(battery.get("CruisingRangeAcOff"))

        return cls(
            last_updated=parse_vendor_timestamp(
                get_path(battery_response, timestamp_path), tz, utc=timestamp_utc
            ),
            plugged_in=battery.get("PluginState") not in (None, "NOT_CONNECTED"),
            charging=battery_status.get("BatteryChargingStatus") not in (None, "NOT_CHARGING"),
            battery_capacity=_to_int(battery_status.get("BatteryCapacity")),
            battery_remaining_amount=_to_int(battery_status.get("BatteryRemainingAmount")),
            battery_remaining_amount_wh=_to_float(battery_status.get("BatteryRemainingAmountWH")),
            battery_remaining_amount_kwh=_to_float(battery_status.get("BatteryRemainingAmountkWH")),
            time_required_to_full=ChargeTime.from_record(battery.get("TimeRequiredToFull")),
            time_required_to_full_200=ChargeTime.from_record(battery.get("TimeRequiredToFull200")),
            time_required_to_full_200_6kw=ChargeTime.from_record(battery.get("TimeRequiredToFull200_6kW")),
            cruising_range_ac_on=range_on * factor if range_on is not None else None,
            cruising_range_ac_off=range_off * factor if range_off is not None else None,
            cruising_range_unit=unit,
            remote_ac_running=(
                (ac.get("PluginState") == "CONNECTED" or ac.get("OperationResult") == "START_BATTERY")
                and ac.get("RemoteACOperation") != "STOP"
            ),
            remote_ac_last_changed=parse_vendor_timestamp(ac.get("ACStartStopDateAndTime"), tz),
            ac_start_stop_url=ac.get("ACStartStopURL") or None,
            ac_duration_battery_sec=_to_int(ac.get("ACDurationBatterySec")),
            ac_duration_plugged_sec=_to_int(ac.get("ACDurationPluggedSec")),
        )


class VehicleLocation(NissanConnectModel):
    """Last position reported by the car."""

    latitude: float
    longitude: float
    received: datetime | None = None

    @classmethod
    def from_response(cls, response: dict[str, Any], tz: str | None = None) -> VehicleLocation:
        latitude = _to_float(first_present(response, ("lat", "Latitude", "locationInfo.latitude")))
        longitude = _to_float(first_present(response, ("lng", "Longitude", "locationInfo.longitude")))
        if latitude is None or longitude is None:
            raise NissanConnectInvalidResponseError(
                "Missing coordinates in location response",
                response=response,
            )
        return cls(
            latitude=latitude,
            longitude=longitude,
            received=parse_vendor_timestamp(first_present(response, ("receivedDate", "TimeStamp")), tz),
        )


class DrivingHistory(NissanConnectModel):
    """Daily driving summary."""

    day: date
    travel_distance: float | None = None
    electric_mileage: float | None = None
    power_consumption: float | None = None
    trips: list[dict[str, Any]] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, day: date, response: dict[str, Any]) -> DrivingHistory:
        summary = get_path(response, "DriveAnalysisDetailResponsePersonalData.DateSummaryDetailInfo", {})
        trips = get_path(response, "DriveAnalysisDetailResponsePersonalData.TripDetailInfoList", [])
        if not isinstance(summary, dict):
            summary = {}
        return cls(
            day=day,
            travel_distance=_to_float(summary.get("TravelDistance")),
            electric_mileage=_to_float(summary.get("ElectricMileage")),
            power_consumption=_to_float(summary.get("PowerConsumptTotal")),
            trips=trips if isinstance(trips, list) else [],
            raw=response,
        )


class FreshnessResult(NissanConnectModel):
    """Outcome of waiting for fresh status data."""

    response: dict[str, Any]
    fresh: bool
    attempts: int
    received: datetime | None = None
