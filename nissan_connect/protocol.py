"""Protocol generation presets.

The vendor has changed its gateway several times: base URL, application
strings, field names and the way errors are signalled all moved between
generations. Each generation is described by one immutable ProtocolConfig,
so the request logic never branches on ad hoc generation flags.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_LOCALE,
    REGION_AUSTRALIA,
    REGION_CANADA,
    REGION_EUROPE,
    REGION_JAPAN,
    REGION_US,
    BodyFormat,
    EncryptionMode,
    ResponseConvention,
)


class Endpoints(BaseModel):
    """Script names of the vendor gateway, relative to the base URL."""

    model_config = {"frozen": True}

    initial_app: str = "InitialApp.php"
    login: str = "UserLoginRequest.php"
    ac_on: str = "ACRemoteRequest.php"
    ac_on_result: str = "ACRemoteResult.php"
    ac_off: str = "ACRemoteOffRequest.php"
    ac_off_result: str = "ACRemoteOffResult.php"
    charge_start: str = "BatteryRemoteChargingRequest.php"
    charge_stop: str = "BatteryRemoteChargingStopRequest.php"
    status_check: str = "BatteryStatusCheckRequest.php"
    status_check_result: str = "BatteryStatusCheckResultRequest.php"
    battery_records: str = "BatteryStatusRecordsRequest.php"
    ac_records: str = "RemoteACRecordsRequest.php"
    locate: str = "MyCarFinderRequest.php"
    locate_result: str = "MyCarFinderResultRequest.php"
    drive_analysis: str = "DriveAnalysisDetailRequest.php"
    door_lock: str = "RemoteDoorLockRequest.php"
    door_lock_result: str = "RemoteDoorLockResult.php"


class ProtocolConfig(BaseModel):
    """Immutable description of one protocol generation."""

    model_config = {"frozen": True}

    name: str
    base_url: str
    initial_app_strings: str
    static_base_prm: str = Field(
        description="Encryption key used when the generation does not hand one out",
    )
    fetch_base_prm: bool = Field(
        default=True,
        description="Fetch the per-session encryption key from the bootstrap endpoint",
    )
    locale: str = DEFAULT_LOCALE
    response_convention: ResponseConvention = ResponseConvention.EMBEDDED_STATUS
    body_format: BodyFormat = BodyFormat.FORM
    encryption_mode: EncryptionMode = EncryptionMode.LOCAL
    encryption_proxy_url: str | None = None
    session_expiry_codes: frozenset[int] = frozenset({404})
    negative_status_expires_session: bool = False
    required_session_fields: tuple[str, ...] = ("vin", "dcm_id", "custom_session_id")
    # Session field -> dotted paths into the login response, in priority order
    login_paths: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    # Session field -> request parameter name
    request_fields: dict[str, str] = Field(default_factory=dict)
    cookie_name: str | None = None
    regions: frozenset[str] = frozenset({REGION_US, REGION_CANADA})
    status_timestamp_path: str = "BatteryStatusRecords.OperationDateAndTime"
    status_timestamp_utc: bool = False
    endpoints: Endpoints = Field(default_factory=Endpoints)

    def url(self, endpoint: str) -> str:
        """Return the absolute URL of an endpoint script."""
        return self.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

    def is_session_expired_status(self, status: int) -> bool:
        if status in self.session_expiry_codes:
            return True
        return self.negative_status_expires_session and status < 0


PROTOCOL_LEGACY = ProtocolConfig(
    name="gworchest_0307C",
    base_url="https://gdcportalgw.its-mo.com/gworchest_0307C/gdc/",
    initial_app_strings="geORNtsZe5I4lRGjG9GZiA",
    static_base_prm="uyI5Dj9g8VCOFDnBRUbr3g",
    fetch_base_prm=True,
    response_convention=ResponseConvention.EMBEDDED_STATUS,
    body_format=BodyFormat.FORM,
    session_expiry_codes=frozenset({404}),
    required_session_fields=("vin", "dcm_id", "custom_session_id"),
    login_paths={
        "vin": ("CustomerInfo.VehicleInfo.VIN",),
        "dcm_id": ("CustomerInfo.VehicleInfo.DCMID",),
        "custom_session_id": ("VehicleInfoList.vehicleInfo.0.custom_sessionid",),
        "vehicle_bound_time": ("CustomerInfo.VehicleInfo.UserVehicleBoundTime",),
    },
    request_fields={
        "custom_session_id": "custom_sessionid",
        "dcm_id": "DCMID",
        "vin": "VIN",
    },
    regions=frozenset({REGION_US, REGION_CANADA}),
    status_timestamp_path="BatteryStatusRecords.OperationDateAndTime",
    status_timestamp_utc=False,
)

PROTOCOL_CURRENT = ProtocolConfig(
    name="api_v230317_NE",
    base_url="https://gdcportalgw.its-mo.com/api_v230317_NE/gdc/",
    initial_app_strings="9s5rfKVuMrT03RtzajWNcA",
    static_base_prm="88dSp7wWnV3bvv9Z88zEwg",
    fetch_base_prm=False,
    response_convention=ResponseConvention.HTTP_STATUS,
    body_format=BodyFormat.JSON,
    session_expiry_codes=frozenset({401, 404, 405, 408}),
    negative_status_expires_session=True,
    required_session_fields=("vin", "custom_session_id", "cookie"),
    login_paths={
        "vin": (
            "VehicleInfoList.vehicleInfo.0.vin",
            "vehicleInfo.0.vin",
            "CustomerInfo.VehicleInfo.VIN",
        ),
        "custom_session_id": (
            "VehicleInfoList.vehicleInfo.0.custom_sessionid",
            "vehicleInfo.0.custom_sessionid",
        ),
        "auth_token": ("authToken", "CustomerInfo.authToken"),
        "account_id": ("CustomerInfo.AccountId", "accountId"),
        "vehicle_bound_time": (
            "CustomerInfo.VehicleInfo.UserVehicleBoundTime",
            "VehicleInfoList.vehicleInfo.0.UserVehicleBoundTime",
        ),
    },
    request_fields={
        "custom_session_id": "custom_sessionid",
        "vin": "VIN",
        "auth_token": "authToken",
        "account_id": "AccountId",
    },
    cookie_name="JSESSIONID",
    regions=frozenset(
        {REGION_US, REGION_CANADA, REGION_EUROPE, REGION_JAPAN, REGION_AUSTRALIA}
    ),
    status_timestamp_path="BatteryStatusRecords.TimeStamp",
    status_timestamp_utc=True,
)

PROTOCOLS: dict[str, ProtocolConfig] = {
    "legacy": PROTOCOL_LEGACY,
    "current": PROTOCOL_CURRENT,
}
