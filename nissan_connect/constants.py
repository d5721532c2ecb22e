"""Constants and Enums for the NissanConnect client."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, Field

# Region codes accepted by the vendor API
REGION_US = "NNA"
REGION_CANADA = "NCI"
REGION_EUROPE = "NE"
REGION_JAPAN = "NML"
REGION_AUSTRALIA = "NMA"

# Regions reporting cruising range in miles
MILES_REGIONS = frozenset({REGION_US})

# Cruising ranges are reported in meters
METERS_TO_MILES = 0.000621371192
METERS_TO_KM = 0.001

# OperationResult values that mark a status record as usable
ALLOWED_OPERATION_RESULTS = frozenset({"START", "START_BATTERY", "FINISH"})

# Fields of a session record that are opaque tokens (cleared on session expiry)
SESSION_TOKEN_FIELDS = ("custom_session_id", "auth_token", "account_id", "cookie")

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_LOCALE = "en-US"
SUCCESS_STATUS = 200


class StatusQueryOption(IntEnum):
    """How get_status should obtain battery and climate data.

    NONE asks the car for fresh data and waits for it, ASYNC only asks the car
    to refresh and returns immediately, CACHED reads whatever the server holds.
    """

    NONE = 0
    ASYNC = 1
    CACHED = 2


class ResponseConvention(str, Enum):
    """Where a protocol generation reports the real result of a call."""

    EMBEDDED_STATUS = "embedded_status"
    HTTP_STATUS = "http_status"


class BodyFormat(str, Enum):
    """Encoding of request bodies."""

    FORM = "form"
    JSON = "json"


class EncryptionMode(str, Enum):
    """How the password is encrypted during login."""

    LOCAL = "local"
    REMOTE = "remote"


class APIDefaults(BaseModel):
    """Default values for API configuration.

    Immutable configuration values for timeouts and polling cadence.
    These values can be overridden when instantiating NissanConnectAPI.
    """

    model_config = {"frozen": True}

    REQUEST_TIMEOUT: int = Field(
        default=60,
        description="Timeout for a single request in seconds - the vendor gateway is slow",
    )
    MAX_WAIT_TIME: float = Field(
        default=290.0,
        description="How long to wait for the car to execute a command before giving up, in seconds",
    )
    POLL_INTERVAL: float = Field(
        default=1.0,
        description="Delay between two result-check requests in seconds",
    )
    FRESHNESS_TOLERANCE: float = Field(
        default=120.0,
        description="Maximum distance between a status timestamp and the refresh time, in seconds",
    )
    FRESHNESS_CEILING: float = Field(
        default=60.0,
        description="How long to keep re-reading stale status records, in seconds",
    )
    FRESHNESS_INTERVAL: float = Field(
        default=5.0,
        description="Delay between two status re-reads in seconds",
    )


# Create a default instance for easy access
API_DEFAULTS = APIDefaults()
