"""Client library for the NissanConnect remote-control API."""

from .constants import (
    API_DEFAULTS,
    REGION_AUSTRALIA,
    REGION_CANADA,
    REGION_EUROPE,
    REGION_JAPAN,
    REGION_US,
    BodyFormat,
    EncryptionMode,
    ResponseConvention,
    StatusQueryOption,
)
from .infrastructure import (
    AiohttpTransport,
    Clock,
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
from .models import DrivingHistory, SessionRecord, VehicleLocation, VehicleStatus
from .nissan_connect_api import NissanConnectAPI
from .protocol import PROTOCOL_CURRENT, PROTOCOL_LEGACY, PROTOCOLS, ProtocolConfig
from .session_store import FileSessionStore, MemorySessionStore, SessionStore

__version__ = "1.0.0"

__all__ = [
    "NissanConnectAPI",
    # Configuration
    "API_DEFAULTS",
    "PROTOCOLS",
    "PROTOCOL_CURRENT",
    "PROTOCOL_LEGACY",
    "ProtocolConfig",
    "BodyFormat",
    "EncryptionMode",
    "ResponseConvention",
    "StatusQueryOption",
    "REGION_AUSTRALIA",
    "REGION_CANADA",
    "REGION_EUROPE",
    "REGION_JAPAN",
    "REGION_US",
    # Collaborators
    "AiohttpTransport",
    "Clock",
    "FileSessionStore",
    "MemorySessionStore",
    "SessionStore",
    # Models
    "DrivingHistory",
    "SessionRecord",
    "VehicleLocation",
    "VehicleStatus",
    # Errors
    "NissanConnectError",
    "NissanConnectConnectionError",
    "NissanConnectInvalidResponseError",
    "NissanConnectLoginError",
    "NissanConnectMissingResultKeyError",
    "NissanConnectNonJsonError",
    "NissanConnectRequestError",
    "NissanConnectTimeoutError",
    "NissanConnectValidationError",
]
