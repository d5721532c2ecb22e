"""Input validation for the NissanConnect client.

This module provides validation functions used when constructing the client
and before sending user-supplied values to the vendor API:
- Region codes (per protocol generation)
- IANA timezone names
- VINs
- Door lock PINs
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
_PIN_PATTERN = re.compile(r"^\d{4}$")


def validate_region(region: str, allowed: Iterable[str]) -> tuple[bool, str | None]:
    """Validate a region code against the codes a protocol generation accepts.

    Returns:
        Tuple of (is_valid, error_message).

    Example:
        >>> validate_region("NNA", {"NNA", "NCI"})
        (True, None)
        >>> validate_region("XX", {"NNA"})
        (False, "Unsupported region code 'XX' (expected one of: NNA)")
    """
    allowed = sorted(allowed)
    if not region or not region.strip():
        return False, "Region code cannot be empty"
    if region.strip().upper() not in allowed:
        return False, f"Unsupported region code '{region}' (expected one of: {', '.join(allowed)})"
    return True, None


def validate_timezone(tz: str) -> tuple[bool, str | None]:
    """Validate an IANA timezone name.

    Example:
        >>> validate_timezone("Europe/Paris")
        (True, None)
    """
    if not tz:
        return False, "Timezone cannot be empty"
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        return False, f"Unknown timezone '{tz}'"
    return True, None


def validate_vin(vin: str | None) -> tuple[bool, str | None]:
    """Validate a vehicle identification number. None is accepted (unknown VIN)."""
    if vin is None:
        return True, None
    if not _VIN_PATTERN.match(vin.strip().upper()):
        return False, "VIN must be 17 characters (letters except I, O, Q and digits)"
    return True, None


def validate_pin(pin: str) -> tuple[bool, str | None]:
    """Validate a 4-digit door lock PIN."""
    if not isinstance(pin, str) or not _PIN_PATTERN.match(pin):
        return False, "PIN must be exactly 4 digits"
    return True, None
