"""Clock-in location checks against a tenant's LocationPolicy."""

from __future__ import annotations

import ipaddress
from math import asin, cos, radians, sin, sqrt
from typing import Any

from staffclock.core.errors import Forbidden
from staffclock.core.logging import get_logger
from staffclock.domains.tenants.settings import AllowedLocation, LocationPolicy

logger = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_000
DEFAULT_GPS_RADIUS_METERS = 100.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = radians(lat2 - lat1)
    d_lon = radians(lon2 - lon1)
    a = sin(d_lat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * asin(sqrt(a))


def _ip_matches(client_ip: str | None, allowed: str) -> bool:
    if not client_ip:
        return False
    try:
        address = ipaddress.ip_address(client_ip.strip())
        return address in ipaddress.ip_network(allowed.strip(), strict=False)
    except ValueError:
        return False


def _gps_matches(location: dict[str, Any], allowed: AllowedLocation) -> bool:
    latitude, longitude = location.get("latitude"), location.get("longitude")
    if latitude is None or longitude is None:
        return False
    try:
        allowed_lat, allowed_lon = (float(part) for part in allowed.value.split(","))
    except ValueError:
        logger.warning("allowed_location_malformed", name=allowed.name, value=allowed.value)
        return False
    distance = haversine_meters(float(latitude), float(longitude), allowed_lat, allowed_lon)
    return distance <= (allowed.radius or DEFAULT_GPS_RADIUS_METERS)


def matches(location: dict[str, Any], allowed: AllowedLocation) -> bool:
    if allowed.type == "gps":
        return _gps_matches(location, allowed)
    if allowed.type == "ip":
        return _ip_matches(location.get("ip"), allowed.value)
    if allowed.type == "wifi":
        return bool(location.get("ssid")) and location["ssid"].strip() == allowed.value.strip()
    address = (location.get("address") or "").strip().lower()
    return bool(address) and address == allowed.value.strip().lower()


def enforce_location_policy(policy: LocationPolicy, location: dict[str, Any] | None, *, role: str) -> None:
    """Raise Forbidden when ``location`` does not satisfy ``policy``. Admins are exempt."""
    if role == "admin":
        return

    location = {key: value for key, value in (location or {}).items() if value not in (None, "")}
    if not location:
        if policy.require_location_for_clocking or policy.enforce_geofencing:
            raise Forbidden("Location is required to clock in")
        return

    is_mobile = "ip" not in location and "ssid" not in location
    if is_mobile and not policy.allow_mobile_clocking:
        raise Forbidden("Mobile clocking is disabled for this organization")

    if not policy.enforce_geofencing:
        return

    candidates = [allowed for allowed in policy.allowed_locations if allowed.is_active]
    if not candidates:
        return
    if not any(matches(location, allowed) for allowed in candidates):
        logger.warning("geofence_rejected", location=location)
        raise Forbidden("Clock-in location is not allowed")
