"""Position sample validation.

Filters out physically impossible or stale samples before they reach the
aggregator. Everything here is a pure function; callers decide whether to
log or drop.
"""

import math
from typing import Any, Mapping

from ride_telemetry.models import LocationSample, TelemetryPolicy

DEFAULT_POLICY = TelemetryPolicy()


def rejection_reason(
    sample: LocationSample,
    now_ms: int,
    policy: TelemetryPolicy = DEFAULT_POLICY,
) -> str | None:
    """Return why a sample would be rejected, or None if it is acceptable."""
    if not (math.isfinite(sample.lat) and math.isfinite(sample.lon)):
        return "non-finite coordinates"
    if not -90.0 <= sample.lat <= 90.0:
        return f"latitude {sample.lat} out of range"
    if not -180.0 <= sample.lon <= 180.0:
        return f"longitude {sample.lon} out of range"

    if not math.isfinite(sample.speed) or sample.speed < 0:
        return f"invalid speed {sample.speed}"
    if sample.speed > policy.max_speed_ms:
        return f"speed {sample.speed} m/s exceeds {policy.max_speed_ms} m/s"

    if sample.timestamp > now_ms:
        return "timestamp in the future"
    age_s = (now_ms - sample.timestamp) / 1000
    if age_s > policy.max_sample_age_s:
        return f"sample is {age_s:.0f}s old"

    return None


def validate_sample(
    sample: LocationSample,
    now_ms: int,
    policy: TelemetryPolicy = DEFAULT_POLICY,
) -> bool:
    """Check whether a sample may be aggregated.

    Args:
        sample: Candidate position sample
        now_ms: Current wall-clock time in epoch milliseconds
        policy: Limits for speed and sample age

    Returns:
        True if the sample is plausible and recent.
    """
    return rejection_reason(sample, now_ms, policy) is None


def sample_from_position(event: Mapping[str, Any]) -> LocationSample:
    """Build a LocationSample from a raw position event.

    The event carries ``latitude``, ``longitude`` and ``timestamp`` (epoch ms),
    and optionally ``speed``, ``altitude`` and ``heading``. Devices report an
    unknown speed as missing or negative; both become 0.

    Raises:
        ValueError: If a required field is missing or not numeric.
    """
    try:
        lat = float(event["latitude"])
        lon = float(event["longitude"])
        timestamp = int(event["timestamp"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed position event: {event!r}") from e

    speed = event.get("speed")
    speed = float(speed) if speed is not None else 0.0
    if speed < 0:
        speed = 0.0

    altitude = event.get("altitude")
    heading = event.get("heading")
    return LocationSample(
        lat=lat,
        lon=lon,
        timestamp=timestamp,
        speed=speed,
        altitude=float(altitude) if altitude is not None else None,
        heading=float(heading) if heading is not None else None,
    )
