"""Directions provider client (Google Directions API format)."""

from dataclasses import dataclass
import logging
import re
import time

import requests

from ride_telemetry.models import LocationSample

logger = logging.getLogger(__name__)

DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

TRAVEL_MODES = ("bicycling", "walking")

HTML_TAG_PATTERN = re.compile(r"<[^>]*>")


class RoutingError(Exception):
    """The directions provider could not produce a route."""


@dataclass
class RouteOptions:
    mode: str = "bicycling"
    avoid_highways: bool = True
    avoid_tolls: bool = True
    alternatives: bool = True

    def __post_init__(self):
        if self.mode not in TRAVEL_MODES:
            raise ValueError(f"Unknown travel mode: {self.mode}")


@dataclass
class DirectionsResult:
    distance_km: float
    duration_s: float
    points: list[LocationSample]
    instructions: list[str]


def decode_polyline(encoded: str, timestamp: int | None = None) -> list[LocationSample]:
    """Decode a Google encoded polyline into route points.

    Each coordinate is a zig-zag encoded delta in 5-bit chunks, 1e-5 degree
    precision.
    """
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    points: list[LocationSample] = []
    index = 0
    lat = 0
    lng = 0

    def next_value() -> int:
        nonlocal index
        shift = 0
        result = 0
        while True:
            if index >= len(encoded):
                raise ValueError("Truncated polyline")
            b = ord(encoded[index]) - 63
            index += 1
            result |= (b & 0x1F) << shift
            shift += 5
            if b < 0x20:
                break
        return ~(result >> 1) if result & 1 else result >> 1

    while index < len(encoded):
        lat += next_value()
        lng += next_value()
        points.append(LocationSample(lat=lat * 1e-5, lon=lng * 1e-5, timestamp=timestamp))

    return points


def _strip_html(text: str) -> str:
    return HTML_TAG_PATTERN.sub("", text)


def _build_params(
    origin: LocationSample,
    destination: LocationSample,
    options: RouteOptions,
    api_key: str,
) -> dict[str, str]:
    avoid = []
    if options.avoid_highways:
        avoid.append("highways")
    if options.avoid_tolls:
        avoid.append("tolls")
    return {
        "origin": f"{origin.lat},{origin.lon}",
        "destination": f"{destination.lat},{destination.lon}",
        "mode": options.mode,
        "avoid": "|".join(avoid),
        "alternatives": "true" if options.alternatives else "false",
        "key": api_key,
    }


def parse_directions(data: dict) -> DirectionsResult:
    """Extract distance, duration, points and step text from the first route.

    Raises:
        RoutingError: If the payload holds no usable route.
    """
    routes = data.get("routes") or []
    if not routes:
        raise RoutingError(f"No route found (status={data.get('status', 'unknown')})")

    try:
        route = routes[0]
        leg = route["legs"][0]
        instructions = [_strip_html(step.get("html_instructions", "")) for step in leg.get("steps", [])]
        points = decode_polyline(route["overview_polyline"]["points"])
        return DirectionsResult(
            distance_km=leg["distance"]["value"] / 1000,
            duration_s=leg["duration"]["value"],
            points=points,
            instructions=instructions,
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise RoutingError(f"Malformed directions response: {e}") from e


def fetch_directions(
    origin: LocationSample,
    destination: LocationSample,
    options: RouteOptions | None = None,
    api_key: str = "",
) -> DirectionsResult:
    """Request a route from origin to destination.

    Raises:
        RoutingError: On transport errors, non-2xx responses or empty results.
    """
    options = options or RouteOptions()
    params = _build_params(origin, destination, options, api_key)

    try:
        response = requests.get(DIRECTIONS_URL, params=params, timeout=30)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        raise RoutingError(f"Directions request failed: {e}") from e

    result = parse_directions(data)
    logger.debug(
        "Route %s: %.2f km, %d points, %d steps",
        options.mode, result.distance_km, len(result.points), len(result.instructions),
    )
    return result
