"""Fetch current weather from the Tomorrow.io realtime API."""

import logging
import math
import time

import requests

from ride_telemetry.distance import compass_octant
from ride_telemetry.models import WeatherReading

logger = logging.getLogger(__name__)

TOMORROW_REALTIME_URL = "https://api.tomorrow.io/v4/weather/realtime"

WEATHER_CODES = {
    1000: "Clear",
    1100: "Mostly Clear",
    1101: "Partly Cloudy",
    1102: "Mostly Cloudy",
    2000: "Fog",
    2100: "Light Fog",
    3000: "Light Wind",
    3001: "Wind",
    3002: "Strong Wind",
    4000: "Drizzle",
    4001: "Rain",
    4200: "Light Rain",
    4201: "Heavy Rain",
    5000: "Snow",
    5001: "Flurries",
    5100: "Light Snow",
    5101: "Heavy Snow",
    6000: "Freezing Drizzle",
    6001: "Freezing Rain",
    6200: "Light Freezing Rain",
    6201: "Heavy Freezing Rain",
    7000: "Ice Pellets",
    7101: "Heavy Ice Pellets",
    7102: "Light Ice Pellets",
    8000: "Thunderstorm",
}


class WeatherFetchError(Exception):
    """No usable weather reading could be obtained."""


def is_valid_coordinates(lat: float, lon: float) -> bool:
    return (
        math.isfinite(lat) and math.isfinite(lon)
        and -90 <= lat <= 90 and -180 <= lon <= 180
    )


def _bounded(values: dict, name: str, low: float, high: float) -> float:
    """Read a numeric field and check it lies in [low, high]."""
    try:
        value = float(values[name])
    except (KeyError, TypeError, ValueError) as e:
        raise WeatherFetchError(f"Missing or non-numeric {name}") from e
    if math.isnan(value) or value < low or value > high:
        raise WeatherFetchError(f"{name}={value} is outside valid range [{low}, {high}]")
    return value


def describe_weather_code(code) -> str:
    return WEATHER_CODES.get(code, "Unknown")


def parse_realtime(data: dict, timestamp: int | None = None) -> WeatherReading:
    """Build a WeatherReading from a realtime API payload.

    Raises:
        WeatherFetchError: If the payload is malformed or values are out of range.
    """
    try:
        values = data["data"]["values"]
    except (KeyError, TypeError) as e:
        raise WeatherFetchError("Invalid weather data format") from e
    if not isinstance(values, dict):
        raise WeatherFetchError("Invalid weather data format")

    return WeatherReading(
        temperature=_bounded(values, "temperature", -100, 100),
        humidity=_bounded(values, "humidity", 0, 100),
        wind_speed=_bounded(values, "windSpeed", 0, 200),
        wind_direction=compass_octant(_bounded(values, "windDirection", 0, 360)),
        description=describe_weather_code(values.get("weatherCode")),
        precipitation=_bounded(values, "precipitationProbability", 0, 100),
        visibility=_bounded(values, "visibility", 0, 100),
        uv_index=_bounded(values, "uvIndex", 0, 12),
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
    )


def fetch_weather(lat: float, lon: float, api_key: str = "") -> WeatherReading:
    """Fetch the current weather at a coordinate.

    Raises:
        ValueError: If the coordinates are invalid.
        WeatherFetchError: On transport errors, non-2xx responses or bad payloads.
    """
    if not is_valid_coordinates(lat, lon):
        raise ValueError(f"Invalid coordinates: {lat}, {lon}")

    try:
        response = requests.get(
            TOMORROW_REALTIME_URL,
            params={"location": f"{lat},{lon}", "apikey": api_key, "units": "metric"},
            headers={"Accept": "application/json"},
            timeout=30,
        )
    except requests.RequestException as e:
        raise WeatherFetchError(f"Weather request failed: {e}") from e

    if not response.ok:
        raise WeatherFetchError(f"Weather API error: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise WeatherFetchError("Weather API returned invalid JSON") from e

    return parse_realtime(data)
