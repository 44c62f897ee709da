import os

import pytest

from ride_telemetry.models import LocationSample, TelemetryPolicy, WeatherReading
from ride_telemetry.storage import MemoryStore

SAMPLE_GPX_PATH = os.path.join(
    os.path.dirname(__file__), "functional", "data", "sample_ride.gpx"
)
PLANNED_ROUTE_PATH = os.path.join(
    os.path.dirname(__file__), "functional", "data", "planned_route.gpx"
)

# 2024-06-15 08:00:00 UTC
BASE_TIME_MS = 1_718_438_400_000


class FakeClock:
    """Settable epoch-ms clock."""

    def __init__(self, now_ms: int = BASE_TIME_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> int:
        self.now_ms += int(seconds * 1000)
        return self.now_ms


@pytest.fixture
def base_time_ms():
    return BASE_TIME_MS


@pytest.fixture
def sample_gpx_path():
    return SAMPLE_GPX_PATH


@pytest.fixture
def planned_route_path():
    return PLANNED_ROUTE_PATH


@pytest.fixture
def make_sample():
    """Build a LocationSample stamped ``seconds`` after the base time."""
    def build(lat, lon, seconds=0, speed=5.0, altitude=None):
        return LocationSample(
            lat=lat,
            lon=lon,
            timestamp=BASE_TIME_MS + int(seconds * 1000),
            speed=speed,
            altitude=altitude,
        )
    return build


@pytest.fixture
def make_reading():
    def build(temperature=21.5, timestamp=BASE_TIME_MS):
        return WeatherReading(
            temperature=temperature,
            humidity=60.0,
            wind_speed=3.2,
            wind_direction="NE",
            description="Partly Cloudy",
            precipitation=10.0,
            visibility=16.0,
            uv_index=4.0,
            timestamp=timestamp,
        )
    return build


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def policy():
    return TelemetryPolicy()


@pytest.fixture
def climbing_samples(make_sample):
    """Three samples ~111 m apart going north: up 5 m, then down 3 m."""
    return [
        make_sample(35.000, 139.0, seconds=0, speed=5.0, altitude=10.0),
        make_sample(35.001, 139.0, seconds=20, speed=6.0, altitude=15.0),
        make_sample(35.002, 139.0, seconds=40, speed=4.0, altitude=12.0),
    ]
