"""Ride telemetry aggregation.

TelemetryAggregator is the single owner of an in-progress ride. It is a
two-state machine (idle / active); everything outside it sees the ride
only through immutable TelemetrySession snapshots.
"""

import logging
import time
import uuid

from ride_telemetry.distance import distance_between
from ride_telemetry.models import LocationSample, TelemetryPolicy, TelemetrySession
from ride_telemetry.validation import rejection_reason

logger = logging.getLogger(__name__)


class InvalidSessionStateError(RuntimeError):
    """An operation was called in the wrong aggregator state."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def estimate_calories(distance_km: float, kcal_per_km: float) -> float:
    """Calorie estimate from distance alone.

    A flat kcal-per-km rate, not a physiological model: rider mass, speed
    and grade are ignored.
    """
    return distance_km * kcal_per_km


def average_speed_kmh(distance_km: float, duration_s: float) -> float:
    """Average speed in km/h, 0 when no time has elapsed."""
    if duration_s <= 0:
        return 0.0
    return distance_km / (duration_s / 3600)


class TelemetryAggregator:
    """Accumulates distance, speed, elevation and calories for one ride at a time."""

    def __init__(self, policy: TelemetryPolicy | None = None):
        self.policy = policy or TelemetryPolicy()
        self._active = False
        self._reset()

    def _reset(self) -> None:
        self._session_id = ""
        self._start_time = 0
        self._route: list[LocationSample] = []
        self._distance_km = 0.0
        self._duration_s = 0
        self._current_speed_kmh = 0.0
        self._max_speed_kmh = 0.0
        self._elevation_gain_m = 0.0
        self._last_altitude: float | None = None

    @property
    def is_active(self) -> bool:
        return self._active

    def _require_active(self, operation: str) -> None:
        if not self._active:
            raise InvalidSessionStateError(f"Cannot {operation}: no active session")

    def start(self, now_ms: int | None = None) -> TelemetrySession:
        """Begin a new ride session."""
        if self._active:
            raise InvalidSessionStateError(
                f"Cannot start: session {self._session_id} is already active"
            )
        self._reset()
        self._session_id = uuid.uuid4().hex
        self._start_time = now_ms if now_ms is not None else _now_ms()
        self._active = True
        logger.info("Started ride session %s", self._session_id)
        return self.snapshot()

    def resume(self, record: dict) -> TelemetrySession:
        """Continue a ride from a recovery record.

        The record holds the route, distance and duration. Max speed and
        elevation gain are rebuilt from the stored route.
        """
        if self._active:
            raise InvalidSessionStateError(
                f"Cannot resume: session {self._session_id} is already active"
            )
        self._reset()
        route = [LocationSample.from_dict(pt) for pt in record.get("route") or []]
        self._session_id = record.get("session_id") or uuid.uuid4().hex
        self._start_time = int(record.get("start_time") or (route[0].timestamp if route else _now_ms()))
        self._route = route
        self._distance_km = float(record.get("distance", 0.0))
        self._duration_s = int(record.get("duration", 0))
        for pt in route:
            self._max_speed_kmh = max(self._max_speed_kmh, pt.speed * 3.6)
            self._accumulate_elevation(pt)
        if route:
            self._current_speed_kmh = route[-1].speed * 3.6
        self._active = True
        logger.info(
            "Resumed ride session %s (%d points, %.2f km)",
            self._session_id, len(route), self._distance_km,
        )
        return self.snapshot()

    def _accumulate_elevation(self, sample: LocationSample) -> None:
        # Samples without altitude leave the last known altitude in place
        if sample.altitude is None:
            return
        if self._last_altitude is not None:
            self._elevation_gain_m += max(0.0, sample.altitude - self._last_altitude)
        self._last_altitude = sample.altitude

    def ingest(self, sample: LocationSample) -> TelemetrySession:
        """Add a validated sample to the active ride."""
        self._require_active("ingest")

        if self._route:
            self._distance_km += distance_between(self._route[-1], sample) / 1000
        self._route.append(sample)

        self._current_speed_kmh = sample.speed * 3.6
        self._max_speed_kmh = max(self._max_speed_kmh, self._current_speed_kmh)
        self._accumulate_elevation(sample)
        return self.snapshot()

    def offer(self, sample: LocationSample, now_ms: int | None = None) -> bool:
        """Validate a sample and ingest it if acceptable.

        Returns:
            True if the sample was ingested, False if it was dropped.
        """
        self._require_active("ingest")
        if now_ms is None:
            now_ms = _now_ms()
        reason = rejection_reason(sample, now_ms, self.policy)
        if reason is not None:
            logger.debug("Dropping sample at %d: %s", sample.timestamp, reason)
            return False
        self.ingest(sample)
        return True

    def tick(self, seconds: int = 1) -> int:
        """Advance the ride clock, independent of sample arrival.

        Returns:
            Total duration in seconds.
        """
        self._require_active("tick")
        self._duration_s += seconds
        return self._duration_s

    def stop(self, now_ms: int | None = None) -> TelemetrySession:
        """Finish the ride and return the completed session."""
        self._require_active("stop")
        end_time = now_ms if now_ms is not None else _now_ms()
        session = self._build_session(end_time)
        self._active = False
        self._reset()
        logger.info(
            "Stopped ride session %s: %.2f km in %ds",
            session.session_id, session.distance_km, session.duration_s,
        )
        return session

    def snapshot(self) -> TelemetrySession | None:
        """Read-only view of the current ride, or None when idle."""
        if not self._active:
            return None
        return self._build_session(None)

    def _build_session(self, end_time: int | None) -> TelemetrySession:
        return TelemetrySession(
            session_id=self._session_id,
            start_time=self._start_time,
            end_time=end_time,
            route=tuple(self._route),
            distance_km=self._distance_km,
            duration_s=self._duration_s,
            current_speed_kmh=self._current_speed_kmh,
            avg_speed_kmh=average_speed_kmh(self._distance_km, self._duration_s),
            max_speed_kmh=self._max_speed_kmh,
            calories=estimate_calories(self._distance_km, self.policy.calories_per_km),
            elevation_gain_m=self._elevation_gain_m,
        )
