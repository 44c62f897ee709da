"""Crash recovery for in-progress rides.

While a ride is active its state is written periodically under a single
key. On startup a recent record can be resumed or discarded; anything
older than the recovery window is dropped without asking.
"""

import json
import logging

from ride_telemetry.aggregator import TelemetryAggregator
from ride_telemetry.models import LocationSample, TelemetryPolicy, TelemetrySession
from ride_telemetry.storage import KeyValueStore

logger = logging.getLogger(__name__)

CURRENT_SESSION_KEY = "current_session"


def snapshot_record(session: TelemetrySession, now_ms: int) -> dict:
    return {
        "session_id": session.session_id,
        "start_time": session.start_time,
        "route": [pt.to_dict() for pt in session.route],
        "distance": session.distance_km,
        "duration": session.duration_s,
        "lastUpdateTimestamp": now_ms,
    }


class RecoveryOffer:
    """A resumable snapshot found at startup. The caller picks resume or discard."""

    def __init__(self, store: "SessionRecoveryStore", record: dict, age_s: float):
        self._store = store
        self.record = record
        self.age_s = age_s

    @property
    def distance_km(self) -> float:
        return float(self.record.get("distance", 0.0))

    @property
    def duration_s(self) -> int:
        return int(self.record.get("duration", 0))

    def resume(self, aggregator: TelemetryAggregator) -> TelemetrySession:
        return aggregator.resume(self.record)

    def discard(self) -> None:
        self._store.clear()


class SessionRecoveryStore:
    def __init__(self, store: KeyValueStore, policy: TelemetryPolicy | None = None):
        self.store = store
        self.policy = policy or TelemetryPolicy()
        self._last_saved_ms: int | None = None

    def save(self, session: TelemetrySession, now_ms: int) -> bool:
        """Overwrite the current-session record.

        Returns:
            True if written, False if the store failed (logged, not raised).
        """
        payload = json.dumps(snapshot_record(session, now_ms)).encode()
        try:
            self.store.set(CURRENT_SESSION_KEY, payload)
        except OSError as e:
            logger.warning("Failed to save session snapshot: %s", e)
            return False
        self._last_saved_ms = now_ms
        return True

    def maybe_save(self, session: TelemetrySession, now_ms: int) -> bool:
        """Save if the snapshot interval has passed since the last save."""
        interval_ms = self.policy.snapshot_interval_s * 1000
        if self._last_saved_ms is not None and now_ms - self._last_saved_ms < interval_ms:
            return False
        return self.save(session, now_ms)

    def load(self) -> dict | None:
        try:
            raw = self.store.get(CURRENT_SESSION_KEY)
        except OSError as e:
            logger.warning("Failed to read session snapshot: %s", e)
            return None
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding corrupt session snapshot: %s", e)
            self.clear()
            return None
        if not isinstance(record, dict) or "lastUpdateTimestamp" not in record:
            logger.warning("Discarding session snapshot without timestamp")
            self.clear()
            return None
        try:
            record["lastUpdateTimestamp"] = int(record["lastUpdateTimestamp"])
            for pt in record.get("route") or []:
                LocationSample.from_dict(pt)
            float(record.get("distance", 0.0))
            int(record.get("duration", 0))
            int(record.get("start_time") or 0)
        except (TypeError, ValueError, KeyError, OverflowError) as e:
            logger.warning("Discarding damaged session snapshot: %r", e)
            self.clear()
            return None
        return record

    def check_startup(self, now_ms: int) -> RecoveryOffer | None:
        """Look for an interrupted ride.

        Returns:
            A RecoveryOffer if a snapshot is within the recovery window,
            otherwise None. Abandoned snapshots are deleted. A snapshot
            stamped later than now_ms (clock moved back) counts as 0 s old.
        """
        record = self.load()
        if record is None:
            return None

        age_s = max(0.0, (now_ms - record["lastUpdateTimestamp"]) / 1000)
        if age_s > self.policy.recovery_window_s:
            logger.info("Discarding abandoned session snapshot (%.0fs old)", age_s)
            self.clear()
            return None
        return RecoveryOffer(self, record, age_s)

    def clear(self) -> None:
        self._last_saved_ms = None
        try:
            self.store.remove(CURRENT_SESSION_KEY)
        except OSError as e:
            logger.warning("Failed to delete session snapshot: %s", e)
