"""Ride lifecycle: position events in, completed rides out.

RideRecorder connects the validator, aggregator, recovery store and ride
ledger. The one-second duration clock runs as an asyncio task so it keeps
ticking between GPS updates.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Mapping

from ride_telemetry.aggregator import TelemetryAggregator
from ride_telemetry.models import TelemetryPolicy, TelemetrySession
from ride_telemetry.recovery import RecoveryOffer, SessionRecoveryStore
from ride_telemetry.storage import KeyValueStore, RideLedger
from ride_telemetry.validation import sample_from_position

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RideRecorder:
    def __init__(
        self,
        store: KeyValueStore,
        policy: TelemetryPolicy | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.policy = policy or TelemetryPolicy()
        self.clock = clock
        self.aggregator = TelemetryAggregator(self.policy)
        self.recovery = SessionRecoveryStore(store, self.policy)
        self.ledger = RideLedger(store)
        self._clock_task: asyncio.Task | None = None

    def pending_recovery(self) -> RecoveryOffer | None:
        """Check for an interrupted ride at startup."""
        return self.recovery.check_startup(self.clock())

    def start(self) -> TelemetrySession:
        session = self.aggregator.start(self.clock())
        self.recovery.save(session, self.clock())
        return session

    def resume(self, offer: RecoveryOffer) -> TelemetrySession:
        return offer.resume(self.aggregator)

    def on_position(self, event: Mapping[str, Any]) -> bool:
        """Handle a raw position event from the device.

        Returns:
            True if the sample was accepted.
        """
        try:
            sample = sample_from_position(event)
        except ValueError as e:
            logger.debug("Dropping position event: %s", e)
            return False
        return self.aggregator.offer(sample, self.clock())

    def tick(self) -> None:
        """One second of ride time; snapshots for recovery when due."""
        self.aggregator.tick()
        self.recovery.maybe_save(self.aggregator.snapshot(), self.clock())

    def start_clock(self, interval: float = 1.0) -> asyncio.Task:
        """Run the duration clock on the current event loop."""
        if self._clock_task is not None and not self._clock_task.done():
            return self._clock_task
        self._clock_task = asyncio.get_running_loop().create_task(run_ride_clock(self, interval))
        return self._clock_task

    def stop(self) -> TelemetrySession:
        """Finish the ride, record it in the ledger and drop the recovery snapshot."""
        if self._clock_task is not None:
            self._clock_task.cancel()
            self._clock_task = None
        session = self.aggregator.stop(self.clock())
        self.recovery.clear()
        try:
            self.ledger.save_record(session)
        except OSError as e:
            logger.warning("Failed to save ride record %s: %s", session.session_id, e)
        return session


async def run_ride_clock(recorder: RideRecorder, interval: float = 1.0) -> None:
    """Tick the recorder every interval until the ride stops."""
    while recorder.aggregator.is_active:
        await asyncio.sleep(interval)
        if not recorder.aggregator.is_active:
            break
        recorder.tick()
