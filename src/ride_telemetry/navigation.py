"""Route deviation detection and compass guidance."""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Sequence

from ride_telemetry.distance import bearing_between, compass_octant, nearest_point_index
from ride_telemetry.models import LocationSample
from ride_telemetry.routing import DirectionsResult, RouteOptions, RoutingError, fetch_directions

logger = logging.getLogger(__name__)

DEFAULT_DEVIATION_THRESHOLD_M = 50.0

OCTANT_NAMES = {
    "N": "north",
    "NE": "northeast",
    "E": "east",
    "SE": "southeast",
    "S": "south",
    "SW": "southwest",
    "W": "west",
    "NW": "northwest",
}


@dataclass
class DeviationReport:
    distance_m: float  # distance from position to nearest route point
    deviated: bool


class RouteDeviationMonitor:
    """Reports how far a position is from the planned route.

    Only signals the deviation; requesting a new route is the caller's job.
    """

    def __init__(self, route: Sequence[LocationSample] = (), threshold_m: float = DEFAULT_DEVIATION_THRESHOLD_M):
        self.route = list(route)
        self.threshold_m = threshold_m

    def distance_off_route(self, position: LocationSample) -> float | None:
        nearest = nearest_point_index(self.route, position)
        return nearest[1] if nearest is not None else None

    def check(self, position: LocationSample) -> DeviationReport | None:
        """Compare position against the route; None if no route is loaded."""
        distance = self.distance_off_route(position)
        if distance is None:
            return None
        return DeviationReport(distance_m=distance, deviated=distance > self.threshold_m)


class InstructionStatus(Enum):
    NO_ROUTE = "no_route"
    ARRIVED = "arrived"
    HEADING = "heading"


@dataclass
class Instruction:
    status: InstructionStatus
    nearest_index: int | None = None
    bearing: float | None = None
    octant: str | None = None

    @property
    def text(self) -> str:
        if self.status is InstructionStatus.NO_ROUTE:
            return "No route loaded"
        if self.status is InstructionStatus.ARRIVED:
            return "Arrived"
        return f"Head {OCTANT_NAMES[self.octant]}"


class InstructionEngine:
    """Derives a compass heading toward the route point after the nearest one."""

    def __init__(self, route: Sequence[LocationSample] = ()):
        self.route = list(route)

    def instruction_for(self, position: LocationSample) -> Instruction:
        nearest = nearest_point_index(self.route, position)
        if nearest is None:
            return Instruction(status=InstructionStatus.NO_ROUTE)

        index = nearest[0]
        if index + 1 >= len(self.route):
            return Instruction(status=InstructionStatus.ARRIVED, nearest_index=index)

        bearing = bearing_between(position, self.route[index + 1])
        return Instruction(
            status=InstructionStatus.HEADING,
            nearest_index=index,
            bearing=bearing,
            octant=compass_octant(bearing),
        )


@dataclass
class NavigationUpdate:
    deviation: DeviationReport | None
    instruction: Instruction
    rerouted: bool = False
    reroute_error: str | None = None


DirectionsFetcher = Callable[[LocationSample, LocationSample, RouteOptions], DirectionsResult]


class Navigator:
    """Keeps the active route and requests a new one when the rider strays.

    With auto_reroute off it only reports deviation. A failed reroute
    leaves the last known route in place so guidance continues.
    """

    def __init__(
        self,
        destination: LocationSample,
        fetch: DirectionsFetcher | None = None,
        options: RouteOptions | None = None,
        threshold_m: float = DEFAULT_DEVIATION_THRESHOLD_M,
        api_key: str = "",
        auto_reroute: bool = True,
    ):
        self.destination = destination
        self.options = options or RouteOptions()
        self._fetch = fetch or (lambda origin, dest, opts: fetch_directions(origin, dest, opts, api_key))
        self.monitor = RouteDeviationMonitor(threshold_m=threshold_m)
        self.engine = InstructionEngine()
        self.directions: DirectionsResult | None = None
        self.auto_reroute = auto_reroute

    @property
    def route(self) -> list[LocationSample]:
        return self.monitor.route

    def set_route(self, directions: DirectionsResult) -> None:
        self.directions = directions
        self.monitor.route = list(directions.points)
        self.engine.route = list(directions.points)

    def plan(self, origin: LocationSample) -> DirectionsResult:
        """Fetch and load a route from origin to the destination.

        Raises:
            RoutingError: If the provider fails.
        """
        directions = self._fetch(origin, self.destination, self.options)
        self.set_route(directions)
        return directions

    def update(self, position: LocationSample) -> NavigationUpdate:
        deviation = self.monitor.check(position)
        rerouted = False
        reroute_error = None

        if self.auto_reroute and deviation is not None and deviation.deviated:
            logger.info("Off route by %.0f m, rerouting", deviation.distance_m)
            try:
                self.plan(position)
                rerouted = True
            except RoutingError as e:
                logger.warning("Reroute failed, keeping last route: %s", e)
                reroute_error = str(e)

        return NavigationUpdate(
            deviation=deviation,
            instruction=self.engine.instruction_for(position),
            rerouted=rerouted,
            reroute_error=reroute_error,
        )
