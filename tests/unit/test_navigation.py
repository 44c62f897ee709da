from unittest.mock import MagicMock

import pytest

from ride_telemetry.navigation import (
    InstructionEngine,
    InstructionStatus,
    Navigator,
    RouteDeviationMonitor,
)
from ride_telemetry.routing import DirectionsResult, RouteOptions, RoutingError


@pytest.fixture
def make_route(make_sample):
    def build(*coords):
        return [make_sample(lat, lon) for lat, lon in coords]
    return build


class TestRouteDeviationMonitor:
    def test_deviated_beyond_threshold(self, make_route, make_sample):
        monitor = RouteDeviationMonitor(make_route((0, 0), (0, 1)))
        report = monitor.check(make_sample(0, 0.001))
        assert report.deviated
        assert report.distance_m == pytest.approx(111.19, abs=0.5)

    def test_not_deviated_within_threshold(self, make_route, make_sample):
        monitor = RouteDeviationMonitor(make_route((0, 0), (0, 1)))
        report = monitor.check(make_sample(0, 0.0001))
        assert not report.deviated
        assert report.distance_m == pytest.approx(11.12, abs=0.1)

    def test_no_route_loaded(self, make_sample):
        assert RouteDeviationMonitor().check(make_sample(0, 0)) is None

    def test_uses_nearest_point(self, make_route, make_sample):
        monitor = RouteDeviationMonitor(make_route((0, 0), (0, 0.001), (0, 0.002)))
        report = monitor.check(make_sample(0, 0.0021))
        assert not report.deviated
        assert report.distance_m == pytest.approx(11.12, abs=0.1)

    def test_custom_threshold(self, make_route, make_sample):
        monitor = RouteDeviationMonitor(make_route((0, 0)), threshold_m=10.0)
        assert monitor.check(make_sample(0, 0.0001)).deviated


class TestInstructionEngine:
    def test_heading_to_point_after_nearest(self, make_route, make_sample):
        engine = InstructionEngine(make_route((0, 0), (0, 0.001), (0.001, 0.001)))
        instruction = engine.instruction_for(make_sample(0, 0.0009))
        assert instruction.status is InstructionStatus.HEADING
        assert instruction.nearest_index == 1
        assert instruction.octant == "N"
        assert instruction.text == "Head north"

    def test_heading_east(self, make_route, make_sample):
        engine = InstructionEngine(make_route((0, 0), (0, 0.001)))
        instruction = engine.instruction_for(make_sample(0, 0))
        assert instruction.octant == "E"
        assert instruction.bearing == pytest.approx(90.0)

    def test_arrived_at_last_point(self, make_route, make_sample):
        engine = InstructionEngine(make_route((0, 0), (0, 0.001)))
        instruction = engine.instruction_for(make_sample(0, 0.0011))
        assert instruction.status is InstructionStatus.ARRIVED
        assert instruction.nearest_index == 1
        assert instruction.text == "Arrived"

    def test_no_route_distinct_from_arrival(self, make_sample):
        instruction = InstructionEngine().instruction_for(make_sample(0, 0))
        assert instruction.status is InstructionStatus.NO_ROUTE
        assert instruction.nearest_index is None

    def test_tie_resolves_to_earliest_point(self, make_route, make_sample):
        # Loop route: start and end at the same spot
        engine = InstructionEngine(make_route((0, 0), (0.001, 0), (0, 0)))
        instruction = engine.instruction_for(make_sample(0, 0))
        assert instruction.status is InstructionStatus.HEADING
        assert instruction.nearest_index == 0
        assert instruction.octant == "N"


class TestNavigator:
    @pytest.fixture
    def directions(self, make_route):
        return DirectionsResult(
            distance_km=0.2,
            duration_s=60,
            points=make_route((0, 0), (0, 0.001), (0, 0.002)),
            instructions=["Head east"],
        )

    def test_plan_loads_route(self, directions, make_sample):
        fetch = MagicMock(return_value=directions)
        nav = Navigator(make_sample(0, 0.002), fetch=fetch)
        nav.plan(make_sample(0, 0))
        assert nav.route == directions.points
        fetch.assert_called_once()
        _, _, options = fetch.call_args[0]
        assert isinstance(options, RouteOptions)

    def test_on_route_no_reroute(self, directions, make_sample):
        fetch = MagicMock(return_value=directions)
        nav = Navigator(make_sample(0, 0.002), fetch=fetch)
        nav.set_route(directions)
        update = nav.update(make_sample(0, 0.0001))
        assert not update.deviation.deviated
        assert not update.rerouted
        assert update.instruction.status is InstructionStatus.HEADING
        fetch.assert_not_called()

    def test_deviation_triggers_reroute(self, directions, make_route, make_sample):
        new_route = DirectionsResult(0.3, 90, make_route((0.001, 0.001), (0, 0.002)), [])
        fetch = MagicMock(return_value=new_route)
        nav = Navigator(make_sample(0, 0.002), fetch=fetch)
        nav.set_route(directions)
        update = nav.update(make_sample(0.001, 0.001))
        assert update.deviation.deviated
        assert update.rerouted
        assert nav.route == new_route.points
        origin, destination, _ = fetch.call_args[0]
        assert origin == make_sample(0.001, 0.001)
        assert destination == make_sample(0, 0.002)

    def test_reroute_failure_keeps_last_route(self, directions, make_sample):
        fetch = MagicMock(side_effect=RoutingError("No route found"))
        nav = Navigator(make_sample(0, 0.002), fetch=fetch)
        nav.set_route(directions)
        update = nav.update(make_sample(0.001, 0.001))
        assert update.deviation.deviated
        assert not update.rerouted
        assert update.reroute_error == "No route found"
        assert nav.route == directions.points
        assert update.instruction.status is InstructionStatus.HEADING

    def test_auto_reroute_off_only_reports(self, directions, make_sample):
        fetch = MagicMock()
        nav = Navigator(make_sample(0, 0.002), fetch=fetch, auto_reroute=False)
        nav.set_route(directions)
        update = nav.update(make_sample(0.001, 0.001))
        assert update.deviation.deviated
        assert not update.rerouted
        assert update.reroute_error is None
        fetch.assert_not_called()

    def test_default_fetch_passes_api_key(self, directions, make_sample, monkeypatch):
        fetch = MagicMock(return_value=directions)
        monkeypatch.setattr("ride_telemetry.navigation.fetch_directions", fetch)
        nav = Navigator(make_sample(0, 0.002), api_key="maps-key")
        nav.plan(make_sample(0, 0))
        assert fetch.call_args[0][3] == "maps-key"

    def test_update_without_route(self, make_sample):
        nav = Navigator(make_sample(0, 0.002), fetch=MagicMock())
        update = nav.update(make_sample(0, 0))
        assert update.deviation is None
        assert update.instruction.status is InstructionStatus.NO_ROUTE
