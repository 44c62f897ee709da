"""Unit tests for the directions client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from ride_telemetry import routing
from ride_telemetry.routing import (
    RouteOptions,
    RoutingError,
    decode_polyline,
    fetch_directions,
    parse_directions,
)

# Example from Google's encoded polyline documentation
ENCODED = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def directions_payload():
    return {
        "status": "OK",
        "routes": [{
            "legs": [{
                "distance": {"value": 2500},
                "duration": {"value": 600},
                "steps": [
                    {"html_instructions": "Head <b>north</b> on Main St"},
                    {"html_instructions": "Turn <b>right</b>"},
                ],
            }],
            "overview_polyline": {"points": ENCODED},
        }],
    }


class TestDecodePolyline:
    def test_reference_example(self):
        points = decode_polyline(ENCODED, timestamp=0)
        coords = [(round(p.lat, 5), round(p.lon, 5)) for p in points]
        assert coords == [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]

    def test_empty(self):
        assert decode_polyline("") == []

    def test_points_carry_timestamp(self):
        points = decode_polyline(ENCODED, timestamp=1234)
        assert all(p.timestamp == 1234 for p in points)
        assert all(p.speed == 0.0 for p in points)

    def test_truncated_raises(self):
        with pytest.raises(ValueError, match="Truncated"):
            decode_polyline("_p~iF~ps|")


class TestRouteOptions:
    def test_defaults(self):
        options = RouteOptions()
        assert options.mode == "bicycling"
        assert options.avoid_highways
        assert options.avoid_tolls
        assert options.alternatives

    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="Unknown travel mode"):
            RouteOptions(mode="driving")


class TestParseDirections:
    def test_parses_first_route(self):
        result = parse_directions(directions_payload())
        assert result.distance_km == 2.5
        assert result.duration_s == 600
        assert len(result.points) == 3
        assert result.instructions == ["Head north on Main St", "Turn right"]

    def test_no_routes(self):
        with pytest.raises(RoutingError, match="No route found"):
            parse_directions({"status": "ZERO_RESULTS", "routes": []})

    def test_malformed(self):
        with pytest.raises(RoutingError, match="Malformed"):
            parse_directions({"routes": [{"legs": []}]})


class TestFetchDirections:
    @patch.object(routing.requests, "get")
    def test_request_params(self, mock_get, make_sample):
        mock_response = MagicMock()
        mock_response.json.return_value = directions_payload()
        mock_get.return_value = mock_response

        options = RouteOptions(mode="walking", avoid_tolls=False, alternatives=False)
        result = fetch_directions(make_sample(35.0, 139.0), make_sample(35.1, 139.1), options, api_key="key")

        assert len(result.points) == 3
        params = mock_get.call_args.kwargs["params"]
        assert params["origin"] == "35.0,139.0"
        assert params["destination"] == "35.1,139.1"
        assert params["mode"] == "walking"
        assert params["avoid"] == "highways"
        assert params["alternatives"] == "false"
        assert params["key"] == "key"

    @patch.object(routing.requests, "get")
    def test_transport_error(self, mock_get, make_sample):
        mock_get.side_effect = requests.ConnectionError("offline")
        with pytest.raises(RoutingError, match="Directions request failed"):
            fetch_directions(make_sample(35.0, 139.0), make_sample(35.1, 139.1))

    @patch.object(routing.requests, "get")
    def test_http_error(self, mock_get, make_sample):
        mock_response = MagicMock()
        mock_response.raise_for_status.side_effect = requests.HTTPError("403")
        mock_get.return_value = mock_response
        with pytest.raises(RoutingError):
            fetch_directions(make_sample(35.0, 139.0), make_sample(35.1, 139.1))
