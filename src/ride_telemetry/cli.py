import argparse
import logging
import sys
from pathlib import Path

from ride_telemetry import __version__, get_git_hash
from ride_telemetry.cache import COMMON_LOCATIONS, WeatherCache
from ride_telemetry.config import (
    _load_config,
    get_maps_api_key,
    get_preload_locations,
    get_store_dir,
    get_weather_api_key,
    policy_from_config,
)
from ride_telemetry.distance import distance_between
from ride_telemetry.export import export_session
from ride_telemetry.formatters import format_age, format_duration_long, format_speed
from ride_telemetry.models import LocationSample, TelemetrySession
from ride_telemetry.navigation import Navigator
from ride_telemetry.parser import parse_gpx
from ride_telemetry.recorder import RideRecorder
from ride_telemetry.routing import TRAVEL_MODES, DirectionsResult, RouteOptions
from ride_telemetry.storage import FileStore, MemoryStore, RideLedger
from ride_telemetry.weather import WeatherFetchError, fetch_weather


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ride-telemetry",
        description="Cycling ride telemetry, route guidance and weather cache.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"ride-telemetry {__version__} ({get_git_hash()})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay a GPX track as a live ride")
    replay.add_argument("gpx_file", help="Path to GPX file")
    replay.add_argument("--save", action="store_true", help="Record the ride in the ride ledger")
    replay.add_argument("--gpx-out", help="Write the recorded ride as GPX")
    replay.add_argument("--csv-out", help="Write the recorded ride as CSV")
    replay.add_argument("--chart-out", help="Write an elevation/speed profile PNG")

    guide = sub.add_parser("guide", help="Check a position against a planned route")
    guide.add_argument("route_file", help="GPX file with the planned route")
    guide.add_argument("lat", type=float)
    guide.add_argument("lon", type=float)
    guide.add_argument(
        "--reroute",
        action="store_true",
        help="Request a new route to the route's end from the directions API when off route",
    )
    guide.add_argument("--mode", choices=TRAVEL_MODES, default="bicycling", help="Travel mode for rerouting")

    weather = sub.add_parser("weather", help="Current weather at a coordinate (cached)")
    weather.add_argument("lat", type=float)
    weather.add_argument("lon", type=float)

    sub.add_parser("weather-preload", help="Warm the weather cache for known locations")
    sub.add_parser("weather-stats", help="Show weather cache statistics")

    sub.add_parser("rides", help="List recorded rides")

    export = sub.add_parser("export", help="Export a recorded ride")
    export.add_argument("session_id", help="Ride ID as shown by 'rides'")
    export.add_argument("--format", choices=["gpx", "csv"], default="gpx")
    export.add_argument("--output", "-o", help="Output file (default: stdout)")
    return parser


def print_session_summary(session: TelemetrySession) -> None:
    print("=== Ride Summary ===")
    print(f"Ride ID:        {session.session_id}")
    print(f"Points:         {len(session.route)}")
    print(f"Distance:       {session.distance_km:.2f} km ({session.distance_km * 0.621371:.2f} mi)")
    print(f"Duration:       {format_duration_long(session.duration_s)}")
    print(f"Avg Speed:      {format_speed(session.avg_speed_kmh)}")
    print(f"Max Speed:      {format_speed(session.max_speed_kmh)}")
    print(f"Elevation Gain: {session.elevation_gain_m:.0f} m ({session.elevation_gain_m * 3.28084:.0f} ft)")
    print(f"Calories:       {session.calories:.0f} kcal")


def replay_samples(samples: list[LocationSample], recorder: RideRecorder, clock: list[int]) -> tuple[TelemetrySession, int]:
    """Feed recorded samples through the recorder on a simulated clock.

    ``clock`` is a one-element list holding the simulated epoch ms, shared
    with the recorder's clock function.

    Returns:
        (completed session, number of rejected samples)
    """
    start = samples[0].timestamp
    clock[0] = start
    recorder.start()
    rejected = 0
    for sample in samples:
        elapsed_s = (sample.timestamp - start) // 1000
        while recorder.aggregator.snapshot().duration_s < elapsed_s:
            clock[0] = start + (recorder.aggregator.snapshot().duration_s + 1) * 1000
            recorder.tick()
        clock[0] = max(clock[0], sample.timestamp)
        event = {
            "latitude": sample.lat,
            "longitude": sample.lon,
            "timestamp": sample.timestamp,
            "speed": sample.speed,
            "altitude": sample.altitude,
        }
        if not recorder.on_position(event):
            rejected += 1
    return recorder.stop(), rejected


def _cmd_replay(args, config: dict) -> int:
    try:
        samples = parse_gpx(args.gpx_file)
    except FileNotFoundError:
        print(f"Error: File not found: {args.gpx_file}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error parsing GPX file: {e}", file=sys.stderr)
        return 1

    if len(samples) < 2:
        print("Error: GPX file contains fewer than 2 timestamped track points.", file=sys.stderr)
        return 1

    samples.sort(key=lambda s: s.timestamp)
    store = FileStore(get_store_dir(config)) if args.save else MemoryStore()
    clock = [0]
    recorder = RideRecorder(store, policy_from_config(config), clock=lambda: clock[0])
    session, rejected = replay_samples(samples, recorder, clock)

    print_session_summary(session)
    if rejected:
        print(f"Rejected:       {rejected} samples")

    if args.gpx_out:
        Path(args.gpx_out).write_text(export_session(session, "gpx"))
    if args.csv_out:
        Path(args.csv_out).write_text(export_session(session, "csv"))
    if args.chart_out:
        from ride_telemetry.charts import plot_ride_profile
        Path(args.chart_out).write_bytes(plot_ride_profile(session))
    return 0


def _cmd_guide(args, config: dict) -> int:
    try:
        route = parse_gpx(args.route_file, require_time=False)
    except FileNotFoundError:
        print(f"Error: File not found: {args.route_file}", file=sys.stderr)
        return 1
    if not route:
        print("Error: Route file contains no points.", file=sys.stderr)
        return 1

    policy = policy_from_config(config)
    navigator = Navigator(
        destination=route[-1],
        options=RouteOptions(mode=args.mode),
        threshold_m=policy.deviation_threshold_m,
        api_key=get_maps_api_key(config),
        auto_reroute=args.reroute,
    )
    length_km = sum(distance_between(a, b) for a, b in zip(route, route[1:])) / 1000
    navigator.set_route(DirectionsResult(distance_km=length_km, duration_s=0, points=route, instructions=[]))

    position = LocationSample(lat=args.lat, lon=args.lon, timestamp=0)
    update = navigator.update(position)
    report = update.deviation

    print(f"Off route:      {report.distance_m:.0f} m{' (deviated)' if report.deviated else ''}")
    if update.rerouted:
        directions = navigator.directions
        print(
            f"Rerouted:       {directions.distance_km:.2f} km, "
            f"{format_duration_long(directions.duration_s)}, {len(directions.points)} points"
        )
        for step in directions.instructions:
            print(f"  - {step}")
    elif update.reroute_error:
        print(f"Reroute failed: {update.reroute_error}", file=sys.stderr)
    print(f"Instruction:    {update.instruction.text}")
    return 0


def _weather_cache(config: dict) -> WeatherCache:
    api_key = get_weather_api_key(config)
    cache = WeatherCache(
        FileStore(get_store_dir(config)),
        lambda lat, lon: fetch_weather(lat, lon, api_key),
        policy_from_config(config),
    )
    cache.initialize()
    return cache


def _cmd_weather(args, config: dict) -> int:
    cache = _weather_cache(config)
    try:
        reading = cache.lookup(args.lat, args.lon)
    except (WeatherFetchError, ValueError) as e:
        print(f"Error fetching weather: {e}", file=sys.stderr)
        return 1

    print(f"Conditions:     {reading.description}")
    print(f"Temperature:    {reading.temperature:.1f} °C")
    print(f"Humidity:       {reading.humidity:.0f}%")
    print(f"Wind:           {reading.wind_speed:.1f} m/s {reading.wind_direction}")
    print(f"Precipitation:  {reading.precipitation:.0f}%")
    print(f"Visibility:     {reading.visibility:.1f} km")
    print(f"UV Index:       {reading.uv_index:.0f}")
    return 0


def _cmd_weather_preload(args, config: dict) -> int:
    cache = _weather_cache(config)
    locations = get_preload_locations(config) or COMMON_LOCATIONS
    loaded = cache.preload(locations)
    print(f"Preloaded {loaded} location(s)")
    return 0


def _cmd_weather_stats(args, config: dict) -> int:
    stats = _weather_cache(config).stats()
    print(f"Entries:        {stats['size']} ({stats['fresh']} fresh, {stats['stale']} stale)")
    if stats["size"]:
        print(f"Average Age:    {format_age(stats['average_age_s'])}")
        print(f"Oldest:         {format_age(stats['oldest_age_s'])}")
        print(f"Newest:         {format_age(stats['newest_age_s'])}")
    return 0


def _cmd_rides(args, config: dict) -> int:
    records = RideLedger(FileStore(get_store_dir(config))).records()
    if not records:
        print("No rides recorded.")
        return 0
    for r in records:
        print(
            f"{r.session_id}  {r.distance_km:7.2f} km  {format_duration_long(r.duration_s)}  "
            f"{r.avg_speed_kmh:5.1f} km/h"
        )
    return 0


def _cmd_export(args, config: dict) -> int:
    session = RideLedger(FileStore(get_store_dir(config))).find(args.session_id)
    if session is None:
        print(f"Error: No ride with ID {args.session_id}", file=sys.stderr)
        return 1
    content = export_session(session, args.format)
    if args.output:
        Path(args.output).write_text(content)
    else:
        sys.stdout.write(content)
    return 0


COMMANDS = {
    "replay": _cmd_replay,
    "guide": _cmd_guide,
    "weather": _cmd_weather,
    "weather-preload": _cmd_weather_preload,
    "weather-stats": _cmd_weather_stats,
    "rides": _cmd_rides,
    "export": _cmd_export,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = _load_config()
    try:
        code = COMMANDS[args.command](args, config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)
