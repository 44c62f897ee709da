"""GPX and CSV export of completed rides."""

import csv
import io
from datetime import datetime, timezone
from xml.etree import ElementTree

import gpxpy
import gpxpy.gpx

from ride_telemetry.models import TelemetrySession

GPX_CREATOR = "ride-telemetry"
CSV_COLUMNS = ["time", "latitude", "longitude", "altitude", "speed"]


def _to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def to_gpx(session: TelemetrySession) -> str:
    """Render a ride as GPX 1.1 with one track and one segment."""
    gpx = gpxpy.gpx.GPX()
    gpx.creator = GPX_CREATOR
    gpx.time = _to_datetime(session.start_time)

    track = gpxpy.gpx.GPXTrack(name=f"Ride {_to_datetime(session.start_time):%Y-%m-%d}")
    gpx.tracks.append(track)
    segment = gpxpy.gpx.GPXTrackSegment()
    track.segments.append(segment)

    for pt in session.route:
        point = gpxpy.gpx.GPXTrackPoint(
            latitude=pt.lat,
            longitude=pt.lon,
            elevation=pt.altitude if pt.altitude is not None else 0.0,
            time=_to_datetime(pt.timestamp),
        )
        # GPX 1.1 has no speed element; carry it as a point extension
        speed = ElementTree.Element("speed")
        speed.text = f"{pt.speed}"
        point.extensions.append(speed)
        segment.points.append(point)

    return gpx.to_xml(version="1.1")


def to_csv(session: TelemetrySession) -> str:
    """Render a ride as CSV, one row per route point."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for pt in session.route:
        writer.writerow([
            _to_datetime(pt.timestamp).isoformat().replace("+00:00", "Z"),
            pt.lat,
            pt.lon,
            pt.altitude if pt.altitude is not None else 0,
            pt.speed,
        ])
    return buf.getvalue()


def export_session(session: TelemetrySession, fmt: str = "gpx") -> str:
    if fmt == "gpx":
        return to_gpx(session)
    elif fmt == "csv":
        return to_csv(session)
    else:
        raise ValueError(f"Unknown export format: {fmt}")
