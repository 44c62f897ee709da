import gpxpy

from ride_telemetry.distance import haversine_distance
from ride_telemetry.models import LocationSample


def _extension_speed(pt) -> float | None:
    for ext in pt.extensions:
        if ext.tag.rsplit("}", 1)[-1] == "speed" and ext.text:
            try:
                return float(ext.text)
            except ValueError:
                return None
    return None


def parse_gpx(filepath: str, require_time: bool = True) -> list[LocationSample]:
    """Parse a GPX file into samples.

    Points without a time are skipped, or given timestamp 0 when
    require_time is False (planned routes usually carry no times).
    Speed comes from the point's speed field or extension when present,
    otherwise from the distance and time since the previous point.
    """
    with open(filepath, "r") as f:
        gpx = gpxpy.parse(f)

    samples: list[LocationSample] = []
    for track in gpx.tracks:
        for segment in track.segments:
            for pt in segment.points:
                if pt.time is None:
                    if require_time:
                        continue
                    timestamp = 0
                else:
                    timestamp = int(pt.time.timestamp() * 1000)
                speed = pt.speed if pt.speed is not None else _extension_speed(pt)
                if speed is None:
                    speed = 0.0
                    if samples:
                        prev = samples[-1]
                        dt = (timestamp - prev.timestamp) / 1000
                        if dt > 0:
                            speed = haversine_distance(prev.lat, prev.lon, pt.latitude, pt.longitude) / dt
                samples.append(
                    LocationSample(
                        lat=pt.latitude,
                        lon=pt.longitude,
                        timestamp=timestamp,
                        speed=speed,
                        altitude=pt.elevation,
                    )
                )
    return samples
