"""Elevation and speed profile charts for completed rides."""

import io

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import numpy as np

from ride_telemetry.distance import distance_between
from ride_telemetry.models import TelemetrySession

ELEVATION_COLOR = '#4a90d9'
SPEED_COLOR = '#ff6600'


def profile_series(session: TelemetrySession) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Cumulative distance (km), altitude (m) and speed (km/h) per route point.

    Missing altitudes are carried forward from the previous known value
    (0 before the first one).
    """
    route = session.route
    steps = [0.0] + [distance_between(route[i - 1], route[i]) for i in range(1, len(route))]
    distances_km = np.cumsum(steps) / 1000

    altitudes = []
    last = 0.0
    for pt in route:
        if pt.altitude is not None:
            last = pt.altitude
        altitudes.append(last)

    speeds_kmh = np.array([pt.speed * 3.6 for pt in route])
    return distances_km, np.array(altitudes), speeds_kmh


def plot_ride_profile(session: TelemetrySession, title: str | None = None) -> bytes:
    """Render elevation (filled) with a speed line on a second axis.

    Returns:
        PNG image bytes.

    Raises:
        ValueError: If the ride has fewer than 2 points.
    """
    if len(session.route) < 2:
        raise ValueError("Need at least 2 route points to plot a profile")

    distances_km, altitudes, speeds_kmh = profile_series(session)

    fig, ax = plt.subplots(figsize=(10, 3.5))
    try:
        ax.fill_between(distances_km, altitudes, altitudes.min(), color=ELEVATION_COLOR, alpha=0.4)
        ax.plot(distances_km, altitudes, color=ELEVATION_COLOR, linewidth=1)
        ax.set_xlabel('Distance (km)')
        ax.set_ylabel('Elevation (m)')
        ax.set_xlim(distances_km[0], distances_km[-1])
        ax.grid(True, alpha=0.3)

        speed_ax = ax.twinx()
        speed_ax.plot(distances_km, speeds_kmh, color=SPEED_COLOR, linewidth=1)
        speed_ax.set_ylabel('Speed (km/h)', color=SPEED_COLOR)
        speed_ax.set_ylim(bottom=0)

        ax.set_title(title or (
            f"{session.distance_km:.1f} km, +{session.elevation_gain_m:.0f} m, "
            f"avg {session.avg_speed_kmh:.1f} km/h"
        ))
        fig.tight_layout()

        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=100)
        return buf.getvalue()
    finally:
        plt.close(fig)
