"""Formatting utilities for display."""


def format_duration_long(seconds: float) -> str:
    """Format seconds as Xh Ym Zs string."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"


def format_speed(kmh: float) -> str:
    """Format km/h with the mph equivalent."""
    return f"{kmh:.1f} km/h ({kmh * 0.621371:.1f} mph)"


def format_age(seconds: float) -> str:
    """Format a cache entry age, e.g. 45s or 12m 30s."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60:02d}s"
