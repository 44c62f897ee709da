"""Configuration from JSON files and environment variables."""

from dataclasses import fields
import json
import os
from pathlib import Path

from ride_telemetry.models import TelemetryPolicy
from ride_telemetry.storage import STORE_DIR

CONFIG_DIR = Path.home() / ".config" / "ride-telemetry"
CONFIG_PATH = CONFIG_DIR / "ride-telemetry.json"
LOCAL_CONFIG_PATH = Path("ride-telemetry.json")


def _load_config() -> dict:
    """Load configuration from config files.

    Merges config from global and local files:
    1. ~/.config/ride-telemetry/ride-telemetry.json (global, loaded first)
    2. ./ride-telemetry.json (local, overrides global)

    Returns:
        Dict with merged config values, empty dict if no files exist.
    """
    config = {}
    for config_path in [CONFIG_PATH, LOCAL_CONFIG_PATH]:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError):
                continue
    return config


def policy_from_config(config: dict) -> TelemetryPolicy:
    """Build a TelemetryPolicy, overriding defaults with matching config keys.

    Raises:
        ValueError: If a value is not numeric or the weather windows conflict.
    """
    overrides = {}
    for f in fields(TelemetryPolicy):
        if f.name in config:
            try:
                overrides[f.name] = float(config[f.name])
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {f.name}: {config[f.name]!r}") from e
    return TelemetryPolicy(**overrides)


def get_weather_api_key(config: dict) -> str:
    """Tomorrow.io key from config file, then TOMORROW_API_KEY."""
    return config.get("tomorrow_api_key") or os.environ.get("TOMORROW_API_KEY", "")


def get_maps_api_key(config: dict) -> str:
    """Directions key from config file, then GOOGLE_MAPS_API_KEY."""
    return config.get("google_maps_api_key") or os.environ.get("GOOGLE_MAPS_API_KEY", "")


def get_store_dir(config: dict) -> Path:
    store_dir = config.get("store_dir") or os.environ.get("RIDE_TELEMETRY_STORE_DIR")
    return Path(store_dir).expanduser() if store_dir else STORE_DIR


def get_preload_locations(config: dict) -> list[tuple[str, float, float]] | None:
    """Locations to warm the weather cache with, if configured.

    Config format:
        {"preload_locations": [{"name": "Tokyo", "lat": 35.68, "lon": 139.65}]}
    """
    raw = config.get("preload_locations")
    if not raw:
        return None
    return [(loc.get("name", f"{loc['lat']},{loc['lon']}"), float(loc["lat"]), float(loc["lon"])) for loc in raw]
