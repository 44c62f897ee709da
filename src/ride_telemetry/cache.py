"""Weather cache keyed by rounded coordinates.

Entries have two age limits: within the freshness window a reading is
served without refetching; within the staleness window it is only served
when a live fetch fails. Older entries are evicted when touched.

The whole map is persisted as one zlib-compressed JSON blob and rewritten
on every mutation. That is O(n) per write, fine for a few dozen entries.
"""

import json
import logging
import time
import zlib
from typing import Callable, Iterable

from ride_telemetry.models import TelemetryPolicy, WeatherReading
from ride_telemetry.storage import KeyValueStore
from ride_telemetry.weather import WeatherFetchError, is_valid_coordinates

logger = logging.getLogger(__name__)

WEATHER_CACHE_KEY = "weather_cache"

# Warmed once at process start
COMMON_LOCATIONS = [
    ("Tokyo", 35.6762, 139.6503),
    ("Osaka", 34.6937, 135.5023),
    ("Kyoto", 35.0116, 135.7681),
    ("Sapporo", 43.0618, 141.3545),
    ("Okinawa", 26.2124, 127.6809),
]

WeatherFetcher = Callable[[float, float], WeatherReading]


def _now_ms() -> int:
    return int(time.time() * 1000)


class WeatherCache:
    """Process-wide weather cache. Create one and pass it to whoever needs weather."""

    def __init__(
        self,
        store: KeyValueStore,
        fetcher: WeatherFetcher,
        policy: TelemetryPolicy | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.fetcher = fetcher
        self.policy = policy or TelemetryPolicy()
        self.clock = clock
        self._entries: dict[str, tuple[WeatherReading, int]] = {}
        self._initialized = False

    @staticmethod
    def bucket_key(lat: float, lon: float) -> str:
        """Round to 2 decimals, a grid of roughly 1.1 km."""
        return f"{lat:.2f},{lon:.2f}"

    def initialize(self) -> None:
        """Load the persisted cache. Calling again is a no-op."""
        if self._initialized:
            return
        self._initialized = True
        try:
            blob = self.store.get(WEATHER_CACHE_KEY)
        except OSError as e:
            logger.warning("Failed to read weather cache: %s", e)
            return
        if not blob:
            return
        try:
            raw = json.loads(zlib.decompress(blob))
            entries = {
                key: (WeatherReading.from_dict(entry["data"]), int(entry["timestamp"]))
                for key, entry in raw.items()
            }
        except (zlib.error, json.JSONDecodeError, UnicodeDecodeError, AttributeError,
                KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring corrupt weather cache: %s", e)
            return
        self._entries.update(entries)
        logger.debug("Loaded %d weather cache entries", len(entries))

    def _persist(self) -> None:
        payload = {
            key: {"data": reading.to_dict(), "timestamp": ts}
            for key, (reading, ts) in self._entries.items()
        }
        blob = zlib.compress(json.dumps(payload).encode())
        try:
            self.store.set(WEATHER_CACHE_KEY, blob)
        except OSError as e:
            logger.warning("Failed to persist weather cache: %s", e)

    def _age_s(self, inserted_ms: int) -> float:
        return (self.clock() - inserted_ms) / 1000

    def get(self, key: str) -> WeatherReading | None:
        """Return a reading no older than the staleness window.

        Older entries are evicted and the eviction persisted.
        """
        self.initialize()
        entry = self._entries.get(key)
        if entry is None:
            return None
        reading, inserted = entry
        if self._age_s(inserted) > self.policy.weather_stale_s:
            del self._entries[key]
            self._persist()
            return None
        return reading

    def get_fresh(self, key: str) -> WeatherReading | None:
        """Return a reading within the freshness window, or None if it needs refetching."""
        reading = self.get(key)
        if reading is None:
            return None
        if self._age_s(self._entries[key][1]) > self.policy.weather_fresh_s:
            return None
        return reading

    def put(self, key: str, reading: WeatherReading) -> None:
        self.initialize()
        self._entries[key] = (reading, self.clock())
        self._persist()

    def lookup(self, lat: float, lon: float) -> WeatherReading:
        """Get weather for a coordinate, fetching when the cache is not fresh.

        A failed fetch falls back to a stale entry when one exists.

        Raises:
            ValueError: If the coordinates are invalid.
            WeatherFetchError: If the fetch failed and nothing is cached.
        """
        if not is_valid_coordinates(lat, lon):
            raise ValueError(f"Invalid coordinates: {lat}, {lon}")

        key = self.bucket_key(lat, lon)
        cached = self.get_fresh(key)
        if cached is not None:
            logger.debug("Weather cache hit for %s", key)
            return cached

        try:
            reading = self.fetcher(lat, lon)
        except WeatherFetchError as e:
            stale = self.get(key)
            if stale is not None:
                logger.info("Weather fetch failed for %s, serving stale entry: %s", key, e)
                return stale
            raise

        self.put(key, reading)
        return reading

    def preload(self, locations: Iterable[tuple[str, float, float]] = COMMON_LOCATIONS) -> int:
        """Warm the cache for known (name, lat, lon) locations.

        Returns:
            Number of locations fetched successfully.
        """
        loaded = 0
        for name, lat, lon in locations:
            if self.get(self.bucket_key(lat, lon)) is not None:
                continue
            logger.info("Preloading weather for %s...", name)
            try:
                self.lookup(lat, lon)
            except (WeatherFetchError, ValueError) as e:
                logger.warning("Weather preload failed for %s: %s", name, e)
                continue
            loaded += 1
        logger.info("Weather cache preloading completed (%d fetched)", loaded)
        return loaded

    def clean_stale(self) -> int:
        """Evict every entry past the staleness window. Returns number removed."""
        self.initialize()
        expired = [
            key for key, (_, inserted) in self._entries.items()
            if self._age_s(inserted) > self.policy.weather_stale_s
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            self._persist()
        return len(expired)

    def clear(self) -> int:
        """Clear all cached entries. Returns number of entries cleared."""
        self.initialize()
        count = len(self._entries)
        self._entries.clear()
        self._persist()
        return count

    def stats(self) -> dict:
        """Return cache statistics. Ages are in seconds."""
        self.initialize()
        ages = [self._age_s(inserted) for _, inserted in self._entries.values()]
        fresh = sum(1 for age in ages if age <= self.policy.weather_fresh_s)
        return {
            "size": len(ages),
            "fresh": fresh,
            "stale": len(ages) - fresh,
            "average_age_s": round(sum(ages) / len(ages), 1) if ages else 0.0,
            "oldest_age_s": round(max(ages), 1) if ages else 0.0,
            "newest_age_s": round(min(ages), 1) if ages else 0.0,
        }
