from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class LocationSample:
    lat: float  # degrees
    lon: float  # degrees
    timestamp: int  # epoch milliseconds
    speed: float = 0.0  # m/s
    altitude: float | None = None  # meters
    heading: float | None = None  # degrees

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LocationSample":
        return cls(
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            timestamp=int(data["timestamp"]),
            speed=float(data.get("speed") or 0.0),
            altitude=data.get("altitude"),
            heading=data.get("heading"),
        )


@dataclass(frozen=True)
class TelemetrySession:
    """Cumulative state of one ride, as seen at a point in time.

    Only TelemetryAggregator builds these. While the ride is active
    ``end_time`` is None; a stopped ride carries its end time.
    """
    session_id: str
    start_time: int  # epoch ms
    end_time: int | None = None  # epoch ms
    route: tuple[LocationSample, ...] = ()
    distance_km: float = 0.0
    duration_s: int = 0
    current_speed_kmh: float = 0.0
    avg_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    calories: float = 0.0  # kcal, linear model
    elevation_gain_m: float = 0.0

    @property
    def is_completed(self) -> bool:
        return self.end_time is not None

    @property
    def last_position(self) -> LocationSample | None:
        return self.route[-1] if self.route else None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["route"] = [pt.to_dict() for pt in self.route]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TelemetrySession":
        return cls(
            session_id=data["session_id"],
            start_time=int(data["start_time"]),
            end_time=data.get("end_time"),
            route=tuple(LocationSample.from_dict(pt) for pt in data.get("route", [])),
            distance_km=data.get("distance_km", 0.0),
            duration_s=data.get("duration_s", 0),
            current_speed_kmh=data.get("current_speed_kmh", 0.0),
            avg_speed_kmh=data.get("avg_speed_kmh", 0.0),
            max_speed_kmh=data.get("max_speed_kmh", 0.0),
            calories=data.get("calories", 0.0),
            elevation_gain_m=data.get("elevation_gain_m", 0.0),
        )


@dataclass
class TelemetryPolicy:
    # Sample validation
    max_speed_ms: float = 100.0  # m/s; faster samples are rejected
    max_sample_age_s: float = 60.0  # seconds; older samples are rejected
    # Aggregation
    calories_per_km: float = 40.0  # kcal per km, flat linear model
    # Navigation
    deviation_threshold_m: float = 50.0  # meters off route before rerouting
    # Session recovery
    snapshot_interval_s: float = 30.0
    recovery_window_s: float = 5 * 60.0
    # Weather cache
    weather_fresh_s: float = 10 * 60.0  # served without refetch
    weather_stale_s: float = 30 * 60.0  # served only when a fetch fails

    def __post_init__(self):
        if self.weather_fresh_s > self.weather_stale_s:
            raise ValueError(
                f"weather_fresh_s ({self.weather_fresh_s}) must not exceed "
                f"weather_stale_s ({self.weather_stale_s})"
            )


@dataclass
class WeatherReading:
    temperature: float  # °C
    humidity: float  # %
    wind_speed: float  # m/s
    wind_direction: str  # compass octant, e.g. "NE"
    description: str
    precipitation: float  # probability, %
    visibility: float  # km
    uv_index: float
    timestamp: int = 0  # epoch ms when the reading was fetched

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WeatherReading":
        return cls(**data)
