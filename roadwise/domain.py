"""Domain vocabulary and strict schemas for route risk and navigation advisories.

This module defines the contract shared by the provider adapters, the route
aggregator, the advisory engine and the trip synthesizer: ordered enums,
weather samples, route segments, advisory messages and trip records. No
classification or decision logic lives here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Strict, immutable base model."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class _OrderedStrEnum(str, Enum):
    """String enum whose comparisons follow declaration order, not string order."""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank >= other.rank


class RoadRisk(_OrderedStrEnum):
    """Road-risk classification, ordered low < moderate < high < extreme."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"


SEVERE_RISKS = frozenset({RoadRisk.HIGH, RoadRisk.EXTREME})


class PrecipitationType(str, Enum):
    """Canonical precipitation kind."""
    NONE = "none"
    RAIN = "rain"
    SNOW = "snow"
    HAIL = "hail"


class ProviderStrategy(str, Enum):
    """Policy for ordering weather providers."""
    COST_OPTIMIZED = "cost_optimized"
    PERFORMANCE = "performance"
    RELIABILITY = "reliability"


class WeatherSample(_FrozenModel):
    """Normalized, classified weather at one point and time.

    Units: temperature °C, wind km/h, visibility km, precipitation mm/h.
    Build through `roadwise.conditions.build_weather_sample` so the
    precipitation type and road risk are always derived together.
    """
    temperature: float
    humidity: float
    wind_speed: float
    wind_gust: float
    visibility_km: float
    precipitation_intensity: float
    precipitation_type: PrecipitationType
    weather_code: int
    uv_index: float
    cloud_cover: float
    road_risk: RoadRisk
    condition_text: str


class HourlyForecast(_FrozenModel):
    """A forecast entry for one hour."""
    time: datetime
    weather: WeatherSample


class WeatherTimeline(_FrozenModel):
    """Current conditions plus a short-horizon hourly forecast."""
    current: WeatherSample
    hourly: List[HourlyForecast] = Field(default_factory=list)


class WeatherEvent(_FrozenModel):
    """Hazard event or alert reported by a provider."""
    id: str
    type: str
    severity: str
    title: str
    description: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None


class QuotaStatus(_FrozenModel):
    """Result of a quota check for one provider on the current UTC day."""
    used: int
    remaining: int
    exceeded: bool


class RoutePoint(_FrozenModel):
    """A route geometry vertex with its cumulative distance from the origin."""
    lat: float
    lng: float
    distance_km: float


class RouteSegment(_FrozenModel):
    """A sampled route point paired with its classified weather."""
    distance_km: float
    lat: float
    lng: float
    weather: WeatherSample


class RouteAnalysis(_FrozenModel):
    """Per-segment weather along a route and the worst-case route risk."""
    segments: List[RouteSegment]
    overall_risk: RoadRisk
    sampled_points: int = 0
    resolved_points: int = 0


# ---------------------------------------------------------------------------
# Advisory inputs
# ---------------------------------------------------------------------------


class Telemetry(_StrictBaseModel):
    """Latest vehicle position and speed."""
    lat: float
    lng: float
    bearing: float | None = None
    speed_m_s: float = 0.0

    @property
    def speed_kmh(self) -> float:
        return self.speed_m_s * 3.6


class RouteProgress(_StrictBaseModel):
    """Progress along the active route, in meters."""
    distance_traveled_m: float
    distance_remaining_m: float

    @property
    def traveled_km(self) -> float:
        return self.distance_traveled_m / 1000

    @property
    def remaining_km(self) -> float:
        return self.distance_remaining_m / 1000


class ConditionKind(str, Enum):
    """Condition vocabulary used in spoken advisories."""
    RAIN = "rain"
    SNOW = "snow"
    HAIL = "hail"
    STORM = "storm"
    WIND = "wind"
    FOG = "fog"
    CLEAR = "clear"


class WeatherCondition(_FrozenModel):
    """Dominant condition of a route stretch and how severe it is."""
    kind: ConditionKind
    severity: RoadRisk


class RouteWeatherSegment(_FrozenModel):
    """A stretch of route [start_km, end_km) with uniform weather risk."""
    start_km: float
    end_km: float
    condition: WeatherCondition
    road_risk: RoadRisk


class SafePlaceType(str, Enum):
    """Kinds of shelter candidates."""
    GAS_STATION = "gas_station"
    REST_AREA = "rest_area"
    TOWN = "town"


class SafePlace(_FrozenModel):
    """Candidate shelter near the route; distance is from the vehicle."""
    id: str
    name: str
    type: SafePlaceType
    distance_km: float
    lat: float
    lng: float


# ---------------------------------------------------------------------------
# Advisory outputs
# ---------------------------------------------------------------------------


class AdvisoryCategory(str, Enum):
    """What an advisory message is about."""
    WEATHER_WARNING = "weather_warning"
    SHELTER_SUGGESTION = "shelter_suggestion"
    SPEED_ADVISORY = "speed_advisory"
    ROUTE_UPDATE = "route_update"
    ARRIVAL = "arrival"


class AdvisoryPriority(_OrderedStrEnum):
    """Urgency of an advisory, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AdvisoryMessage(_FrozenModel):
    """A single advisory decided by the engine for the speech collaborator.

    `message_key` and `params` identify the message independently of the
    rendered English `text` so a host can translate it.
    """
    category: AdvisoryCategory
    priority: AdvisoryPriority
    text: str
    message_key: str
    params: Dict[str, Any] = Field(default_factory=dict)
    language: str = "en"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def interrupts_speech(self) -> bool:
        """Critical messages ask the audio sink to cut off in-flight speech."""
        return self.priority == AdvisoryPriority.CRITICAL


# ---------------------------------------------------------------------------
# Scheduled trips
# ---------------------------------------------------------------------------


class AlertSeverity(str, Enum):
    """Severity of a hazard alert overlapping a route."""
    EXTREME = "extreme"
    SEVERE = "severe"
    MODERATE = "moderate"
    MINOR = "minor"


class HazardAlert(_FrozenModel):
    """Hazard alert relevant to a scheduled trip."""
    severity: AlertSeverity
    title: str | None = None
    km_range: str | None = None


class TripStatus(str, Enum):
    """Go/no-go verdict for a scheduled trip."""
    SAFE = "safe"
    CAUTION = "caution"
    DELAY = "delay"
    DANGER = "danger"


class ScheduledTripRecommendation(_FrozenModel):
    """Recommendation computed for one trip from the alerts on its route."""
    status: TripStatus
    message: str
    details: str
    suggested_delay_minutes: int | None = None


class ScheduledTrip(_FrozenModel):
    """A planned future trip with its notification schedule."""
    id: str
    route_id: str
    route_name: str
    origin_name: str
    destination_name: str
    departure_time: datetime
    route_distance_km: float | None = None
    notify_hours_before: float = 3.0
    notify_frequency_hours: float = 1.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_notification_at: datetime | None = None
    recommendation: ScheduledTripRecommendation | None = None
    is_active: bool = True
