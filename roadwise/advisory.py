"""Rule-based navigation advisories.

`evaluate` is a pure function of the session state and the latest inputs:
it returns the next state and at most one message. Rules are checked in a
fixed order and the first one that fires wins:

1. severe weather ahead within the lookahead window
2. entering a new high/extreme risk band
3. speed above the recommended limit for the current risk
4. shelter nearby while conditions are extreme
5. near arrival

Each rule has its own cooldown key; emitting a message stamps that key.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from roadwise import config
from roadwise.domain import (
    AdvisoryCategory,
    AdvisoryMessage,
    AdvisoryPriority,
    ConditionKind,
    RoadRisk,
    RouteProgress,
    RouteWeatherSegment,
    SafePlace,
    SafePlaceType,
    SEVERE_RISKS,
    Telemetry,
    WeatherCondition,
)
from roadwise.risk import recommended_speed_kmh
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="advisory")

WEATHER_AHEAD = "weather_ahead"
WEATHER_CHANGE = "weather_change"
SPEED_ADVISORY = "speed_advisory"
SHELTER_SUGGESTION = "shelter_suggestion"
NEAR_ARRIVAL = "near_arrival"

SPEED_TOLERANCE_KMH = 20

CONDITION_TEXT = {
    ConditionKind.RAIN: "rain",
    ConditionKind.SNOW: "snow",
    ConditionKind.HAIL: "hail",
    ConditionKind.STORM: "thunderstorm",
    ConditionKind.WIND: "strong winds",
    ConditionKind.FOG: "fog",
    ConditionKind.CLEAR: "clear weather",
}

RISK_TEXT = {
    RoadRisk.LOW: "Favorable conditions",
    RoadRisk.MODERATE: "Drive with caution",
    RoadRisk.HIGH: "Adverse conditions, extreme caution",
    RoadRisk.EXTREME: "Dangerous conditions, consider stopping",
}

ROUTE_SUMMARY_TEXT = {
    RoadRisk.LOW: "Weather conditions are favorable",
    RoadRisk.MODERATE: "There are some moderate conditions along the way",
    RoadRisk.HIGH: "Some stretches have adverse conditions, drive with caution",
    RoadRisk.EXTREME: "There are extreme conditions on the route, consider alternatives",
}

PLACE_TYPE_TEXT = {
    SafePlaceType.GAS_STATION: "gas station",
    SafePlaceType.REST_AREA: "rest area",
    SafePlaceType.TOWN: "town",
}


@dataclass(frozen=True)
class CopilotSessionState:
    """Per-session advisory bookkeeping; a fresh instance starts every session.

    `cooldowns` maps a rule key to the time it last emitted. The two
    "last announced" markers only serve change detection.
    """
    cooldowns: Mapping[str, datetime] = field(default_factory=dict)
    last_announced_risk: Optional[RoadRisk] = None
    last_weather_warning_km: Optional[int] = None
    arrival_announced: bool = False

    def on_cooldown(self, key: str, now: datetime, seconds: float) -> bool:
        last = self.cooldowns.get(key)
        if last is None:
            return False
        return (now - last).total_seconds() < seconds

    def stamped(self, key: str, now: datetime) -> "CopilotSessionState":
        return replace(self, cooldowns={**self.cooldowns, key: now})


@dataclass(frozen=True)
class AdvisoryPolicy:
    """Tunable thresholds for the advisory rules."""
    lookahead_km: float = 10.0
    shelter_radius_km: float = 5.0
    arrival_threshold_km: float = 1.0
    cooldown_seconds: Mapping[str, float] = field(default_factory=lambda: dict(config.DEFAULT_COOLDOWN_SECONDS))
    near_arrival_once_per_session: bool = True

    @classmethod
    def from_settings(cls, settings: config.Settings | None = None) -> "AdvisoryPolicy":
        settings = settings or config.settings
        return cls(
            lookahead_km=settings.lookahead_km,
            shelter_radius_km=settings.shelter_radius_km,
            arrival_threshold_km=settings.arrival_threshold_km,
            cooldown_seconds=dict(settings.cooldown_seconds),
            near_arrival_once_per_session=settings.near_arrival_once_per_session,
        )

    def cooldown(self, key: str) -> float:
        return self.cooldown_seconds.get(key, config.DEFAULT_COOLDOWN_SECONDS.get(key, 60.0))


DEFAULT_POLICY = AdvisoryPolicy()


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Message rendering
# ---------------------------------------------------------------------------


def condition_text(condition: WeatherCondition) -> str:
    text = CONDITION_TEXT.get(condition.kind, CONDITION_TEXT[ConditionKind.CLEAR])
    if condition.severity in SEVERE_RISKS:
        text = f"heavy {text}"
    return text


def risk_text(risk: RoadRisk) -> str:
    return RISK_TEXT.get(risk, RISK_TEXT[RoadRisk.MODERATE])


def distance_text(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round_half_up(distance_km * 1000)} meters"
    return f"{distance_km:.1f} kilometers"


def _message(
    category: AdvisoryCategory,
    priority: AdvisoryPriority,
    text: str,
    key: str,
    params: Dict[str, Any],
    *,
    language: str,
    now: datetime,
) -> AdvisoryMessage:
    return AdvisoryMessage(
        category=category,
        priority=priority,
        text=text,
        message_key=key,
        params=params,
        language=language,
        created_at=now,
    )


def _nearest(places: Sequence[SafePlace]) -> Optional[SafePlace]:
    # min() leaves the caller's list untouched
    return min(places, key=lambda p: p.distance_km) if places else None


def _weather_ahead_text(segment: RouteWeatherSegment, distance_km: float, safe_places: Sequence[SafePlace]
                        ) -> Tuple[str, Dict[str, Any]]:
    params: Dict[str, Any] = {
        "distance_km": round(distance_km, 1),
        "condition": segment.condition.kind.value,
        "risk": segment.road_risk.value,
    }
    text = (
        f"Warning. In {distance_text(distance_km)} there is {condition_text(segment.condition)}. "
        f"{risk_text(segment.road_risk)}."
    )
    if segment.road_risk == RoadRisk.EXTREME:
        shelter = _nearest(safe_places)
        if shelter is not None and shelter.distance_km < distance_km:
            text += f" There's a shelter at {shelter.name}, {shelter.distance_km:.1f} kilometers away."
            params["shelter_name"] = shelter.name
            params["shelter_distance_km"] = round(shelter.distance_km, 1)
    return text, params


def route_summary_message(
    distance_km: float,
    duration_minutes: int,
    risk: RoadRisk,
    *,
    language: str = "en",
    now: datetime | None = None,
) -> AdvisoryMessage:
    """Low-priority announcement spoken when navigation starts."""
    text = (
        f"Starting navigation. {distance_km:.1f} kilometers, approximately {duration_minutes} minutes. "
        f"{ROUTE_SUMMARY_TEXT.get(risk, ROUTE_SUMMARY_TEXT[RoadRisk.MODERATE])}."
    )
    return _message(
        AdvisoryCategory.ROUTE_UPDATE,
        AdvisoryPriority.LOW,
        text,
        "route.summary",
        {"distance_km": round(distance_km, 1), "duration_minutes": duration_minutes, "risk": risk.value},
        language=language,
        now=now or datetime.now(timezone.utc),
    )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _segment_ahead(segments: Sequence[RouteWeatherSegment], current_km: float, lookahead_km: float
                   ) -> Optional[RouteWeatherSegment]:
    ahead = [
        s for s in segments
        if current_km < s.start_km <= current_km + lookahead_km and s.road_risk in SEVERE_RISKS
    ]
    return min(ahead, key=lambda s: s.start_km) if ahead else None


def _current_segment(segments: Sequence[RouteWeatherSegment], current_km: float) -> Optional[RouteWeatherSegment]:
    for segment in segments:
        if segment.start_km <= current_km < segment.end_km:
            return segment
    return None


def evaluate(
    state: CopilotSessionState,
    telemetry: Telemetry | None,
    progress: RouteProgress | None,
    segments: Sequence[RouteWeatherSegment],
    safe_places: Sequence[SafePlace],
    *,
    now: datetime | None = None,
    language: str = "en",
    policy: AdvisoryPolicy = DEFAULT_POLICY,
) -> Tuple[CopilotSessionState, Optional[AdvisoryMessage]]:
    """Run one advisory tick. Returns the new state and at most one message."""
    if telemetry is None or progress is None:
        return state, None

    now = now or datetime.now(timezone.utc)
    current_km = progress.traveled_km
    remaining_km = progress.remaining_km

    # 1. severe weather ahead
    ahead = _segment_ahead(segments, current_km, policy.lookahead_km)
    if ahead is not None and not state.on_cooldown(WEATHER_AHEAD, now, policy.cooldown(WEATHER_AHEAD)):
        marker = round_half_up(ahead.start_km)
        if marker != state.last_weather_warning_km:
            distance_km = ahead.start_km - current_km
            text, params = _weather_ahead_text(ahead, distance_km, safe_places)
            priority = AdvisoryPriority.CRITICAL if ahead.road_risk == RoadRisk.EXTREME else AdvisoryPriority.HIGH
            new_state = replace(state.stamped(WEATHER_AHEAD, now), last_weather_warning_km=marker)
            return new_state, _message(
                AdvisoryCategory.WEATHER_WARNING, priority, text, "advisory.weather_ahead", params,
                language=language, now=now,
            )

    current = _current_segment(segments, current_km)

    # 2. entering a new risk band
    if (
        current is not None
        and current.road_risk != state.last_announced_risk
        and not state.on_cooldown(WEATHER_CHANGE, now, policy.cooldown(WEATHER_CHANGE))
    ):
        # marker tracks every band change; only severe bands are spoken
        state = replace(state, last_announced_risk=current.road_risk)
        if current.road_risk in SEVERE_RISKS:
            text = (
                f"Entering area with {condition_text(current.condition)}. "
                f"{risk_text(current.road_risk)}. Reduce speed."
            )
            params = {"condition": current.condition.kind.value, "risk": current.road_risk.value}
            return state.stamped(WEATHER_CHANGE, now), _message(
                AdvisoryCategory.WEATHER_WARNING, AdvisoryPriority.HIGH, text, "advisory.weather_change", params,
                language=language, now=now,
            )

    # 3. speed advisory
    if current is not None and telemetry.speed_kmh > 0:
        limit = recommended_speed_kmh(current.road_risk)
        if (
            telemetry.speed_kmh > limit + SPEED_TOLERANCE_KMH
            and not state.on_cooldown(SPEED_ADVISORY, now, policy.cooldown(SPEED_ADVISORY))
        ):
            text = f"Due to weather conditions, it's recommended not to exceed {limit} kilometers per hour."
            params = {"recommended_speed_kmh": limit, "risk": current.road_risk.value}
            return state.stamped(SPEED_ADVISORY, now), _message(
                AdvisoryCategory.SPEED_ADVISORY, AdvisoryPriority.MEDIUM, text, "advisory.speed", params,
                language=language, now=now,
            )

    # 4. shelter suggestion
    if (
        current is not None
        and current.road_risk == RoadRisk.EXTREME
        and not state.on_cooldown(SHELTER_SUGGESTION, now, policy.cooldown(SHELTER_SUGGESTION))
    ):
        shelter = _nearest(safe_places)
        if shelter is not None and shelter.distance_km < policy.shelter_radius_km:
            place_type = PLACE_TYPE_TEXT.get(shelter.type, "shelter")
            text = (
                f"Conditions are dangerous. There's a {place_type} called {shelter.name} "
                f"{shelter.distance_km:.1f} kilometers away. Consider stopping."
            )
            params = {
                "shelter_id": shelter.id,
                "shelter_name": shelter.name,
                "shelter_type": shelter.type.value,
                "shelter_distance_km": round(shelter.distance_km, 1),
            }
            return state.stamped(SHELTER_SUGGESTION, now), _message(
                AdvisoryCategory.SHELTER_SUGGESTION, AdvisoryPriority.CRITICAL, text, "advisory.shelter", params,
                language=language, now=now,
            )

    # 5. near arrival
    if (
        remaining_km <= policy.arrival_threshold_km
        and not (policy.near_arrival_once_per_session and state.arrival_announced)
        and not state.on_cooldown(NEAR_ARRIVAL, now, policy.cooldown(NEAR_ARRIVAL))
    ):
        meters = round_half_up(max(0.0, remaining_km) * 1000)
        text = f"You are {meters} meters from your destination."
        new_state = replace(state.stamped(NEAR_ARRIVAL, now), arrival_announced=True)
        return new_state, _message(
            AdvisoryCategory.ARRIVAL, AdvisoryPriority.LOW, text, "advisory.near_arrival", {"meters": meters},
            language=language, now=now,
        )

    return state, None
