"""Deterministic road-risk classification.

Maps raw weather measurements to a `RoadRisk` level. Thresholds are strict
(`>` / `<`): a value sitting exactly on a threshold stays on the lower
severity side. Rules are checked from most to least severe and the first
match wins, since the conditions overlap.

Units: wind km/h, visibility km, precipitation intensity mm/h.
"""

from __future__ import annotations

from typing import Iterable, Optional

from roadwise.domain import RoadRisk

EXTREME_WIND_GUST_KMH = 80.0
EXTREME_VISIBILITY_KM = 0.5

HIGH_PRECIPITATION_MM_H = 10.0
HIGH_WIND_SPEED_KMH = 60.0
HIGH_WIND_GUST_KMH = 60.0
HIGH_VISIBILITY_KM = 1.0

MODERATE_PRECIPITATION_MM_H = 2.0
MODERATE_WIND_SPEED_KMH = 40.0
MODERATE_VISIBILITY_KM = 3.0

# Tomorrow.io 8000; OpenWeather 202, 503, 504; WMO 95, 96, 99
SEVERE_STORM_CODES = frozenset({8000, 202, 503, 504, 95, 96, 99})
# Tomorrow.io ice pellets
HAIL_CODES = frozenset({7000, 7101, 7102})
# Tomorrow.io 5xxx, OpenWeather 600-602, WMO snowfall/snow grains/snow showers
SNOW_CODES = frozenset({5000, 5001, 5100, 5101, 600, 601, 602, 71, 73, 75, 77, 85, 86})

RECOMMENDED_SPEED_KMH = {
    RoadRisk.LOW: 120,
    RoadRisk.MODERATE: 90,
    RoadRisk.HIGH: 60,
    RoadRisk.EXTREME: 40,
}


def classify_road_risk(
    *,
    precipitation_intensity: float,
    wind_speed: float,
    wind_gust: float,
    visibility_km: float,
    weather_code: int,
) -> RoadRisk:
    """Classify driving conditions; always returns a level."""
    if (
        wind_gust > EXTREME_WIND_GUST_KMH
        or visibility_km < EXTREME_VISIBILITY_KM
        or weather_code in SEVERE_STORM_CODES
    ):
        return RoadRisk.EXTREME

    if (
        precipitation_intensity > HIGH_PRECIPITATION_MM_H
        or wind_speed > HIGH_WIND_SPEED_KMH
        or wind_gust > HIGH_WIND_GUST_KMH
        or visibility_km < HIGH_VISIBILITY_KM
        or weather_code in HAIL_CODES
    ):
        return RoadRisk.HIGH

    if (
        precipitation_intensity > MODERATE_PRECIPITATION_MM_H
        or wind_speed > MODERATE_WIND_SPEED_KMH
        or visibility_km < MODERATE_VISIBILITY_KM
        or weather_code in SNOW_CODES
    ):
        return RoadRisk.MODERATE

    return RoadRisk.LOW


def overall_risk(risks: Iterable[RoadRisk]) -> Optional[RoadRisk]:
    """Worst-case reduction: the most severe level wins, never an average.

    Returns None when there is nothing to reduce so callers cannot mistake
    "no data" for "low risk".
    """
    worst: Optional[RoadRisk] = None
    for risk in risks:
        if worst is None or risk > worst:
            worst = risk
    return worst


def recommended_speed_kmh(risk: RoadRisk) -> int:
    """Advised top speed for a risk level."""
    return RECOMMENDED_SPEED_KMH.get(risk, RECOMMENDED_SPEED_KMH[RoadRisk.MODERATE])
