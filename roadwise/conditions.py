"""Normalize heterogeneous provider weather codes into one condition model.

Each vendor speaks its own code table (Tomorrow.io 4-digit codes, OpenWeather
2xx-8xx condition ids, WMO 0-99 codes from Open-Meteo). The ranges do not
overlap, so a single lookup keyed by the integer code covers all of them.
Unknown codes never raise: they degrade to rain when precipitation is
falling and to no precipitation otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from roadwise.domain import (
    ConditionKind,
    PrecipitationType,
    WeatherCondition,
    WeatherSample,
)
from roadwise.risk import (
    MODERATE_VISIBILITY_KM,
    MODERATE_WIND_SPEED_KMH,
    HIGH_WIND_GUST_KMH,
    SEVERE_STORM_CODES,
    classify_road_risk,
)

PRECIPITATION_MAP: Dict[int, PrecipitationType] = {
    # Tomorrow.io
    4000: PrecipitationType.RAIN,  # Drizzle
    4001: PrecipitationType.RAIN,  # Rain
    4200: PrecipitationType.RAIN,  # Light Rain
    4201: PrecipitationType.RAIN,  # Heavy Rain
    5000: PrecipitationType.SNOW,  # Snow
    5001: PrecipitationType.SNOW,  # Flurries
    5100: PrecipitationType.SNOW,  # Light Snow
    5101: PrecipitationType.SNOW,  # Heavy Snow
    6000: PrecipitationType.RAIN,  # Freezing Drizzle
    6001: PrecipitationType.RAIN,  # Freezing Rain
    6200: PrecipitationType.RAIN,  # Light Freezing Rain
    6201: PrecipitationType.RAIN,  # Heavy Freezing Rain
    7000: PrecipitationType.HAIL,  # Ice Pellets
    7101: PrecipitationType.HAIL,  # Heavy Ice Pellets
    7102: PrecipitationType.HAIL,  # Light Ice Pellets
    # OpenWeather
    200: PrecipitationType.RAIN,  # Thunderstorm with light rain
    201: PrecipitationType.RAIN,  # Thunderstorm with rain
    202: PrecipitationType.RAIN,  # Thunderstorm with heavy rain
    300: PrecipitationType.RAIN,  # Light drizzle
    301: PrecipitationType.RAIN,  # Drizzle
    302: PrecipitationType.RAIN,  # Heavy drizzle
    500: PrecipitationType.RAIN,  # Light rain
    501: PrecipitationType.RAIN,  # Moderate rain
    502: PrecipitationType.RAIN,  # Heavy rain
    503: PrecipitationType.RAIN,  # Very heavy rain
    504: PrecipitationType.RAIN,  # Extreme rain
    511: PrecipitationType.RAIN,  # Freezing rain
    520: PrecipitationType.RAIN,  # Light shower rain
    521: PrecipitationType.RAIN,  # Shower rain
    522: PrecipitationType.RAIN,  # Heavy shower rain
    600: PrecipitationType.SNOW,  # Light snow
    601: PrecipitationType.SNOW,  # Snow
    602: PrecipitationType.SNOW,  # Heavy snow
    611: PrecipitationType.SNOW,  # Sleet
    612: PrecipitationType.SNOW,  # Light shower sleet
    613: PrecipitationType.SNOW,  # Shower sleet
    615: PrecipitationType.RAIN,  # Light rain and snow
    616: PrecipitationType.RAIN,  # Rain and snow
    620: PrecipitationType.SNOW,  # Light shower snow
    621: PrecipitationType.SNOW,  # Shower snow
    622: PrecipitationType.SNOW,  # Heavy shower snow
    # WMO (Open-Meteo)
    51: PrecipitationType.RAIN,  # Light drizzle
    53: PrecipitationType.RAIN,  # Moderate drizzle
    55: PrecipitationType.RAIN,  # Dense drizzle
    56: PrecipitationType.RAIN,  # Light freezing drizzle
    57: PrecipitationType.RAIN,  # Dense freezing drizzle
    61: PrecipitationType.RAIN,  # Slight rain
    63: PrecipitationType.RAIN,  # Moderate rain
    65: PrecipitationType.RAIN,  # Heavy rain
    66: PrecipitationType.RAIN,  # Light freezing rain
    67: PrecipitationType.RAIN,  # Heavy freezing rain
    71: PrecipitationType.SNOW,  # Slight snow fall
    73: PrecipitationType.SNOW,  # Moderate snow fall
    75: PrecipitationType.SNOW,  # Heavy snow fall
    77: PrecipitationType.SNOW,  # Snow grains
    80: PrecipitationType.RAIN,  # Slight rain showers
    81: PrecipitationType.RAIN,  # Moderate rain showers
    82: PrecipitationType.RAIN,  # Violent rain showers
    85: PrecipitationType.SNOW,  # Slight snow showers
    86: PrecipitationType.SNOW,  # Heavy snow showers
    95: PrecipitationType.RAIN,  # Thunderstorm
    96: PrecipitationType.HAIL,  # Thunderstorm with slight hail
    99: PrecipitationType.HAIL,  # Thunderstorm with heavy hail
}

# Tomorrow.io fog / light fog, OpenWeather mist/haze/fog, WMO fog / rime fog
FOG_CODES = frozenset({2000, 2100, 701, 721, 741, 45, 48})

LIGHT_MAX_MM_H = 2.5
MODERATE_MAX_MM_H = 7.6

# vendor omissions are filled with benign values
SAMPLE_DEFAULTS = {
    "temperature": 0.0,
    "humidity": 0.0,
    "wind_speed": 0.0,
    "wind_gust": 0.0,
    "visibility_km": 10.0,
    "precipitation_intensity": 0.0,
    "weather_code": 1000,
    "uv_index": 0.0,
    "cloud_cover": 0.0,
}


@dataclass(frozen=True)
class NormalizedCondition:
    """Canonical precipitation kind with a human-readable, intensity-qualified label."""
    type: PrecipitationType
    text: str


def precipitation_type(weather_code: int, precipitation_intensity: float) -> PrecipitationType:
    """Look up a provider code; unknown codes fall back on the intensity."""
    mapped = PRECIPITATION_MAP.get(weather_code)
    if mapped is not None:
        return mapped
    return PrecipitationType.RAIN if precipitation_intensity > 0 else PrecipitationType.NONE


def _intensity_qualifier(precipitation_intensity: float) -> str:
    if precipitation_intensity <= LIGHT_MAX_MM_H:
        return "light"
    if precipitation_intensity <= MODERATE_MAX_MM_H:
        return "moderate"
    return "heavy"


def normalize_condition(weather_code: int, precipitation_intensity: float) -> NormalizedCondition:
    """Map a provider code and intensity to a canonical condition."""
    kind = precipitation_type(weather_code, precipitation_intensity)
    if kind == PrecipitationType.NONE:
        return NormalizedCondition(type=kind, text="no precipitation")
    return NormalizedCondition(type=kind, text=f"{_intensity_qualifier(precipitation_intensity)} {kind.value}")


def _num(value: Optional[float], default: float) -> float:
    return default if value is None else float(value)


def build_weather_sample(
    *,
    temperature: Optional[float] = None,
    humidity: Optional[float] = None,
    wind_speed: Optional[float] = None,
    wind_gust: Optional[float] = None,
    visibility_km: Optional[float] = None,
    precipitation_intensity: Optional[float] = None,
    weather_code: Optional[int] = None,
    uv_index: Optional[float] = None,
    cloud_cover: Optional[float] = None,
) -> WeatherSample:
    """Build a fully derived WeatherSample from raw (possibly partial) vendor values."""
    code = int(_num(weather_code, SAMPLE_DEFAULTS["weather_code"]))
    intensity = _num(precipitation_intensity, SAMPLE_DEFAULTS["precipitation_intensity"])
    speed = _num(wind_speed, SAMPLE_DEFAULTS["wind_speed"])
    gust = _num(wind_gust, SAMPLE_DEFAULTS["wind_gust"])
    visibility = _num(visibility_km, SAMPLE_DEFAULTS["visibility_km"])

    condition = normalize_condition(code, intensity)
    risk = classify_road_risk(
        precipitation_intensity=intensity,
        wind_speed=speed,
        wind_gust=gust,
        visibility_km=visibility,
        weather_code=code,
    )
    return WeatherSample(
        temperature=_num(temperature, SAMPLE_DEFAULTS["temperature"]),
        humidity=_num(humidity, SAMPLE_DEFAULTS["humidity"]),
        wind_speed=speed,
        wind_gust=gust,
        visibility_km=visibility,
        precipitation_intensity=intensity,
        precipitation_type=condition.type,
        weather_code=code,
        uv_index=_num(uv_index, SAMPLE_DEFAULTS["uv_index"]),
        cloud_cover=_num(cloud_cover, SAMPLE_DEFAULTS["cloud_cover"]),
        road_risk=risk,
        condition_text=condition.text,
    )


def condition_for_sample(sample: WeatherSample) -> WeatherCondition:
    """Pick the dominant condition of a sample for spoken advisories."""
    if sample.weather_code in SEVERE_STORM_CODES:
        kind = ConditionKind.STORM
    elif sample.precipitation_type == PrecipitationType.HAIL:
        kind = ConditionKind.HAIL
    elif sample.precipitation_type == PrecipitationType.SNOW:
        kind = ConditionKind.SNOW
    elif sample.precipitation_type == PrecipitationType.RAIN:
        kind = ConditionKind.RAIN
    elif sample.weather_code in FOG_CODES or sample.visibility_km < MODERATE_VISIBILITY_KM:
        kind = ConditionKind.FOG
    elif sample.wind_speed > MODERATE_WIND_SPEED_KMH or sample.wind_gust > HIGH_WIND_GUST_KMH:
        kind = ConditionKind.WIND
    else:
        kind = ConditionKind.CLEAR
    return WeatherCondition(kind=kind, severity=sample.road_risk)
