"""Open-Meteo forecast adapter (WMO weather codes, no hazard events).

Billing: the free API is rate limited on successful requests only, so failed
calls are not recorded against the quota (`charges_failed_calls=False`).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Mapping

import requests
from retry_requests import retry

from roadwise import config as roadwise_config
from roadwise.conditions import build_weather_sample
from roadwise.domain import HourlyForecast, WeatherEvent, WeatherSample, WeatherTimeline
from roadwise.providers.base import BaseWeatherProvider, ProviderConfig
from roadwise.quota import QuotaLedger
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/open_meteo")

session = retry(requests.Session(), retries=roadwise_config.settings.provider_retries, backoff_factor=0.2)

OPEN_METEO_WEATHER_URL = "https://api.open-meteo.com/v1/forecast"

# non-commercial daily request allowance
DEFAULT_DAILY_LIMIT = 10000

WEATHER_VARS = [
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation",
    "weather_code",
    "cloud_cover",
    "wind_speed_10m",
    "wind_gusts_10m",
    "visibility",
    "uv_index",
]

EXPECTED_UNITS = {
    "temperature_2m": "°C",
    "precipitation": "mm",
    "wind_speed_10m": "km/h",
    "wind_gusts_10m": "km/h",
    "visibility": "m",
}

OPEN_METEO_CONFIG = ProviderConfig(
    name="open_meteo",
    daily_limit=DEFAULT_DAILY_LIMIT,
    priority=3,
    cost_tier=1,
    latency_rank=3,
    reliability=0.85,
    charges_failed_calls=False,
    supports_events=False,
)


def _warn_on_unexpected_units(units: Mapping, *, context: str) -> None:
    """Log a warning if Open-Meteo returns units we did not request."""
    if not units:
        return
    for field, expected in EXPECTED_UNITS.items():
        actual = units.get(field)
        if actual and actual != expected:
            logger.warning(
                "Unexpected Open-Meteo unit",
                extra={"context": context, "field": field, "unit": actual, "expected": expected},
            )


def _utc(time_str: str) -> datetime:
    """Open-Meteo returns naive ISO strings in the requested timezone (UTC here)."""
    return datetime.fromisoformat(time_str).replace(tzinfo=timezone.utc)


def parse_open_meteo_values(values: Mapping) -> WeatherSample:
    """Turn one row of Open-Meteo variables into a WeatherSample."""
    visibility_m = values.get("visibility")
    return build_weather_sample(
        temperature=values.get("temperature_2m"),
        humidity=values.get("relative_humidity_2m"),
        wind_speed=values.get("wind_speed_10m"),
        wind_gust=values.get("wind_gusts_10m"),
        visibility_km=None if visibility_m is None else float(visibility_m) / 1000,
        # hourly/current precipitation is the preceding hour's sum, i.e. mm/h
        precipitation_intensity=values.get("precipitation"),
        weather_code=values.get("weather_code"),
        uv_index=values.get("uv_index"),
        cloud_cover=values.get("cloud_cover"),
    )


class OpenMeteoProvider(BaseWeatherProvider):
    """Cheapest fallback provider; no alerts endpoint."""

    config = OPEN_METEO_CONFIG

    def __init__(self, ledger: QuotaLedger, *, config: ProviderConfig | None = None, timeout: float = 10.0) -> None:
        super().__init__(ledger, config=config, timeout=timeout)

    def get_current_and_short_forecast(self, lat: float, lng: float, horizon_hours: int = 12) -> WeatherTimeline:
        params = {
            "latitude": lat,
            "longitude": lng,
            "current": ",".join(WEATHER_VARS),
            "hourly": ",".join(WEATHER_VARS),
            "forecast_hours": max(1, horizon_hours),
            "timezone": "UTC",
            "temperature_unit": "celsius",
            "wind_speed_unit": "kmh",
            "precipitation_unit": "mm",
        }

        def request() -> WeatherTimeline:
            resp = session.get(OPEN_METEO_WEATHER_URL, params=params, timeout=self.timeout)
            self._check_response(resp, "forecast")
            data = resp.json()

            _warn_on_unexpected_units(data.get("current_units") or {}, context="weather_current")
            _warn_on_unexpected_units(data.get("hourly_units") or {}, context="weather_hourly")

            current = parse_open_meteo_values(data["current"])

            hourly_data = data.get("hourly") or {}
            times = hourly_data.get("time") or []
            hourly: List[HourlyForecast] = []
            for i, t in enumerate(times):
                row = {var: (hourly_data.get(var) or [None] * len(times))[i] for var in WEATHER_VARS}
                hourly.append(HourlyForecast(time=_utc(t), weather=parse_open_meteo_values(row)))
            return WeatherTimeline(current=current, hourly=hourly)

        return self._call("forecast", request)

    def get_hazard_events(self, lat: float, lng: float, radius_km: float = 50.0) -> List[WeatherEvent]:
        """Open-Meteo publishes no alerts; no call is made and no quota used."""
        return []
