"""OpenWeather One Call 3.0 adapter.

Billing: One Call counts every request carrying a valid `appid`, whatever the
response, so failed calls are recorded against the quota
(`charges_failed_calls=True`).
"""
from __future__ import annotations

from typing import List, Mapping

import requests
from retry_requests import retry

from roadwise import config as roadwise_config
from roadwise.conditions import build_weather_sample
from roadwise.domain import HourlyForecast, WeatherEvent, WeatherSample, WeatherTimeline
from roadwise.providers.base import BaseWeatherProvider, ProviderConfig, parse_timestamp
from roadwise.quota import QuotaLedger
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/openweather")

session = retry(requests.Session(), retries=roadwise_config.settings.provider_retries, backoff_factor=0.2)

OPENWEATHER_ONECALL_URL = "https://api.openweathermap.org/data/3.0/onecall"

# One Call "pay as you call" free allowance
DEFAULT_DAILY_LIMIT = 1000

MS_TO_KMH = 3.6

OPENWEATHER_CONFIG = ProviderConfig(
    name="openweather",
    daily_limit=DEFAULT_DAILY_LIMIT,
    priority=2,
    cost_tier=3,
    latency_rank=2,
    reliability=0.9,
    charges_failed_calls=True,
    supports_events=True,
)

# keyword -> severity, most severe first
ALERT_SEVERITY_KEYWORDS = (
    ("extreme", "extreme"),
    ("emergency", "extreme"),
    ("warning", "severe"),
    ("watch", "moderate"),
    ("advisory", "minor"),
    ("statement", "minor"),
)


def _precipitation_mm_h(block: Mapping) -> float:
    """Sum the last-hour rain and snow amounts (mm) as an hourly intensity."""
    total = 0.0
    for kind in ("rain", "snow"):
        amount = block.get(kind)
        if isinstance(amount, Mapping):
            total += float(amount.get("1h", 0.0) or 0.0)
    return total


def parse_openweather_block(block: Mapping) -> WeatherSample:
    """Turn a One Call `current` or `hourly[]` entry (metric units) into a WeatherSample."""
    weather = block.get("weather") or [{}]
    visibility_m = block.get("visibility")
    wind_speed = block.get("wind_speed")
    wind_gust = block.get("wind_gust")
    return build_weather_sample(
        temperature=block.get("temp"),
        humidity=block.get("humidity"),
        wind_speed=None if wind_speed is None else float(wind_speed) * MS_TO_KMH,
        wind_gust=None if wind_gust is None else float(wind_gust) * MS_TO_KMH,
        visibility_km=None if visibility_m is None else float(visibility_m) / 1000,
        precipitation_intensity=_precipitation_mm_h(block),
        weather_code=weather[0].get("id"),
        uv_index=block.get("uvi"),
        cloud_cover=block.get("clouds"),
    )


def alert_severity(event_name: str) -> str:
    """OpenWeather alerts carry no severity field; infer it from the event name."""
    lowered = (event_name or "").lower()
    for keyword, severity in ALERT_SEVERITY_KEYWORDS:
        if keyword in lowered:
            return severity
    return "moderate"


class OpenWeatherProvider(BaseWeatherProvider):
    """Secondary provider with government alerts."""

    config = OPENWEATHER_CONFIG

    def __init__(self, ledger: QuotaLedger, api_key: str, *, config: ProviderConfig | None = None,
                 timeout: float = 10.0) -> None:
        super().__init__(ledger, config=config, timeout=timeout)
        self.api_key = api_key

    def _onecall(self, lat: float, lng: float, exclude: str) -> dict:
        params = {
            "lat": lat,
            "lon": lng,
            "appid": self.api_key,
            "units": "metric",
            "exclude": exclude,
        }
        resp = session.get(OPENWEATHER_ONECALL_URL, params=params, timeout=self.timeout)
        self._check_response(resp, "onecall")
        return resp.json()

    def get_current_and_short_forecast(self, lat: float, lng: float, horizon_hours: int = 12) -> WeatherTimeline:
        def request() -> WeatherTimeline:
            data = self._onecall(lat, lng, exclude="minutely,daily,alerts")
            current = parse_openweather_block(data["current"])
            hourly = [
                HourlyForecast(time=parse_timestamp(entry["dt"]), weather=parse_openweather_block(entry))
                for entry in (data.get("hourly") or [])[:horizon_hours]
            ]
            return WeatherTimeline(current=current, hourly=hourly)

        return self._call("onecall", request)

    def get_hazard_events(self, lat: float, lng: float, radius_km: float = 50.0) -> List[WeatherEvent]:
        # One Call alerts are issued for the requested point; radius is not a parameter.
        def request() -> List[WeatherEvent]:
            data = self._onecall(lat, lng, exclude="current,minutely,hourly,daily")
            events: List[WeatherEvent] = []
            for idx, alert in enumerate(data.get("alerts") or []):
                name = alert.get("event", "")
                events.append(
                    WeatherEvent(
                        id=f"{alert.get('sender_name', 'openweather')}:{alert.get('start', idx)}:{idx}",
                        type=(alert.get("tags") or [name or "alert"])[0],
                        severity=alert_severity(name),
                        title=name,
                        description=alert.get("description") or "",
                        start_time=parse_timestamp(alert.get("start")),
                        end_time=parse_timestamp(alert.get("end")),
                    )
                )
            return events

        return self._call("alerts", request)
