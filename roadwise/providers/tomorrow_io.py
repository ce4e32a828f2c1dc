"""Tomorrow.io weather adapter (timelines + events endpoints).

Billing: Tomorrow.io counts every request that reaches its API against the
daily allowance, including ones answered with an error, so this adapter
records usage for failed calls too (`charges_failed_calls=True`).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Mapping

import requests
from retry_requests import retry

from roadwise import config as roadwise_config
from roadwise.conditions import build_weather_sample
from roadwise.domain import HourlyForecast, WeatherEvent, WeatherSample, WeatherTimeline
from roadwise.providers.base import BaseWeatherProvider, ProviderConfig, parse_timestamp
from roadwise.quota import QuotaLedger
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/tomorrow_io")

session = retry(requests.Session(), retries=roadwise_config.settings.provider_retries, backoff_factor=0.2)

TOMORROW_API_BASE = "https://api.tomorrow.io/v4"

# free tier allowance
DEFAULT_DAILY_LIMIT = 500

TIMELINE_FIELDS = [
    "temperature",
    "humidity",
    "windSpeed",
    "windGust",
    "visibility",
    "precipitationIntensity",
    "weatherCode",
    "uvIndex",
    "cloudCover",
]

EVENT_INSIGHTS = "fires,wind,winter,floods,air"

MS_TO_KMH = 3.6

TOMORROW_CONFIG = ProviderConfig(
    name="tomorrow",
    daily_limit=DEFAULT_DAILY_LIMIT,
    priority=1,
    cost_tier=2,
    latency_rank=1,
    reliability=0.95,
    charges_failed_calls=True,
    supports_events=True,
)


def _scaled(value, factor: float):
    return None if value is None else float(value) * factor


def parse_tomorrow_values(values: Mapping[str, float | None]) -> WeatherSample:
    """Turn a Tomorrow.io `values` block (metric units) into a WeatherSample."""
    return build_weather_sample(
        temperature=values.get("temperature"),
        humidity=values.get("humidity"),
        # metric wind comes back in m/s
        wind_speed=_scaled(values.get("windSpeed"), MS_TO_KMH),
        wind_gust=_scaled(values.get("windGust"), MS_TO_KMH),
        visibility_km=values.get("visibility"),
        precipitation_intensity=values.get("precipitationIntensity"),
        weather_code=values.get("weatherCode"),
        uv_index=values.get("uvIndex"),
        cloud_cover=values.get("cloudCover"),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TomorrowIoProvider(BaseWeatherProvider):
    """Primary provider: current + hourly timelines and hazard events."""

    config = TOMORROW_CONFIG

    def __init__(
        self,
        ledger: QuotaLedger,
        api_key: str,
        *,
        config: ProviderConfig | None = None,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(ledger, config=config, timeout=timeout)
        self.api_key = api_key
        self._clock = clock

    def get_current_and_short_forecast(self, lat: float, lng: float, horizon_hours: int = 12) -> WeatherTimeline:
        end_time = self._clock() + timedelta(hours=horizon_hours)
        body = {
            "location": [lat, lng],
            "fields": TIMELINE_FIELDS,
            "timesteps": ["current", "1h"],
            "endTime": end_time.isoformat().replace("+00:00", "Z"),
            "units": "metric",
        }

        def request() -> WeatherTimeline:
            resp = session.post(
                f"{TOMORROW_API_BASE}/timelines",
                json=body,
                headers={"apikey": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            self._check_response(resp, "timelines")
            return self._parse_timelines(resp.json())

        return self._call("timelines", request)

    @staticmethod
    def _parse_timelines(data: dict) -> WeatherTimeline:
        timelines = (data.get("data") or {}).get("timelines") or []
        by_step = {t.get("timestep"): t for t in timelines}

        current_intervals = (by_step.get("current") or {}).get("intervals") or []
        current_values = current_intervals[0].get("values", {}) if current_intervals else {}
        current = parse_tomorrow_values(current_values)

        hourly: List[HourlyForecast] = []
        for interval in (by_step.get("1h") or {}).get("intervals") or []:
            hourly.append(
                HourlyForecast(
                    time=parse_timestamp(interval["startTime"]),
                    weather=parse_tomorrow_values(interval.get("values", {})),
                )
            )
        return WeatherTimeline(current=current, hourly=hourly)

    def get_hazard_events(self, lat: float, lng: float, radius_km: float = 50.0) -> List[WeatherEvent]:
        params = {
            "location": f"{lat},{lng}",
            "insights": EVENT_INSIGHTS,
            "buffer": radius_km,
        }

        def request() -> List[WeatherEvent]:
            resp = session.get(
                f"{TOMORROW_API_BASE}/events",
                params=params,
                headers={"apikey": self.api_key},
                timeout=self.timeout,
            )
            # events are not part of every plan
            if resp.status_code == 403:
                logger.info("Tomorrow.io events endpoint not available on this plan")
                return []
            self._check_response(resp, "events")
            events = (resp.json().get("data") or {}).get("events") or []
            return [
                WeatherEvent(
                    id=str(event.get("eventId", "")),
                    type=event.get("insight", "unknown"),
                    severity=event.get("severity") or "moderate",
                    title=event.get("headline") or event.get("insight", ""),
                    description=event.get("description") or "",
                    start_time=parse_timestamp(event.get("startTime")),
                    end_time=parse_timestamp(event.get("endTime")),
                )
                for event in events
            ]

        return self._call("events", request)
