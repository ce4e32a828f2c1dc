"""Route risk aggregation: bounded sampling, cache-first lookups, worst-case reduction."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from roadwise import config
from roadwise.cache import WeatherCache, build_response_cache
from roadwise.conditions import condition_for_sample
from roadwise.domain import (
    HazardAlert,
    RouteAnalysis,
    RoutePoint,
    RouteSegment,
    RouteWeatherSegment,
    WeatherSample,
)
from roadwise.errors import (
    AllProvidersExhausted,
    NoWeatherDataAvailable,
    ProviderUnavailable,
)
from roadwise.providers.base import WeatherProvider
from roadwise.providers.events import alerts_from_events
from roadwise.providers.factory import build_selector
from roadwise.providers.selector import ProviderSelector
from roadwise.quota import QuotaLedger, build_quota_store
from roadwise.risk import overall_risk
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="route_analysis")

DEFAULT_MAX_SAMPLES = 10
FORECAST_HORIZON_HOURS = 12


def downsample(points: Sequence[RoutePoint], max_points: int) -> List[RoutePoint]:
    """Uniform stride sampling that always keeps the first point."""
    if max_points <= 0 or not points:
        return []
    step = math.ceil(len(points) / max_points)
    return list(points[::step])[:max_points]


class _PointResult:
    __slots__ = ("point", "sample", "error")

    def __init__(self, point: RoutePoint, sample: Optional[WeatherSample] = None,
                 error: Optional[Exception] = None) -> None:
        self.point = point
        self.sample = sample
        self.error = error


class RouteRiskAggregator:
    """Turns a route geometry into per-segment weather and one overall risk.

    Sampled points are resolved on a bounded thread pool. A failing point is
    logged and skipped; siblings are never cancelled. The quota ledger and
    the cache are the only shared state between workers and both are safe
    for concurrent use.
    """

    def __init__(
        self,
        selector: ProviderSelector,
        cache: WeatherCache,
        *,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        concurrency: int = 4,
        horizon_hours: int = FORECAST_HORIZON_HOURS,
    ) -> None:
        self.selector = selector
        self.cache = cache
        self.max_samples = max_samples
        self.concurrency = max(1, concurrency)
        self.horizon_hours = horizon_hours

    def sample_budget(self, point_count: int) -> int:
        """How many points may be sampled right now."""
        return max(0, min(point_count, self.selector.total_remaining_quota(), self.max_samples))

    def _resolve(self, point: RoutePoint) -> _PointResult:
        cached = self.cache.get(point.lat, point.lng)
        if cached is not None:
            return _PointResult(point, sample=cached)

        def fetch(provider: WeatherProvider):
            return provider.get_current_and_short_forecast(point.lat, point.lng, self.horizon_hours)

        try:
            timeline = self.selector.call_with_fallback(fetch)
        except (ProviderUnavailable, AllProvidersExhausted) as exc:
            logger.warning(
                "Skipping route point without weather",
                extra={"lat": point.lat, "lng": point.lng, "distance_km": point.distance_km, "error": str(exc)},
            )
            return _PointResult(point, error=exc)
        except Exception as exc:
            # adapters not built on BaseWeatherProvider may raise anything
            logger.warning(
                "Route point lookup failed unexpectedly",
                extra={"lat": point.lat, "lng": point.lng, "distance_km": point.distance_km,
                       "error": f"{type(exc).__name__}: {exc}"},
            )
            return _PointResult(point, error=exc)

        self.cache.put(point.lat, point.lng, timeline.current)
        return _PointResult(point, sample=timeline.current)

    def analyze(self, points: Sequence[RoutePoint]) -> RouteAnalysis:
        """Classify weather along a route.

        Raises AllProvidersExhausted when no provider is usable up front (or
        every sampled point failed for lack of quota) and
        NoWeatherDataAvailable when no sampled point resolved.
        """
        if not points:
            raise NoWeatherDataAvailable(0)

        # fail loudly before sampling; stale cache is not a substitute
        self.selector.select()

        sampled = downsample(points, self.sample_budget(len(points)))
        if not sampled:
            raise AllProvidersExhausted("No provider quota left to sample the route")

        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(sampled))) as pool:
            results = list(pool.map(self._resolve, sampled))

        segments = [
            RouteSegment(distance_km=r.point.distance_km, lat=r.point.lat, lng=r.point.lng, weather=r.sample)
            for r in results
            if r.sample is not None
        ]
        if not segments:
            errors = [r.error for r in results]
            if errors and all(
                isinstance(e, AllProvidersExhausted) or (isinstance(e, ProviderUnavailable) and e.quota_exhausted)
                for e in errors
            ):
                raise AllProvidersExhausted("Every provider ran out of quota while sampling the route")
            raise NoWeatherDataAvailable(len(sampled))

        segments.sort(key=lambda s: s.distance_km)
        worst = overall_risk(s.weather.road_risk for s in segments)
        logger.info(
            "Route analyzed",
            extra={"sampled": len(sampled), "resolved": len(segments), "overall_risk": worst.value},
        )
        return RouteAnalysis(
            segments=segments,
            overall_risk=worst,
            sampled_points=len(sampled),
            resolved_points=len(segments),
        )

    def hazard_alerts(self, lat: float, lng: float, radius_km: float = 50.0) -> List[HazardAlert]:
        """Hazard events around a point as trip-synthesizer alerts.

        Providers without an events endpoint are passed over. Errors propagate.
        """

        def fetch(provider: WeatherProvider):
            if not provider.config.supports_events:
                raise ProviderUnavailable(provider.name, "no hazard events endpoint")
            return provider.get_hazard_events(lat, lng, radius_km)

        return alerts_from_events(self.selector.call_with_fallback(fetch))


def build_weather_segments(analysis: RouteAnalysis, route_length_km: float | None = None) -> List[RouteWeatherSegment]:
    """Expand sampled points into contiguous [start_km, end_km) stretches.

    Each sample covers the route up to the next sample; the last one runs to
    the end of the route. Neighbouring stretches with the same risk and
    condition are merged.
    """
    ordered = sorted(analysis.segments, key=lambda s: s.distance_km)
    stretches: List[RouteWeatherSegment] = []
    for idx, segment in enumerate(ordered):
        if idx + 1 < len(ordered):
            end_km = ordered[idx + 1].distance_km
        else:
            end_km = max(route_length_km or segment.distance_km, segment.distance_km)
        condition = condition_for_sample(segment.weather)
        risk = segment.weather.road_risk

        previous = stretches[-1] if stretches else None
        if previous is not None and previous.road_risk == risk and previous.condition.kind == condition.kind:
            stretches[-1] = previous.model_copy(update={"end_km": end_km})
            continue
        stretches.append(
            RouteWeatherSegment(start_km=segment.distance_km, end_km=end_km, condition=condition, road_risk=risk)
        )
    return stretches


def build_route_aggregator(
    settings: config.Settings | None = None,
    ledger: QuotaLedger | None = None,
) -> RouteRiskAggregator:
    """Wire providers, quota ledger, cache and sampling limits from settings.

    Pass `ledger` to share one quota ledger between several aggregators.
    """
    settings = settings or config.settings
    if ledger is None:
        ledger = QuotaLedger(build_quota_store(settings))
    aggregator = RouteRiskAggregator(
        build_selector(settings, ledger),
        build_response_cache(settings),
        max_samples=settings.route_max_samples,
        concurrency=settings.route_sample_concurrency,
    )
    logger.info(
        "Route aggregator configured",
        extra={"max_samples": aggregator.max_samples, "concurrency": aggregator.concurrency},
    )
    return aggregator
