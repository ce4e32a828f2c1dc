"""Grid-quantized weather cache with risk-dependent TTL.

Coordinates are rounded to 0.01° (about 1 km) so nearby route samples share
one entry. The riskier the cached sample, the shorter it lives.
"""

from __future__ import annotations

import threading
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Protocol

from roadwise import config
from roadwise.domain import RoadRisk, WeatherSample
from roadwise.errors import CacheMiss
from utils.logging_utils import get_tagged_logger, mask_secret_url

logger = get_tagged_logger(__name__, tag="cache")

GRID_PRECISION = Decimal("0.01")

TTL_SECONDS = {
    RoadRisk.EXTREME: 120,
    RoadRisk.HIGH: 300,
    RoadRisk.MODERATE: 600,
    RoadRisk.LOW: 900,
}


def quantize(value: float) -> Decimal:
    """Round half away from zero to two decimal places."""
    # str() keeps the shortest repr, so 0.125 stays 0.125 rather than 0.12499999...
    return Decimal(str(value)).quantize(GRID_PRECISION, rounding=ROUND_HALF_UP)


def grid_key(lat: float, lng: float) -> str:
    return f"{quantize(lat)}:{quantize(lng)}"


def ttl_for_risk(risk: RoadRisk) -> int:
    return TTL_SECONDS[risk]


class WeatherCache(Protocol):
    """Interface shared by the cache backends."""

    def get(self, lat: float, lng: float) -> Optional[WeatherSample]:
        """Return the live sample for the grid cell, or None if absent/expired."""

    def put(self, lat: float, lng: float, sample: WeatherSample) -> float:
        """Store a sample; returns its expiry timestamp."""

    def require(self, lat: float, lng: float) -> WeatherSample:
        """Like get, but raises CacheMiss instead of returning None."""

    def clear(self) -> None:
        """Drop every entry."""


class ResponseCache:
    """Thread-safe, process-local cache (default backend)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        logger.debug("Initializing ResponseCache")
        self._clock = clock
        self._entries: dict[str, tuple[WeatherSample, float]] = {}
        self._lock = threading.Lock()

    def get(self, lat: float, lng: float) -> Optional[WeatherSample]:
        key = grid_key(lat, lng)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            sample, expires_at = entry
            if self._clock() >= expires_at:
                self._entries.pop(key, None)
                return None
            return sample

    def put(self, lat: float, lng: float, sample: WeatherSample) -> float:
        expires_at = self._clock() + ttl_for_risk(sample.road_risk)
        with self._lock:
            self._entries[grid_key(lat, lng)] = (sample, expires_at)
        return expires_at

    def require(self, lat: float, lng: float) -> WeatherSample:
        sample = self.get(lat, lng)
        if sample is None:
            raise CacheMiss(grid_key(lat, lng))
        return sample

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisResponseCache:
    """Redis-backed cache; expiry is delegated to SETEX."""

    def __init__(self, client, prefix: str = "weather:", clock: Callable[[], float] = time.time) -> None:
        logger.debug("Initializing RedisResponseCache")
        self.client = client
        self.prefix = prefix
        self._clock = clock

    def _key(self, lat: float, lng: float) -> str:
        return f"{self.prefix}{grid_key(lat, lng)}"

    def get(self, lat: float, lng: float) -> Optional[WeatherSample]:
        try:
            raw = self.client.get(self._key(lat, lng))
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to read weather cache from Redis", extra={"error": str(exc)})
            return None
        if not raw:
            return None
        try:
            return WeatherSample.model_validate_json(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable cache entry", extra={"key": self._key(lat, lng), "error": str(exc)})
            return None

    def put(self, lat: float, lng: float, sample: WeatherSample) -> float:
        ttl = ttl_for_risk(sample.road_risk)
        try:
            self.client.setex(self._key(lat, lng), ttl, sample.model_dump_json())
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to write weather cache to Redis", extra={"error": str(exc)})
        return self._clock() + ttl

    def require(self, lat: float, lng: float) -> WeatherSample:
        sample = self.get(lat, lng)
        if sample is None:
            raise CacheMiss(grid_key(lat, lng))
        return sample

    def purge_expired(self) -> int:
        # Redis expires keys on its own
        return 0

    def clear(self) -> None:
        """Best-effort clear for every entry under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to clear weather cache in Redis", extra={"error": str(exc)})


def build_response_cache(settings: config.Settings | None = None) -> WeatherCache:
    """Instantiate the configured cache backend."""
    settings = settings or config.settings
    backend = (settings.cache_backend or "memory").lower()

    if backend == "memory":
        logger.info("Using in-memory weather cache")
        return ResponseCache()

    if backend == "redis":
        import redis

        if not settings.cache_redis_url:
            raise ValueError("cache_redis_url must be set for the Redis weather cache")
        logger.info("Using Redis weather cache", extra={"redis_url": mask_secret_url(settings.cache_redis_url)})
        return RedisResponseCache(redis.Redis.from_url(settings.cache_redis_url))

    raise ValueError(f"Unknown cache backend '{backend}'")
