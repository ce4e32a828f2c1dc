"""Error taxonomy for the route risk and advisory engine."""

from __future__ import annotations


class RoadwiseError(Exception):
    """Base class for every error raised by the engine."""


class ProviderUnavailable(RoadwiseError):
    """A single weather provider cannot serve a request (quota exhausted, vendor error, timeout)."""

    def __init__(self, provider: str, reason: str, *, quota_exhausted: bool = False) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
        self.quota_exhausted = quota_exhausted


class AllProvidersExhausted(RoadwiseError):
    """No configured provider reports itself available."""


class NoWeatherDataAvailable(RoadwiseError):
    """Route analysis resolved zero of its sampled points."""

    def __init__(self, sampled_points: int) -> None:
        super().__init__(f"No weather data resolved for any of {sampled_points} sampled route points")
        self.sampled_points = sampled_points


class CacheMiss(RoadwiseError):
    """Control-flow signal: no live cache entry for the requested grid cell."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key


class EnhancementFailed(RoadwiseError):
    """The language-model rewording round trip failed; callers fall back to the base message."""
