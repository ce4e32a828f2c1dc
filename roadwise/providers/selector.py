"""Choose a weather provider from live quota state, with fallback on failure."""

from __future__ import annotations

from typing import Callable, List, Sequence, TypeVar

from roadwise.domain import ProviderStrategy
from roadwise.errors import AllProvidersExhausted, ProviderUnavailable
from roadwise.providers.base import WeatherProvider
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/selector")

T = TypeVar("T")

_SORT_KEYS = {
    ProviderStrategy.COST_OPTIMIZED: lambda p: (p.config.cost_tier, p.config.priority),
    ProviderStrategy.PERFORMANCE: lambda p: (p.config.latency_rank, p.config.priority),
    ProviderStrategy.RELIABILITY: lambda p: (-p.config.reliability, p.config.priority),
}


class ProviderSelector:
    """Orders providers by strategy and hands out the first one with quota left.

    The selector never consults the response cache; callers check the cache
    before asking for a provider.
    """

    def __init__(
        self,
        providers: Sequence[WeatherProvider],
        strategy: ProviderStrategy | str = ProviderStrategy.COST_OPTIMIZED,
    ) -> None:
        self.providers = list(providers)
        self.strategy = ProviderStrategy(strategy)

    def ordered(self) -> List[WeatherProvider]:
        # sorted() is stable, so ties keep the configured order
        return sorted(self.providers, key=_SORT_KEYS[self.strategy])

    def candidates(self) -> List[WeatherProvider]:
        """Providers with quota left today, in strategy order."""
        return [p for p in self.ordered() if p.is_available()]

    def select(self) -> WeatherProvider:
        for provider in self.ordered():
            if provider.is_available():
                return provider
        raise AllProvidersExhausted(
            f"No weather provider has quota left ({', '.join(p.name for p in self.providers) or 'none configured'})"
        )

    def total_remaining_quota(self) -> int:
        return sum(p.remaining_quota() for p in self.providers if p.is_available())

    def call_with_fallback(self, operation: Callable[[WeatherProvider], T]) -> T:
        """Run `operation` against providers in order until one succeeds.

        Raises AllProvidersExhausted when no provider is available at all,
        otherwise re-raises the last ProviderUnavailable once every available
        provider has failed.
        """
        last_error: ProviderUnavailable | None = None
        for provider in self.candidates():
            try:
                return operation(provider)
            except ProviderUnavailable as exc:
                last_error = exc
                logger.info(
                    "Provider failed, falling back",
                    extra={"provider": provider.name, "reason": exc.reason, "quota_exhausted": exc.quota_exhausted},
                )
        if last_error is None:
            raise AllProvidersExhausted("No weather provider has quota left")
        raise last_error
