"""Interfaces and shared plumbing for weather provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Protocol, TypeVar

import requests

from roadwise.domain import QuotaStatus, WeatherEvent, WeatherTimeline
from roadwise.errors import ProviderUnavailable
from roadwise.quota import QuotaLedger
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/base")

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderConfig:
    """Static facts about a vendor used for quota checks and selection."""
    name: str
    daily_limit: int
    priority: int  # lower = preferred
    cost_tier: int  # lower = cheaper
    latency_rank: int  # lower = faster
    reliability: float  # 0..1, higher = more reliable
    # Whether the vendor bills a request that came back as an error/timeout.
    charges_failed_calls: bool
    supports_events: bool = True


class WeatherProvider(Protocol):
    """Contract every weather vendor integration satisfies."""

    @property
    def name(self) -> str:
        ...

    @property
    def config(self) -> ProviderConfig:
        ...

    def get_current_and_short_forecast(self, lat: float, lng: float, horizon_hours: int = 12) -> WeatherTimeline:
        """Return current conditions plus hourly forecast up to `horizon_hours` ahead."""
        ...

    def get_hazard_events(self, lat: float, lng: float, radius_km: float = 50.0) -> List[WeatherEvent]:
        """Return hazard events/alerts around a point."""
        ...

    def is_available(self) -> bool:
        """True only when today's quota is not exhausted."""
        ...

    def remaining_quota(self) -> int:
        """Calls left today."""
        ...


def parse_timestamp(value: str | int | float | None) -> datetime | None:
    """Parse vendor ISO strings ("...Z" included) or unix seconds into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BaseWeatherProvider:
    """Quota-aware base for vendor adapters.

    Availability comes from the shared QuotaLedger, not from network
    reachability: a provider with nothing left today reports unavailable even
    if its API would still answer. Every vendor call goes through `_call`,
    which reserves quota before the request and settles it according
    to the vendor's `charges_failed_calls` policy.
    """

    config: ProviderConfig

    def __init__(self, ledger: QuotaLedger, *, config: ProviderConfig | None = None, timeout: float = 10.0) -> None:
        self.ledger = ledger
        if config is not None:
            self.config = config
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.config.name

    def quota(self) -> QuotaStatus:
        return self.ledger.check(self.name, self.config.daily_limit)

    def is_available(self) -> bool:
        try:
            return not self.quota().exceeded
        except Exception as exc:
            # unknown usage is treated as exhausted so vendor limits are never overrun
            logger.error("Quota check failed; reporting provider unavailable",
                         extra={"provider": self.name, "error": str(exc)})
            return False

    def remaining_quota(self) -> int:
        try:
            return self.quota().remaining
        except Exception as exc:
            logger.error("Quota check failed; reporting zero remaining",
                         extra={"provider": self.name, "error": str(exc)})
            return 0

    def _call(self, endpoint: str, request: Callable[[], T]) -> T:
        """Run one vendor request under a quota reservation.

        The call is counted before the request goes out and refused when it
        would pass `daily_limit`. Vendors that do not bill failures get the
        reservation back when the request fails. Anything the request or its
        parsing raises surfaces as ProviderUnavailable.
        """
        day = self.ledger.today()
        try:
            reserved = self.ledger.reserve(self.name, endpoint, self.config.daily_limit, day=day)
        except Exception as exc:
            logger.error("Quota reservation failed; treating provider as exhausted",
                         extra={"provider": self.name, "endpoint": endpoint, "error": str(exc)})
            raise ProviderUnavailable(self.name, "quota store unavailable", quota_exhausted=True) from exc
        if not reserved:
            logger.warning("Provider daily quota exhausted", extra={"provider": self.name, "endpoint": endpoint})
            raise ProviderUnavailable(self.name, "daily quota exhausted", quota_exhausted=True)

        try:
            return request()
        except Exception as exc:
            if not self.config.charges_failed_calls:
                self.ledger.release(self.name, endpoint, day=day)
            if isinstance(exc, ProviderUnavailable):
                raise
            raise ProviderUnavailable(self.name, f"{endpoint} request failed: {type(exc).__name__}: {exc}") from exc

    def _check_response(self, resp: requests.Response, endpoint: str) -> None:
        """Raise ProviderUnavailable for non-2xx responses."""
        if 200 <= resp.status_code < 300:
            return
        body = (getattr(resp, "text", "") or "")[:200]
        raise ProviderUnavailable(self.name, f"{endpoint} returned HTTP {resp.status_code}: {body}")
