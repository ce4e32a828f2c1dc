"""Per-provider, per-UTC-day call accounting on top of a QuotaStore."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable

from roadwise.domain import QuotaStatus
from roadwise.quota.base import QuotaStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="quota/ledger")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaLedger:
    """Answers "is this provider usable today" and accounts for every vendor call.

    Days roll over at UTC midnight: the day is part of every counter key, so a
    new day starts from zero without any reset step.
    """

    def __init__(self, store: QuotaStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self._clock = clock

    def today(self) -> date:
        """Current calendar day in UTC."""
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc).date()

    def check(self, provider: str, daily_limit: int) -> QuotaStatus:
        """Return today's usage for a provider against its daily limit."""
        used = self.store.total(provider, self.today())
        return QuotaStatus(
            used=used,
            remaining=max(0, daily_limit - used),
            exceeded=used >= daily_limit,
        )

    def record_call(self, provider: str, endpoint: str) -> None:
        """Count one call; backend failures are logged, never raised to the caller."""
        try:
            count = self.store.increment(provider, self.today(), endpoint)
            logger.debug("Recorded provider call", extra={"provider": provider, "endpoint": endpoint, "count": count})
        except Exception as exc:
            logger.error(
                "Failed to record provider call",
                extra={"provider": provider, "endpoint": endpoint, "error": str(exc)},
            )

    def reserve(self, provider: str, endpoint: str, daily_limit: int, *, day: date | None = None) -> bool:
        """Count one call up front; False (and nothing counted) when it would exceed `daily_limit`.

        The increment happens before the limit is compared, so two callers
        racing for the last slot cannot both get it. Store errors propagate.
        """
        day = day or self.today()
        self.store.increment(provider, day, endpoint)
        used = self.store.total(provider, day)
        if used <= daily_limit:
            logger.debug("Reserved provider call", extra={"provider": provider, "endpoint": endpoint, "used": used})
            return True
        self.store.decrement(provider, day, endpoint)
        return False

    def release(self, provider: str, endpoint: str, *, day: date | None = None) -> None:
        """Give back a reservation for a call the vendor did not bill; failures are logged."""
        try:
            self.store.decrement(provider, day or self.today(), endpoint)
        except Exception as exc:
            logger.error(
                "Failed to release provider call",
                extra={"provider": provider, "endpoint": endpoint, "error": str(exc)},
            )
