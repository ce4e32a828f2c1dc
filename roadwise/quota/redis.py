"""Redis-backed quota counters."""

from datetime import date

from roadwise.quota.base import QuotaStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="quota/redis_quota_store")

# keep a few days around for diagnostics; counters for past days are inert
DEFAULT_RETENTION_SECONDS = 3 * 24 * 3600


class RedisQuotaStore(QuotaStore):
    """One hash per (provider, day); one field per endpoint, bumped with HINCRBY."""

    def __init__(self, client, prefix: str = "quota:", retention_seconds: int = DEFAULT_RETENTION_SECONDS) -> None:
        logger.debug("Initializing RedisQuotaStore")
        self.client = client
        self.prefix = prefix
        self.retention = retention_seconds

    def _key(self, provider: str, day: date) -> str:
        return f"{self.prefix}{provider}:{day.isoformat()}"

    def increment(self, provider: str, day: date, endpoint: str) -> int:
        key = self._key(provider, day)
        count = self.client.hincrby(key, endpoint, 1)
        try:
            self.client.expire(key, self.retention)
        except Exception as exc:  # pragma: no cover - defensive
            logger.warning("Failed to set quota key expiry: %s", exc)
        return int(count)

    def decrement(self, provider: str, day: date, endpoint: str) -> int:
        key = self._key(provider, day)
        count = int(self.client.hincrby(key, endpoint, -1))
        if count < 0:
            # a release without a matching reservation (e.g. the hash expired meanwhile)
            count = int(self.client.hincrby(key, endpoint, -count))
        return count

    def total(self, provider: str, day: date) -> int:
        values = self.client.hvals(self._key(provider, day)) or []
        return sum(int(v) for v in values)

    def clear(self) -> None:
        """Best-effort clear for all counters under the configured prefix."""
        try:
            for key in self.client.scan_iter(f"{self.prefix}*"):
                self.client.delete(key)
        except Exception as exc:  # pragma: no cover - defensive
            logger.error("Failed to clear quota counters from Redis: %s", exc)
