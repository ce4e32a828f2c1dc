"""In-memory quota counters, intended for development and tests."""

import threading
from collections import defaultdict
from datetime import date

from roadwise.quota.base import QuotaStore

from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="quota/in_memory_quota_store")


class InMemoryQuotaStore(QuotaStore):
    """Thread-safe, process-local counters (dev/test)."""

    def __init__(self) -> None:
        logger.debug("Initializing InMemoryQuotaStore")
        self._counts: dict[tuple[str, date, str], int] = defaultdict(int)
        self._lock = threading.Lock()

    def increment(self, provider: str, day: date, endpoint: str) -> int:
        with self._lock:
            key = (provider, day, endpoint)
            self._counts[key] += 1
            return self._counts[key]

    def decrement(self, provider: str, day: date, endpoint: str) -> int:
        with self._lock:
            key = (provider, day, endpoint)
            self._counts[key] = max(0, self._counts[key] - 1)
            return self._counts[key]

    def total(self, provider: str, day: date) -> int:
        with self._lock:
            return sum(
                count for (p, d, _endpoint), count in self._counts.items()
                if p == provider and d == day
            )

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()
