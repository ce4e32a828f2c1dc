"""Provider quota accounting and its storage backends."""

from .base import QuotaStore
from .factory import build_quota_store
from .ledger import QuotaLedger
from .memory import InMemoryQuotaStore
from .redis import RedisQuotaStore
from .sql import SqlQuotaStore

__all__ = [
    "QuotaStore",
    "QuotaLedger",
    "InMemoryQuotaStore",
    "RedisQuotaStore",
    "SqlQuotaStore",
    "build_quota_store",
]
