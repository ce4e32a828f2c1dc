"""Factory helpers for choosing a quota backend at startup."""

from __future__ import annotations

from roadwise import config
from roadwise.quota.base import QuotaStore
from roadwise.quota.memory import InMemoryQuotaStore
from utils.logging_utils import get_tagged_logger, mask_secret_url

logger = get_tagged_logger(__name__, tag="quota/factory")


def build_quota_store(settings: config.Settings | None = None) -> QuotaStore:
    """Instantiate the configured quota backend."""
    settings = settings or config.settings
    backend = (settings.quota_backend or "memory").lower()

    if backend == "memory":
        logger.info("Using in-memory quota store")
        return InMemoryQuotaStore()

    if backend == "redis":
        import redis
        from .redis import RedisQuotaStore

        if not settings.quota_redis_url:
            raise ValueError("quota_redis_url must be set for the Redis quota store")
        client = redis.Redis.from_url(settings.quota_redis_url)
        logger.info("Using Redis quota store", extra={"redis_url": mask_secret_url(settings.quota_redis_url)})
        return RedisQuotaStore(client)

    if backend == "sql":
        from .sql import SqlQuotaStore

        if not settings.quota_database_url:
            raise ValueError("quota_database_url must be set for the SQL quota store")
        return SqlQuotaStore.from_url(settings.quota_database_url)

    raise ValueError(f"Unknown quota backend '{backend}'")
