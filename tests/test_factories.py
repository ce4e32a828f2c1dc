import unittest
from unittest.mock import patch

from roadwise.cache import RedisResponseCache, ResponseCache, build_response_cache
from roadwise.config import Settings
from roadwise.domain import ProviderStrategy
from roadwise.providers.factory import build_providers, build_selector
from roadwise.providers.open_meteo import OpenMeteoProvider
from roadwise.providers.openweather import OpenWeatherProvider
from roadwise.providers.tomorrow_io import TomorrowIoProvider
from roadwise.quota import InMemoryQuotaStore, QuotaLedger, RedisQuotaStore, SqlQuotaStore, build_quota_store
from roadwise.route_analysis import build_route_aggregator


class TestProviderFactory(unittest.TestCase):
    def setUp(self):
        self.ledger = QuotaLedger(InMemoryQuotaStore())

    def test_builds_configured_providers_in_order(self):
        settings = Settings(
            tomorrow_io_api_key="t-key",
            openweather_api_key="o-key",
            tomorrow_io_daily_limit=42,
        )
        providers = build_providers(settings, self.ledger)
        self.assertEqual([type(p) for p in providers], [TomorrowIoProvider, OpenWeatherProvider, OpenMeteoProvider])
        self.assertEqual(providers[0].config.daily_limit, 42)
        self.assertEqual([p.config.priority for p in providers], [1, 2, 3])

    def test_keyless_vendors_are_skipped(self):
        settings = Settings(tomorrow_io_api_key=None, openweather_api_key=None)
        providers = build_providers(settings, self.ledger)
        self.assertEqual([p.name for p in providers], ["open_meteo"])

    def test_unknown_provider_raises(self):
        settings = Settings(providers=["open_meteo", "darksky"])
        with self.assertRaises(ValueError):
            build_providers(settings, self.ledger)

    def test_build_selector_uses_strategy(self):
        settings = Settings(provider_strategy="performance", providers=["open_meteo"])
        selector = build_selector(settings, self.ledger)
        self.assertEqual(selector.strategy, ProviderStrategy.PERFORMANCE)


class TestRouteAggregatorFactory(unittest.TestCase):
    def test_sampling_limits_come_from_settings(self):
        settings = Settings(providers=["open_meteo"], route_max_samples=6, route_sample_concurrency=2)
        ledger = QuotaLedger(InMemoryQuotaStore())
        aggregator = build_route_aggregator(settings, ledger)
        self.assertEqual(aggregator.max_samples, 6)
        self.assertEqual(aggregator.concurrency, 2)
        self.assertIsInstance(aggregator.cache, ResponseCache)
        self.assertEqual([p.name for p in aggregator.selector.providers], ["open_meteo"])
        self.assertIs(aggregator.selector.providers[0].ledger, ledger)

    def test_ledger_is_built_from_quota_settings(self):
        settings = Settings(providers=["open_meteo"], quota_backend="sql", quota_database_url="sqlite://")
        aggregator = build_route_aggregator(settings)
        self.assertIsInstance(aggregator.selector.providers[0].ledger.store, SqlQuotaStore)


class TestQuotaStoreFactory(unittest.TestCase):
    def test_memory_default(self):
        self.assertIsInstance(build_quota_store(Settings(quota_backend="memory")), InMemoryQuotaStore)

    def test_sql_backend(self):
        store = build_quota_store(Settings(quota_backend="sql", quota_database_url="sqlite://"))
        self.assertIsInstance(store, SqlQuotaStore)

    def test_redis_backend_requires_url(self):
        with self.assertRaises(ValueError):
            build_quota_store(Settings(quota_backend="redis", quota_redis_url=None))

    def test_redis_backend(self):
        with patch("redis.Redis.from_url", return_value=object()) as from_url:
            store = build_quota_store(Settings(quota_backend="redis", quota_redis_url="redis://localhost:6379/0"))
        self.assertIsInstance(store, RedisQuotaStore)
        from_url.assert_called_once_with("redis://localhost:6379/0")

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_quota_store(Settings(quota_backend="etcd"))


class TestCacheFactory(unittest.TestCase):
    def test_memory_default(self):
        self.assertIsInstance(build_response_cache(Settings()), ResponseCache)

    def test_redis_backend(self):
        with patch("redis.Redis.from_url", return_value=object()):
            cache = build_response_cache(Settings(cache_backend="redis", cache_redis_url="redis://localhost/1"))
        self.assertIsInstance(cache, RedisResponseCache)

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            build_response_cache(Settings(cache_backend="memcached"))


if __name__ == "__main__":
    unittest.main()
