import unittest
from decimal import Decimal

from roadwise.cache import RedisResponseCache, ResponseCache, grid_key, quantize, ttl_for_risk
from roadwise.conditions import build_weather_sample
from roadwise.domain import RoadRisk
from roadwise.errors import CacheMiss


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _sample(risk):
    by_risk = {
        RoadRisk.LOW: {},
        RoadRisk.MODERATE: {"precipitation_intensity": 5.0},
        RoadRisk.HIGH: {"precipitation_intensity": 15.0},
        RoadRisk.EXTREME: {"wind_gust": 95.0},
    }
    sample = build_weather_sample(**by_risk[risk])
    assert sample.road_risk == risk
    return sample


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expires = {}

    def setex(self, key, ttl, value):
        self.store[key] = value.encode() if isinstance(value, str) else value
        self.expires[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in list(self.store.keys()) if k.startswith(prefix)]


class TestQuantization(unittest.TestCase):
    def test_rounds_half_away_from_zero(self):
        self.assertEqual(quantize(40.125), Decimal("40.13"))
        self.assertEqual(quantize(-3.705), Decimal("-3.71"))
        self.assertEqual(quantize(0.004), Decimal("0.00"))

    def test_nearby_points_share_a_cell(self):
        self.assertEqual(grid_key(40.4168, -3.7038), grid_key(40.4201, -3.7049))
        self.assertEqual(grid_key(40.4168, -3.7038), "40.42:-3.70")
        self.assertNotEqual(grid_key(40.4168, -3.7038), grid_key(40.4268, -3.7038))

    def test_ttl_shrinks_with_risk(self):
        ttls = [ttl_for_risk(r) for r in (RoadRisk.LOW, RoadRisk.MODERATE, RoadRisk.HIGH, RoadRisk.EXTREME)]
        self.assertEqual(ttls, [900, 600, 300, 120])


class TestResponseCache(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock()
        self.cache = ResponseCache(clock=self.clock)

    def test_put_then_get_within_cell(self):
        sample = _sample(RoadRisk.MODERATE)
        self.cache.put(40.4168, -3.7038, sample)
        self.assertEqual(self.cache.get(40.4201, -3.7049), sample)
        self.assertIsNone(self.cache.get(41.0, -3.7))

    def test_expiry_is_inclusive(self):
        expires_at = self.cache.put(1.0, 1.0, _sample(RoadRisk.EXTREME))
        self.assertEqual(expires_at, 1120.0)
        self.clock.now = 1119.999
        self.assertIsNotNone(self.cache.get(1.0, 1.0))
        self.clock.now = 1120.0
        self.assertIsNone(self.cache.get(1.0, 1.0))

    def test_extreme_expires_before_low(self):
        self.cache.put(1.0, 1.0, _sample(RoadRisk.EXTREME))
        self.cache.put(2.0, 2.0, _sample(RoadRisk.LOW))
        self.clock.now += ttl_for_risk(RoadRisk.EXTREME)
        self.assertIsNone(self.cache.get(1.0, 1.0))
        self.assertIsNotNone(self.cache.get(2.0, 2.0))

    def test_require_raises_cache_miss(self):
        with self.assertRaises(CacheMiss) as ctx:
            self.cache.require(1.0, 2.0)
        self.assertEqual(ctx.exception.key, "1.00:2.00")

    def test_purge_expired(self):
        self.cache.put(1.0, 1.0, _sample(RoadRisk.EXTREME))
        self.cache.put(2.0, 2.0, _sample(RoadRisk.LOW))
        self.clock.now += 600
        self.assertEqual(self.cache.purge_expired(), 1)
        self.assertEqual(len(self.cache), 1)
        self.cache.clear()
        self.assertEqual(len(self.cache), 0)


class TestRedisResponseCache(unittest.TestCase):
    def setUp(self):
        self.client = FakeRedis()
        self.cache = RedisResponseCache(self.client, clock=_Clock(0.0))

    def test_round_trip_uses_risk_ttl(self):
        sample = _sample(RoadRisk.HIGH)
        self.assertEqual(self.cache.put(40.4168, -3.7038, sample), 300.0)
        self.assertEqual(self.client.expires["weather:40.42:-3.70"], 300)
        self.assertEqual(self.cache.get(40.42, -3.70), sample)

    def test_unreadable_entry_is_a_miss(self):
        self.client.store["weather:1.00:1.00"] = b"not json"
        self.assertIsNone(self.cache.get(1.0, 1.0))
        with self.assertRaises(CacheMiss):
            self.cache.require(1.0, 1.0)

    def test_clear(self):
        self.cache.put(1.0, 1.0, _sample(RoadRisk.LOW))
        self.cache.clear()
        self.assertIsNone(self.cache.get(1.0, 1.0))


if __name__ == "__main__":
    unittest.main()
