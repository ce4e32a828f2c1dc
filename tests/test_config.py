import os
import unittest

from roadwise.config import DEFAULT_COOLDOWN_SECONDS, Settings


class _Env:
    """Temporarily set environment variables."""

    def __init__(self, **values):
        self.values = values
        self.previous = {}

    def __enter__(self):
        for key, value in self.values.items():
            self.previous[key] = os.environ.get(key)
            os.environ[key] = value
        return self

    def __exit__(self, *exc):
        for key, value in self.previous.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


class TestConfig(unittest.TestCase):
    def test_settings_defaults(self):
        s = Settings(ollama_base_url="http://localhost:11434/")
        self.assertEqual(s.ollama_base_url, "http://localhost:11434")
        self.assertEqual(s.route_max_samples, 10)
        self.assertEqual(s.lookahead_km, 10.0)
        self.assertEqual(s.cooldown_seconds, DEFAULT_COOLDOWN_SECONDS)
        self.assertEqual(s.trip_delay_minutes, 60)

    def test_env_override(self):
        with _Env(ROADWISE_PROVIDER_STRATEGY="reliability", ROADWISE_ROUTE_MAX_SAMPLES="6"):
            s = Settings()
        self.assertEqual(s.provider_strategy, "reliability")
        self.assertEqual(s.route_max_samples, 6)

    def test_provider_list_from_env_is_normalized(self):
        with _Env(ROADWISE_PROVIDERS='["Open_Meteo", " OpenWeather "]'):
            s = Settings()
        self.assertEqual(s.providers, ["open_meteo", "openweather"])

    def test_partial_cooldown_override_keeps_defaults(self):
        s = Settings(cooldown_seconds={"speed_advisory": 120})
        self.assertEqual(s.cooldown_seconds["speed_advisory"], 120)
        self.assertEqual(s.cooldown_seconds["near_arrival"], 60.0)


if __name__ == "__main__":
    unittest.main()
