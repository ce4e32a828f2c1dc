import unittest
from dataclasses import replace
from datetime import datetime, timezone

import requests

from roadwise.domain import PrecipitationType, RoadRisk
from roadwise.errors import ProviderUnavailable
from roadwise.providers import open_meteo, openweather, tomorrow_io
from roadwise.providers.events import alerts_from_events
from roadwise.providers.open_meteo import OpenMeteoProvider
from roadwise.providers.openweather import OpenWeatherProvider, alert_severity
from roadwise.providers.tomorrow_io import TomorrowIoProvider
from roadwise.quota import InMemoryQuotaStore, QuotaLedger
from roadwise.domain import AlertSeverity, WeatherEvent


class DummyResp:
    def __init__(self, payload=None, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def _handle(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response

    def get(self, url, **kwargs):
        return self._handle("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._handle("POST", url, **kwargs)


def _ledger():
    return QuotaLedger(InMemoryQuotaStore(), clock=lambda: datetime(2024, 5, 1, 12, tzinfo=timezone.utc))


def _tomorrow_payload():
    return {
        "data": {
            "timelines": [
                {
                    "timestep": "current",
                    "intervals": [
                        {
                            "startTime": "2024-05-01T12:00:00Z",
                            "values": {
                                "temperature": 14.0,
                                "humidity": 80,
                                "windSpeed": 10.0,
                                "windGust": 12.5,
                                "visibility": 9.0,
                                "precipitationIntensity": 3.1,
                                "weatherCode": 4001,
                                "uvIndex": 2,
                                "cloudCover": 100,
                            },
                        }
                    ],
                },
                {
                    "timestep": "1h",
                    "intervals": [
                        {"startTime": "2024-05-01T13:00:00Z", "values": {"weatherCode": 8000}},
                        {"startTime": "2024-05-01T14:00:00Z", "values": {"weatherCode": 1000}},
                    ],
                },
            ]
        }
    }


class TestTomorrowIoProvider(unittest.TestCase):
    def setUp(self):
        self._orig_session = tomorrow_io.session
        self.ledger = _ledger()

    def tearDown(self):
        tomorrow_io.session = self._orig_session

    def _provider(self, **kwargs):
        clock = lambda: datetime(2024, 5, 1, 12, tzinfo=timezone.utc)  # noqa: E731
        return TomorrowIoProvider(self.ledger, "key", clock=clock, **kwargs)

    def test_forecast_parses_and_converts_units(self):
        tomorrow_io.session = FakeSession(DummyResp(_tomorrow_payload()))
        timeline = self._provider().get_current_and_short_forecast(1.0, 2.0, horizon_hours=2)

        self.assertAlmostEqual(timeline.current.wind_speed, 36.0)
        self.assertAlmostEqual(timeline.current.wind_gust, 45.0)
        self.assertEqual(timeline.current.precipitation_type, PrecipitationType.RAIN)
        self.assertEqual(timeline.current.road_risk, RoadRisk.MODERATE)
        self.assertEqual(len(timeline.hourly), 2)
        self.assertEqual(timeline.hourly[0].weather.road_risk, RoadRisk.EXTREME)
        self.assertEqual(timeline.hourly[0].time, datetime(2024, 5, 1, 13, tzinfo=timezone.utc))

        method, url, kwargs = tomorrow_io.session.calls[0]
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/timelines"))
        self.assertEqual(kwargs["json"]["location"], [1.0, 2.0])
        self.assertEqual(kwargs["json"]["endTime"], "2024-05-01T14:00:00Z")
        self.assertEqual(self.ledger.check("tomorrow", 500).used, 1)

    def test_failed_call_is_charged(self):
        tomorrow_io.session = FakeSession(DummyResp(status_code=500, text="boom"))
        with self.assertRaises(ProviderUnavailable) as ctx:
            self._provider().get_current_and_short_forecast(1.0, 2.0)
        self.assertEqual(ctx.exception.provider, "tomorrow")
        self.assertFalse(ctx.exception.quota_exhausted)
        self.assertEqual(self.ledger.check("tomorrow", 500).used, 1)

    def test_transport_error_is_wrapped(self):
        tomorrow_io.session = FakeSession(exc=requests.ConnectionError("down"))
        with self.assertRaises(ProviderUnavailable):
            self._provider().get_current_and_short_forecast(1.0, 2.0)

    def test_exhausted_provider_makes_no_request(self):
        session = FakeSession(DummyResp(_tomorrow_payload()))
        tomorrow_io.session = session
        provider = self._provider(config=replace(tomorrow_io.TOMORROW_CONFIG, daily_limit=1))

        provider.get_current_and_short_forecast(1.0, 2.0)
        self.assertFalse(provider.is_available())
        self.assertEqual(provider.remaining_quota(), 0)
        with self.assertRaises(ProviderUnavailable) as ctx:
            provider.get_current_and_short_forecast(1.0, 2.0)
        self.assertTrue(ctx.exception.quota_exhausted)
        self.assertEqual(len(session.calls), 1)

    def test_events_forbidden_on_plan_returns_empty(self):
        tomorrow_io.session = FakeSession(DummyResp(status_code=403))
        self.assertEqual(self._provider().get_hazard_events(1.0, 2.0), [])

    def test_events_are_mapped(self):
        payload = {
            "data": {
                "events": [
                    {
                        "eventId": "abc",
                        "insight": "winter",
                        "severity": "severe",
                        "headline": "Blizzard warning",
                        "startTime": "2024-05-01T15:00:00Z",
                    }
                ]
            }
        }
        tomorrow_io.session = FakeSession(DummyResp(payload))
        events = self._provider().get_hazard_events(1.0, 2.0, radius_km=25)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].title, "Blizzard warning")
        self.assertEqual(events[0].severity, "severe")
        self.assertIsNone(events[0].end_time)
        self.assertEqual(tomorrow_io.session.calls[0][2]["params"]["buffer"], 25)


class TestOpenWeatherProvider(unittest.TestCase):
    def setUp(self):
        self._orig_session = openweather.session
        self.ledger = _ledger()

    def tearDown(self):
        openweather.session = self._orig_session

    def test_forecast_parses_metric_block(self):
        payload = {
            "current": {
                "temp": 5.0,
                "humidity": 90,
                "wind_speed": 20.0,
                "visibility": 800,
                "clouds": 100,
                "uvi": 0,
                "snow": {"1h": 1.5},
                "weather": [{"id": 601}],
            },
            "hourly": [
                {"dt": 1714568400, "temp": 5.0, "weather": [{"id": 800}], "visibility": 10000},
                {"dt": 1714572000, "temp": 4.0, "weather": [{"id": 202}], "visibility": 10000},
                {"dt": 1714575600, "temp": 3.0, "weather": [{"id": 800}], "visibility": 10000},
            ],
        }
        openweather.session = FakeSession(DummyResp(payload))
        provider = OpenWeatherProvider(self.ledger, "appid-key")
        timeline = provider.get_current_and_short_forecast(1.0, 2.0, horizon_hours=2)

        self.assertAlmostEqual(timeline.current.wind_speed, 72.0)
        self.assertAlmostEqual(timeline.current.visibility_km, 0.8)
        self.assertEqual(timeline.current.precipitation_type, PrecipitationType.SNOW)
        self.assertEqual(timeline.current.road_risk, RoadRisk.HIGH)
        self.assertEqual(len(timeline.hourly), 2)
        self.assertEqual(timeline.hourly[1].weather.road_risk, RoadRisk.EXTREME)
        params = openweather.session.calls[0][2]["params"]
        self.assertEqual(params["units"], "metric")
        self.assertEqual(params["appid"], "appid-key")

    def test_alerts_are_mapped_with_inferred_severity(self):
        payload = {
            "alerts": [
                {"sender_name": "NWS", "event": "Winter Storm Warning", "start": 1714568400, "end": 1714600000,
                 "description": "Heavy snow", "tags": ["Snow"]},
                {"sender_name": "NWS", "event": "Wind Advisory", "start": 1714568400, "end": 1714600000},
            ]
        }
        openweather.session = FakeSession(DummyResp(payload))
        events = OpenWeatherProvider(self.ledger, "k").get_hazard_events(1.0, 2.0)
        self.assertEqual([e.severity for e in events], ["severe", "minor"])
        self.assertEqual(events[0].type, "Snow")
        self.assertEqual(self.ledger.check("openweather", 1000).used, 1)

    def test_alert_severity_defaults_to_moderate(self):
        self.assertEqual(alert_severity("Special Weather Notice"), "moderate")
        self.assertEqual(alert_severity("Extreme Heat Warning"), "extreme")


class TestOpenMeteoProvider(unittest.TestCase):
    def setUp(self):
        self._orig_session = open_meteo.session
        self.ledger = _ledger()

    def tearDown(self):
        open_meteo.session = self._orig_session

    def test_forecast_requests_kmh_and_converts_visibility(self):
        payload = {
            "current": {
                "temperature_2m": 12.0,
                "wind_speed_10m": 30.0,
                "wind_gusts_10m": 45.0,
                "visibility": 2500.0,
                "precipitation": 0.0,
                "weather_code": 45,
            },
            "current_units": {"wind_speed_10m": "km/h", "visibility": "m"},
            "hourly": {
                "time": ["2024-05-01T13:00", "2024-05-01T14:00"],
                "weather_code": [61, 95],
                "precipitation": [1.0, 12.0],
            },
        }
        open_meteo.session = FakeSession(DummyResp(payload))
        timeline = OpenMeteoProvider(self.ledger).get_current_and_short_forecast(1.0, 2.0, horizon_hours=2)

        self.assertAlmostEqual(timeline.current.visibility_km, 2.5)
        self.assertEqual(timeline.current.road_risk, RoadRisk.MODERATE)
        self.assertEqual(timeline.hourly[0].time, datetime(2024, 5, 1, 13, tzinfo=timezone.utc))
        self.assertEqual(timeline.hourly[0].weather.visibility_km, 10.0)
        self.assertEqual(timeline.hourly[1].weather.road_risk, RoadRisk.EXTREME)
        params = open_meteo.session.calls[0][2]["params"]
        self.assertEqual(params["wind_speed_unit"], "kmh")
        self.assertEqual(params["forecast_hours"], 2)

    def test_failed_call_is_not_charged(self):
        open_meteo.session = FakeSession(DummyResp(status_code=503, text="busy"))
        with self.assertRaises(ProviderUnavailable):
            OpenMeteoProvider(self.ledger).get_current_and_short_forecast(1.0, 2.0)
        self.assertEqual(self.ledger.check("open_meteo", 10000).used, 0)

    def test_malformed_payload_is_provider_failure(self):
        open_meteo.session = FakeSession(DummyResp({"hourly": {}}))
        with self.assertRaises(ProviderUnavailable):
            OpenMeteoProvider(self.ledger).get_current_and_short_forecast(1.0, 2.0)

    def test_null_current_block_is_provider_failure(self):
        open_meteo.session = FakeSession(DummyResp({"current": None}))
        with self.assertRaises(ProviderUnavailable) as ctx:
            OpenMeteoProvider(self.ledger).get_current_and_short_forecast(1.0, 2.0)
        self.assertIn("AttributeError", ctx.exception.reason)
        self.assertEqual(self.ledger.check("open_meteo", 10000).used, 0)

    def test_short_hourly_column_is_provider_failure(self):
        payload = {
            "current": {"weather_code": 0},
            "hourly": {"time": ["2024-05-01T13:00", "2024-05-01T14:00"], "weather_code": [61]},
        }
        open_meteo.session = FakeSession(DummyResp(payload))
        with self.assertRaises(ProviderUnavailable):
            OpenMeteoProvider(self.ledger).get_current_and_short_forecast(1.0, 2.0)

    def test_quota_store_outage_refuses_the_call(self):
        class _DownStore(InMemoryQuotaStore):
            def increment(self, provider, day, endpoint):
                raise ConnectionError("quota db down")

        session = FakeSession(DummyResp({"current": {}}))
        open_meteo.session = session
        provider = OpenMeteoProvider(QuotaLedger(_DownStore()))
        with self.assertRaises(ProviderUnavailable) as ctx:
            provider.get_current_and_short_forecast(1.0, 2.0)
        self.assertTrue(ctx.exception.quota_exhausted)
        self.assertEqual(session.calls, [])

    def test_no_events_and_no_quota_used(self):
        open_meteo.session = FakeSession(DummyResp({}))
        self.assertEqual(OpenMeteoProvider(self.ledger).get_hazard_events(1.0, 2.0), [])
        self.assertEqual(open_meteo.session.calls, [])


def test_alerts_from_events_maps_unknown_to_moderate():
    events = [
        WeatherEvent(id="1", type="wind", severity="Extreme", title="Gale"),
        WeatherEvent(id="2", type="flood", severity="unknown", title=""),
        WeatherEvent(id="3", type="fog", severity="minor", title="Fog"),
    ]
    alerts = alerts_from_events(events, km_range="km 10-20")
    assert [a.severity for a in alerts] == [AlertSeverity.EXTREME, AlertSeverity.MODERATE, AlertSeverity.MINOR]
    assert alerts[1].title == "flood"
    assert alerts[0].km_range == "km 10-20"


if __name__ == "__main__":
    unittest.main()
