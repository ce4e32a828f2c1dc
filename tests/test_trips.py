import datetime as dt

import pytest

from roadwise import trips
from roadwise.domain import AlertSeverity, HazardAlert, TripStatus

NOW = dt.datetime(2024, 5, 10, 6, 0, tzinfo=dt.timezone.utc)


def _alert(severity, km_range=None):
    return HazardAlert(severity=severity, title="Storm", km_range=km_range)


def _trip(hours_ahead=2.0, **kwargs):
    return trips.schedule_trip(
        route_id=kwargs.pop("route_id", "madrid-valencia"),
        route_name="A-3",
        origin_name="Madrid",
        destination_name="Valencia",
        departure_time=NOW + dt.timedelta(hours=hours_ahead),
        route_distance_km=355.0,
        now=NOW,
        **kwargs,
    )


@pytest.mark.parametrize(
    "severities, expected",
    [
        ([], TripStatus.SAFE),
        ([AlertSeverity.MINOR], TripStatus.SAFE),
        ([AlertSeverity.MINOR, AlertSeverity.MODERATE], TripStatus.CAUTION),
        ([AlertSeverity.SEVERE], TripStatus.DELAY),
        ([AlertSeverity.SEVERE, AlertSeverity.MODERATE], TripStatus.DELAY),
        ([AlertSeverity.SEVERE, AlertSeverity.SEVERE], TripStatus.DANGER),
        ([AlertSeverity.MINOR, AlertSeverity.EXTREME], TripStatus.DANGER),
    ],
)
def test_status_from_alerts(severities, expected):
    rec = trips.synthesize_trip_recommendation([_alert(s) for s in severities], 120.0)
    assert rec.status == expected


def test_clear_route_message():
    rec = trips.synthesize_trip_recommendation([], None)
    assert rec.message == "Route clear"
    assert rec.suggested_delay_minutes is None


def test_delay_names_the_stretch_and_waits_an_hour():
    rec = trips.synthesize_trip_recommendation([_alert(AlertSeverity.SEVERE, "km 40-55")], 120.0)
    assert rec.details == "Severe storm detected at km 40-55. Wait for it to pass."
    assert rec.suggested_delay_minutes == 60


def test_danger_has_no_delay():
    rec = trips.synthesize_trip_recommendation([_alert(AlertSeverity.EXTREME)], 120.0)
    assert rec.suggested_delay_minutes is None


def test_apply_recommendation_replaces_previous():
    trip = trips.apply_recommendation(_trip(), [_alert(AlertSeverity.SEVERE)], delay_minutes=45)
    assert trip.recommendation.status == TripStatus.DELAY
    assert trip.recommendation.suggested_delay_minutes == 45

    trip = trips.apply_recommendation(trip, [])
    assert trip.recommendation.status == TripStatus.SAFE


def test_schedule_trip_ids_are_unique():
    a, b = _trip(), _trip()
    assert a.id.startswith("trip_")
    assert a.id != b.id
    assert a.is_active


@pytest.mark.parametrize(
    "hours_ahead, expected",
    [(4.0, False), (3.0, True), (0.5, True), (-0.1, False)],
)
def test_should_notify_window(hours_ahead, expected):
    assert trips.should_notify(_trip(hours_ahead), NOW) is expected


def test_should_notify_respects_frequency():
    trip = trips.mark_notification_sent(_trip(2.5), NOW)
    assert not trips.should_notify(trip, NOW + dt.timedelta(minutes=30))
    assert trips.should_notify(trip, NOW + dt.timedelta(hours=1))


def test_inactive_trip_never_notifies():
    assert not trips.should_notify(trips.deactivate(_trip()), NOW)


def test_upcoming_and_next_trip():
    later, sooner, past = _trip(5), _trip(1), _trip(-1)
    cancelled = trips.deactivate(_trip(0.5))
    upcoming = trips.upcoming_trips([later, past, cancelled, sooner], NOW)
    assert [t.id for t in upcoming] == [sooner.id, later.id]
    assert trips.next_trip([later, sooner], NOW).id == sooner.id
    assert trips.next_trip([past], NOW) is None


def test_trips_for_route():
    mine = _trip()
    other = _trip(route_id="bilbao-santander")
    assert trips.trips_for_route([mine, other, trips.deactivate(_trip())], "madrid-valencia") == [mine]


def test_prune_past_trips_keeps_last_day():
    recent, stale = _trip(-23), _trip(-24)
    assert trips.prune_past_trips([recent, stale], NOW) == [recent]
