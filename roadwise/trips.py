"""Go/no-go recommendations and notification scheduling for planned trips.

Everything here is pure: callers recompute a trip's recommendation whenever
its alerts or the trip itself change, and persist the result themselves.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from roadwise import config
from roadwise.domain import (
    AlertSeverity,
    HazardAlert,
    ScheduledTrip,
    ScheduledTripRecommendation,
    TripStatus,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="trips")

DEFAULT_DELAY_MINUTES = 60
PAST_TRIP_RETENTION = timedelta(hours=24)

_SEVERE_OR_WORSE = {AlertSeverity.EXTREME, AlertSeverity.SEVERE}


def synthesize_trip_recommendation(
    alerts: Sequence[HazardAlert],
    route_distance_km: float | None,
    *,
    delay_minutes: int = DEFAULT_DELAY_MINUTES,
) -> ScheduledTripRecommendation:
    """Classify a trip from the hazard alerts overlapping its route.

    The suggested delay is a flat value, independent of severity or route
    length.
    """
    if not alerts:
        return ScheduledTripRecommendation(
            status=TripStatus.SAFE,
            message="Route clear",
            details="No weather alerts on your route.",
        )

    severities = [a.severity for a in alerts]
    severe_count = sum(1 for s in severities if s in _SEVERE_OR_WORSE)

    if AlertSeverity.EXTREME in severities or severe_count >= 2:
        return ScheduledTripRecommendation(
            status=TripStatus.DANGER,
            message="Don't leave - danger",
            details="Extreme weather conditions on the route. Reschedule your trip.",
        )

    if AlertSeverity.SEVERE in severities:
        severe = next(a for a in alerts if a.severity == AlertSeverity.SEVERE)
        where = f" at {severe.km_range}" if severe.km_range else ""
        return ScheduledTripRecommendation(
            status=TripStatus.DELAY,
            message="Leave later",
            details=f"Severe storm detected{where}. Wait for it to pass.",
            suggested_delay_minutes=delay_minutes,
        )

    if AlertSeverity.MODERATE in severities:
        return ScheduledTripRecommendation(
            status=TripStatus.CAUTION,
            message="Caution on the route",
            details="Moderate conditions. Reduce speed and keep your distance.",
        )

    return ScheduledTripRecommendation(
        status=TripStatus.SAFE,
        message="Route with minor alerts",
        details="Minor alerts on the route. Drive carefully.",
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def schedule_trip(
    *,
    route_id: str,
    route_name: str,
    origin_name: str,
    destination_name: str,
    departure_time: datetime,
    route_distance_km: float | None = None,
    notify_hours_before: float = 3.0,
    notify_frequency_hours: float = 1.0,
    now: datetime | None = None,
) -> ScheduledTrip:
    """Create an active trip record with a fresh id."""
    return ScheduledTrip(
        id=f"trip_{uuid.uuid4().hex[:12]}",
        route_id=route_id,
        route_name=route_name,
        origin_name=origin_name,
        destination_name=destination_name,
        departure_time=departure_time,
        route_distance_km=route_distance_km,
        notify_hours_before=notify_hours_before,
        notify_frequency_hours=notify_frequency_hours,
        created_at=now or _utcnow(),
    )


def apply_recommendation(
    trip: ScheduledTrip,
    alerts: Sequence[HazardAlert],
    *,
    delay_minutes: int | None = None,
) -> ScheduledTrip:
    """Return a copy of the trip carrying a freshly computed recommendation.

    The previous recommendation is replaced outright.
    """
    if delay_minutes is None:
        delay_minutes = config.settings.trip_delay_minutes
    recommendation = synthesize_trip_recommendation(alerts, trip.route_distance_km, delay_minutes=delay_minutes)
    logger.debug("Trip recommendation computed", extra={"trip_id": trip.id, "status": recommendation.status.value})
    return trip.model_copy(update={"recommendation": recommendation})


def mark_notification_sent(trip: ScheduledTrip, now: datetime | None = None) -> ScheduledTrip:
    return trip.model_copy(update={"last_notification_at": now or _utcnow()})


def deactivate(trip: ScheduledTrip) -> ScheduledTrip:
    return trip.model_copy(update={"is_active": False})


def should_notify(trip: ScheduledTrip, now: datetime | None = None) -> bool:
    """True inside the notification window and at most once per frequency period."""
    if not trip.is_active:
        return False
    now = now or _utcnow()
    hours_until_departure = _hours(trip.departure_time - now)
    if hours_until_departure > trip.notify_hours_before or hours_until_departure < 0:
        return False
    if trip.last_notification_at is not None:
        return _hours(now - trip.last_notification_at) >= trip.notify_frequency_hours
    return True


def upcoming_trips(trips: Iterable[ScheduledTrip], now: datetime | None = None) -> List[ScheduledTrip]:
    """Active trips departing after `now`, soonest first."""
    now = now or _utcnow()
    return sorted(
        (t for t in trips if t.is_active and t.departure_time > now),
        key=lambda t: t.departure_time,
    )


def next_trip(trips: Iterable[ScheduledTrip], now: datetime | None = None) -> Optional[ScheduledTrip]:
    upcoming = upcoming_trips(trips, now)
    return upcoming[0] if upcoming else None


def trips_for_route(trips: Iterable[ScheduledTrip], route_id: str) -> List[ScheduledTrip]:
    return [t for t in trips if t.route_id == route_id and t.is_active]


def prune_past_trips(trips: Iterable[ScheduledTrip], now: datetime | None = None) -> List[ScheduledTrip]:
    """Drop trips that departed 24 hours ago or more."""
    now = now or _utcnow()
    return [t for t in trips if now - t.departure_time < PAST_TRIP_RETENTION]
