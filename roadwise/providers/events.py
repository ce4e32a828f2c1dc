"""Map vendor hazard events onto the trip synthesizer's alert vocabulary."""

from __future__ import annotations

from typing import Iterable, List

from roadwise.domain import AlertSeverity, HazardAlert, WeatherEvent

# vendor severity labels seen across Tomorrow.io, OpenWeather and CAP feeds
SEVERITY_ALIASES = {
    "extreme": AlertSeverity.EXTREME,
    "severe": AlertSeverity.SEVERE,
    "high": AlertSeverity.SEVERE,
    "moderate": AlertSeverity.MODERATE,
    "medium": AlertSeverity.MODERATE,
    "minor": AlertSeverity.MINOR,
    "low": AlertSeverity.MINOR,
}


def alert_severity_for(label: str | None) -> AlertSeverity:
    """Unknown or missing severities count as moderate."""
    return SEVERITY_ALIASES.get((label or "").strip().lower(), AlertSeverity.MODERATE)


def alerts_from_events(events: Iterable[WeatherEvent], *, km_range: str | None = None) -> List[HazardAlert]:
    return [
        HazardAlert(severity=alert_severity_for(event.severity), title=event.title or event.type, km_range=km_range)
        for event in events
    ]
