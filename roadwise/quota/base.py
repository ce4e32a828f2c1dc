"""Shared protocol for quota counter backends."""

from datetime import date
from typing import Protocol


class QuotaStore(Protocol):
    """Durable per-(provider, day, endpoint) call counters.

    `increment` must be a single atomic upsert-and-add on the backend so that
    concurrent route samplers never lose updates.
    """

    def increment(self, provider: str, day: date, endpoint: str) -> int:
        """Add one call and return the new count for that endpoint."""

    def decrement(self, provider: str, day: date, endpoint: str) -> int:
        """Take back one call (never below zero) and return the new count."""

    def total(self, provider: str, day: date) -> int:
        """Return the calls made to a provider on a day, across endpoints."""

    def clear(self) -> None:
        """Drop every counter (dev/testing)."""


def usage_id(provider: str, day: date, endpoint: str) -> str:
    """Composite row id for a counter."""
    return f"{provider}:{day.isoformat()}:{endpoint}"
