"""Factory helpers for building the configured weather providers at startup."""

from __future__ import annotations

from dataclasses import replace
from typing import List

from roadwise import config
from roadwise.providers.base import WeatherProvider
from roadwise.providers.open_meteo import OPEN_METEO_CONFIG, OpenMeteoProvider
from roadwise.providers.openweather import OPENWEATHER_CONFIG, OpenWeatherProvider
from roadwise.providers.selector import ProviderSelector
from roadwise.providers.tomorrow_io import TOMORROW_CONFIG, TomorrowIoProvider
from roadwise.quota import QuotaLedger
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="providers/factory")

KNOWN_PROVIDERS = ("tomorrow", "openweather", "open_meteo")


def build_providers(settings: config.Settings | None, ledger: QuotaLedger) -> List[WeatherProvider]:
    """Instantiate providers in the configured order; keyless vendors are skipped."""
    settings = settings or config.settings
    timeout = settings.provider_timeout_seconds
    providers: List[WeatherProvider] = []

    # configured order becomes the tie-breaking priority
    for priority, name in enumerate(settings.providers, start=1):
        if name == "tomorrow":
            if not settings.tomorrow_io_api_key:
                logger.warning("Skipping Tomorrow.io provider: no API key configured")
                continue
            cfg = replace(TOMORROW_CONFIG, daily_limit=settings.tomorrow_io_daily_limit, priority=priority)
            providers.append(TomorrowIoProvider(ledger, settings.tomorrow_io_api_key, config=cfg, timeout=timeout))
        elif name == "openweather":
            if not settings.openweather_api_key:
                logger.warning("Skipping OpenWeather provider: no API key configured")
                continue
            cfg = replace(OPENWEATHER_CONFIG, daily_limit=settings.openweather_daily_limit, priority=priority)
            providers.append(OpenWeatherProvider(ledger, settings.openweather_api_key, config=cfg, timeout=timeout))
        elif name == "open_meteo":
            cfg = replace(OPEN_METEO_CONFIG, daily_limit=settings.open_meteo_daily_limit, priority=priority)
            providers.append(OpenMeteoProvider(ledger, config=cfg, timeout=timeout))
        else:
            raise ValueError(f"Unknown weather provider '{name}'")

    logger.info("Weather providers configured", extra={"providers": [p.name for p in providers]})
    return providers


def build_selector(settings: config.Settings | None, ledger: QuotaLedger) -> ProviderSelector:
    settings = settings or config.settings
    return ProviderSelector(build_providers(settings, ledger), settings.provider_strategy)
