"""Weather provider adapters, selection and construction."""

from .base import BaseWeatherProvider, ProviderConfig, WeatherProvider
from .events import alerts_from_events
from .factory import build_providers, build_selector
from .open_meteo import OpenMeteoProvider
from .openweather import OpenWeatherProvider
from .selector import ProviderSelector
from .tomorrow_io import TomorrowIoProvider

__all__ = [
    "WeatherProvider",
    "BaseWeatherProvider",
    "ProviderConfig",
    "ProviderSelector",
    "TomorrowIoProvider",
    "OpenWeatherProvider",
    "OpenMeteoProvider",
    "alerts_from_events",
    "build_providers",
    "build_selector",
]
