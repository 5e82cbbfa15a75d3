"""Weather and map provider interfaces plus deterministic mocks."""

from trip_agents.integrations.interfaces import POI, RouteResult, WeatherProvider, MapProvider
from trip_agents.integrations.mock import MockWeatherProvider, MockMapProvider

__all__ = [
    "POI",
    "RouteResult",
    "WeatherProvider",
    "MapProvider",
    "MockWeatherProvider",
    "MockMapProvider",
]
