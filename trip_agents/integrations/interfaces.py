"""
External collaborator interfaces.

Weather and map lookups are opaque async calls: each returns data or
None, and any exception is treated by the calling node as an
external-transient failure.
"""

from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.trip_request import Location
from trip_agents.shared.contracts.weather_output import DayForecast


class POI(BaseModel):
    """A point of interest returned by a map search."""

    id: str
    name: str
    address: str = ""
    location: Location
    type: str = "attraction"
    category: Optional[str] = None
    rating: Optional[float] = None
    price: Optional[float] = Field(default=None, description="Per-person price, when known")
    opening_hours: Optional[str] = None
    tel: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class RouteResult(BaseModel):
    distance_meters: float = Field(ge=0)
    duration_minutes: float = Field(ge=0)
    cost: Optional[float] = Field(default=None, description="Per-person fare, when known")


class WeatherProvider(Protocol):
    async def get_forecast(
        self, city: str, start_date: str, end_date: str
    ) -> Optional[List[DayForecast]]:
        ...


class MapProvider(Protocol):
    async def search_poi(self, keyword: str, city: str, limit: int = 10) -> Optional[List[POI]]:
        ...

    async def search_nearby(
        self, location: Location, keyword: str, radius_m: int = 3000, limit: int = 5
    ) -> Optional[List[POI]]:
        ...

    async def geocode(self, address: str, city: Optional[str] = None) -> Optional[Location]:
        ...

    async def route(
        self, origin: Location, destination: Location, mode: str
    ) -> Optional[RouteResult]:
        ...
