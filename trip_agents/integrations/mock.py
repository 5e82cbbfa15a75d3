"""
Mock weather and map providers.

Generate hardcoded but contextually aware data so the workflow runs end to
end without network access. Output is deterministic for a given input.
"""

import zlib
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from trip_agents.integrations.geo import distance_km
from trip_agents.integrations.interfaces import POI, RouteResult
from trip_agents.shared.contracts.trip_request import Location
from trip_agents.shared.contracts.weather_output import DayForecast


# City centers (lat, lng); unknown cities get a stable pseudo-random center
_CITY_CENTERS: Dict[str, Tuple[float, float]] = {
    "beijing": (39.9042, 116.4074),
    "shanghai": (31.2304, 121.4737),
    "hangzhou": (30.2741, 120.1551),
    "chengdu": (30.5728, 104.0668),
    "xi'an": (34.3416, 108.9398),
    "tokyo": (35.6762, 139.6503),
    "paris": (48.8566, 2.3522),
}

# (name suffix, type, per-person ticket price, opening hours)
_ATTRACTIONS = [
    ("Old Town", "attraction", 0.0, "00:00-24:00"),
    ("City Museum", "museum", 0.0, "09:00-17:00"),
    ("Ancient Temple", "attraction", 40.0, "08:00-17:30"),
    ("Botanical Garden", "nature", 15.0, "07:00-19:00"),
    ("Riverside Promenade", "nature", 0.0, "00:00-24:00"),
    ("Art Gallery", "museum", 30.0, "10:00-18:00"),
    ("Imperial Palace", "attraction", 60.0, "08:30-17:00"),
    ("Night Market", "shopping", 0.0, "17:00-23:00"),
    ("Science Center", "museum", 50.0, "09:00-17:00"),
    ("Mountain Lookout", "nature", 80.0, "06:00-18:00"),
    ("Theme Park", "entertainment", 200.0, "09:00-21:00"),
    ("Historic Library", "museum", 0.0, "09:00-20:00"),
]

# (name suffix, rating)
_HOTELS = [
    ("Central Hotel", 4.5),
    ("Garden Inn", 4.2),
    ("Riverside Lodge", 4.0),
    ("Budget Stay", 3.8),
    ("Grand Palace Hotel", 4.8),
]

# (name suffix, cuisine, per-person price, dishes)
_RESTAURANTS = [
    ("Noodle House", "local", 35.0, ["hand-pulled noodles", "dumplings"]),
    ("Family Kitchen", "home-style", 60.0, ["braised pork", "seasonal greens"]),
    ("Street Food Corner", "street food", 25.0, ["skewers", "pancakes"]),
    ("Riverside Bistro", "fusion", 120.0, ["grilled fish", "tasting plate"]),
    ("Tea House", "teahouse", 45.0, ["dim sum", "jasmine tea"]),
]

# Average speeds in km/h and per-person fare rules
_SPEEDS = {"walking": 4.5, "cycling": 12.0, "transit": 22.0, "driving": 30.0}

_FORECAST_PATTERN = [
    ("sunny", "clear", 24.0, 15.0),
    ("cloudy", "cloudy", 22.0, 14.0),
    ("light rain", "rain", 19.0, 13.0),
    ("sunny", "clear", 25.0, 16.0),
    ("overcast", "cloudy", 21.0, 14.0),
]


def _stable_int(text: str) -> int:
    return zlib.crc32(text.encode("utf-8"))


def city_center(city: str) -> Tuple[float, float]:
    key = city.strip().lower()
    if key in _CITY_CENTERS:
        return _CITY_CENTERS[key]
    seed = _stable_int(key)
    return (20.0 + (seed % 2000) / 100.0, 100.0 + ((seed // 2000) % 2000) / 100.0)


def _offset(center: Tuple[float, float], seed_text: str, spread: float = 0.05) -> Tuple[float, float]:
    seed = _stable_int(seed_text)
    d_lat = ((seed % 1000) / 1000.0 - 0.5) * 2 * spread
    d_lng = (((seed // 1000) % 1000) / 1000.0 - 0.5) * 2 * spread
    return (round(center[0] + d_lat, 6), round(center[1] + d_lng, 6))


class MockWeatherProvider:
    """
    Cycles a fixed forecast pattern across the requested dates.

    Args:
        pattern: Optional list of (day_weather, night_weather, high, low)
            tuples overriding the default pattern.
    """

    def __init__(self, pattern: Optional[List[Tuple[str, str, float, float]]] = None):
        self.pattern = pattern or _FORECAST_PATTERN

    async def get_forecast(self, city: str, start_date: str, end_date: str) -> Optional[List[DayForecast]]:
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
        forecasts = []
        current = start
        index = 0
        while current <= end:
            day_weather, night_weather, high, low = self.pattern[index % len(self.pattern)]
            forecasts.append(
                DayForecast(
                    date=current.isoformat(),
                    day_weather=day_weather,
                    night_weather=night_weather,
                    day_temp=high,
                    night_temp=low,
                    wind="NE 3",
                )
            )
            current += timedelta(days=1)
            index += 1
        return forecasts


class MockMapProvider:
    """
    Map provider backed by fixed attraction, hotel and restaurant tables.

    Coordinates are spread deterministically around the city center.
    Routes use straight-line distance with a road factor.
    """

    ROAD_FACTOR = 1.3

    async def search_poi(self, keyword: str, city: str, limit: int = 10) -> Optional[List[POI]]:
        center = city_center(city)
        kw = keyword.lower()
        if "hotel" in kw or "accommodation" in kw:
            return self._hotels(city, center, limit)
        if "restaurant" in kw or "food" in kw or "dining" in kw:
            return self._restaurants(city, center, limit)
        return self._attractions(city, center, kw, limit)

    async def search_nearby(
        self, location: Location, keyword: str, radius_m: int = 3000, limit: int = 5
    ) -> Optional[List[POI]]:
        city = location.address or location.name
        center = (location.lat, location.lng)
        spread = radius_m / 111_000.0
        kw = keyword.lower()
        if "hotel" in kw:
            pois = self._hotels(city, center, limit, spread=spread)
        elif "restaurant" in kw or "food" in kw:
            pois = self._restaurants(city, center, limit, spread=spread)
        else:
            pois = self._attractions(city, center, kw, limit, spread=spread)
        return pois

    async def geocode(self, address: str, city: Optional[str] = None) -> Optional[Location]:
        center = city_center(city or address)
        lat, lng = _offset(center, f"{city}:{address}")
        return Location(name=address, address=city or address, lat=lat, lng=lng)

    async def route(self, origin: Location, destination: Location, mode: str) -> Optional[RouteResult]:
        km = distance_km(origin, destination) * self.ROAD_FACTOR
        speed = _SPEEDS.get(mode, _SPEEDS["transit"])
        duration = km / speed * 60
        if mode == "transit":
            cost = 2.0 + max(0.0, km - 6) // 5
        elif mode == "driving":
            cost = 13.0 + max(0.0, km - 3) * 2.5
        elif mode == "cycling":
            cost = 1.5
        else:
            cost = 0.0
        return RouteResult(
            distance_meters=round(km * 1000, 1),
            duration_minutes=round(duration, 1),
            cost=round(cost, 2),
        )

    def _attractions(self, city, center, keyword, limit, spread=0.05) -> List[POI]:
        rows = _ATTRACTIONS
        matching = [
            r for r in rows
            if keyword and (r[0].lower() in keyword or keyword in r[0].lower() or keyword == r[1])
        ]
        if matching:
            rows = matching + [r for r in rows if r not in matching]
        pois = []
        for suffix, kind, price, hours in rows[:limit]:
            name = f"{city} {suffix}"
            lat, lng = _offset(center, name, spread)
            pois.append(
                POI(
                    id=f"poi-{_stable_int(name):08x}",
                    name=name,
                    address=city,
                    location=Location(name=name, address=city, lat=lat, lng=lng),
                    type=kind,
                    category=kind,
                    rating=round(4.0 + (_stable_int(name) % 9) / 10.0, 1),
                    price=price,
                    opening_hours=hours,
                    tags=["free"] if price == 0 else [],
                )
            )
        return pois

    def _hotels(self, city, center, limit, spread=0.03) -> List[POI]:
        pois = []
        for suffix, rating in _HOTELS[:limit]:
            name = f"{city} {suffix}"
            lat, lng = _offset(center, name, spread)
            pois.append(
                POI(
                    id=f"hotel-{_stable_int(name):08x}",
                    name=name,
                    address=city,
                    location=Location(name=name, address=city, lat=lat, lng=lng),
                    type="hotel",
                    category="hotel",
                    rating=rating,
                )
            )
        return pois

    def _restaurants(self, city, center, limit, spread=0.01) -> List[POI]:
        pois = []
        for suffix, cuisine, price, dishes in _RESTAURANTS[:limit]:
            name = f"{city} {suffix}"
            lat, lng = _offset(center, f"{name}:{center}", spread)
            pois.append(
                POI(
                    id=f"rest-{_stable_int(name):08x}",
                    name=name,
                    address=city,
                    location=Location(name=name, address=city, lat=lat, lng=lng),
                    type="restaurant",
                    category=cuisine,
                    rating=4.3,
                    price=price,
                    tags=dishes,
                )
            )
        return pois
