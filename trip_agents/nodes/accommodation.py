"""
Accommodation agent node.

Picks a hotel tier from the request and budget, searches near the centroid
of the day's attractions and prices the stay. Reads only the request, the
draft itinerary and the budget feedback, so it can run beside the transport
and dining agents.
"""

import logging
import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Set

from trip_agents.graph.state import TripState
from trip_agents.integrations.geo import centroid, distance_km
from trip_agents.integrations.interfaces import POI, MapProvider
from trip_agents.nodes.common import (
    active_adjustments,
    call_external,
    collect_errors,
    log_prefix,
    read_model,
    read_request,
)
from trip_agents.shared.contracts.accommodation_output import (
    AccommodationResult,
    HotelRecommendation,
    PriceLevel,
)
from trip_agents.shared.contracts.draft_itinerary import DraftItinerary
from trip_agents.shared.contracts.trip_request import Location, TripRequest


logger = logging.getLogger(__name__)

AGENT = "accommodation_agent"

PRICE_LEVELS: List[str] = ["economy", "standard", "luxury"]

# Per-room nightly price range by tier
PRICE_RANGES = {
    "economy": (100.0, 200.0),
    "standard": (200.0, 400.0),
    "luxury": (400.0, 800.0),
}

_AMENITIES = {
    "economy": ["wifi"],
    "standard": ["wifi", "breakfast"],
    "luxury": ["wifi", "breakfast", "pool", "gym"],
}

SEARCH_RADIUS_M = 3000


def nights_for(request: TripRequest) -> int:
    return max(request.trip_days - 1, 1)


def rooms_for(travelers: int) -> int:
    return math.ceil(travelers / 2)


def determine_price_level(request: TripRequest, adjustments: Set[str]) -> PriceLevel:
    """
    Hotel tier for this pass.

    An explicit accommodation_preference wins over the budget heuristic
    (30% of the budget per traveler per night). downgrade_hotel drops one
    tier, floored at economy.
    """
    if request.accommodation_preference in PRICE_LEVELS:
        level = request.accommodation_preference
    else:
        per_night = request.budget * 0.3 / nights_for(request) / request.travelers
        if per_night < 150:
            level = "economy"
        elif per_night < 350:
            level = "standard"
        else:
            level = "luxury"

    if "downgrade_hotel" in adjustments:
        level = PRICE_LEVELS[max(PRICE_LEVELS.index(level) - 1, 0)]
    return level


def price_per_night(level: str, index: int, travelers: int) -> float:
    """Nightly price of the index-th option in a tier, for all rooms."""
    low, high = PRICE_RANGES[level]
    per_room = round(low + (high - low) * max(1 - index * 0.2, 0))
    return float(per_room * rooms_for(travelers))


async def _resolve_center(
    request: TripRequest,
    draft: Optional[DraftItinerary],
    map_provider: MapProvider,
    timeout: float,
    errors: List[str],
) -> Location:
    if draft is not None:
        center = centroid(
            slot.location for day in draft.days for slot in day.attractions if slot.location is not None
        )
        if center is not None:
            center.address = request.destination
            return center
    location, error = await call_external(
        f"Geocode '{request.destination}'",
        map_provider.geocode(request.destination, request.destination),
        timeout,
    )
    if error:
        errors.append(error)
        return Location(name=request.destination, address=request.destination)
    return location


def build_recommendations(
    pois: List[POI],
    request: TripRequest,
    level: str,
    center: Location,
) -> List[HotelRecommendation]:
    nights = nights_for(request)
    check_in = request.start_date
    check_out = (date.fromisoformat(check_in) + timedelta(days=nights)).isoformat()
    recommendations = []
    for index, poi in enumerate(pois):
        nightly = price_per_night(level, index, request.travelers)
        distance = (
            round(distance_km(center, poi.location), 2)
            if center.has_coordinates() and poi.location.has_coordinates()
            else None
        )
        rating = poi.rating if poi.rating is not None else 4.0
        recommendations.append(
            HotelRecommendation(
                name=poi.name,
                location=poi.location,
                check_in=check_in,
                check_out=check_out,
                price_per_night=nightly,
                total_price=nightly * nights,
                rating=rating,
                amenities=list(_AMENITIES[level]),
                price_level=level,
                distance_from_center=distance,
                # favour rating, then the provider's ranking
                match_score=round(min(1.0, max(0.0, rating / 5 + 0.1 - 0.1 * index)), 2),
            )
        )
    return recommendations


def estimated_hotel(request: TripRequest, level: str, center: Location) -> HotelRecommendation:
    """Single priced placeholder when no map data is available."""
    nights = nights_for(request)
    nightly = price_per_night(level, 0, request.travelers)
    check_out = (date.fromisoformat(request.start_date) + timedelta(days=nights)).isoformat()
    return HotelRecommendation(
        name=f"{request.destination} {level} hotel (estimated)",
        location=center,
        check_in=request.start_date,
        check_out=check_out,
        price_per_night=nightly,
        total_price=nightly * nights,
        amenities=list(_AMENITIES[level]),
        price_level=level,
        match_score=0.5,
    )


def select_hotel(
    recommendations: List[HotelRecommendation],
    level: str,
    adjustments: Set[str],
) -> Optional[HotelRecommendation]:
    """Best match normally; the cheapest option when asked to downgrade below economy."""
    if not recommendations:
        return None
    if "downgrade_hotel" in adjustments and level == "economy":
        return min(recommendations, key=lambda r: r.total_price)
    return max(recommendations, key=lambda r: r.match_score)


def create_accommodation_node(map_provider: MapProvider, timeout: float = 10.0):
    """Create the accommodation agent node."""

    async def accommodation_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        if request is None:
            logger.warning(f"{_log}No valid trip request, skipping accommodation")
            return {
                "accommodation": AccommodationResult().model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Trip request missing; accommodation skipped"]),
            }

        draft = read_model(state, "draft_itinerary", DraftItinerary)
        adjustments = active_adjustments(state)
        level = determine_price_level(request, adjustments)
        logger.info(
            f"{_log}Entering node | nights={nights_for(request)}, level={level}, "
            f"travelers={request.travelers}"
        )

        errors: List[str] = []
        center = await _resolve_center(request, draft, map_provider, timeout, errors)

        pois: Optional[List[POI]] = None
        if center.has_coordinates():
            pois, error = await call_external(
                "Nearby hotel search",
                map_provider.search_nearby(center, "hotel", SEARCH_RADIUS_M, 5),
                timeout,
            )
            if error:
                errors.append(error)
        if not pois:
            pois, error = await call_external(
                "Hotel search", map_provider.search_poi("hotel", request.destination, 5), timeout
            )
            if error:
                errors.append(error)

        estimated = not pois
        if estimated:
            recommendations = [estimated_hotel(request, level, center)]
        else:
            recommendations = build_recommendations(pois, request, level, center)

        selected = select_hotel(recommendations, level, adjustments)
        result = AccommodationResult(
            recommendations=recommendations,
            selected=selected,
            total_cost=selected.total_price if selected else 0.0,
            nights=nights_for(request),
            centroid_location=center if center.has_coordinates() else None,
            estimated=estimated,
        )

        logger.info(
            f"{_log}Hotel selected | name={selected.name if selected else None}, "
            f"total={result.total_cost:.2f}, estimated={estimated}"
        )

        patch: Dict[str, Any] = {"accommodation": result.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return accommodation_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"accommodation": AccommodationResult().model_dump(mode="json")}
