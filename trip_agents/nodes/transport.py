"""
Transport agent node.

Plans the legs of each day: lodging area to the first attraction, between
consecutive attractions, and back. The lodging area is the centroid of the
draft's attractions (the same point the accommodation agent searches
around), so segments depend only on the draft itinerary. When a route
lookup fails the segment is estimated from straight-line distance.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional, Set, Tuple

from trip_agents.graph.state import TripState
from trip_agents.integrations.geo import centroid, distance_km
from trip_agents.integrations.interfaces import MapProvider, RouteResult
from trip_agents.nodes.common import (
    active_adjustments,
    call_external,
    collect_errors,
    log_prefix,
    read_model,
    read_request,
)
from trip_agents.shared.contracts.draft_itinerary import DraftItinerary
from trip_agents.shared.contracts.transport_output import TransportResult, TransportSegment
from trip_agents.shared.contracts.trip_request import Location


logger = logging.getLogger(__name__)

AGENT = "transport_agent"

DEFAULT_MODES = ["transit", "walking"]

ROAD_FACTOR = 1.3
_SPEEDS_KMH = {"walking": 4.5, "cycling": 12.0, "transit": 22.0, "driving": 30.0}

TAXI_BASE_FARE = 13.0
TAXI_BASE_KM = 3.0
TAXI_PER_KM = 2.5


def choose_mode(km: float, adjustments: Set[str]) -> str:
    """Walking under 1 km, cycling under 5 km, transit beyond; driving past 15 km unless economizing."""
    if km < 1:
        return "walking"
    if km < 5:
        return "cycling"
    if km > 15 and "cheaper_transport" not in adjustments:
        return "driving"
    return "transit"


def transit_fare(km: float) -> float:
    return 2.0 + max(0.0, km - 6) // 5


def taxi_fare(km: float) -> float:
    return TAXI_BASE_FARE + max(0.0, km - TAXI_BASE_KM) * TAXI_PER_KM


def segment_cost(mode: str, km: float, travelers: int, fare: Optional[float] = None) -> float:
    """
    Cost of one segment for the whole party.

    Taxis carry up to four travelers; transit and bike fares are per person.
    A fare reported by the map provider replaces the computed one.
    """
    if mode == "walking":
        return 0.0
    if mode == "driving":
        per_vehicle = fare if fare is not None else taxi_fare(km)
        return round(per_vehicle * math.ceil(travelers / 4), 2)
    if mode == "cycling":
        per_person = fare if fare is not None else 1.5
    else:
        per_person = fare if fare is not None else transit_fare(km)
    return round(per_person * travelers, 2)


def estimate_route(origin: Location, destination: Location, mode: str) -> RouteResult:
    km = distance_km(origin, destination) * ROAD_FACTOR
    return RouteResult(
        distance_meters=round(km * 1000, 1),
        duration_minutes=round(km / _SPEEDS_KMH[mode] * 60, 1),
    )


def lodging_area(draft: DraftItinerary) -> Optional[Location]:
    return centroid(
        (slot.location for day in draft.days for slot in day.attractions if slot.location is not None),
        name="Lodging area",
    )


def day_legs(draft: DraftItinerary) -> List[Tuple[int, Location, Location]]:
    """
    (day, from, to) for every leg, in visiting order.

    Each day starts and ends at the lodging area when one is known.
    Attractions without coordinates are skipped.
    """
    base = lodging_area(draft)
    legs = []
    for day in draft.days:
        stops = [slot.location for slot in day.attractions if slot.location is not None]
        if not stops:
            continue
        if base is not None:
            stops = [base] + stops + [base]
        for origin, destination in zip(stops, stops[1:]):
            legs.append((day.day, origin, destination))
    return legs


def create_transport_node(map_provider: MapProvider, timeout: float = 10.0):
    """Create the transport agent node."""

    async def _plan_segment(day, origin, destination, travelers, adjustments):
        straight_km = distance_km(origin, destination)
        mode = choose_mode(straight_km * ROAD_FACTOR, adjustments)
        route, error = await call_external(
            f"Route {origin.name} -> {destination.name}",
            map_provider.route(origin, destination, mode),
            timeout,
        )
        estimated = route is None
        if estimated:
            route = estimate_route(origin, destination, mode)
        km = route.distance_meters / 1000
        segment = TransportSegment(
            day=day,
            from_location=origin,
            to_location=destination,
            mode=mode,
            duration_minutes=route.duration_minutes,
            distance_meters=route.distance_meters,
            cost=segment_cost(mode, km, travelers, route.cost),
            estimated=estimated,
        )
        return segment, error

    async def transport_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        draft = read_model(state, "draft_itinerary", DraftItinerary)
        if request is None or draft is None:
            logger.warning(f"{_log}Request or draft itinerary missing, skipping transport")
            return {
                "transport": TransportResult(recommended_modes=list(DEFAULT_MODES)).model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Draft itinerary missing; transport skipped"]),
            }

        adjustments = active_adjustments(state)
        legs = day_legs(draft)
        logger.info(f"{_log}Entering node | segments={len(legs)}")

        planned = await asyncio.gather(
            *[
                _plan_segment(day, origin, destination, request.travelers, adjustments)
                for day, origin, destination in legs
            ]
        )
        segments = [segment for segment, _ in planned]
        errors = [error for _, error in planned if error]

        modes: List[str] = []
        for segment in segments:
            if segment.mode not in modes:
                modes.append(segment.mode)

        result = TransportResult(
            segments=segments,
            total_time=round(sum(s.duration_minutes for s in segments), 1),
            total_distance=round(sum(s.distance_meters for s in segments), 1),
            total_cost=round(sum(s.cost for s in segments), 2),
            recommended_modes=modes or list(DEFAULT_MODES),
        )

        logger.info(
            f"{_log}Transport planned | segments={len(segments)}, estimated={sum(s.estimated for s in segments)}, "
            f"cost={result.total_cost:.2f}"
        )

        patch: Dict[str, Any] = {"transport": result.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return transport_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"transport": TransportResult(recommended_modes=list(DEFAULT_MODES)).model_dump(mode="json")}
