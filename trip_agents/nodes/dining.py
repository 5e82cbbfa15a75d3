"""
Dining agent node.

Assigns a restaurant to every meal slot of the draft, searching near the
attraction the travelers will be at when the meal starts. Meal prices are
derived from the budget share for food.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from trip_agents.graph.state import TripState
from trip_agents.integrations.interfaces import POI, MapProvider
from trip_agents.nodes.common import (
    active_adjustments,
    call_external,
    collect_errors,
    log_prefix,
    read_model,
    read_request,
)
from trip_agents.shared.contracts.dining_output import DiningResult, RestaurantRecommendation
from trip_agents.shared.contracts.draft_itinerary import DraftDay, DraftItinerary, MealSlot
from trip_agents.shared.contracts.trip_request import Location, TripRequest


logger = logging.getLogger(__name__)

AGENT = "dining_agent"

FOOD_BUDGET_SHARE = 0.25
MEAL_FACTORS = {"breakfast": 0.5, "lunch": 1.0, "dinner": 1.3, "snack": 0.4}
ADJUST_MEALS_FACTOR = 0.7
SEARCH_RADIUS_M = 1500


def meal_price(request: TripRequest, total_meals: int, meal_type: str, adjustments: Set[str]) -> float:
    """Per-person price of one meal."""
    if total_meals <= 0:
        return 0.0
    base = request.budget * FOOD_BUDGET_SHARE / total_meals / request.travelers
    price = base * MEAL_FACTORS.get(meal_type, 1.0)
    if "adjust_meals" in adjustments:
        price *= ADJUST_MEALS_FACTOR
    return round(price, 2)


def meal_anchor(day: DraftDay, meal: MealSlot) -> Optional[Location]:
    """
    Where the travelers are when the meal starts.

    The latest attraction starting at or before the meal, else the day's
    first located attraction.
    """
    located = [slot for slot in day.attractions if slot.location is not None]
    if not located:
        return None
    earlier = [slot for slot in located if slot.time <= meal.time]
    return (earlier[-1] if earlier else located[0]).location


def build_recommendation(
    day: DraftDay,
    meal: MealSlot,
    location: Location,
    poi: Optional[POI],
    price: float,
) -> RestaurantRecommendation:
    if poi is None:
        return RestaurantRecommendation(
            day=day.day,
            time=meal.time,
            meal_type=meal.meal_type,
            restaurant=f"Local restaurant near {location.name}",
            cuisine=meal.cuisine or "local",
            location=location,
            avg_price=price,
        )
    return RestaurantRecommendation(
        day=day.day,
        time=meal.time,
        meal_type=meal.meal_type,
        restaurant=poi.name,
        cuisine=meal.cuisine or poi.category or "local",
        location=poi.location,
        avg_price=price,
        recommended_dishes=list(poi.tags),
        rating=poi.rating,
    )


def create_dining_node(map_provider: MapProvider, timeout: float = 10.0):
    """Create the dining agent node."""

    async def dining_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        draft = read_model(state, "draft_itinerary", DraftItinerary)
        if request is None or draft is None:
            logger.warning(f"{_log}Request or draft itinerary missing, skipping dining")
            return {
                "dining": DiningResult().model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Draft itinerary missing; dining skipped"]),
            }

        adjustments = active_adjustments(state)
        meals = [(day, meal) for day in draft.days for meal in day.meal_slots]
        logger.info(f"{_log}Entering node | meals={len(meals)}, adjustments={sorted(adjustments)}")

        errors: List[str] = []
        city_location: Optional[Location] = None
        if any(meal_anchor(day, meal) is None for day, meal in meals):
            city_location, error = await call_external(
                f"Geocode '{request.destination}'",
                map_provider.geocode(request.destination, request.destination),
                timeout,
            )
            if error:
                errors.append(error)
                city_location = Location(name=request.destination, address=request.destination)

        anchors = [meal_anchor(day, meal) or city_location for day, meal in meals]
        for anchor in anchors:
            if not anchor.address:
                anchor.address = request.destination

        lookups = await asyncio.gather(
            *[
                call_external(
                    f"Restaurant search near {anchor.name}",
                    map_provider.search_nearby(anchor, "restaurant", SEARCH_RADIUS_M, 5),
                    timeout,
                )
                for anchor in anchors
            ]
        )

        recommendations: List[RestaurantRecommendation] = []
        for index, ((day, meal), anchor, (pois, error)) in enumerate(zip(meals, anchors, lookups)):
            if error:
                errors.append(error)
            # rotate through results so one anchor does not repeat the same restaurant
            poi = pois[index % len(pois)] if pois else None
            price = meal_price(request, len(meals), meal.meal_type, adjustments)
            recommendations.append(build_recommendation(day, meal, anchor, poi, price))

        result = DiningResult(
            recommendations=recommendations,
            total_cost=round(sum(r.avg_price for r in recommendations) * request.travelers, 2),
        )

        logger.info(f"{_log}Dining planned | meals={len(recommendations)}, cost={result.total_cost:.2f}")

        patch: Dict[str, Any] = {"dining": result.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return dining_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"dining": DiningResult().model_dump(mode="json")}
