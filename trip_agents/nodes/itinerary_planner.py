"""
Itinerary planner node.

Generates the day-by-day skeleton (attraction slots and meal slots). It is
the only node that replaces draft_itinerary. On a retry pass it reads the
budget critic's feedback and plans cheaper.

The LLM draft goes through the typed parser; any ParseError or LLM failure
falls back to the deterministic rule-based generator.
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Set

from trip_agents.graph.state import TripState
from trip_agents.integrations.interfaces import POI, MapProvider
from trip_agents.nodes.attraction_enricher import estimate_ticket_price
from trip_agents.nodes.common import (
    active_adjustments,
    call_external,
    collect_errors,
    log_prefix,
    read_model,
    read_request,
)
from trip_agents.shared.contracts.budget_output import BudgetResult
from trip_agents.shared.contracts.draft_itinerary import (
    AttractionSlot,
    DraftDay,
    DraftItinerary,
    MealSlot,
)
from trip_agents.shared.contracts.trip_request import TripRequest
from trip_agents.shared.contracts.weather_output import WeatherOutput
from trip_agents.shared.llm.client import LLMCaller
from trip_agents.shared.response_parser import parse_draft_itinerary


logger = logging.getLogger(__name__)

AGENT = "itinerary_planner"

_PACE_COUNTS = {"relaxed": 2, "moderate": 3, "packed": 4}
_SLOT_TIMES = [("09:00", 120), ("14:00", 120), ("16:30", 90), ("19:30", 90)]
_MEAL_TIMES = [("08:00", "breakfast"), ("12:00", "lunch"), ("18:00", "dinner")]
_INDOOR_TYPES = {"museum", "shopping", "entertainment"}

PLANNER_SYSTEM_PROMPT = (
    "You are a travel itinerary planner. Respond with JSON only, matching: "
    '{"days": [{"day": 1, "date": "YYYY-MM-DD", '
    '"attractions": [{"time": "HH:MM", "name": "...", "duration_minutes": 120, "type": "attraction"}], '
    '"meal_slots": [{"time": "HH:MM", "meal_type": "breakfast|lunch|dinner"}]}], '
    '"estimated_attraction_cost": 0}. '
    "Plan one entry per trip day, in visiting order."
)


def trip_dates(request: TripRequest) -> List[str]:
    start = date.fromisoformat(request.start_date)
    return [(start + timedelta(days=i)).isoformat() for i in range(request.trip_days)]


def default_meal_slots() -> List[MealSlot]:
    return [MealSlot(time=t, meal_type=m) for t, m in _MEAL_TIMES]


def generate_empty_draft(request: Optional[TripRequest]) -> DraftItinerary:
    """Draft with meal slots only; an empty draft when there is no request."""
    if request is None:
        return DraftItinerary(source="empty")
    days = [
        DraftDay(day=i + 1, date=d, attractions=[], meal_slots=default_meal_slots())
        for i, d in enumerate(trip_dates(request))
    ]
    return DraftItinerary(days=days, source="empty").recount()


def attractions_per_day(request: TripRequest, adjustments: Set[str]) -> int:
    count = _PACE_COUNTS.get(request.pace, _PACE_COUNTS["moderate"])
    if "reduce_attractions" in adjustments:
        count = max(1, count - 1)
    return count


def rank_candidates(
    pois: List[POI],
    weather: Optional[WeatherOutput],
    adjustments: Set[str],
) -> List[POI]:
    """
    Order POI candidates for scheduling.

    Indoor venues come first under an indoor_priority forecast; cheaper
    venues come first after a reduce_attractions request. The sort is
    stable, so the provider's ranking breaks ties.
    """
    indoor_first = weather is not None and any(
        tag.value == "indoor_priority" for tag in weather.strategy_tags
    )
    cheap_first = "reduce_attractions" in adjustments

    def _key(poi: POI):
        indoor_rank = 0 if (not indoor_first or poi.type in _INDOOR_TYPES) else 1
        price_rank = estimate_ticket_price(poi.name, poi) if cheap_first else 0.0
        return (price_rank, indoor_rank)

    return sorted(pois, key=_key)


def generate_rule_based_draft(
    request: TripRequest,
    pois: List[POI],
    weather: Optional[WeatherOutput] = None,
    adjustments: Optional[Set[str]] = None,
) -> DraftItinerary:
    """
    Deterministic draft from POI candidates.

    Each POI is used at most once; when candidates run out the remaining
    slots are filled with placeholder highlights without coordinates.
    """
    adjustments = adjustments or set()
    per_day = attractions_per_day(request, adjustments)
    candidates = rank_candidates(pois, weather, adjustments)
    by_name = {p.name: p for p in candidates}

    days: List[DraftDay] = []
    cursor = 0
    placeholder = 1
    for index, day_date in enumerate(trip_dates(request)):
        attractions: List[AttractionSlot] = []
        for time, minutes in _SLOT_TIMES[:per_day]:
            if cursor < len(candidates):
                poi = candidates[cursor]
                cursor += 1
                attractions.append(
                    AttractionSlot(
                        time=time,
                        name=poi.name,
                        duration_minutes=minutes,
                        location=poi.location,
                        type=poi.type,
                    )
                )
            else:
                attractions.append(
                    AttractionSlot(
                        time=time,
                        name=f"{request.destination} highlight {placeholder}",
                        duration_minutes=minutes,
                    )
                )
                placeholder += 1
        days.append(
            DraftDay(day=index + 1, date=day_date, attractions=attractions, meal_slots=default_meal_slots())
        )

    cost = sum(
        estimate_ticket_price(slot.name, by_name.get(slot.name))
        for day in days
        for slot in day.attractions
    )
    return DraftItinerary(
        days=days,
        estimated_attraction_cost=round(cost * request.travelers, 2),
        source="rules",
    ).recount()


def build_planner_messages(
    request: TripRequest,
    weather: Optional[WeatherOutput],
    budget_result: Optional[BudgetResult],
) -> List[Dict[str, str]]:
    lines = [
        f"Destination: {request.destination}",
        f"Dates: {request.start_date} to {request.end_date} ({request.trip_days} days)",
        f"Travelers: {request.travelers}",
        f"Budget: {request.budget:.0f} {request.currency}",
        f"Pace: {request.pace}",
    ]
    if request.preferences:
        lines.append(f"Interests: {', '.join(request.preferences)}")
    if weather is not None:
        lines.append(f"Weather strategy: {', '.join(t.value for t in weather.strategy_tags)}")
        if weather.warnings:
            lines.append(f"Weather warnings: {'; '.join(weather.warnings)}")
    if budget_result is not None and budget_result.feedback is not None:
        feedback = budget_result.feedback
        lines.append(
            f"The previous plan cost {budget_result.total_cost:.0f}, over the allowed "
            f"{budget_result.allowed_ceiling:.0f}. Reduce cost by at least "
            f"{feedback.target_reduction:.0f}. Action: {feedback.action.value}. {feedback.suggestion}"
        )
    return [
        {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


async def _geocode_missing(
    draft: DraftItinerary,
    request: TripRequest,
    map_provider: MapProvider,
    timeout: float,
) -> List[str]:
    """Fill in slot locations in place; returns error messages."""
    missing = [slot for day in draft.days for slot in day.attractions if slot.location is None]
    if not missing:
        return []
    results = await asyncio.gather(
        *[
            call_external(
                f"Geocode '{slot.name}'",
                map_provider.geocode(slot.name, request.destination),
                timeout,
            )
            for slot in missing
        ]
    )
    errors = []
    for slot, (location, error) in zip(missing, results):
        if error:
            errors.append(error)
        else:
            slot.location = location
    return errors


def create_itinerary_planner_node(
    map_provider: MapProvider,
    llm: Optional[LLMCaller] = None,
    timeout: float = 10.0,
    llm_timeout: float = 60.0,
):
    """
    Create the itinerary planner node.

    Args:
        map_provider: POI search and geocoding
        llm: Optional async LLM caller; rule-based planning when None
        timeout: Seconds allowed for each external call
        llm_timeout: Seconds allowed for one LLM call, retries included

    Returns:
        Async node function (state) -> patch
    """

    async def itinerary_planner_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        if request is None:
            logger.warning(f"{_log}No valid trip request, returning empty draft")
            return {
                "draft_itinerary": generate_empty_draft(None).model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Trip request missing; empty draft"]),
            }

        weather = read_model(state, "weather", WeatherOutput)
        budget_result = read_model(state, "budget_result", BudgetResult)
        adjustments = active_adjustments(state)
        retry_count = state.get("retry_count", 0)

        logger.info(
            f"{_log}Entering node | destination={request.destination}, days={request.trip_days}, "
            f"retry={retry_count}, adjustments={sorted(adjustments)}"
        )

        errors: List[str] = []
        draft: Optional[DraftItinerary] = None

        if llm is not None:
            raw, llm_error = await call_external(
                "Planner LLM call",
                llm(build_planner_messages(request, weather, budget_result)),
                llm_timeout,
            )
            if llm_error:
                errors.append(llm_error)
            else:
                parsed = parse_draft_itinerary(raw, expected_days=request.trip_days)
                if parsed.ok:
                    draft = parsed.value
                else:
                    errors.append(f"Planner response unusable: {parsed.error}")

        if draft is None:
            keyword = request.preferences[0] if request.preferences else "attractions"
            limit = request.trip_days * _PACE_COUNTS["packed"]
            pois, poi_error = await call_external(
                "POI search", map_provider.search_poi(keyword, request.destination, limit), timeout
            )
            if poi_error:
                errors.append(poi_error)
            draft = generate_rule_based_draft(request, pois or [], weather, adjustments)

        errors.extend(await _geocode_missing(draft, request, map_provider, timeout))

        if errors:
            logger.warning(f"{_log}Planned with {len(errors)} degraded step(s): {errors[0]}")
        logger.info(
            f"{_log}Draft ready | source={draft.source}, days={len(draft.days)}, "
            f"attractions={draft.total_attractions}, tickets={draft.estimated_attraction_cost:.2f}"
        )

        patch: Dict[str, Any] = {"draft_itinerary": draft.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return itinerary_planner_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"draft_itinerary": generate_empty_draft(read_request(state)).model_dump(mode="json")}
