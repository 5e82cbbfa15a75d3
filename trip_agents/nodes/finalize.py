"""
Finalize node.

Assembles the FinalItinerary from the draft and the enrichment, resource
and budget outputs. Finalize is total: any combination of missing
upstream fields still yields a valid itinerary.
"""

import logging
from typing import Any, Dict, List, Optional

from trip_agents.graph.state import TripState
from trip_agents.nodes.budget_critic import compute_cost_breakdown
from trip_agents.nodes.common import collect_errors, log_prefix, read_model, read_request
from trip_agents.shared.contracts.accommodation_output import AccommodationResult
from trip_agents.shared.contracts.budget_output import BudgetResult, CostBreakdown
from trip_agents.shared.contracts.dining_output import DiningResult, RestaurantRecommendation
from trip_agents.shared.contracts.draft_itinerary import DraftDay, DraftItinerary
from trip_agents.shared.contracts.enrichment_output import (
    AttractionEnrichmentResult,
    EnrichedAttraction,
)
from trip_agents.shared.contracts.final_itinerary import (
    Activity,
    BudgetStatus,
    CostEstimate,
    DayPlan,
    FinalItinerary,
    LocalTransport,
    Meal,
    TransferLeg,
    Transportation,
)
from trip_agents.shared.contracts.transport_output import TransportResult
from trip_agents.shared.contracts.trip_request import Location, TripRequest
from trip_agents.shared.contracts.weather_output import WeatherOutput


logger = logging.getLogger(__name__)

AGENT = "finalize"

# Contingency added on top of the itemized costs
OTHER_COST_RATE = 0.05


def build_fallback_itinerary(reason: str, destination: str = "") -> FinalItinerary:
    """Minimal safe itinerary for runs that cannot produce a plan."""
    return FinalItinerary(
        summary=f"Itinerary could not be generated: {reason}",
        destination=destination,
    )


def _activities(day: DraftDay, enriched: Dict[tuple, EnrichedAttraction]) -> List[Activity]:
    activities = []
    for order, slot in enumerate(day.attractions):
        info = enriched.get((day.day, order))
        location = slot.location or (info.location if info else None) or Location(name=slot.name)
        activities.append(
            Activity(
                time=slot.time,
                name=slot.name,
                type=slot.type,
                location=location,
                duration_minutes=slot.duration_minutes,
                description=info.description if info and info.description else f"Visit {slot.name}",
                ticket_price=info.ticket_price if info else 0.0,
                opening_hours=info.opening_hours if info else None,
                tags=list(info.tags) if info else [],
            )
        )
    return activities


def _meals(
    day: DraftDay,
    dining: List[RestaurantRecommendation],
    destination: str,
) -> List[Meal]:
    by_slot = {(r.time, r.meal_type): r for r in dining if r.day == day.day}
    meals = []
    for slot in day.meal_slots:
        rec = by_slot.get((slot.time, slot.meal_type))
        if rec is None:
            meals.append(
                Meal(
                    time=slot.time,
                    meal_type=slot.meal_type,
                    restaurant="Local restaurant",
                    cuisine=slot.cuisine or "local",
                    location=Location(name=destination or "City center", address=destination),
                )
            )
            continue
        meals.append(
            Meal(
                time=rec.time,
                meal_type=rec.meal_type,
                restaurant=rec.restaurant,
                cuisine=rec.cuisine,
                location=rec.location,
                avg_price=rec.avg_price,
                recommended_dishes=list(rec.recommended_dishes),
            )
        )
    return meals


def build_cost_estimate(breakdown: CostBreakdown) -> CostEstimate:
    subtotal = breakdown.total
    return CostEstimate(
        accommodation=round(breakdown.accommodation, 2),
        transportation=round(breakdown.transport, 2),
        food=round(breakdown.dining, 2),
        attractions=round(breakdown.attractions, 2),
        other=round(subtotal * OTHER_COST_RATE),
        total=round(subtotal * (1 + OTHER_COST_RATE)),
    )


def build_budget_status(state: TripState, budget_result: Optional[BudgetResult]) -> BudgetStatus:
    flags = (state.get("meta") or {}).get("flags", {})
    return BudgetStatus(
        is_within_budget=budget_result.is_within_budget if budget_result else None,
        budget_exhausted=bool(flags.get("budget_exhausted", False)),
        accepted_overage=bool(budget_result.accepted_overage) if budget_result else False,
        retry_count=state.get("retry_count", 0) or 0,
    )


def build_summary(
    request: TripRequest,
    days: int,
    estimate: CostEstimate,
    status: BudgetStatus,
) -> str:
    party = f"{request.travelers} traveler" + ("s" if request.travelers != 1 else "")
    summary = (
        f"{days}-day trip to {request.destination} for {party}, "
        f"estimated {estimate.total:.0f} {request.currency} against a budget of "
        f"{request.budget:.0f} {request.currency}."
    )
    if status.accepted_overage:
        summary += " Over budget: the overage was accepted."
    elif status.budget_exhausted:
        summary += f" Over budget after {status.retry_count} revision(s); this is the best plan found."
    elif status.is_within_budget:
        summary += " Within budget."
    return summary


def build_final_itinerary(state: TripState) -> FinalItinerary:
    """Assemble the final itinerary from whatever the state holds."""
    request = read_request(state)
    if request is None:
        return build_fallback_itinerary("trip request missing or invalid")

    draft = read_model(state, "draft_itinerary", DraftItinerary) or DraftItinerary()
    enrichment = read_model(state, "attraction_enrichment", AttractionEnrichmentResult)
    accommodation = read_model(state, "accommodation", AccommodationResult)
    transport = read_model(state, "transport", TransportResult)
    dining = read_model(state, "dining", DiningResult)
    weather = read_model(state, "weather", WeatherOutput)
    budget_result = read_model(state, "budget_result", BudgetResult)

    enriched = {
        (a.day, a.order): a for a in (enrichment.enriched_attractions if enrichment else [])
    }
    recommendations = dining.recommendations if dining else []
    days = [
        DayPlan(
            day=day.day,
            date=day.date,
            activities=_activities(day, enriched),
            meals=_meals(day, recommendations, request.destination),
        )
        for day in draft.days
    ]

    breakdown = budget_result.cost_breakdown if budget_result else compute_cost_breakdown(state)
    estimate = build_cost_estimate(breakdown)
    status = build_budget_status(state, budget_result)

    transportation = Transportation(
        local=LocalTransport(
            methods=list(transport.recommended_modes) if transport else [],
            estimated_cost=round(transport.total_cost, 2) if transport else 0.0,
        )
    )
    if request.origin:
        transportation.to_destination = TransferLeg(
            details=f"{request.origin} to {request.destination} on {request.start_date}"
        )
        transportation.from_destination = TransferLeg(
            details=f"{request.destination} to {request.origin} on {request.end_date}"
        )

    hotels = []
    if accommodation is not None and accommodation.selected is not None:
        hotels.append(accommodation.selected)

    return FinalItinerary(
        summary=build_summary(request, len(days) or request.trip_days, estimate, status),
        destination=request.destination,
        days=days,
        accommodation=hotels,
        transportation=transportation,
        estimated_cost=estimate,
        weather_advice=weather.clothing_advice if weather else None,
        budget_status=status,
    )


def create_finalize_node():
    """Create the finalize node."""

    async def finalize_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        logger.info(f"{_log}Entering node | retry_count={state.get('retry_count', 0)}")

        final = build_final_itinerary(state)
        patch: Dict[str, Any] = {"final_itinerary": final.model_dump(mode="json")}
        if read_request(state) is None:
            patch["meta"] = collect_errors(AGENT, ["Trip request missing; fallback itinerary"])

        logger.info(
            f"{_log}Itinerary finalized | days={len(final.days)}, total={final.estimated_cost.total:.0f}, "
            f"within_budget={final.budget_status.is_within_budget}, "
            f"exhausted={final.budget_status.budget_exhausted}"
        )
        return patch

    return finalize_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    request = read_request(state)
    itinerary = build_fallback_itinerary(
        "final assembly failed", request.destination if request else ""
    )
    return {"final_itinerary": itinerary.model_dump(mode="json")}
