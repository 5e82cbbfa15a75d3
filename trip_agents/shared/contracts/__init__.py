"""Node output contracts for handoffs through TripState."""

from trip_agents.shared.contracts.trip_request import TripRequest, Location
from trip_agents.shared.contracts.weather_output import WeatherOutput, DayForecast, StrategyTag
from trip_agents.shared.contracts.draft_itinerary import (
    DraftItinerary,
    DraftDay,
    AttractionSlot,
    MealSlot,
)
from trip_agents.shared.contracts.enrichment_output import (
    AttractionEnrichmentResult,
    EnrichedAttraction,
)
from trip_agents.shared.contracts.accommodation_output import (
    AccommodationResult,
    HotelRecommendation,
)
from trip_agents.shared.contracts.transport_output import TransportResult, TransportSegment
from trip_agents.shared.contracts.dining_output import DiningResult, RestaurantRecommendation
from trip_agents.shared.contracts.budget_output import (
    BudgetResult,
    BudgetFeedback,
    BudgetFeedbackAction,
    BudgetOutcome,
    CostBreakdown,
)
from trip_agents.shared.contracts.final_itinerary import FinalItinerary
from trip_agents.shared.contracts.run_meta import AgentExecution, AgentError

__all__ = [
    "TripRequest",
    "Location",
    "WeatherOutput",
    "DayForecast",
    "StrategyTag",
    "DraftItinerary",
    "DraftDay",
    "AttractionSlot",
    "MealSlot",
    "AttractionEnrichmentResult",
    "EnrichedAttraction",
    "AccommodationResult",
    "HotelRecommendation",
    "TransportResult",
    "TransportSegment",
    "DiningResult",
    "RestaurantRecommendation",
    "BudgetResult",
    "BudgetFeedback",
    "BudgetFeedbackAction",
    "BudgetOutcome",
    "CostBreakdown",
    "FinalItinerary",
    "AgentExecution",
    "AgentError",
]
