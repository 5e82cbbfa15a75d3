"""Dining agent output contract."""

from typing import List, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.draft_itinerary import MealType
from trip_agents.shared.contracts.trip_request import Location


class RestaurantRecommendation(BaseModel):
    """A restaurant assigned to one meal slot."""

    day: int = Field(ge=1)
    time: str
    meal_type: MealType
    restaurant: str
    cuisine: str = "local"
    location: Location
    avg_price: float = Field(ge=0, description="Per-person price")
    recommended_dishes: List[str] = Field(default_factory=list)
    rating: Optional[float] = Field(default=None, ge=0, le=5)


class DiningResult(BaseModel):
    recommendations: List[RestaurantRecommendation] = Field(default_factory=list)
    total_cost: float = Field(default=0.0, description="Meals for all travelers")
