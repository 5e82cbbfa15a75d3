"""
Final itinerary contract.

Produced by the finalize node, and by the executor as a minimal safe
structure when a run fails fatally.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.accommodation_output import HotelRecommendation
from trip_agents.shared.contracts.trip_request import Location


class Activity(BaseModel):
    time: str
    name: str
    type: str = "attraction"
    location: Location
    duration_minutes: int = 120
    description: str = ""
    ticket_price: float = 0.0
    opening_hours: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class Meal(BaseModel):
    time: str
    meal_type: str
    restaurant: str
    cuisine: str = "local"
    location: Location
    avg_price: float = 0.0
    recommended_dishes: List[str] = Field(default_factory=list)


class DayPlan(BaseModel):
    day: int
    date: str
    activities: List[Activity] = Field(default_factory=list)
    meals: List[Meal] = Field(default_factory=list)


class TransferLeg(BaseModel):
    method: str = ""
    details: str = ""
    cost: float = 0.0


class LocalTransport(BaseModel):
    methods: List[str] = Field(default_factory=list)
    estimated_cost: float = 0.0


class Transportation(BaseModel):
    to_destination: TransferLeg = Field(default_factory=TransferLeg)
    from_destination: TransferLeg = Field(default_factory=TransferLeg)
    local: LocalTransport = Field(default_factory=LocalTransport)


class CostEstimate(BaseModel):
    accommodation: float = 0.0
    transportation: float = 0.0
    food: float = 0.0
    attractions: float = 0.0
    other: float = 0.0
    total: float = 0.0


class BudgetStatus(BaseModel):
    is_within_budget: Optional[bool] = None
    budget_exhausted: bool = False
    accepted_overage: bool = False
    retry_count: int = 0


class FinalItinerary(BaseModel):
    """Contract for finalize output."""

    summary: str
    destination: str = ""
    days: List[DayPlan] = Field(default_factory=list)
    accommodation: List[HotelRecommendation] = Field(default_factory=list)
    transportation: Transportation = Field(default_factory=Transportation)
    estimated_cost: CostEstimate = Field(default_factory=CostEstimate)
    weather_advice: Optional[str] = None
    budget_status: BudgetStatus = Field(default_factory=BudgetStatus)
