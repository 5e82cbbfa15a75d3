"""
Draft itinerary contract.

The draft is the skeleton produced by the itinerary planner: per day, an
ordered list of attraction slots and meal slots. Order is the visiting
order and every downstream node preserves it.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.trip_request import Location


MealType = Literal["breakfast", "lunch", "dinner", "snack"]


class AttractionSlot(BaseModel):
    """A scheduled attraction visit."""

    time: str = Field(description="Start time (HH:MM)")
    name: str = Field(description="Attraction name")
    duration_minutes: int = Field(default=120, ge=15, description="Planned visit length")
    location: Optional[Location] = Field(default=None)
    type: str = Field(
        default="attraction",
        description="Activity type (e.g., 'attraction', 'museum', 'shopping', 'nature')",
    )


class MealSlot(BaseModel):
    """A meal time reserved in the day."""

    time: str = Field(description="Meal time (HH:MM)")
    meal_type: MealType
    cuisine: Optional[str] = Field(default=None, description="Cuisine preference")


class DraftDay(BaseModel):
    day: int = Field(ge=1, description="Day number (1-indexed)")
    date: str = Field(description="Date in YYYY-MM-DD format")
    attractions: List[AttractionSlot] = Field(default_factory=list)
    meal_slots: List[MealSlot] = Field(default_factory=list)


class DraftItinerary(BaseModel):
    """Contract for itinerary planner output."""

    days: List[DraftDay] = Field(default_factory=list)
    total_attractions: int = Field(default=0, ge=0)
    total_meals: int = Field(default=0, ge=0)
    estimated_attraction_cost: float = Field(
        default=0.0, ge=0, description="Ticket estimate for all travelers"
    )
    source: str = Field(
        default="rules", description="Where the draft came from: 'llm', 'rules' or 'empty'"
    )

    def recount(self) -> "DraftItinerary":
        """Return a copy with totals recomputed from the days."""
        return self.model_copy(
            update={
                "total_attractions": sum(len(d.attractions) for d in self.days),
                "total_meals": sum(len(d.meal_slots) for d in self.days),
            }
        )
