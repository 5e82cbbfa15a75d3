"""Accommodation agent output contract."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.trip_request import Location


PriceLevel = Literal["economy", "standard", "luxury"]


class HotelRecommendation(BaseModel):
    name: str
    type: str = "hotel"
    location: Location
    check_in: str = Field(description="Check-in date (YYYY-MM-DD)")
    check_out: str = Field(description="Check-out date (YYYY-MM-DD)")
    price_per_night: float = Field(ge=0)
    total_price: float = Field(ge=0)
    rating: float = Field(default=4.0, ge=0, le=5)
    amenities: List[str] = Field(default_factory=list)
    price_level: PriceLevel = "standard"
    distance_from_center: Optional[float] = Field(
        default=None, description="Distance to the itinerary centroid in km"
    )
    match_score: float = Field(default=0.8, ge=0, le=1)


class AccommodationResult(BaseModel):
    """
    Contract for accommodation agent output.

    total_cost is the selected hotel's total price (0 when none selected).
    """

    recommendations: List[HotelRecommendation] = Field(default_factory=list)
    selected: Optional[HotelRecommendation] = None
    total_cost: float = Field(default=0.0, ge=0)
    nights: int = Field(default=0, ge=0)
    centroid_location: Optional[Location] = None
    estimated: bool = Field(default=False, description="True when built without map data")
