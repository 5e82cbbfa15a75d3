"""
Trip request contract.

The user's trip request is the only field of TripState set by the caller.
Nodes read it but never write it.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Location(BaseModel):
    """A named point on the map."""

    name: str = Field(description="Display name of the place")
    address: str = Field(default="", description="Street address or area")
    lat: float = Field(default=0.0, description="Latitude (WGS84)")
    lng: float = Field(default=0.0, description="Longitude (WGS84)")

    def has_coordinates(self) -> bool:
        return not (self.lat == 0.0 and self.lng == 0.0)


class TripRequest(BaseModel):
    """
    Contract for the trip request that starts a workflow run.

    Dates are ISO strings (YYYY-MM-DD). The trip covers every day from
    start_date through end_date inclusive.
    """

    destination: str = Field(min_length=1, description="Destination city")
    origin: Optional[str] = Field(default=None, description="Departure city")
    start_date: str = Field(description="Trip start date (YYYY-MM-DD)")
    end_date: str = Field(description="Trip end date (YYYY-MM-DD)")
    budget: float = Field(gt=0, description="Total trip budget")
    currency: str = Field(default="CNY", description="Budget currency")
    travelers: int = Field(default=1, ge=1, description="Number of travelers")
    preferences: List[str] = Field(
        default_factory=list,
        description="Interest keywords (e.g., 'museum', 'food', 'nature')",
    )
    pace: str = Field(
        default="moderate", description="Daily pace: 'relaxed', 'moderate' or 'packed'"
    )
    accommodation_preference: Optional[str] = Field(
        default=None, description="Hotel tier hint: 'economy', 'standard' or 'luxury'"
    )
    notes: Optional[str] = Field(default=None, description="Free-form request notes")

    @field_validator("start_date", "end_date")
    @classmethod
    def _check_iso_date(cls, value: str) -> str:
        date.fromisoformat(value)
        return value

    @model_validator(mode="after")
    def _check_date_order(self) -> "TripRequest":
        if date.fromisoformat(self.end_date) < date.fromisoformat(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def trip_days(self) -> int:
        delta = date.fromisoformat(self.end_date) - date.fromisoformat(self.start_date)
        return delta.days + 1
