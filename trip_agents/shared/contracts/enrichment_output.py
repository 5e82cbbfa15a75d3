"""Attraction enricher output contract."""

from typing import List, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.trip_request import Location


class EnrichedAttraction(BaseModel):
    """
    Detail annotations for one attraction slot of the draft.

    (day, order) points back at the slot in the draft, so the enrichment
    never needs to copy or reorder the draft itself.
    """

    day: int = Field(ge=1, description="Day number of the slot")
    order: int = Field(ge=0, description="Position of the slot within its day")
    name: str
    address: Optional[str] = None
    location: Optional[Location] = None
    type: str = "attraction"
    ticket_price: float = Field(default=0.0, ge=0, description="Per-person ticket price")
    ticket_info: Optional[str] = None
    opening_hours: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    description: Optional[str] = None
    recommended_duration: Optional[str] = None
    tips: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    poi_id: Optional[str] = None
    category: Optional[str] = None
    enriched: bool = Field(default=False, description="True when map data was found")


class AttractionEnrichmentResult(BaseModel):
    enriched_attractions: List[EnrichedAttraction] = Field(default_factory=list)
    total_attractions: int = 0
    enriched_count: int = 0
    total_ticket_cost: float = Field(default=0.0, description="Tickets for all travelers")
    errors: List[str] = Field(default_factory=list)
