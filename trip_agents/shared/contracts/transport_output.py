"""Transport agent output contract."""

from typing import List, Literal

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.trip_request import Location


TransportMode = Literal["driving", "transit", "walking", "cycling"]


class TransportSegment(BaseModel):
    """One leg between two consecutive stops of a day."""

    day: int = Field(ge=1)
    from_location: Location
    to_location: Location
    mode: TransportMode
    duration_minutes: float = Field(ge=0)
    distance_meters: float = Field(ge=0)
    cost: float = Field(ge=0, description="Cost for all travelers")
    estimated: bool = Field(
        default=False, description="True when derived from straight-line distance"
    )


class TransportResult(BaseModel):
    segments: List[TransportSegment] = Field(default_factory=list)
    total_time: float = Field(default=0.0, description="Total minutes")
    total_distance: float = Field(default=0.0, description="Total meters")
    total_cost: float = 0.0
    recommended_modes: List[TransportMode] = Field(default_factory=list)
