"""Weather scout output contract."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class StrategyTag(str, Enum):
    """Planning hints derived from the forecast."""

    INDOOR_PRIORITY = "indoor_priority"
    OUTDOOR_FRIENDLY = "outdoor_friendly"
    RAIN_PREPARED = "rain_prepared"
    COLD_WEATHER = "cold_weather"
    HOT_WEATHER = "hot_weather"


class DayForecast(BaseModel):
    """Forecast for a single day."""

    date: str = Field(description="Date in YYYY-MM-DD format")
    day_weather: str = Field(default="", description="Daytime conditions (e.g., 'sunny')")
    night_weather: str = Field(default="", description="Night conditions")
    day_temp: float = Field(description="Daytime high in Celsius")
    night_temp: float = Field(description="Night low in Celsius")
    wind: Optional[str] = Field(default=None, description="Wind direction and force")


class WeatherOutput(BaseModel):
    """
    Contract for weather scout output.

    strategy_tags is never empty; when nothing notable is forecast it
    holds OUTDOOR_FRIENDLY.
    """

    forecasts: List[DayForecast] = Field(default_factory=list)
    strategy_tags: List[StrategyTag] = Field(
        default_factory=lambda: [StrategyTag.OUTDOOR_FRIENDLY]
    )
    clothing_advice: str = Field(default="Comfortable casual clothing is fine.")
    warnings: List[str] = Field(default_factory=list)
    source: str = Field(
        default="rules", description="Where the analysis came from: 'llm', 'rules' or 'default'"
    )
