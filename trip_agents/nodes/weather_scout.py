"""
Weather scout node.

Fetches the destination forecast and turns it into strategy tags and
clothing advice for the planner. The LLM analysis is optional; the
rule-based analysis is the fallback whenever it is unavailable or fails.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from trip_agents.graph.state import TripState
from trip_agents.integrations.interfaces import WeatherProvider
from trip_agents.nodes.common import call_external, collect_errors, log_prefix, read_request
from trip_agents.shared.contracts.weather_output import DayForecast, StrategyTag, WeatherOutput
from trip_agents.shared.llm.client import LLMCaller
from trip_agents.shared.response_parser import parse_weather_analysis


logger = logging.getLogger(__name__)

AGENT = "weather_scout"

_RAIN_WORDS = ("rain", "shower", "storm", "drizzle", "thunder")
_HEAVY_RAIN_WORDS = ("heavy rain", "storm", "thunder")

WEATHER_SYSTEM_PROMPT = (
    "You are a travel weather analyst. Given a daily forecast, respond with JSON only: "
    '{"strategy_tags": [...], "clothing_advice": "...", "warnings": [...]}. '
    "strategy_tags must use: indoor_priority, outdoor_friendly, rain_prepared, "
    "cold_weather, hot_weather."
)


def default_weather() -> WeatherOutput:
    """Neutral output used when no forecast is available."""
    return WeatherOutput(source="default")


def analyze_weather_with_rules(forecasts: List[DayForecast]) -> WeatherOutput:
    """
    Derive strategy tags, clothing advice and warnings from a forecast.

    Rules:
    - any rain -> indoor_priority + rain_prepared
    - max daytime temperature above 30C -> hot_weather
    - min night temperature below 10C -> cold_weather
    - none of the above -> outdoor_friendly
    """
    if not forecasts:
        return default_weather()

    tags: List[StrategyTag] = []
    warnings: List[str] = []
    has_rain = False
    max_temp = max(f.day_temp for f in forecasts)
    min_temp = min(f.night_temp for f in forecasts)

    for forecast in forecasts:
        conditions = f"{forecast.day_weather} {forecast.night_weather}".lower()
        if any(word in conditions for word in _RAIN_WORDS):
            has_rain = True
            heavy = next((w for w in _HEAVY_RAIN_WORDS if w in conditions), None)
            if heavy:
                warnings.append(f"{forecast.date}: {heavy} expected")

    if has_rain:
        tags.extend([StrategyTag.INDOOR_PRIORITY, StrategyTag.RAIN_PREPARED])
    if max_temp > 30:
        tags.append(StrategyTag.HOT_WEATHER)
    if min_temp < 10:
        tags.append(StrategyTag.COLD_WEATHER)
    if not tags:
        tags.append(StrategyTag.OUTDOOR_FRIENDLY)

    if max_temp > 30:
        advice = "Hot weather: wear light, breathable clothing and use sun protection"
    elif min_temp < 10:
        advice = "Cold weather: bring a warm coat"
    elif has_rain:
        advice = "Rain expected: carry an umbrella and a waterproof jacket"
    else:
        advice = "Mild weather: comfortable casual clothing is fine"

    if max_temp - min_temp > 10:
        advice += "; large day/night swing, bring a light jacket"

    return WeatherOutput(
        forecasts=forecasts,
        strategy_tags=tags,
        clothing_advice=advice,
        warnings=warnings,
        source="rules",
    )


def _build_messages(destination: str, forecasts: List[DayForecast]) -> List[Dict[str, str]]:
    rows = [f.model_dump() for f in forecasts]
    return [
        {"role": "system", "content": WEATHER_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": f"Destination: {destination}\nForecast:\n{json.dumps(rows, ensure_ascii=False)}",
        },
    ]


def create_weather_scout_node(
    weather_provider: WeatherProvider,
    llm: Optional[LLMCaller] = None,
    timeout: float = 10.0,
    llm_timeout: float = 60.0,
):
    """
    Create the weather scout node.

    Args:
        weather_provider: Forecast source
        llm: Optional async LLM caller for the analysis step
        timeout: Seconds allowed for each external call
        llm_timeout: Seconds allowed for one LLM call, retries included

    Returns:
        Async node function (state) -> patch
    """

    async def weather_scout_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        if request is None:
            logger.warning(f"{_log}No valid trip request, using default weather")
            return {
                "weather": default_weather().model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Trip request missing; weather skipped"]),
            }

        logger.info(
            f"{_log}Entering node | destination={request.destination}, "
            f"dates={request.start_date}..{request.end_date}"
        )
        errors: List[str] = []

        forecasts, error = await call_external(
            "Weather forecast",
            weather_provider.get_forecast(request.destination, request.start_date, request.end_date),
            timeout,
        )
        if error:
            logger.warning(f"{_log}{error}; using default weather")
            errors.append(error)
            return {
                "weather": default_weather().model_dump(mode="json"),
                "meta": collect_errors(AGENT, errors),
            }

        weather = analyze_weather_with_rules(forecasts)

        if llm is not None:
            raw, llm_error = await call_external(
                "Weather LLM analysis", llm(_build_messages(request.destination, forecasts)), llm_timeout
            )
            parsed = parse_weather_analysis(raw) if llm_error is None else None
            if parsed is not None and parsed.ok:
                weather = WeatherOutput(
                    forecasts=forecasts,
                    strategy_tags=parsed.value.strategy_tags,
                    clothing_advice=parsed.value.clothing_advice,
                    warnings=parsed.value.warnings,
                    source="llm",
                )
            else:
                reason = llm_error or str(parsed.error)
                logger.warning(f"{_log}LLM analysis unusable ({reason}); keeping rule-based analysis")
                errors.append(reason)

        logger.info(
            f"{_log}Weather analyzed | days={len(weather.forecasts)}, "
            f"tags={[t.value for t in weather.strategy_tags]}, source={weather.source}"
        )

        patch: Dict[str, Any] = {"weather": weather.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return weather_scout_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"weather": default_weather().model_dump(mode="json")}
