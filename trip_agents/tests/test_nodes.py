"""
Tests for the individual agent nodes.

Every node must return a usable patch instead of raising, whether the
state is empty or the external providers fail. Pure helpers are tested
directly.
"""

import asyncio
import json

import pytest

from trip_agents.graph.build import create_node_specs
from trip_agents.graph.config import get_config
from trip_agents.graph.nodes import NodeId
from trip_agents.integrations.interfaces import POI
from trip_agents.integrations.mock import MockMapProvider, MockWeatherProvider
from trip_agents.nodes.accommodation import (
    create_accommodation_node,
    determine_price_level,
    price_per_night,
)
from trip_agents.nodes.attraction_enricher import create_attraction_enricher_node
from trip_agents.nodes.budget_critic import create_budget_critic_node
from trip_agents.nodes.dining import create_dining_node, meal_anchor, meal_price
from trip_agents.nodes.finalize import build_cost_estimate, build_fallback_itinerary, create_finalize_node
from trip_agents.nodes.itinerary_planner import (
    attractions_per_day,
    create_itinerary_planner_node,
    generate_rule_based_draft,
    rank_candidates,
)
from trip_agents.nodes.transport import choose_mode, create_transport_node, day_legs, segment_cost
from trip_agents.nodes.weather_scout import analyze_weather_with_rules, create_weather_scout_node
from trip_agents.shared.contracts.budget_output import CostBreakdown
from trip_agents.shared.contracts.draft_itinerary import AttractionSlot, DraftDay, DraftItinerary, MealSlot
from trip_agents.shared.contracts.trip_request import Location, TripRequest
from trip_agents.shared.contracts.weather_output import DayForecast, StrategyTag, WeatherOutput


# ============================================================================
# Test Fixtures
# ============================================================================


class _FailingMapProvider:
    """Every call raises."""

    async def search_poi(self, keyword, city, limit=10):
        raise RuntimeError("map service unavailable")

    async def search_nearby(self, location, keyword, radius, limit=10):
        raise RuntimeError("map service unavailable")

    async def geocode(self, address, city=None):
        raise RuntimeError("map service unavailable")

    async def route(self, origin, destination, mode):
        raise RuntimeError("map service unavailable")


class _FailingWeatherProvider:
    async def get_forecast(self, city, start_date, end_date):
        raise RuntimeError("weather service unavailable")


def _make_request(**overrides):
    request = {
        "destination": "Hangzhou",
        "start_date": "2025-05-01",
        "end_date": "2025-05-02",
        "budget": 3000.0,
        "travelers": 2,
        "preferences": ["museum"],
    }
    request.update(overrides)
    return request


def _make_draft():
    def slot(name, time, lat, lng):
        return AttractionSlot(time=time, name=name, location=Location(name=name, lat=lat, lng=lng))

    meals = [MealSlot(time="12:00", meal_type="lunch"), MealSlot(time="18:00", meal_type="dinner")]
    return DraftItinerary(
        days=[
            DraftDay(
                day=1,
                date="2025-05-01",
                attractions=[slot("West Lake", "09:00", 30.24, 120.14), slot("Lingyin Temple", "14:00", 30.24, 120.10)],
                meal_slots=meals,
            ),
            DraftDay(
                day=2,
                date="2025-05-02",
                attractions=[slot("Silk Museum", "09:00", 30.22, 120.16), AttractionSlot(time="14:00", name="Old Street")],
                meal_slots=meals,
            ),
        ],
        estimated_attraction_cost=200.0,
    ).recount()


def _make_pois(count=6):
    types = ["museum", "park", "attraction", "shopping", "temple", "nature"]
    return [
        POI(
            id=f"poi-{i}",
            name=f"Place {i}",
            type=types[i % len(types)],
            location=Location(name=f"Place {i}", lat=30.2 + i * 0.01, lng=120.1),
        )
        for i in range(count)
    ]


def _make_state(**fields):
    state = {"thread_id": "test-nodes", "user_input": _make_request(), "meta": {"flags": {}}}
    state.update(fields)
    return state


def _all_nodes(map_provider, weather_provider):
    return {
        "weather_scout": create_weather_scout_node(weather_provider, timeout=1.0),
        "itinerary_planner": create_itinerary_planner_node(map_provider, timeout=1.0),
        "attraction_enricher": create_attraction_enricher_node(map_provider, timeout=1.0),
        "accommodation_agent": create_accommodation_node(map_provider, timeout=1.0),
        "transport_agent": create_transport_node(map_provider, timeout=1.0),
        "dining_agent": create_dining_node(map_provider, timeout=1.0),
        "budget_critic": create_budget_critic_node(),
        "finalize": create_finalize_node(),
    }


_OUTPUT_KEYS = {
    "weather_scout": "weather",
    "itinerary_planner": "draft_itinerary",
    "attraction_enricher": "attraction_enrichment",
    "accommodation_agent": "accommodation",
    "transport_agent": "transport",
    "dining_agent": "dining",
    "budget_critic": "budget_result",
    "finalize": "final_itinerary",
}


# ============================================================================
# TestDegradeNotThrow
# ============================================================================


class TestDegradeNotThrow:
    """Nodes return their output field even with nothing to work from."""

    @pytest.mark.parametrize("node_name", list(_OUTPUT_KEYS))
    def test_empty_state(self, node_name):
        node = _all_nodes(MockMapProvider(), MockWeatherProvider())[node_name]

        patch = asyncio.run(node({}))

        assert patch[_OUTPUT_KEYS[node_name]] is not None

    @pytest.mark.parametrize("node_name", list(_OUTPUT_KEYS))
    def test_failing_providers(self, node_name):
        node = _all_nodes(_FailingMapProvider(), _FailingWeatherProvider())[node_name]
        state = _make_state(draft_itinerary=_make_draft().model_dump(mode="json"))

        patch = asyncio.run(node(state))

        assert patch[_OUTPUT_KEYS[node_name]] is not None
        if node_name not in ("budget_critic", "finalize"):
            assert patch["meta"]["errors"]
            assert patch["meta"]["errors"][0]["agent"] == node_name

    def test_fallback_outputs_are_estimates(self):
        nodes = _all_nodes(_FailingMapProvider(), _FailingWeatherProvider())
        state = _make_state(draft_itinerary=_make_draft().model_dump(mode="json"))

        accommodation = asyncio.run(nodes["accommodation_agent"](state))["accommodation"]
        transport = asyncio.run(nodes["transport_agent"](state))["transport"]
        dining = asyncio.run(nodes["dining_agent"](state))["dining"]

        assert accommodation["estimated"] is True
        assert accommodation["total_cost"] > 0
        assert all(s["estimated"] for s in transport["segments"])
        assert dining["recommendations"][0]["restaurant"].startswith("Local restaurant near")


# ============================================================================
# TestWeatherScout
# ============================================================================


class TestWeatherScout:
    """Rule-based weather analysis."""

    def _forecast(self, day_weather="sunny", high=24.0, low=15.0, date="2025-05-01"):
        return DayForecast(date=date, day_weather=day_weather, night_weather="clear", day_temp=high, night_temp=low)

    def test_mild_is_outdoor_friendly(self):
        weather = analyze_weather_with_rules([self._forecast()])
        assert weather.strategy_tags == [StrategyTag.OUTDOOR_FRIENDLY]

    def test_rain_prefers_indoor(self):
        weather = analyze_weather_with_rules([self._forecast(day_weather="light rain")])
        assert StrategyTag.INDOOR_PRIORITY in weather.strategy_tags
        assert StrategyTag.RAIN_PREPARED in weather.strategy_tags
        assert "umbrella" in weather.clothing_advice

    def test_heavy_rain_warns(self):
        weather = analyze_weather_with_rules([self._forecast(day_weather="thunderstorm")])
        assert weather.warnings

    def test_heat_and_cold(self):
        assert StrategyTag.HOT_WEATHER in analyze_weather_with_rules([self._forecast(high=35)]).strategy_tags
        assert StrategyTag.COLD_WEATHER in analyze_weather_with_rules([self._forecast(low=2)]).strategy_tags

    def test_empty_forecast_is_default(self):
        weather = analyze_weather_with_rules([])
        assert weather.source == "default"
        assert weather.strategy_tags

    def test_llm_analysis_used_when_valid(self):
        async def llm(messages):
            return json.dumps({"strategy_tags": ["hot_weather"], "clothing_advice": "Linen", "warnings": []})

        node = create_weather_scout_node(MockWeatherProvider(), llm=llm)
        patch = asyncio.run(node(_make_state()))

        assert patch["weather"]["source"] == "llm"
        assert patch["weather"]["clothing_advice"] == "Linen"

    def test_llm_garbage_keeps_rules(self):
        async def llm(messages):
            return "not json"

        node = create_weather_scout_node(MockWeatherProvider(), llm=llm)
        patch = asyncio.run(node(_make_state()))

        assert patch["weather"]["source"] == "rules"
        assert patch["meta"]["errors"]

    def test_slow_llm_gets_llm_timeout(self):
        """The LLM call is bounded by llm_timeout, not the provider timeout."""

        async def llm(messages):
            await asyncio.sleep(0.2)
            return json.dumps({"strategy_tags": ["outdoor_friendly"], "clothing_advice": "Layers", "warnings": []})

        node = create_weather_scout_node(MockWeatherProvider(), llm=llm, timeout=0.05, llm_timeout=2.0)
        patch = asyncio.run(node(_make_state()))

        assert patch["weather"]["source"] == "llm"

    def test_node_specs_pass_llm_timeout(self):
        async def llm(messages):
            await asyncio.sleep(0.2)
            return json.dumps({"strategy_tags": ["outdoor_friendly"], "clothing_advice": "Layers", "warnings": []})

        config = get_config(external_call_timeout=0.05, llm_timeout=2.0, tracer="none")
        specs = create_node_specs(config, MockWeatherProvider(), MockMapProvider(), llm=llm)
        patch = asyncio.run(specs[NodeId.WEATHER_SCOUT].fn(_make_state()))

        assert config.llm_timeout == 2.0
        assert patch["weather"]["source"] == "llm"


# ============================================================================
# TestItineraryPlanner
# ============================================================================


class TestItineraryPlanner:
    """Rule-based drafting and budget feedback."""

    @pytest.mark.parametrize("pace,expected", [("relaxed", 2), ("moderate", 3), ("packed", 4)])
    def test_pace_sets_daily_count(self, pace, expected):
        request = TripRequest(**_make_request(pace=pace))
        draft = generate_rule_based_draft(request, _make_pois(20))

        assert all(len(day.attractions) == expected for day in draft.days)
        assert draft.total_attractions == expected * 2
        assert draft.total_meals == 6

    def test_reduce_attractions_drops_one(self):
        request = TripRequest(**_make_request(pace="moderate"))
        assert attractions_per_day(request, {"reduce_attractions"}) == 2
        assert attractions_per_day(TripRequest(**_make_request(pace="relaxed")), {"reduce_attractions"}) == 1

    def test_placeholders_when_out_of_candidates(self):
        request = TripRequest(**_make_request())
        draft = generate_rule_based_draft(request, _make_pois(2))

        names = [a.name for day in draft.days for a in day.attractions]
        assert names[:2] == ["Place 0", "Place 1"]
        assert names[2] == "Hangzhou highlight 1"

    def test_indoor_first_in_rain(self):
        weather = WeatherOutput(strategy_tags=[StrategyTag.INDOOR_PRIORITY])
        ranked = rank_candidates(_make_pois(6), weather, set())

        assert ranked[0].type in ("museum", "shopping")

    def test_node_uses_llm_draft(self):
        draft = _make_draft().model_dump(mode="json")

        async def llm(messages):
            return "```json\n" + json.dumps(draft) + "\n```"

        node = create_itinerary_planner_node(MockMapProvider(), llm=llm)
        patch = asyncio.run(node(_make_state()))

        assert patch["draft_itinerary"]["source"] == "llm"
        # the slot without coordinates was geocoded
        assert all(a["location"] for d in patch["draft_itinerary"]["days"] for a in d["attractions"])

    def test_node_falls_back_to_rules(self):
        async def llm(messages):
            return json.dumps({"days": []})

        node = create_itinerary_planner_node(MockMapProvider(), llm=llm)
        patch = asyncio.run(node(_make_state()))

        assert patch["draft_itinerary"]["source"] == "rules"
        assert len(patch["draft_itinerary"]["days"]) == 2
        assert "Planner response unusable" in patch["meta"]["errors"][0]["error"]

    def test_slow_llm_within_llm_timeout(self):
        draft = _make_draft().model_dump(mode="json")

        async def llm(messages):
            await asyncio.sleep(0.2)
            return json.dumps(draft)

        node = create_itinerary_planner_node(MockMapProvider(), llm=llm, timeout=0.05, llm_timeout=2.0)
        patch = asyncio.run(node(_make_state()))

        assert patch["draft_itinerary"]["source"] == "llm"

    def test_llm_timeout_falls_back_to_rules(self):
        async def llm(messages):
            await asyncio.sleep(1.0)
            return "{}"

        node = create_itinerary_planner_node(MockMapProvider(), llm=llm, llm_timeout=0.05)
        patch = asyncio.run(node(_make_state()))

        assert patch["draft_itinerary"]["source"] == "rules"
        assert "Planner LLM call timed out" in patch["meta"]["errors"][0]["error"]


# ============================================================================
# TestResourceAgents
# ============================================================================


class TestResourceAgents:
    """Accommodation, transport and dining helpers."""

    def test_price_level_from_budget(self):
        assert determine_price_level(TripRequest(**_make_request(budget=500)), set()) == "economy"
        assert determine_price_level(TripRequest(**_make_request(budget=50000)), set()) == "luxury"

    def test_explicit_preference_wins(self):
        request = TripRequest(**_make_request(budget=500, accommodation_preference="luxury"))
        assert determine_price_level(request, set()) == "luxury"

    def test_downgrade_drops_one_tier(self):
        request = TripRequest(**_make_request(accommodation_preference="standard"))
        assert determine_price_level(request, {"downgrade_hotel"}) == "economy"
        economy = TripRequest(**_make_request(accommodation_preference="economy"))
        assert determine_price_level(economy, {"downgrade_hotel"}) == "economy"

    def test_price_per_night_rooms(self):
        assert price_per_night("economy", 0, 3) == 2 * price_per_night("economy", 0, 1)

    @pytest.mark.parametrize(
        "km,adjustments,expected",
        [
            (0.5, set(), "walking"),
            (3.0, set(), "cycling"),
            (10.0, set(), "transit"),
            (20.0, set(), "driving"),
            (20.0, {"cheaper_transport"}, "transit"),
        ],
    )
    def test_choose_mode(self, km, adjustments, expected):
        assert choose_mode(km, adjustments) == expected

    def test_segment_cost_per_party(self):
        assert segment_cost("walking", 2.0, 4) == 0.0
        assert segment_cost("transit", 5.0, 3) == pytest.approx(6.0)
        # one taxi carries four travelers
        assert segment_cost("driving", 10.0, 4) == segment_cost("driving", 10.0, 1)
        assert segment_cost("driving", 10.0, 5) == 2 * segment_cost("driving", 10.0, 1)

    def test_day_legs_start_and_end_at_lodging(self):
        legs = day_legs(_make_draft())

        day_one = [leg for leg in legs if leg[0] == 1]
        assert len(day_one) == 3
        assert day_one[0][1].name == "Lodging area"
        assert day_one[-1][2].name == "Lodging area"
        # unlocated slots are skipped
        assert len([leg for leg in legs if leg[0] == 2]) == 2

    def test_meal_anchor(self):
        day = _make_draft().days[0]
        assert meal_anchor(day, MealSlot(time="12:00", meal_type="lunch")).name == "West Lake"
        assert meal_anchor(day, MealSlot(time="18:00", meal_type="dinner")).name == "Lingyin Temple"

    def test_meal_price_adjusted(self):
        request = TripRequest(**_make_request())
        full = meal_price(request, 6, "lunch", set())
        reduced = meal_price(request, 6, "lunch", {"adjust_meals"})

        assert full == pytest.approx(3000 * 0.25 / 6 / 2)
        assert reduced == pytest.approx(full * 0.7, abs=0.01)

    def test_feedback_lowers_accommodation_cost(self):
        node = create_accommodation_node(MockMapProvider())
        draft = _make_draft().model_dump(mode="json")
        state = _make_state(draft_itinerary=draft, user_input=_make_request(accommodation_preference="luxury"))

        before = asyncio.run(node(state))["accommodation"]["total_cost"]
        state["meta"] = {"flags": {"adjustments": ["downgrade_hotel"]}}
        after = asyncio.run(node(state))["accommodation"]["total_cost"]

        assert after < before


# ============================================================================
# TestFinalize
# ============================================================================


class TestFinalize:
    """Final itinerary assembly."""

    def test_cost_estimate_adds_other(self):
        estimate = build_cost_estimate(CostBreakdown(accommodation=600, transport=100, dining=200, attractions=100))
        assert estimate.other == 50
        assert estimate.total == 1050

    def test_fallback_itinerary(self):
        itinerary = build_fallback_itinerary("no plan", "Hangzhou")
        assert itinerary.summary == "Itinerary could not be generated: no plan"
        assert itinerary.days == []

    def test_missing_dining_gets_placeholders(self):
        node = create_finalize_node()
        state = _make_state(draft_itinerary=_make_draft().model_dump(mode="json"))

        final = asyncio.run(node(state))["final_itinerary"]

        assert len(final["days"]) == 2
        assert final["days"][0]["meals"][0]["restaurant"] == "Local restaurant"
        assert [a["name"] for a in final["days"][0]["activities"]] == ["West Lake", "Lingyin Temple"]
