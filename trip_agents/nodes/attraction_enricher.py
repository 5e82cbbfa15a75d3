"""
Attraction enricher node.

Annotates every attraction slot of the draft with ticket price, opening
hours, rating and tags. It never adds, removes or reorders slots: each
enrichment entry points back at its slot through (day, order).
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from trip_agents.graph.state import TripState
from trip_agents.integrations.interfaces import POI, MapProvider
from trip_agents.nodes.common import (
    call_external,
    collect_errors,
    log_prefix,
    read_model,
    read_request,
)
from trip_agents.shared.contracts.draft_itinerary import AttractionSlot, DraftItinerary
from trip_agents.shared.contracts.enrichment_output import (
    AttractionEnrichmentResult,
    EnrichedAttraction,
)


logger = logging.getLogger(__name__)

AGENT = "attraction_enricher"

# (keyword, per-person ticket price, opening hours, tags); first match wins
_HEURISTICS = [
    ("park", 0.0, "06:00-22:00", ["outdoor", "free"]),
    ("street", 0.0, "00:00-24:00", ["outdoor", "free"]),
    ("promenade", 0.0, "00:00-24:00", ["outdoor", "free"]),
    ("old town", 0.0, "00:00-24:00", ["historic", "free"]),
    ("market", 0.0, "17:00-23:00", ["food", "shopping"]),
    ("library", 0.0, "09:00-20:00", ["indoor", "free"]),
    ("museum", 0.0, "09:00-17:00", ["indoor", "culture"]),
    ("gallery", 30.0, "10:00-18:00", ["indoor", "art"]),
    ("temple", 40.0, "08:00-17:30", ["historic", "culture"]),
    ("palace", 60.0, "08:30-17:00", ["historic", "landmark"]),
    ("garden", 15.0, "07:00-19:00", ["outdoor", "nature"]),
    ("mountain", 80.0, "06:00-18:00", ["outdoor", "nature", "hiking"]),
    ("lookout", 80.0, "06:00-18:00", ["outdoor", "view"]),
    ("tower", 120.0, "09:00-22:00", ["landmark", "view"]),
    ("zoo", 100.0, "08:00-17:00", ["family", "outdoor"]),
    ("theme park", 200.0, "09:00-21:00", ["family", "entertainment"]),
    ("science", 50.0, "09:00-17:00", ["indoor", "family"]),
]

_DEFAULT_PRICE = 50.0
_DEFAULT_HOURS = "09:00-17:00"


def _match(name: str) -> Optional[tuple]:
    lowered = name.lower()
    # longest keyword first so "theme park" beats "park"
    for row in sorted(_HEURISTICS, key=lambda r: -len(r[0])):
        if row[0] in lowered:
            return row
    return None


def estimate_ticket_price(name: str, poi: Optional[POI] = None) -> float:
    """Per-person ticket price: map data when known, keyword heuristic otherwise."""
    if poi is not None and poi.price is not None:
        return float(poi.price)
    row = _match(name)
    return row[1] if row else _DEFAULT_PRICE


def estimate_opening_hours(name: str, poi: Optional[POI] = None) -> str:
    if poi is not None and poi.opening_hours:
        return poi.opening_hours
    row = _match(name)
    return row[2] if row else _DEFAULT_HOURS


def infer_tags(name: str, poi: Optional[POI] = None) -> List[str]:
    tags: List[str] = list(poi.tags) if poi is not None else []
    row = _match(name)
    if row:
        tags.extend(t for t in row[3] if t not in tags)
    return tags


def recommended_duration(slot: AttractionSlot) -> str:
    hours = slot.duration_minutes / 60
    if hours <= 1:
        return "about 1 hour"
    return f"{hours:g}-{hours + 1:g} hours"


def enrich_slot(day: int, order: int, slot: AttractionSlot, poi: Optional[POI]) -> EnrichedAttraction:
    price = estimate_ticket_price(slot.name, poi)
    return EnrichedAttraction(
        day=day,
        order=order,
        name=slot.name,
        address=poi.address if poi else None,
        location=slot.location or (poi.location if poi else None),
        type=slot.type,
        ticket_price=price,
        ticket_info="Free entry" if price == 0 else f"About {price:g} per person",
        opening_hours=estimate_opening_hours(slot.name, poi),
        rating=poi.rating if poi else None,
        description=f"Visit {slot.name}",
        recommended_duration=recommended_duration(slot),
        tips=["Book tickets in advance"] if price >= 100 else [],
        tags=infer_tags(slot.name, poi),
        poi_id=poi.id if poi else None,
        category=poi.category if poi else None,
        enriched=poi is not None,
    )


def _best_poi(name: str, pois: Optional[List[POI]]) -> Optional[POI]:
    if not pois:
        return None
    exact = next((p for p in pois if p.name == name), None)
    return exact or pois[0]


def create_attraction_enricher_node(map_provider: MapProvider, timeout: float = 10.0):
    """
    Create the attraction enricher node.

    Lookups for all slots run concurrently; a failed lookup leaves that
    slot with heuristic data.
    """

    async def attraction_enricher_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        draft = read_model(state, "draft_itinerary", DraftItinerary)
        request = read_request(state)

        if draft is None or request is None:
            logger.warning(f"{_log}Draft itinerary or request missing, nothing to enrich")
            return {
                "attraction_enrichment": AttractionEnrichmentResult().model_dump(mode="json"),
                "meta": collect_errors(AGENT, ["Draft itinerary missing; enrichment skipped"]),
            }

        slots = [
            (day.day, order, slot)
            for day in draft.days
            for order, slot in enumerate(day.attractions)
        ]
        logger.info(f"{_log}Entering node | attractions={len(slots)}")

        lookups = await asyncio.gather(
            *[
                call_external(
                    f"POI lookup '{slot.name}'",
                    map_provider.search_poi(slot.name, request.destination, 3),
                    timeout,
                )
                for _, _, slot in slots
            ]
        )

        enriched: List[EnrichedAttraction] = []
        errors: List[str] = []
        for (day, order, slot), (pois, error) in zip(slots, lookups):
            if error:
                errors.append(error)
            enriched.append(enrich_slot(day, order, slot, _best_poi(slot.name, pois)))

        total_ticket_cost = sum(a.ticket_price for a in enriched) * request.travelers
        result = AttractionEnrichmentResult(
            enriched_attractions=enriched,
            total_attractions=len(enriched),
            enriched_count=sum(1 for a in enriched if a.enriched),
            total_ticket_cost=round(total_ticket_cost, 2),
            errors=errors,
        )

        logger.info(
            f"{_log}Enrichment complete | enriched={result.enriched_count}/{result.total_attractions}, "
            f"tickets={result.total_ticket_cost:.2f}"
        )

        patch: Dict[str, Any] = {"attraction_enrichment": result.model_dump(mode="json")}
        if errors:
            patch["meta"] = collect_errors(AGENT, errors)
        return patch

    return attraction_enricher_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    return {"attraction_enrichment": AttractionEnrichmentResult().model_dump(mode="json")}
