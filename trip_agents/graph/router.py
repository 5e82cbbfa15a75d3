"""
Routing logic for the trip graph.

Decides the entry node (fresh run or resume) and the targets of the two
conditional edges: after the planner (continue or suspend for review) and
after the budget critic (finalize, retry or suspend).
"""

import logging

from langgraph.graph import END

from trip_agents.graph.nodes import RESUME_TARGETS, NodeId
from trip_agents.graph.state import TripState


logger = logging.getLogger(__name__)


def _log_prefix(state: TripState, router: str) -> str:
    return f"[thread={state.get('thread_id') or 'unknown'}] [graph=trip] [router={router}] "


def route_entry(state: TripState) -> str:
    """
    Entry node: weather_scout for a fresh run, resume_from for a resumed one.

    An unknown resume target falls back to a full run.
    """
    _log = _log_prefix(state, "route_entry")
    target = state.get("resume_from")
    if not target:
        return NodeId.WEATHER_SCOUT.value
    if target not in {t.value for t in RESUME_TARGETS}:
        logger.warning(f"{_log}Unknown resume target '{target}', starting from weather_scout")
        return NodeId.WEATHER_SCOUT.value
    logger.info(f"{_log}Resuming at '{target}'")
    return target


def route_after_planner(state: TripState) -> str:
    _log = _log_prefix(state, "route_after_planner")
    if state.get("pending_interrupt"):
        logger.info(f"{_log}Suspending for itinerary review -> END")
        return END
    return NodeId.ATTRACTION_ENRICHER.value


def route_after_budget(state: TripState) -> str:
    """
    Map the budget outcome to the next node.

    Routing logic:
    1. Pending interrupt -> END (suspend)
    2. over_budget_retry -> itinerary_planner
    3. within_budget / over_budget_exhausted -> finalize
    """
    _log = _log_prefix(state, "route_after_budget")
    budget_result = state.get("budget_result") or {}
    outcome = budget_result.get("outcome")
    retry_count = state.get("retry_count", 0)

    if state.get("pending_interrupt"):
        interrupt_type = state["pending_interrupt"].get("interrupt_type")
        logger.info(f"{_log}Suspending for {interrupt_type} -> END")
        return END

    if outcome == "over_budget_retry":
        logger.info(f"{_log}Routing to 'itinerary_planner' | outcome={outcome}, retry_count={retry_count}")
        return NodeId.ITINERARY_PLANNER.value

    logger.info(f"{_log}Routing to 'finalize' | outcome={outcome}, retry_count={retry_count}")
    return NodeId.FINALIZE.value
