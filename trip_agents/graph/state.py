"""
Trip workflow state schema.

Defines the state that flows through the trip graph. Nodes return partial
patches; LangGraph merges each patch through the per-field reducers
declared here, so the concurrent resource agents never alias each other's
writes.
"""

import operator
import time
from typing import Annotated, Any, Dict, Optional, TypedDict


def merge_meta(current: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reducer for TripState.meta.

    Keeps the earliest start_time, concatenates executions and errors, and
    merges flags key by key. Neither input is mutated.
    """
    current = current or {}
    update = update or {}

    start_times = [t for t in (current.get("start_time"), update.get("start_time")) if t is not None]

    return {
        "start_time": min(start_times) if start_times else None,
        "executions": list(current.get("executions", [])) + list(update.get("executions", [])),
        "errors": list(current.get("errors", [])) + list(update.get("errors", [])),
        "flags": {**current.get("flags", {}), **update.get("flags", {})},
    }


class TripState(TypedDict, total=False):
    """
    State schema for the trip graph.

    Every node output is stored as a plain JSON-compatible dict (the
    model_dump of its contract) so the whole state can be checkpointed.
    """

    # Caller input; never written by nodes
    user_input: Dict[str, Any]

    # Node outputs, each replaced wholesale by its owning node
    weather: Optional[Dict[str, Any]]
    draft_itinerary: Optional[Dict[str, Any]]
    attraction_enrichment: Optional[Dict[str, Any]]
    accommodation: Optional[Dict[str, Any]]
    transport: Optional[Dict[str, Any]]
    dining: Optional[Dict[str, Any]]
    budget_result: Optional[Dict[str, Any]]
    final_itinerary: Optional[Dict[str, Any]]

    # Nodes return a delta (0 or 1); the reducer adds it
    retry_count: Annotated[int, operator.add]

    # Execution trace
    meta: Annotated[dict, merge_meta]

    # Suspend/resume bookkeeping
    thread_id: Optional[str]
    pending_interrupt: Optional[Dict[str, Any]]
    resume_from: Optional[str]
    interrupt_history: Annotated[list, operator.add]


def new_meta(start_time: Optional[float] = None) -> Dict[str, Any]:
    return {
        "start_time": start_time if start_time is not None else time.time(),
        "executions": [],
        "errors": [],
        "flags": {},
    }


def create_initial_state(user_input: Dict[str, Any], thread_id: Optional[str]) -> TripState:
    """Create the state a fresh run starts from."""
    return {
        "user_input": user_input,
        "weather": None,
        "draft_itinerary": None,
        "attraction_enrichment": None,
        "accommodation": None,
        "transport": None,
        "dining": None,
        "budget_result": None,
        "final_itinerary": None,
        "retry_count": 0,
        "meta": new_meta(),
        "thread_id": thread_id,
        "pending_interrupt": None,
        "resume_from": None,
        "interrupt_history": [],
    }


def error_entry(agent: str, error: str) -> Dict[str, Any]:
    """A meta patch recording one degraded step of a node."""
    return {"errors": [{"agent": agent, "error": error, "timestamp": time.time()}]}
