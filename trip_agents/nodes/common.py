"""
Helpers shared by the agent nodes.

Nodes read TripState fields through these helpers so that a missing or
malformed upstream value degrades to None instead of raising.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from trip_agents.graph.state import TripState, error_entry
from trip_agents.shared.contracts.trip_request import TripRequest


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


def log_prefix(state: TripState, node: str) -> str:
    thread_id = state.get("thread_id") or "unknown"
    return f"[thread={thread_id}] [graph=trip] [node={node}] "


def read_model(state: TripState, key: str, model_cls: Type[M]) -> Optional[M]:
    """Validate state[key] into model_cls; None when absent or malformed."""
    raw = state.get(key)
    if raw is None:
        return None
    try:
        return model_cls.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"State field '{key}' failed {model_cls.__name__} validation: {e.error_count()} error(s)")
        return None


def read_request(state: TripState) -> Optional[TripRequest]:
    return read_model(state, "user_input", TripRequest)


def feedback_action(state: TripState) -> Optional[str]:
    """Action of the last budget feedback, if the previous pass produced one."""
    budget_result = state.get("budget_result") or {}
    feedback = budget_result.get("feedback") or {}
    return feedback.get("action")


def active_adjustments(state: TripState) -> Set[str]:
    """
    Budget adjustments in force for this pass.

    Adjustments accumulate across retries (meta.flags.adjustments) so an
    earlier downgrade is not undone when a later pass targets a different
    cost component.
    """
    flags = (state.get("meta") or {}).get("flags", {})
    adjustments = set(flags.get("adjustments", []))
    action = feedback_action(state)
    if action:
        adjustments.add(action)
    return adjustments


async def call_external(
    label: str,
    awaitable: Awaitable[T],
    timeout: float,
) -> Tuple[Optional[T], Optional[str]]:
    """
    Await an external call with a timeout.

    Returns:
        (result, None) on success, (None, error message) on timeout or failure.
        A None result from the provider is reported as an error too.
    """
    try:
        result = await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        return None, f"{label} timed out after {timeout:.1f}s"
    except Exception as e:
        return None, f"{label} failed: {e}"
    if result is None:
        return None, f"{label} returned no data"
    return result, None


def collect_errors(agent: str, messages: List[str]) -> Dict[str, Any]:
    """Meta patch with one error entry per message (empty patch when none)."""
    meta: Dict[str, Any] = {"errors": []}
    for message in messages:
        meta["errors"].extend(error_entry(agent, message)["errors"])
    return meta
