"""
Human-in-the-loop wrappers and decision handling for the trip graph.

The wrappers run the base node and, when a suspension point is reached,
add a pending_interrupt to the patch; the routers then send the graph to
END and the executor persists the checkpoint. apply_decision turns the
user's answer into the state and entry node the resumed run starts from.
"""

import copy
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from trip_agents.graph.config import HITLConfig
from trip_agents.graph.nodes import NodeId
from trip_agents.graph.state import TripState, create_initial_state
from trip_agents.hitl.schemas import (
    AttractionModification,
    BudgetAdjustmentOption,
    InterruptRecord,
    InterruptType,
    UserDecision,
)
from trip_agents.shared.contracts.budget_output import BudgetOutcome, BudgetResult
from trip_agents.shared.contracts.draft_itinerary import DraftItinerary


logger = logging.getLogger(__name__)


# ============================================================================
# Itinerary modifications
# ============================================================================


def apply_itinerary_modifications(
    draft: DraftItinerary, modifications: List[AttractionModification]
) -> DraftItinerary:
    """
    Apply user edits to a draft, in order.

    Edits pointing at a day or attraction that does not exist are skipped.
    Totals are recounted afterwards.
    """
    if not modifications:
        return draft

    days = [day.model_copy(deep=True) for day in draft.days]
    for mod in modifications:
        if mod.day_index is None or mod.day_index >= len(days):
            logger.warning(f"Skipping {mod.type} modification: day_index {mod.day_index} out of range")
            continue
        attractions = days[mod.day_index].attractions

        if mod.type == "remove":
            if mod.attraction_index is not None and mod.attraction_index < len(attractions):
                attractions.pop(mod.attraction_index)

        elif mod.type == "add":
            if mod.attraction is not None:
                attractions.append(mod.attraction.model_copy(deep=True))

        elif mod.type == "reorder":
            if (
                mod.from_index is not None
                and mod.to_index is not None
                and mod.from_index < len(attractions)
            ):
                moved = attractions.pop(mod.from_index)
                attractions.insert(min(mod.to_index, len(attractions)), moved)

        elif mod.type == "update":
            if (
                mod.attraction is not None
                and mod.attraction_index is not None
                and mod.attraction_index < len(attractions)
            ):
                attractions[mod.attraction_index] = mod.attraction.model_copy(deep=True)

    return draft.model_copy(update={"days": days}).recount()


# ============================================================================
# Budget adjustment options
# ============================================================================


def generate_budget_adjustment_options(
    result: BudgetResult, overage_amount: float
) -> List[BudgetAdjustmentOption]:
    """Cost-cutting options for a budget decision, largest savings first."""
    breakdown = result.cost_breakdown
    candidates = [
        (
            "downgrade_hotel",
            "Downgrade hotel",
            "Choose a more economical hotel",
            breakdown.accommodation,
            0.3,
            "medium",
        ),
        (
            "reduce_attractions",
            "Reduce attractions",
            "Drop some paid attractions and keep the highlights",
            breakdown.attractions,
            0.4,
            "medium",
        ),
        (
            "cheaper_transport",
            "Cheaper transport",
            "Use public transit instead of taxis",
            breakdown.transport,
            0.4,
            "low",
        ),
        (
            "adjust_meals",
            "Adjust meals",
            "Pick more affordable restaurants",
            breakdown.dining,
            0.3,
            "low",
        ),
    ]
    options = [
        BudgetAdjustmentOption(
            id=option_id,
            label=label,
            description=description,
            savings_amount=round(min(amount * share, overage_amount), 2),
            impact=impact,
        )
        for option_id, label, description, amount, share, impact in candidates
        if amount > 0
    ]
    options.sort(key=lambda o: o.savings_amount, reverse=True)
    return options


# ============================================================================
# Node wrappers
# ============================================================================


def _interrupt(interrupt_type: InterruptType, message: str, options: Dict[str, Any]) -> Dict[str, Any]:
    return {"interrupt_type": interrupt_type.value, "message": message, "options": options}


def with_itinerary_review(node, hitl: HITLConfig):
    """Suspend after the planner so the user can review the draft."""

    async def itinerary_planner_with_review(state: TripState) -> Dict[str, Any]:
        patch = await node(state)
        retry_count = state.get("retry_count", 0) or 0
        if not (hitl.enabled and hitl.enable_itinerary_review):
            return patch
        if retry_count > 0 and not hitl.review_on_retry:
            return patch

        draft = patch.get("draft_itinerary") or {}
        weather = state.get("weather") or {}
        patch["pending_interrupt"] = _interrupt(
            InterruptType.ITINERARY_REVIEW,
            f"Draft itinerary ready with {draft.get('total_attractions', 0)} attractions. "
            "Approve it or adjust the attractions.",
            {"draft_itinerary": draft, "weather_warnings": weather.get("warnings", [])},
        )
        return patch

    return itinerary_planner_with_review


def with_budget_decision(node, hitl: HITLConfig):
    """
    Suspend after the budget critic when the user should decide.

    A large overage asks for a budget decision instead of retrying
    automatically; the retry increment is then deferred until the user
    answers. A within-budget result asks for final confirmation when
    enabled. An exhausted result never suspends.
    """

    async def budget_critic_with_decision(state: TripState) -> Dict[str, Any]:
        patch = await node(state)
        if not hitl.enabled or not patch.get("budget_result"):
            return patch

        result = BudgetResult.model_validate(patch["budget_result"])

        if result.outcome == BudgetOutcome.OVER_BUDGET_RETRY and hitl.enable_budget_decision:
            overage = result.total_cost - result.budget
            overage_pct = overage / result.budget if result.budget > 0 else 0.0
            if overage_pct < hitl.budget_overage_threshold:
                return patch

            patch.pop("retry_count", None)
            meta = patch.get("meta") or {}
            meta.pop("flags", None)
            if meta:
                patch["meta"] = meta
            else:
                patch.pop("meta", None)

            options = generate_budget_adjustment_options(result, overage)
            patch["pending_interrupt"] = _interrupt(
                InterruptType.BUDGET_DECISION,
                f"Over budget by {overage:.0f} ({overage_pct:.1%}). "
                "Choose an adjustment, retry, or accept the overage.",
                {
                    "budget_result": result.model_dump(mode="json"),
                    "adjustment_options": [o.model_dump(mode="json") for o in options],
                    "overage_amount": round(overage, 2),
                    "overage_percentage": round(overage_pct, 4),
                },
            )
            return patch

        if result.outcome == BudgetOutcome.WITHIN_BUDGET and hitl.enable_final_confirm:
            request = state.get("user_input") or {}
            draft = state.get("draft_itinerary") or {}
            patch["pending_interrupt"] = _interrupt(
                InterruptType.FINAL_CONFIRM,
                "The itinerary is within budget. Confirm to finalize it.",
                {
                    "summary": {
                        "destination": request.get("destination"),
                        "dates": f"{request.get('start_date')} to {request.get('end_date')}",
                        "total_days": len(draft.get("days", [])),
                        "total_attractions": draft.get("total_attractions", 0),
                        "total_cost": result.total_cost,
                        "budget_utilization": result.budget_utilization,
                    }
                },
            )
        return patch

    return budget_critic_with_decision


# ============================================================================
# Decisions
# ============================================================================


def default_resume_node(interrupt_type: InterruptType) -> NodeId:
    """Node a suspended thread continues at after an approval."""
    if interrupt_type == InterruptType.ITINERARY_REVIEW:
        return NodeId.ATTRACTION_ENRICHER
    return NodeId.FINALIZE


def _force_finalize(state: TripState) -> None:
    budget_result = state.get("budget_result") or {}
    budget_result = {**budget_result, "outcome": BudgetOutcome.OVER_BUDGET_EXHAUSTED.value, "feedback": None}
    state["budget_result"] = budget_result
    meta = state.setdefault("meta", {})
    meta.setdefault("flags", {})["budget_exhausted"] = True


def _schedule_retry(state: TripState, action: Optional[str]) -> None:
    budget_result = dict(state.get("budget_result") or {})
    feedback = dict(budget_result.get("feedback") or {})
    if action:
        feedback["action"] = action
    if feedback:
        budget_result["feedback"] = feedback
    state["budget_result"] = budget_result
    state["retry_count"] = (state.get("retry_count", 0) or 0) + 1

    flags = state.setdefault("meta", {}).setdefault("flags", {})
    adjustments = list(flags.get("adjustments", []))
    chosen = feedback.get("action")
    if chosen and chosen not in adjustments:
        adjustments.append(chosen)
    flags["adjustments"] = adjustments


def apply_decision(
    state: TripState,
    record: InterruptRecord,
    decision: UserDecision,
    max_retries: int,
    now: Optional[float] = None,
) -> Tuple[TripState, NodeId]:
    """
    Build the state a resumed run starts from.

    Args:
        state: Checkpointed state of the suspended thread
        record: The interrupt being answered
        decision: Validated user decision (never 'cancel')
        max_retries: Retry cap; a retry or modify at the cap finalizes instead
        now: Resume time for the history entry

    Returns:
        (new state with resume_from set, entry node)
    """
    new_state: TripState = copy.deepcopy(state)
    new_state["pending_interrupt"] = None
    entry = default_resume_node(record.interrupt_type)

    if record.interrupt_type == InterruptType.ITINERARY_REVIEW:
        if decision.type == "modify":
            draft = DraftItinerary.model_validate(new_state.get("draft_itinerary") or {})
            new_state["draft_itinerary"] = apply_itinerary_modifications(
                draft, decision.modifications
            ).model_dump(mode="json")
        elif decision.type == "retry":
            entry = NodeId.ITINERARY_PLANNER

    elif record.interrupt_type == InterruptType.BUDGET_DECISION:
        retry_count = new_state.get("retry_count", 0) or 0
        if decision.type == "approve" or decision.accept_overage:
            new_state["budget_result"] = {**(new_state.get("budget_result") or {}), "accepted_overage": True}
            entry = NodeId.FINALIZE
        elif retry_count >= max_retries:
            logger.info(
                f"[thread={state.get('thread_id')}] [hitl] Retry cap reached at resume, forcing finalize"
            )
            _force_finalize(new_state)
            entry = NodeId.FINALIZE
        else:
            action = decision.selected_option_id if decision.type == "modify" else None
            _schedule_retry(new_state, action)
            entry = NodeId.ITINERARY_PLANNER

    elif record.interrupt_type == InterruptType.FINAL_CONFIRM:
        if decision.type == "restart":
            history = new_state.get("interrupt_history", [])
            new_state = create_initial_state(state.get("user_input") or {}, state.get("thread_id"))
            new_state["interrupt_history"] = history
            entry = NodeId.WEATHER_SCOUT

    new_state["interrupt_history"] = list(new_state.get("interrupt_history", [])) + [
        {
            "type": record.interrupt_type.value,
            "timestamp": record.created_at,
            "resumed_at": now if now is not None else time.time(),
            "decision": decision.model_dump(mode="json"),
        }
    ]
    new_state["resume_from"] = entry.value
    logger.info(
        f"[thread={state.get('thread_id')}] [hitl] Decision applied | type={record.interrupt_type.value}, "
        f"decision={decision.type}, entry={entry.value}"
    )
    return new_state, entry
