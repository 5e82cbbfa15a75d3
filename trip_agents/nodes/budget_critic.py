"""
Budget critic node.

Pure cost policy: sums the component costs of the current pass, compares
the total to a ceiling that loosens with every retry, and classifies the
pass as within budget, over budget with a retry left, or over budget with
retries exhausted.

Tolerance:
    allowed_ceiling = budget * (1 + 0.10 + 0.05 * retry_count)

The ceiling grows monotonically with retry_count, so a total accepted at
one retry count is accepted at every higher one.
"""

import logging
from typing import Any, Dict, Optional

from trip_agents.graph.state import TripState
from trip_agents.nodes.common import collect_errors, log_prefix, read_model, read_request
from trip_agents.shared.contracts.accommodation_output import AccommodationResult
from trip_agents.shared.contracts.budget_output import (
    BudgetFeedback,
    BudgetFeedbackAction,
    BudgetOutcome,
    BudgetResult,
    CostBreakdown,
)
from trip_agents.shared.contracts.dining_output import DiningResult
from trip_agents.shared.contracts.draft_itinerary import DraftItinerary
from trip_agents.shared.contracts.enrichment_output import AttractionEnrichmentResult
from trip_agents.shared.contracts.transport_output import TransportResult


logger = logging.getLogger(__name__)

AGENT = "budget_critic"

BASE_TOLERANCE = 0.10
TOLERANCE_STEP = 0.05


def allowed_ceiling(budget: float, retry_count: int) -> float:
    return budget * (1 + BASE_TOLERANCE + TOLERANCE_STEP * retry_count)


def compute_cost_breakdown(state: TripState) -> CostBreakdown:
    """
    Component costs of the current pass.

    Attraction cost is the enricher's ticket total when enrichment ran,
    else the planner's estimate.
    """
    accommodation = read_model(state, "accommodation", AccommodationResult)
    transport = read_model(state, "transport", TransportResult)
    dining = read_model(state, "dining", DiningResult)
    enrichment = read_model(state, "attraction_enrichment", AttractionEnrichmentResult)
    draft = read_model(state, "draft_itinerary", DraftItinerary)

    if enrichment is not None and enrichment.enriched_attractions:
        attractions = enrichment.total_ticket_cost
    elif draft is not None:
        attractions = draft.estimated_attraction_cost
    else:
        attractions = 0.0

    return CostBreakdown(
        accommodation=accommodation.total_cost if accommodation else 0.0,
        transport=transport.total_cost if transport else 0.0,
        dining=dining.total_cost if dining else 0.0,
        attractions=attractions,
    )


_SUGGESTIONS = {
    BudgetFeedbackAction.DOWNGRADE_HOTEL: "Accommodation is the largest cost ({amount:.0f}). "
    "Choose a cheaper hotel tier to save about {target:.0f}.",
    BudgetFeedbackAction.ADJUST_MEALS: "Dining is the largest cost ({amount:.0f}). "
    "Pick more affordable restaurants to save about {target:.0f}.",
    BudgetFeedbackAction.CHEAPER_TRANSPORT: "Transport is the largest cost ({amount:.0f}). "
    "Prefer public transit over taxis to save about {target:.0f}.",
    BudgetFeedbackAction.REDUCE_ATTRACTIONS: "Attraction tickets are the largest cost ({amount:.0f}). "
    "Visit fewer paid sights or favour free ones to save about {target:.0f}.",
}


def select_feedback(breakdown: CostBreakdown, target_reduction: float) -> BudgetFeedback:
    """Feedback aimed at the single largest cost component."""
    components = {
        BudgetFeedbackAction.DOWNGRADE_HOTEL: breakdown.accommodation,
        BudgetFeedbackAction.ADJUST_MEALS: breakdown.dining,
        BudgetFeedbackAction.CHEAPER_TRANSPORT: breakdown.transport,
        BudgetFeedbackAction.REDUCE_ATTRACTIONS: breakdown.attractions,
    }
    largest = max(components.values())
    # ties resolve in the order above; attractions are the default
    action = next(
        (a for a, amount in components.items() if amount == largest and amount > 0),
        BudgetFeedbackAction.REDUCE_ATTRACTIONS,
    )
    target = round(max(target_reduction, 0.0), 2)
    return BudgetFeedback(
        action=action,
        target_reduction=target,
        suggestion=_SUGGESTIONS[action].format(amount=components[action], target=target),
    )


def evaluate_budget(
    breakdown: CostBreakdown,
    budget: float,
    retry_count: int,
    max_retries: int,
) -> BudgetResult:
    """
    Classify one pass.

    Args:
        breakdown: Component costs
        budget: Requested budget (0 when unknown)
        retry_count: Retries already performed
        max_retries: Retry cap

    Returns:
        BudgetResult; feedback is set only for OVER_BUDGET_RETRY.
    """
    total = round(breakdown.total, 2)
    ceiling = allowed_ceiling(budget, retry_count) if budget > 0 else 0.0
    utilization = round(total / budget, 4) if budget > 0 else 0.0

    if total <= ceiling:
        outcome = BudgetOutcome.WITHIN_BUDGET
        feedback = None
    elif retry_count < max_retries and budget > 0:
        outcome = BudgetOutcome.OVER_BUDGET_RETRY
        feedback = select_feedback(breakdown, total - ceiling)
    else:
        outcome = BudgetOutcome.OVER_BUDGET_EXHAUSTED
        feedback = None

    return BudgetResult(
        outcome=outcome,
        total_cost=total,
        budget=budget,
        allowed_ceiling=round(ceiling, 2),
        budget_utilization=utilization,
        is_within_budget=outcome == BudgetOutcome.WITHIN_BUDGET,
        cost_breakdown=breakdown,
        feedback=feedback,
        retry_count=retry_count,
    )


def budget_patch(result: BudgetResult, state: TripState) -> Dict[str, Any]:
    """
    State patch for an evaluated pass.

    A retry carries a retry_count delta of 1 and adds the feedback action
    to the adjustments in force; exhaustion sets the budget_exhausted flag.
    """
    patch: Dict[str, Any] = {"budget_result": result.model_dump(mode="json")}
    if result.outcome == BudgetOutcome.OVER_BUDGET_RETRY:
        flags = (state.get("meta") or {}).get("flags", {})
        adjustments = list(flags.get("adjustments", []))
        if result.feedback.action.value not in adjustments:
            adjustments.append(result.feedback.action.value)
        patch["retry_count"] = 1
        patch["meta"] = {"flags": {"adjustments": adjustments}}
    elif result.outcome == BudgetOutcome.OVER_BUDGET_EXHAUSTED:
        patch["meta"] = {"flags": {"budget_exhausted": True}}
    return patch


def create_budget_critic_node(max_retries: int = 3, metrics=None):
    """
    Create the budget critic node.

    Args:
        max_retries: Retry cap; the pass at retry_count == max_retries
            finalizes whatever the cost
        metrics: Optional MetricsCollector for outcome counts
    """

    async def budget_critic_node(state: TripState) -> Dict[str, Any]:
        _log = log_prefix(state, AGENT)
        request = read_request(state)
        retry_count = state.get("retry_count", 0) or 0
        breakdown = compute_cost_breakdown(state)

        budget = request.budget if request is not None else 0.0
        result = evaluate_budget(breakdown, budget, retry_count, max_retries)

        logger.info(
            f"{_log}Budget evaluated | total={result.total_cost:.2f}, budget={budget:.2f}, "
            f"ceiling={result.allowed_ceiling:.2f}, retry={retry_count}/{max_retries}, "
            f"outcome={result.outcome.value}"
        )
        if result.feedback is not None:
            logger.info(
                f"{_log}Requesting revision | action={result.feedback.action.value}, "
                f"target_reduction={result.feedback.target_reduction:.2f}"
            )
        elif result.outcome == BudgetOutcome.OVER_BUDGET_EXHAUSTED:
            logger.warning(f"{_log}Retries exhausted, finalizing over budget")

        if metrics is not None:
            metrics.inc("trip_budget_outcomes_total", {"outcome": result.outcome.value})

        patch = budget_patch(result, state)
        if request is None:
            errors = collect_errors(AGENT, ["Trip request missing; budget treated as 0"])
            patch["meta"] = {**patch.get("meta", {}), **errors}
        return patch

    return budget_critic_node


def fallback_patch(state: TripState) -> Dict[str, Any]:
    """Finalize-bound result when the critic itself fails."""
    result = BudgetResult(
        outcome=BudgetOutcome.OVER_BUDGET_EXHAUSTED,
        total_cost=0.0,
        budget=0.0,
        allowed_ceiling=0.0,
        budget_utilization=0.0,
        is_within_budget=False,
        cost_breakdown=CostBreakdown(),
        retry_count=state.get("retry_count", 0) or 0,
    )
    return {
        "budget_result": result.model_dump(mode="json"),
        "meta": {"flags": {"budget_exhausted": True}},
    }
