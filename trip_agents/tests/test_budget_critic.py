"""
Tests for the budget critic.

Covers the tolerance ceiling, outcome classification, feedback selection
and the state patch the critic returns.
"""

import asyncio

import pytest

from trip_agents.nodes.budget_critic import (
    allowed_ceiling,
    budget_patch,
    compute_cost_breakdown,
    create_budget_critic_node,
    evaluate_budget,
    select_feedback,
)
from trip_agents.observability.metrics import MetricsCollector
from trip_agents.shared.contracts.budget_output import (
    BudgetFeedbackAction,
    BudgetOutcome,
    CostBreakdown,
)


# ============================================================================
# Test Fixtures
# ============================================================================


def _make_request(budget=1000.0):
    return {
        "destination": "Hangzhou",
        "start_date": "2025-05-01",
        "end_date": "2025-05-03",
        "budget": budget,
        "travelers": 2,
    }


def _make_breakdown(accommodation=0.0, transport=0.0, dining=0.0, attractions=0.0):
    return CostBreakdown(
        accommodation=accommodation,
        transport=transport,
        dining=dining,
        attractions=attractions,
    )


def _make_state(breakdown, budget=1000.0, retry_count=0):
    """State holding one pass worth of resource outputs."""
    return {
        "thread_id": "test-budget",
        "user_input": _make_request(budget),
        "retry_count": retry_count,
        "accommodation": {"total_cost": breakdown.accommodation},
        "transport": {"total_cost": breakdown.transport},
        "dining": {"total_cost": breakdown.dining},
        "attraction_enrichment": {
            "enriched_attractions": [{"day": 1, "order": 0, "name": "West Lake"}],
            "total_ticket_cost": breakdown.attractions,
        },
        "draft_itinerary": {"days": [], "estimated_attraction_cost": 999.0},
        "meta": {"flags": {}},
    }


# ============================================================================
# TestTolerance
# ============================================================================


class TestTolerance:
    """Tests for the retry-dependent ceiling."""

    def test_base_ceiling_is_ten_percent(self):
        assert allowed_ceiling(1000.0, 0) == pytest.approx(1100.0)

    def test_each_retry_adds_five_percent(self):
        assert allowed_ceiling(1000.0, 1) == pytest.approx(1150.0)
        assert allowed_ceiling(1000.0, 3) == pytest.approx(1250.0)

    def test_ceiling_grows_with_retries(self):
        ceilings = [allowed_ceiling(800.0, r) for r in range(6)]
        assert ceilings == sorted(ceilings)
        assert len(set(ceilings)) == len(ceilings)


# ============================================================================
# TestEvaluateBudget
# ============================================================================


class TestEvaluateBudget:
    """Tests for outcome classification."""

    def test_exact_budget_is_within(self):
        """Total equal to the budget is within at retry 0."""
        result = evaluate_budget(_make_breakdown(accommodation=600, dining=400), 1000.0, 0, 3)

        assert result.outcome == BudgetOutcome.WITHIN_BUDGET
        assert result.is_within_budget is True
        assert result.feedback is None
        assert result.budget_utilization == pytest.approx(1.0)

    def test_overage_within_tolerance_is_within(self):
        result = evaluate_budget(_make_breakdown(accommodation=1080), 1000.0, 0, 3)
        assert result.outcome == BudgetOutcome.WITHIN_BUDGET

    def test_overage_beyond_tolerance_requests_retry(self):
        """1150 against 1000 exceeds the 1100 ceiling at retry 0."""
        result = evaluate_budget(
            _make_breakdown(accommodation=700, dining=300, transport=150), 1000.0, 0, 3
        )

        assert result.outcome == BudgetOutcome.OVER_BUDGET_RETRY
        assert result.is_within_budget is False
        assert result.allowed_ceiling == pytest.approx(1100.0)
        assert result.feedback is not None
        assert result.feedback.action == BudgetFeedbackAction.DOWNGRADE_HOTEL
        assert result.feedback.target_reduction == pytest.approx(50.0)

    def test_same_total_accepted_after_one_retry(self):
        """1150 against 1000 fits the 1150 ceiling at retry 1."""
        result = evaluate_budget(
            _make_breakdown(accommodation=700, dining=300, transport=150), 1000.0, 1, 3
        )
        assert result.outcome == BudgetOutcome.WITHIN_BUDGET

    def test_acceptance_is_monotonic_in_retry_count(self):
        """A total accepted at some retry count stays accepted at every higher one."""
        for total in (900.0, 1100.0, 1149.0, 1200.0, 1260.0):
            accepted = False
            for retry in range(6):
                result = evaluate_budget(_make_breakdown(dining=total), 1000.0, retry, 10)
                within = result.outcome == BudgetOutcome.WITHIN_BUDGET
                assert within or not accepted
                accepted = accepted or within

    def test_exhausted_at_retry_cap(self):
        result = evaluate_budget(_make_breakdown(accommodation=5000), 1000.0, 3, 3)

        assert result.outcome == BudgetOutcome.OVER_BUDGET_EXHAUSTED
        assert result.feedback is None
        assert result.retry_count == 3

    def test_zero_max_retries_never_retries(self):
        result = evaluate_budget(_make_breakdown(accommodation=5000), 1000.0, 0, 0)
        assert result.outcome == BudgetOutcome.OVER_BUDGET_EXHAUSTED

    def test_zero_budget(self):
        """Unknown budget: any cost is exhausted, utilization reported as 0."""
        result = evaluate_budget(_make_breakdown(dining=10), 0.0, 0, 3)

        assert result.outcome == BudgetOutcome.OVER_BUDGET_EXHAUSTED
        assert result.allowed_ceiling == 0.0
        assert result.budget_utilization == 0.0


# ============================================================================
# TestFeedback
# ============================================================================


class TestFeedback:
    """Tests for feedback targeting the largest component."""

    @pytest.mark.parametrize(
        "breakdown,expected",
        [
            (_make_breakdown(accommodation=500, dining=100), BudgetFeedbackAction.DOWNGRADE_HOTEL),
            (_make_breakdown(accommodation=100, dining=500), BudgetFeedbackAction.ADJUST_MEALS),
            (_make_breakdown(transport=500, dining=100), BudgetFeedbackAction.CHEAPER_TRANSPORT),
            (_make_breakdown(attractions=500, dining=100), BudgetFeedbackAction.REDUCE_ATTRACTIONS),
        ],
    )
    def test_largest_component_wins(self, breakdown, expected):
        assert select_feedback(breakdown, 100.0).action == expected

    def test_tie_prefers_accommodation(self):
        feedback = select_feedback(_make_breakdown(accommodation=300, attractions=300), 10.0)
        assert feedback.action == BudgetFeedbackAction.DOWNGRADE_HOTEL

    def test_all_zero_defaults_to_attractions(self):
        feedback = select_feedback(_make_breakdown(), 10.0)
        assert feedback.action == BudgetFeedbackAction.REDUCE_ATTRACTIONS

    def test_negative_target_clamped(self):
        assert select_feedback(_make_breakdown(dining=10), -5.0).target_reduction == 0.0


# ============================================================================
# TestBudgetPatch
# ============================================================================


class TestBudgetPatch:
    """Tests for the patch written back to TripState."""

    def test_retry_patch_increments_and_records_adjustment(self):
        state = _make_state(_make_breakdown(accommodation=2000))
        result = evaluate_budget(_make_breakdown(accommodation=2000), 1000.0, 0, 3)

        patch = budget_patch(result, state)

        assert patch["retry_count"] == 1
        assert patch["meta"]["flags"]["adjustments"] == ["downgrade_hotel"]

    def test_adjustments_accumulate(self):
        state = _make_state(_make_breakdown(dining=2000))
        state["meta"]["flags"]["adjustments"] = ["downgrade_hotel"]
        result = evaluate_budget(_make_breakdown(dining=2000), 1000.0, 1, 3)

        patch = budget_patch(result, state)

        assert patch["meta"]["flags"]["adjustments"] == ["downgrade_hotel", "adjust_meals"]

    def test_exhausted_patch_sets_flag(self):
        result = evaluate_budget(_make_breakdown(dining=5000), 1000.0, 3, 3)
        patch = budget_patch(result, {})

        assert "retry_count" not in patch
        assert patch["meta"]["flags"]["budget_exhausted"] is True

    def test_within_patch_has_no_delta(self):
        result = evaluate_budget(_make_breakdown(dining=100), 1000.0, 0, 3)
        patch = budget_patch(result, {})

        assert set(patch) == {"budget_result"}


# ============================================================================
# TestBudgetCriticNode
# ============================================================================


class TestBudgetCriticNode:
    """Tests for the node function."""

    def test_breakdown_prefers_enrichment_total(self):
        state = _make_state(_make_breakdown(attractions=120))
        assert compute_cost_breakdown(state).attractions == pytest.approx(120)

    def test_breakdown_falls_back_to_draft_estimate(self):
        state = _make_state(_make_breakdown())
        state["attraction_enrichment"] = None
        assert compute_cost_breakdown(state).attractions == pytest.approx(999.0)

    def test_node_counts_outcomes(self):
        metrics = MetricsCollector()
        node = create_budget_critic_node(max_retries=3, metrics=metrics)

        patch = asyncio.run(node(_make_state(_make_breakdown(accommodation=2000))))

        assert patch["budget_result"]["outcome"] == "over_budget_retry"
        assert metrics.get_counter("trip_budget_outcomes_total", {"outcome": "over_budget_retry"}) == 1

    def test_node_without_request_degrades(self):
        node = create_budget_critic_node()
        patch = asyncio.run(node({}))

        assert patch["budget_result"]["budget"] == 0.0
        assert patch["meta"]["errors"][0]["agent"] == "budget_critic"
