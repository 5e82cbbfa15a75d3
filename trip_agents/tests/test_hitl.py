"""
Tests for human-in-the-loop suspension and resume.

Covers the three interrupt points, decision handling, idempotent resume,
cancellation and expiry (with an injected clock), plus the pure helpers
for draft modifications and budget adjustment options.
"""

import asyncio

import pytest

from trip_agents.graph.config import HITLConfig, get_config
from trip_agents.graph.executor import TripWorkflowExecutor
from trip_agents.graph.hitl import apply_itinerary_modifications, generate_budget_adjustment_options
from trip_agents.hitl.manager import validate_decision
from trip_agents.hitl.schemas import (
    AttractionModification,
    InterruptType,
    UserDecision,
)
from trip_agents.observability.metrics import MetricsCollector
from trip_agents.shared.contracts.accommodation_output import AccommodationResult
from trip_agents.shared.contracts.budget_output import BudgetOutcome, BudgetResult, CostBreakdown
from trip_agents.shared.contracts.dining_output import DiningResult
from trip_agents.shared.contracts.draft_itinerary import AttractionSlot, DraftDay, DraftItinerary
from trip_agents.shared.contracts.enrichment_output import (
    AttractionEnrichmentResult,
    EnrichedAttraction,
)
from trip_agents.shared.contracts.transport_output import TransportResult
from trip_agents.shared.errors import InvalidDecisionError


# ============================================================================
# Test Fixtures
# ============================================================================


class _FakeClock:
    """Settable epoch clock."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, hours):
        self.now += hours * 3600


def _make_request(budget=20000.0):
    return {
        "destination": "Hangzhou",
        "start_date": "2025-05-01",
        "end_date": "2025-05-03",
        "budget": budget,
        "travelers": 2,
        "pace": "moderate",
    }


def _make_executor(
    review=True,
    budget_decision=True,
    final_confirm=False,
    max_retries=3,
    overrides=None,
    clock=None,
    metrics=None,
    threshold=0.1,
):
    hitl = HITLConfig(
        enabled=True,
        enable_itinerary_review=review,
        enable_budget_decision=budget_decision,
        budget_overage_threshold=threshold,
        enable_final_confirm=final_confirm,
        interrupt_ttl_hours=24,
    )
    kwargs = {"clock": clock} if clock is not None else {}
    return TripWorkflowExecutor(
        config=get_config(max_retries=max_retries, hitl=hitl, tracer="none"),
        agent_overrides=overrides,
        metrics=metrics,
        **kwargs,
    )


def _fixed_overrides(accommodation=1500.0, dining=500.0):
    """Resource agents with constant costs; attractions and transport are free."""

    async def enricher(state):
        result = AttractionEnrichmentResult(
            enriched_attractions=[EnrichedAttraction(day=1, order=0, name="Free park")],
            total_attractions=1,
            enriched_count=1,
        )
        return {"attraction_enrichment": result.model_dump(mode="json")}

    async def accommodation_agent(state):
        return {"accommodation": AccommodationResult(total_cost=accommodation).model_dump(mode="json")}

    async def transport_agent(state):
        return {"transport": TransportResult().model_dump(mode="json")}

    async def dining_agent(state):
        return {"dining": DiningResult(total_cost=dining).model_dump(mode="json")}

    return {
        "attraction_enricher": enricher,
        "accommodation_agent": accommodation_agent,
        "transport_agent": transport_agent,
        "dining_agent": dining_agent,
    }


def _make_draft():
    def slot(name, time):
        return AttractionSlot(time=time, name=name)

    return DraftItinerary(
        days=[
            DraftDay(day=1, date="2025-05-01", attractions=[slot("A", "09:00"), slot("B", "14:00")]),
            DraftDay(day=2, date="2025-05-02", attractions=[slot("C", "09:00")]),
        ]
    ).recount()


def _make_budget_result(accommodation=600.0, transport=50.0, dining=300.0, attractions=250.0):
    breakdown = CostBreakdown(
        accommodation=accommodation, transport=transport, dining=dining, attractions=attractions
    )
    return BudgetResult(
        outcome=BudgetOutcome.OVER_BUDGET_RETRY,
        total_cost=breakdown.total,
        budget=1000.0,
        allowed_ceiling=1100.0,
        budget_utilization=breakdown.total / 1000.0,
        is_within_budget=False,
        cost_breakdown=breakdown,
        retry_count=0,
    )


# ============================================================================
# TestItineraryReview
# ============================================================================


class TestItineraryReview:
    """Suspension after the planner."""

    def test_suspends_with_draft(self):
        executor = _make_executor()
        result = asyncio.run(executor.execute(_make_request(), "review-1"))

        assert result.status == "interrupt"
        assert result.interrupt["interrupt_type"] == "itinerary_review"
        assert result.interrupt["status"] == "pending"
        assert result.interrupt["options"]["draft_itinerary"]["days"]
        assert result.final_itinerary is None

        status = executor.get_status("review-1")
        assert status["status"] == "interrupt"
        assert status["next_node"] == "attraction_enricher"

    def test_approve_completes(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "review-2"))

        result = asyncio.run(executor.resume("review-2", {"type": "approve"}))

        assert result.status == "complete"
        assert len(result.final_itinerary["days"]) == 3
        history = result.state["interrupt_history"]
        assert len(history) == 1
        assert history[0]["type"] == "itinerary_review"
        assert history[0]["decision"]["type"] == "approve"

    def test_modify_applies_edits(self):
        executor = _make_executor()
        suspended = asyncio.run(executor.execute(_make_request(), "review-3"))
        first_day = suspended.interrupt["options"]["draft_itinerary"]["days"][0]["attractions"]

        decision = UserDecision(
            type="modify",
            modifications=[AttractionModification(type="remove", day_index=0, attraction_index=0)],
        )
        result = asyncio.run(executor.resume("review-3", decision))

        assert result.status == "complete"
        activities = result.final_itinerary["days"][0]["activities"]
        assert len(activities) == len(first_day) - 1
        assert activities[0]["name"] == first_day[1]["name"]

    def test_retry_redrafts_without_counting(self):
        """A review retry produces a new draft for review; the budget retry count is untouched."""
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "review-4"))

        result = asyncio.run(executor.resume("review-4", {"type": "retry"}))

        assert result.status == "interrupt"
        assert result.interrupt["interrupt_type"] == "itinerary_review"
        assert result.retry_count == 0
        planner_runs = [e for e in result.state["meta"]["executions"] if e["agent"] == "itinerary_planner"]
        assert len(planner_runs) == 2

    def test_invalid_decision_keeps_interrupt_pending(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "review-5"))

        result = asyncio.run(executor.resume("review-5", {"type": "confirm"}))

        assert result.status == "error"
        assert result.error_code == "invalid_decision"
        assert executor.get_status("review-5")["status"] == "interrupt"


# ============================================================================
# TestIdempotentResume
# ============================================================================


class TestIdempotentResume:
    """A second resume of the same interrupt never runs the graph again."""

    def test_second_resume_rejected(self):
        metrics = MetricsCollector()
        executor = _make_executor(metrics=metrics)
        asyncio.run(executor.execute(_make_request(), "idem-1"))

        first = asyncio.run(executor.resume("idem-1", {"type": "approve"}))
        second = asyncio.run(executor.resume("idem-1", {"type": "approve"}))

        assert first.status == "complete"
        assert second.status == "error"
        assert second.error_code == "already_resumed"
        assert metrics.get_counter("trip_workflow_runs_total", {"status": "complete"}) == 1

    def test_concurrent_resumes_single_winner(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "idem-2"))

        async def _both():
            return await asyncio.gather(
                executor.resume("idem-2", {"type": "approve"}),
                executor.resume("idem-2", {"type": "approve"}),
            )

        results = asyncio.run(_both())
        statuses = sorted(r.status for r in results)
        assert statuses == ["complete", "error"]

    def test_unknown_thread(self):
        result = asyncio.run(_make_executor().resume("missing", {"type": "approve"}))
        assert result.status == "not_found"

    def test_resume_completed_thread(self):
        executor = _make_executor(review=False)
        asyncio.run(executor.execute(_make_request(), "idem-3"))

        result = asyncio.run(executor.resume("idem-3", {"type": "approve"}))

        assert result.status == "error"
        assert result.error_code == "not_pending"

    def test_repeated_decision_not_applied_to_next_interrupt(self):
        """A retried approve for the review must not answer the final confirmation."""
        executor = _make_executor(final_confirm=True, overrides=_fixed_overrides())
        review = asyncio.run(executor.execute(_make_request(), "idem-4"))
        decision = {"type": "approve", "interrupt_id": review.interrupt["interrupt_id"]}

        first = asyncio.run(executor.resume("idem-4", decision))
        second = asyncio.run(executor.resume("idem-4", decision))

        assert first.status == "interrupt"
        assert first.interrupt["interrupt_type"] == "final_confirm"
        assert first.interrupt["interrupt_id"] != review.interrupt["interrupt_id"]
        assert second.status == "error"
        assert second.error_code == "already_resumed"
        assert executor.get_status("idem-4")["status"] == "interrupt"

        confirmed = asyncio.run(
            executor.resume("idem-4", {"type": "confirm", "interrupt_id": first.interrupt["interrupt_id"]})
        )
        assert confirmed.status == "complete"

    def test_cancel_for_answered_interrupt_rejected(self):
        executor = _make_executor(final_confirm=True, overrides=_fixed_overrides())
        review = asyncio.run(executor.execute(_make_request(), "idem-5"))
        asyncio.run(executor.resume("idem-5", {"type": "approve"}))

        result = asyncio.run(
            executor.resume("idem-5", {"type": "cancel", "interrupt_id": review.interrupt["interrupt_id"]})
        )

        assert result.error_code == "already_resumed"
        assert executor.get_status("idem-5")["interrupt"]["status"] == "pending"

    def test_failed_resume_is_terminal(self, monkeypatch):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "idem-6"))

        class _BrokenGraph:
            async def ainvoke(self, state, config=None):
                raise RuntimeError("graph down")

        monkeypatch.setattr(executor, "app", _BrokenGraph())
        result = asyncio.run(executor.resume("idem-6", {"type": "approve"}))
        status = executor.get_status("idem-6")

        assert result.status == "error"
        assert result.error_code == "workflow_failed"
        assert status["status"] == "error"
        assert status["next_node"] is None
        assert status["final_itinerary"] == result.final_itinerary
        assert asyncio.run(executor.resume("idem-6", {"type": "approve"})).error_code == "already_resumed"


# ============================================================================
# TestBudgetDecision
# ============================================================================


class TestBudgetDecision:
    """Suspension after a large overage."""

    def test_suspends_without_consuming_retry(self):
        executor = _make_executor(review=False, overrides=_fixed_overrides())
        result = asyncio.run(executor.execute(_make_request(budget=1000), "budget-1"))

        assert result.status == "interrupt"
        assert result.interrupt["interrupt_type"] == "budget_decision"
        assert result.retry_count == 0
        options = result.interrupt["options"]
        assert options["overage_amount"] > 0
        ids = [o["id"] for o in options["adjustment_options"]]
        assert ids[0] == "downgrade_hotel"

    def test_accept_overage_finalizes(self):
        executor = _make_executor(review=False, overrides=_fixed_overrides())
        asyncio.run(executor.execute(_make_request(budget=1000), "budget-2"))

        result = asyncio.run(executor.resume("budget-2", {"type": "approve"}))

        assert result.status == "complete"
        assert result.retry_count == 0
        status = result.final_itinerary["budget_status"]
        assert status["accepted_overage"] is True
        assert "overage was accepted" in result.final_itinerary["summary"]

    def test_modify_schedules_retry_with_option(self):
        executor = _make_executor(review=False, overrides=_fixed_overrides())
        asyncio.run(executor.execute(_make_request(budget=1000), "budget-3"))

        result = asyncio.run(
            executor.resume("budget-3", {"type": "modify", "selected_option_id": "adjust_meals"})
        )

        # costs are fixed, so the second pass suspends again
        assert result.status == "interrupt"
        assert result.retry_count == 1
        assert "adjust_meals" in result.state["meta"]["flags"]["adjustments"]
        assert executor.get_status("budget-3")["interrupt"]["status"] == "pending"

    def test_modify_requires_option(self):
        executor = _make_executor(review=False, overrides=_fixed_overrides())
        asyncio.run(executor.execute(_make_request(budget=1000), "budget-4"))

        result = asyncio.run(executor.resume("budget-4", {"type": "modify"}))

        assert result.status == "error"
        assert result.error_code == "invalid_decision"

    def test_exhausted_pass_never_suspends(self):
        executor = _make_executor(review=False, max_retries=1, overrides=_fixed_overrides())
        asyncio.run(executor.execute(_make_request(budget=1000), "budget-5"))

        result = asyncio.run(executor.resume("budget-5", {"type": "retry"}))

        assert result.status == "complete"
        assert result.retry_count == 1
        assert result.final_itinerary["budget_status"]["budget_exhausted"] is True

    def test_overage_below_threshold_retries_automatically(self):
        executor = _make_executor(
            review=False, threshold=0.5, overrides=_fixed_overrides(accommodation=1120.0, dining=0.0)
        )
        result = asyncio.run(executor.execute(_make_request(budget=1000), "budget-6"))

        assert result.status == "complete"
        assert result.retry_count == 1
        assert result.budget_result["outcome"] == "within_budget"


# ============================================================================
# TestFinalConfirm
# ============================================================================


class TestFinalConfirm:
    """Suspension before finalize."""

    def test_confirm(self):
        executor = _make_executor(review=False, final_confirm=True)
        suspended = asyncio.run(executor.execute(_make_request(), "confirm-1"))

        assert suspended.interrupt["interrupt_type"] == "final_confirm"
        summary = suspended.interrupt["options"]["summary"]
        assert summary["destination"] == "Hangzhou"
        assert summary["total_days"] == 3

        result = asyncio.run(executor.resume("confirm-1", {"type": "confirm"}))
        assert result.status == "complete"

    def test_restart_keeps_history(self):
        executor = _make_executor(review=False, final_confirm=True)
        asyncio.run(executor.execute(_make_request(), "confirm-2"))

        result = asyncio.run(executor.resume("confirm-2", {"type": "restart"}))

        assert result.status == "interrupt"
        assert result.interrupt["interrupt_type"] == "final_confirm"
        assert len(result.state["interrupt_history"]) == 1
        weather_runs = [e for e in result.state["meta"]["executions"] if e["agent"] == "weather_scout"]
        assert len(weather_runs) == 1


# ============================================================================
# TestCancelAndExpiry
# ============================================================================


class TestCancelAndExpiry:
    """Cancellation, lazy expiry and the sweep."""

    def test_cancel(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "cancel-1"))

        result = asyncio.run(executor.cancel("cancel-1"))

        assert result.status == "cancelled"
        assert executor.store.load_checkpoint("cancel-1") is None
        assert executor.get_status("cancel-1")["status"] == "cancelled"

        again = asyncio.run(executor.resume("cancel-1", {"type": "approve"}))
        assert again.status == "error"
        assert again.error_code == "not_pending"

    def test_cancel_decision(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "cancel-2"))

        result = asyncio.run(executor.resume("cancel-2", {"type": "cancel"}))

        assert result.status == "cancelled"

    def test_resume_after_expiry(self):
        clock = _FakeClock()
        executor = _make_executor(clock=clock)
        asyncio.run(executor.execute(_make_request(), "expire-1"))

        clock.advance(25)
        assert executor.get_status("expire-1")["status"] == "expired"

        result = asyncio.run(executor.resume("expire-1", {"type": "approve"}))
        assert result.status == "expired"
        assert executor.store.get_interrupt("expire-1").status.value == "expired"

    def test_resume_before_expiry(self):
        clock = _FakeClock()
        executor = _make_executor(clock=clock)
        asyncio.run(executor.execute(_make_request(), "expire-2"))

        clock.advance(23)
        result = asyncio.run(executor.resume("expire-2", {"type": "approve"}))
        assert result.status == "complete"

    def test_sweep(self):
        clock = _FakeClock()
        executor = _make_executor(clock=clock)
        asyncio.run(executor.execute(_make_request(), "sweep-1"))
        asyncio.run(executor.execute(_make_request(), "sweep-2"))

        assert executor.expire_stale() == []
        clock.advance(48)

        assert sorted(executor.expire_stale()) == ["sweep-1", "sweep-2"]
        assert executor.interrupts.list_pending() == []


# ============================================================================
# TestStreamResume
# ============================================================================


class TestStreamResume:
    """Resumed runs stream their own events."""

    def test_stream_resume(self):
        executor = _make_executor()
        asyncio.run(executor.execute(_make_request(), "stream-resume"))

        async def _collect():
            return [e async for e in executor.stream_resume("stream-resume", {"type": "approve"})]

        events = asyncio.run(_collect())

        assert events[0].type == "resumed"
        assert events[0].node == "attraction_enricher"
        assert events[-1].type == "complete"
        assert "weather_scout" not in {e.node for e in events if e.node}

    def test_stream_interrupt_event(self):
        executor = _make_executor()

        async def _collect():
            return [e async for e in executor.stream(_make_request(), "stream-interrupt")]

        events = asyncio.run(_collect())

        assert events[-1].type == "interrupt"
        assert events[-1].data["interrupt_type"] == "itinerary_review"
        assert events[-1].data["thread_id"] == "stream-interrupt"
        assert events[-1].data["interrupt_id"]


# ============================================================================
# TestModifications
# ============================================================================


class TestModifications:
    """Tests for apply_itinerary_modifications."""

    def test_remove(self):
        draft = apply_itinerary_modifications(
            _make_draft(), [AttractionModification(type="remove", day_index=0, attraction_index=0)]
        )
        assert [a.name for a in draft.days[0].attractions] == ["B"]
        assert draft.total_attractions == 2

    def test_add(self):
        new = AttractionSlot(time="16:00", name="D")
        draft = apply_itinerary_modifications(
            _make_draft(), [AttractionModification(type="add", day_index=1, attraction=new)]
        )
        assert [a.name for a in draft.days[1].attractions] == ["C", "D"]
        assert draft.total_attractions == 4

    def test_reorder(self):
        draft = apply_itinerary_modifications(
            _make_draft(), [AttractionModification(type="reorder", day_index=0, from_index=0, to_index=1)]
        )
        assert [a.name for a in draft.days[0].attractions] == ["B", "A"]

    def test_update(self):
        replacement = AttractionSlot(time="10:00", name="A2")
        draft = apply_itinerary_modifications(
            _make_draft(),
            [AttractionModification(type="update", day_index=0, attraction_index=0, attraction=replacement)],
        )
        assert draft.days[0].attractions[0].name == "A2"

    def test_out_of_range_skipped(self):
        original = _make_draft()
        draft = apply_itinerary_modifications(
            original,
            [
                AttractionModification(type="remove", day_index=5, attraction_index=0),
                AttractionModification(type="remove", day_index=1, attraction_index=3),
            ],
        )
        assert draft.total_attractions == original.total_attractions

    def test_input_not_mutated(self):
        original = _make_draft()
        apply_itinerary_modifications(
            original, [AttractionModification(type="remove", day_index=0, attraction_index=0)]
        )
        assert len(original.days[0].attractions) == 2


# ============================================================================
# TestAdjustmentOptions
# ============================================================================


class TestAdjustmentOptions:
    """Tests for generate_budget_adjustment_options."""

    def test_sorted_by_savings(self):
        options = generate_budget_adjustment_options(_make_budget_result(), overage_amount=1000.0)
        savings = [o.savings_amount for o in options]
        assert savings == sorted(savings, reverse=True)
        assert options[0].id == "downgrade_hotel"

    def test_savings_capped_at_overage(self):
        options = generate_budget_adjustment_options(_make_budget_result(), overage_amount=20.0)
        assert all(o.savings_amount <= 20.0 for o in options)

    def test_zero_components_omitted(self):
        options = generate_budget_adjustment_options(
            _make_budget_result(transport=0.0), overage_amount=100.0
        )
        assert "cheaper_transport" not in [o.id for o in options]


# ============================================================================
# TestValidateDecision
# ============================================================================


class TestValidateDecision:
    @pytest.mark.parametrize(
        "interrupt_type,decision_type",
        [
            (InterruptType.ITINERARY_REVIEW, "approve"),
            (InterruptType.ITINERARY_REVIEW, "retry"),
            (InterruptType.BUDGET_DECISION, "retry"),
            (InterruptType.FINAL_CONFIRM, "confirm"),
            (InterruptType.FINAL_CONFIRM, "restart"),
        ],
    )
    def test_valid(self, interrupt_type, decision_type):
        validate_decision(interrupt_type, UserDecision(type=decision_type))

    @pytest.mark.parametrize(
        "interrupt_type,decision_type",
        [
            (InterruptType.ITINERARY_REVIEW, "confirm"),
            (InterruptType.BUDGET_DECISION, "restart"),
            (InterruptType.FINAL_CONFIRM, "retry"),
        ],
    )
    def test_invalid(self, interrupt_type, decision_type):
        with pytest.raises(InvalidDecisionError):
            validate_decision(interrupt_type, UserDecision(type=decision_type))
