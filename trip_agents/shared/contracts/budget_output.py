"""
Budget critic output contract.

The budget critic classifies every pass into one of three outcomes. Only
OVER_BUDGET_RETRY carries feedback for the next planner pass.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BudgetOutcome(str, Enum):
    WITHIN_BUDGET = "within_budget"
    OVER_BUDGET_RETRY = "over_budget_retry"
    OVER_BUDGET_EXHAUSTED = "over_budget_exhausted"


class BudgetFeedbackAction(str, Enum):
    DOWNGRADE_HOTEL = "downgrade_hotel"
    REDUCE_ATTRACTIONS = "reduce_attractions"
    CHEAPER_TRANSPORT = "cheaper_transport"
    ADJUST_MEALS = "adjust_meals"


class CostBreakdown(BaseModel):
    accommodation: float = 0.0
    transport: float = 0.0
    dining: float = 0.0
    attractions: float = 0.0

    @property
    def total(self) -> float:
        return self.accommodation + self.transport + self.dining + self.attractions


class BudgetFeedback(BaseModel):
    """Remediation request consumed by the next planner pass and resource agents."""

    action: BudgetFeedbackAction
    target_reduction: float = Field(ge=0, description="Excess over the allowed ceiling")
    suggestion: str


class BudgetResult(BaseModel):
    """Contract for budget critic output."""

    outcome: BudgetOutcome
    total_cost: float
    budget: float
    allowed_ceiling: float
    budget_utilization: float = Field(description="total_cost / budget")
    is_within_budget: bool
    cost_breakdown: CostBreakdown
    feedback: Optional[BudgetFeedback] = None
    retry_count: int = Field(ge=0, description="Retry count the pass was evaluated at")
    accepted_overage: bool = Field(
        default=False, description="True when the user accepted the overage"
    )
