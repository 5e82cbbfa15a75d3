"""
Human-in-the-loop schemas.

Interrupt records, user decisions and the option payloads shown to the
user at each suspension point.
"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from trip_agents.shared.contracts.draft_itinerary import AttractionSlot


class InterruptType(str, Enum):
    ITINERARY_REVIEW = "itinerary_review"
    BUDGET_DECISION = "budget_decision"
    FINAL_CONFIRM = "final_confirm"


class InterruptStatus(str, Enum):
    PENDING = "pending"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = (InterruptStatus.RESUMED, InterruptStatus.CANCELLED, InterruptStatus.EXPIRED)

DecisionType = Literal["approve", "modify", "cancel", "retry", "confirm", "restart"]

# Decisions accepted for each interrupt type
VALID_DECISIONS: Dict[InterruptType, tuple] = {
    InterruptType.ITINERARY_REVIEW: ("approve", "modify", "cancel", "retry"),
    InterruptType.BUDGET_DECISION: ("approve", "modify", "cancel", "retry"),
    InterruptType.FINAL_CONFIRM: ("confirm", "approve", "restart", "cancel"),
}


# ============================================================================
# Decisions
# ============================================================================


class AttractionModification(BaseModel):
    """
    One edit to the draft itinerary.

    Day and attraction indices are 0-based positions in the draft.
    """

    type: Literal["add", "remove", "reorder", "update"]
    day_index: Optional[int] = Field(default=None, ge=0)
    attraction_index: Optional[int] = Field(default=None, ge=0)
    attraction: Optional[AttractionSlot] = Field(
        default=None, description="Slot to add, or fields to apply on update"
    )
    from_index: Optional[int] = Field(default=None, ge=0, description="Reorder: current position")
    to_index: Optional[int] = Field(default=None, ge=0, description="Reorder: new position")


class UserDecision(BaseModel):
    """A user's answer to a pending interrupt."""

    type: DecisionType
    modifications: List[AttractionModification] = Field(default_factory=list)
    selected_option_id: Optional[str] = Field(
        default=None, description="Budget adjustment option chosen on 'modify'"
    )
    accept_overage: bool = Field(default=False, description="Budget decision: keep the plan as is")
    comment: Optional[str] = None
    interrupt_id: Optional[str] = Field(
        default=None, description="Interrupt this decision answers; a stale id is rejected"
    )


# ============================================================================
# Options
# ============================================================================


class BudgetAdjustmentOption(BaseModel):
    id: str
    label: str
    description: str
    savings_amount: float = Field(ge=0)
    impact: Literal["low", "medium", "high"]


# ============================================================================
# Interrupt record
# ============================================================================


class InterruptRecord(BaseModel):
    """
    A suspension point awaiting a user decision.

    One record per thread; status moves pending -> resumed | cancelled |
    expired and never leaves a terminal status. A later suspension on the
    same thread replaces the record with a new interrupt_id.
    """

    thread_id: str
    interrupt_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    interrupt_type: InterruptType
    message: str
    options: Dict[str, Any] = Field(default_factory=dict)
    status: InterruptStatus = InterruptStatus.PENDING
    created_at: float = Field(description="Epoch seconds")
    expires_at: float = Field(description="Epoch seconds")
    resumed_at: Optional[float] = None
    user_decision: Optional[Dict[str, Any]] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
