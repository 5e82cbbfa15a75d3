"""
Interrupt lifecycle manager.

Owns every status change of an InterruptRecord. Expiry is lazy (checked
when a resume arrives) with an explicit sweep for housekeeping. Resumes
go through a compare-and-set on the store, so two concurrent resumes of
the same interrupt cannot both win.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from trip_agents.hitl.schemas import (
    VALID_DECISIONS,
    InterruptRecord,
    InterruptStatus,
    InterruptType,
    UserDecision,
)
from trip_agents.persistence.checkpoint_store import Checkpoint, CheckpointStore
from trip_agents.shared.errors import (
    InterruptExpiredError,
    InterruptNotPendingError,
    InvalidDecisionError,
    ThreadNotFoundError,
)


logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24.0


def validate_decision(interrupt_type: InterruptType, decision: UserDecision) -> None:
    """
    Check that a decision fits the interrupt type.

    Raises:
        InvalidDecisionError: Decision type not accepted for this interrupt,
            or a budget 'modify' without an option id.
    """
    allowed = VALID_DECISIONS[interrupt_type]
    if decision.type not in allowed:
        raise InvalidDecisionError(
            f"Decision '{decision.type}' is not valid for {interrupt_type.value}; "
            f"expected one of {', '.join(allowed)}"
        )
    if (
        interrupt_type == InterruptType.BUDGET_DECISION
        and decision.type == "modify"
        and not decision.selected_option_id
    ):
        raise InvalidDecisionError("Budget 'modify' requires selected_option_id")


class InterruptManager:
    """
    Creates, resumes, cancels and expires interrupts.

    Args:
        store: Checkpoint store holding records and checkpoints
        ttl_hours: Time a pending interrupt stays answerable
        clock: Returns epoch seconds; injectable for tests
        metrics: Optional MetricsCollector for lifecycle counts
    """

    def __init__(
        self,
        store: CheckpointStore,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.time,
        metrics=None,
    ):
        self.store = store
        self.ttl_seconds = ttl_hours * 3600
        self.clock = clock
        self.metrics = metrics

    def _count(self, record: InterruptRecord, status: InterruptStatus) -> None:
        if self.metrics is not None:
            self.metrics.inc(
                "trip_interrupts_total",
                {"type": record.interrupt_type.value, "status": status.value},
            )

    def create(
        self,
        thread_id: str,
        interrupt_type: InterruptType,
        message: str,
        options: Dict[str, Any],
        state: Dict[str, Any],
        next_node: Optional[str],
    ) -> InterruptRecord:
        """Persist a pending interrupt together with the checkpoint it suspends."""
        now = self.clock()
        record = InterruptRecord(
            thread_id=thread_id,
            interrupt_id=uuid.uuid4().hex,
            interrupt_type=interrupt_type,
            message=message,
            options=options,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        checkpoint = Checkpoint(thread_id=thread_id, state=state, next_node=next_node, created_at=now)
        self.store.save_suspension(checkpoint, record)
        self._count(record, InterruptStatus.PENDING)
        logger.info(
            f"[thread={thread_id}] [hitl] Interrupt created | type={interrupt_type.value}, "
            f"id={record.interrupt_id}, expires_in={self.ttl_seconds / 3600:g}h"
        )
        return record

    def get(self, thread_id: str) -> Optional[InterruptRecord]:
        return self.store.get_interrupt(thread_id)

    @staticmethod
    def _check_interrupt_id(record: InterruptRecord, decision: Optional[UserDecision]) -> None:
        # a decision for an earlier interrupt on this thread was already applied
        if decision is not None and decision.interrupt_id and decision.interrupt_id != record.interrupt_id:
            raise InterruptNotPendingError(
                f"Interrupt {decision.interrupt_id} on thread {record.thread_id} was already answered",
                record.thread_id,
                current_status=InterruptStatus.RESUMED.value,
            )

    def _require_pending(self, thread_id: str, decision: Optional[UserDecision] = None) -> InterruptRecord:
        record = self.store.get_interrupt(thread_id)
        if record is None:
            raise ThreadNotFoundError(f"No interrupt for thread {thread_id}", thread_id)
        self._check_interrupt_id(record, decision)

        if record.status == InterruptStatus.PENDING and record.is_expired(self.clock()):
            if self.store.transition_interrupt(
                thread_id, InterruptStatus.PENDING, InterruptStatus.EXPIRED
            ):
                self._count(record, InterruptStatus.EXPIRED)
            raise InterruptExpiredError(f"Interrupt for thread {thread_id} has expired", thread_id)

        if record.status == InterruptStatus.EXPIRED:
            raise InterruptExpiredError(f"Interrupt for thread {thread_id} has expired", thread_id)
        if record.status != InterruptStatus.PENDING:
            raise InterruptNotPendingError(
                f"Interrupt for thread {thread_id} already {record.status.value}",
                thread_id,
                current_status=record.status.value,
            )
        return record

    def begin_resume(
        self, thread_id: str, decision: UserDecision
    ) -> Tuple[InterruptRecord, Checkpoint]:
        """
        Claim a pending interrupt for resumption.

        Returns:
            (resumed record, checkpoint to continue from)

        Raises:
            ThreadNotFoundError: No interrupt, or its checkpoint is gone
            InvalidDecisionError: Decision does not fit the interrupt type
            InterruptExpiredError: Interrupt passed its expiry
            InterruptNotPendingError: Interrupt already resumed or cancelled,
                or the decision names an interrupt that was replaced
        """
        record = self.store.get_interrupt(thread_id)
        if record is None:
            raise ThreadNotFoundError(f"No interrupt for thread {thread_id}", thread_id)
        self._check_interrupt_id(record, decision)
        validate_decision(record.interrupt_type, decision)
        record = self._require_pending(thread_id, decision)

        resumed = self.store.transition_interrupt(
            thread_id,
            InterruptStatus.PENDING,
            InterruptStatus.RESUMED,
            user_decision=decision.model_dump(mode="json"),
            at=self.clock(),
            interrupt_id=record.interrupt_id,
        )
        if resumed is None:
            # another resume won the compare-and-set
            raise InterruptNotPendingError(
                f"Interrupt for thread {thread_id} already resumed",
                thread_id,
                current_status=InterruptStatus.RESUMED.value,
            )
        self._count(resumed, InterruptStatus.RESUMED)

        checkpoint = self.store.load_checkpoint(thread_id)
        if checkpoint is None:
            raise ThreadNotFoundError(f"No checkpoint for thread {thread_id}", thread_id)
        logger.info(
            f"[thread={thread_id}] [hitl] Interrupt resumed | type={record.interrupt_type.value}, "
            f"decision={decision.type}"
        )
        return resumed, checkpoint

    def cancel(self, thread_id: str, decision: Optional[UserDecision] = None) -> InterruptRecord:
        """Cancel a pending interrupt and drop its checkpoint."""
        record = self._require_pending(thread_id, decision)
        cancelled = self.store.transition_interrupt(
            thread_id,
            InterruptStatus.PENDING,
            InterruptStatus.CANCELLED,
            user_decision=(decision or UserDecision(type="cancel")).model_dump(mode="json"),
            at=self.clock(),
            interrupt_id=record.interrupt_id,
        )
        if cancelled is None:
            raise InterruptNotPendingError(
                f"Interrupt for thread {thread_id} is no longer pending", thread_id
            )
        self.store.delete_checkpoint(thread_id)
        self._count(record, InterruptStatus.CANCELLED)
        logger.info(f"[thread={thread_id}] [hitl] Interrupt cancelled | type={record.interrupt_type.value}")
        return cancelled

    def supersede(self, thread_id: str) -> bool:
        """
        Expire a still-pending interrupt on a thread that has completed.

        A forced finalize on the same thread wins over the stale interrupt.
        """
        record = self.store.transition_interrupt(
            thread_id, InterruptStatus.PENDING, InterruptStatus.EXPIRED
        )
        if record is not None:
            self._count(record, InterruptStatus.EXPIRED)
            logger.info(f"[thread={thread_id}] [hitl] Stale interrupt expired after completion")
        return record is not None

    def expire_stale(self, now: Optional[float] = None) -> List[str]:
        """Sweep every pending interrupt past its expiry."""
        expired = self.store.expire_pending(now if now is not None else self.clock())
        if self.metrics is not None and expired:
            self.metrics.inc("trip_interrupts_total", {"type": "any", "status": "expired"}, len(expired))
        return expired

    def list_pending(self) -> List[InterruptRecord]:
        return self.store.list_interrupts(InterruptStatus.PENDING)
