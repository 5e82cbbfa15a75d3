"""
Exception taxonomy for the trip workflow.

Expected failures inside agent nodes never surface as exceptions: nodes
degrade and record the problem in ``meta.errors``. The classes below cover
the conditions the executor and the interrupt manager report to callers.
"""

from typing import Optional


class TripWorkflowError(Exception):
    """Base class for workflow errors."""

    status: str = "error"

    def __init__(self, message: str, thread_id: Optional[str] = None):
        super().__init__(message)
        self.thread_id = thread_id


class ThreadNotFoundError(TripWorkflowError):
    """No checkpoint or interrupt exists for the requested thread."""

    status = "not_found"


class InterruptExpiredError(TripWorkflowError):
    """The pending interrupt passed its expiry time before the user answered."""

    status = "expired"


class InterruptNotPendingError(TripWorkflowError):
    """The interrupt already reached a terminal status (resumed, cancelled, expired)."""

    def __init__(self, message: str, thread_id: Optional[str] = None, current_status: Optional[str] = None):
        super().__init__(message, thread_id)
        self.current_status = current_status


class InvalidDecisionError(TripWorkflowError):
    """The user decision does not fit the interrupt type."""


class CheckpointStoreError(TripWorkflowError):
    """The checkpoint store could not complete a write."""
