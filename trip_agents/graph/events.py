"""Progress events emitted while a workflow runs or resumes."""

import time
from typing import Any, Awaitable, Callable, Dict, Literal, Optional

from pydantic import BaseModel, Field


EventType = Literal[
    "start",
    "node_start",
    "node_complete",
    "progress",
    "interrupt",
    "resumed",
    "error",
    "expired",
    "not_found",
    "cancelled",
    "complete",
]


class ProgressEvent(BaseModel):
    """One event of the progress stream."""

    type: EventType
    thread_id: Optional[str] = None
    node: Optional[str] = Field(default=None, description="Node id for node_* events")
    progress: Optional[int] = Field(default=None, ge=0, le=100, description="Percent complete")
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    def to_sse(self) -> str:
        """Server-sent events frame."""
        return f"data: {self.model_dump_json()}\n\n"


EventSink = Callable[[ProgressEvent], Awaitable[None]]
