"""Execution trace records kept in TripState.meta."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class AgentExecution(BaseModel):
    """One node run."""

    agent: str
    start_time: float = Field(description="Epoch seconds")
    end_time: float = Field(description="Epoch seconds")
    duration_ms: float
    status: Literal["success", "degraded", "failed"]
    error: Optional[str] = None


class AgentError(BaseModel):
    """A degraded or failed step inside a node."""

    agent: str
    error: str
    timestamp: float = Field(description="Epoch seconds")
