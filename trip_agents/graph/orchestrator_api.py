"""
FastAPI endpoints for the trip workflow.

Start runs (blocking or streamed as server-sent events), answer interrupts,
inspect and cancel threads, and expose metrics. The executor is read from
``app.state.workflow`` so each application owns its own instance.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from trip_agents.graph.executor import TripWorkflowExecutor, WorkflowResult
from trip_agents.graph.nodes import get_workflow_nodes
from trip_agents.hitl.schemas import UserDecision
from trip_agents.shared.contracts.trip_request import TripRequest


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workflow", tags=["workflow"])


# ============================================================================
# Request/Response Models
# ============================================================================


class StartWorkflowRequest(BaseModel):
    """Request to start a trip workflow."""

    trip: TripRequest = Field(description="Trip request")
    thread_id: Optional[str] = Field(default=None, description="Thread id; generated when omitted")


class WorkflowResponse(BaseModel):
    """Result of a start, resume or cancel call."""

    thread_id: str
    status: str = Field(description="complete, interrupt, error or cancelled")
    final_itinerary: Optional[Dict[str, Any]] = None
    interrupt: Optional[Dict[str, Any]] = None
    budget_result: Optional[Dict[str, Any]] = None
    retry_count: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================


_ERROR_CODE_STATUS = {
    "already_resumed": status.HTTP_409_CONFLICT,
    "not_pending": status.HTTP_409_CONFLICT,
    "invalid_decision": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def get_workflow(request: Request) -> TripWorkflowExecutor:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workflow executor is not configured",
        )
    return workflow


def _to_response(result: WorkflowResult) -> WorkflowResponse:
    """Map executor results to HTTP: lookups and conflicts become errors."""
    if result.status == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    if result.status == "expired":
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=result.message)
    if result.status == "error" and result.error_code in _ERROR_CODE_STATUS:
        raise HTTPException(status_code=_ERROR_CODE_STATUS[result.error_code], detail=result.message)
    return WorkflowResponse(**result.model_dump(exclude={"state", "error_code"}))


async def _sse(events):
    async for event in events:
        yield event.to_sse()


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/start", response_model=WorkflowResponse)
async def start_workflow(body: StartWorkflowRequest, request: Request):
    """Run a workflow until it completes or suspends."""
    workflow = get_workflow(request)
    logger.info(
        f"[thread={body.thread_id or 'new'}] [graph=trip] [api=start] "
        f"Starting | destination={body.trip.destination}, budget={body.trip.budget}"
    )
    result = await workflow.execute(body.trip, body.thread_id)
    return _to_response(result)


@router.post("/stream")
async def stream_workflow(body: StartWorkflowRequest, request: Request):
    """Run a workflow and stream progress events as server-sent events."""
    workflow = get_workflow(request)
    return StreamingResponse(
        _sse(workflow.stream(body.trip, body.thread_id)),
        media_type="text/event-stream",
    )


@router.post("/{thread_id}/resume", response_model=WorkflowResponse)
async def resume_workflow(thread_id: str, decision: UserDecision, request: Request):
    """Answer the pending interrupt of a thread and continue the run."""
    workflow = get_workflow(request)
    logger.info(f"[thread={thread_id}] [graph=trip] [api=resume] Decision={decision.type}")
    result = await workflow.resume(thread_id, decision)
    return _to_response(result)


@router.post("/{thread_id}/resume/stream")
async def stream_resume_workflow(thread_id: str, decision: UserDecision, request: Request):
    """Resume a thread and stream progress events."""
    workflow = get_workflow(request)
    return StreamingResponse(
        _sse(workflow.stream_resume(thread_id, decision)),
        media_type="text/event-stream",
    )


@router.get("/{thread_id}/status")
async def get_workflow_status(thread_id: str, request: Request) -> Dict[str, Any]:
    """Current status, pending interrupt and key checkpointed fields of a thread."""
    workflow = get_workflow(request)
    info = workflow.get_status(thread_id)
    if info["status"] == "not_found":
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Thread {thread_id} not found",
        )
    return info


@router.delete("/{thread_id}", response_model=WorkflowResponse)
async def cancel_workflow(thread_id: str, request: Request):
    """Cancel the pending interrupt of a thread."""
    workflow = get_workflow(request)
    result = await workflow.cancel(thread_id)
    return _to_response(result)


@router.get("/nodes")
async def list_nodes() -> List[Dict[str, Any]]:
    """Ordered node list for progress displays."""
    return get_workflow_nodes()


@router.get("/metrics", response_class=PlainTextResponse)
async def export_metrics(request: Request) -> str:
    """Metrics in Prometheus text format."""
    return get_workflow(request).metrics.export_prometheus()
