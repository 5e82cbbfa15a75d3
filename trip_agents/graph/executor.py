"""
Trip workflow executor.

Runs the compiled graph for one thread at a time: fresh runs, streamed
runs, and resumes of suspended threads. Suspension, completion and
failure all end here, so this is where checkpoints and interrupt records
are written and where fatal errors become an `error` result with a
minimal itinerary.
"""

import asyncio
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from trip_agents.graph.build import NodeFn, create_node_specs, create_trip_graph
from trip_agents.graph.config import WorkflowConfig, get_config
from trip_agents.graph.events import EventSink, ProgressEvent
from trip_agents.graph.hitl import apply_decision, default_resume_node
from trip_agents.graph.nodes import get_workflow_nodes
from trip_agents.graph.state import TripState, create_initial_state
from trip_agents.hitl.manager import InterruptManager
from trip_agents.hitl.schemas import InterruptStatus, InterruptType, UserDecision
from trip_agents.integrations.interfaces import MapProvider, WeatherProvider
from trip_agents.integrations.mock import MockMapProvider, MockWeatherProvider
from trip_agents.nodes.finalize import build_fallback_itinerary
from trip_agents.observability.metrics import MetricsCollector
from trip_agents.observability.tracer import Tracer, create_tracer
from trip_agents.persistence.checkpoint_store import (
    Checkpoint,
    CheckpointStore,
    create_checkpoint_store,
)
from trip_agents.shared.contracts.trip_request import TripRequest
from trip_agents.shared.errors import (
    CheckpointStoreError,
    InterruptExpiredError,
    InterruptNotPendingError,
    InvalidDecisionError,
    ThreadNotFoundError,
)
from trip_agents.shared.llm.client import LLMCaller, has_api_key, make_llm_caller
from trip_agents.shared.logging.config import log_state_transition
from trip_agents.shared.logging.debug_logger import calculate_cost


logger = logging.getLogger(__name__)

# Thread whose graph run is in progress; node tasks inherit it
_current_thread: ContextVar[Optional[str]] = ContextVar("trip_current_thread", default=None)


class WorkflowResult(BaseModel):
    """Outcome of execute/resume/cancel."""

    thread_id: str
    status: str = Field(
        description="complete | interrupt | error | expired | not_found | cancelled"
    )
    final_itinerary: Optional[Dict[str, Any]] = None
    interrupt: Optional[Dict[str, Any]] = Field(default=None, description="Pending interrupt record")
    budget_result: Optional[Dict[str, Any]] = None
    retry_count: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None
    error_code: Optional[str] = Field(
        default=None, description="Machine-readable reason for error results"
    )
    state: Optional[Dict[str, Any]] = Field(default=None, description="Final TripState")


class _ProgressSink:
    """
    Forwards events and keeps reported progress monotonic.

    Retries re-run earlier nodes, so raw node percentages can go down;
    node_complete events are clamped to the highest value seen and a
    `progress` event is emitted whenever that value increases.
    """

    def __init__(self, sink: EventSink):
        self.sink = sink
        self.progress = 0

    async def __call__(self, event: ProgressEvent) -> None:
        if event.type != "node_complete" or event.progress is None:
            await self.sink(event)
            return
        clamped = max(self.progress, event.progress)
        await self.sink(event.model_copy(update={"progress": clamped}))
        if clamped > self.progress:
            self.progress = clamped
            await self.sink(ProgressEvent(type="progress", thread_id=event.thread_id, progress=clamped))


_DONE = object()


def _not_pending_code(error: InterruptNotPendingError) -> str:
    return "already_resumed" if error.current_status == InterruptStatus.RESUMED.value else "not_pending"


class TripWorkflowExecutor:
    """
    Runs and resumes trip workflows.

    Args:
        config: Workflow configuration (defaults from get_config())
        weather_provider: Forecast source; deterministic mock when None
        map_provider: Map source; deterministic mock when None
        llm: Async LLM caller; built from config when use_llm is set and
            an API key is available
        store: Checkpoint store; from config.checkpoint_db when None
        tracer: Span sink; from config.tracer when None
        metrics: Metrics collector shared with the API
        clock: Epoch-seconds clock for interrupt timestamps
        agent_overrides: Node id -> replacement node function
    """

    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        weather_provider: Optional[WeatherProvider] = None,
        map_provider: Optional[MapProvider] = None,
        llm: Optional[LLMCaller] = None,
        store: Optional[CheckpointStore] = None,
        tracer: Optional[Tracer] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
        agent_overrides: Optional[Dict[str, NodeFn]] = None,
    ):
        self.config = config or get_config()
        self.clock = clock
        self.metrics = metrics or MetricsCollector()
        self.tracer = tracer or create_tracer(self.config.tracer, self.config.debug_logs_dir)
        self.store = store or create_checkpoint_store(self.config.checkpoint_db)
        self.interrupts = InterruptManager(
            self.store,
            ttl_hours=self.config.hitl.interrupt_ttl_hours,
            clock=clock,
            metrics=self.metrics,
        )

        if llm is None and self.config.use_llm:
            if has_api_key():
                llm = make_llm_caller(self.config.model, self.config.llm_timeout, self._record_llm_usage)
            else:
                logger.warning("use_llm is set but no OpenAI API key found; using rule-based agents")
        self.llm = llm

        specs = create_node_specs(
            self.config,
            weather_provider or MockWeatherProvider(),
            map_provider or MockMapProvider(),
            llm=self.llm,
            metrics=self.metrics,
            overrides=agent_overrides,
        )
        self.app = create_trip_graph(specs, self.tracer, self.metrics)

    def _record_llm_usage(self, model: str, duration_ms: float, usage: Dict[str, int]) -> None:
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        self.metrics.inc("trip_llm_tokens_total", {"model": model}, input_tokens + output_tokens)
        thread_id = _current_thread.get()
        if thread_id is not None:
            self.tracer.record_llm_call(thread_id, model, duration_ms, input_tokens, output_tokens)
        logger.info(
            f"LLM usage | model={model}, duration={duration_ms:.0f}ms, tokens={input_tokens}+{output_tokens}, "
            f"cost=${calculate_cost(model, input_tokens, output_tokens):.6f}"
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _finish(self, result: WorkflowResult) -> WorkflowResult:
        self.metrics.inc("trip_workflow_runs_total", {"status": result.status})
        return result

    def _error_result(
        self,
        thread_id: str,
        message: str,
        destination: str = "",
        state: Optional[Dict[str, Any]] = None,
    ) -> WorkflowResult:
        meta = (state or {}).get("meta") or {}
        return self._finish(
            WorkflowResult(
                thread_id=thread_id,
                status="error",
                final_itinerary=build_fallback_itinerary(message, destination).model_dump(mode="json"),
                retry_count=(state or {}).get("retry_count", 0) or 0,
                errors=list(meta.get("errors", [])),
                message=message,
                error_code="workflow_failed",
                state=state,
            )
        )

    def _status_result(self, thread_id: str, status: str, message: str, error_code: Optional[str] = None):
        return self._finish(
            WorkflowResult(thread_id=thread_id, status=status, message=message, error_code=error_code)
        )

    # ------------------------------------------------------------------
    # Graph runs
    # ------------------------------------------------------------------

    async def _run(self, state: TripState, sink: Optional[EventSink]) -> WorkflowResult:
        thread_id = state["thread_id"]
        _log = f"[thread={thread_id}] [graph=trip] [executor] "
        request = state.get("user_input") or {}
        destination = request.get("destination", "")

        trace = self.tracer.start_trace(
            thread_id, "trip_workflow", {"resume_from": state.get("resume_from")}
        )
        run_config = {
            "recursion_limit": self.config.effective_recursion_limit(),
            "configurable": {"thread_id": thread_id, "event_sink": sink},
        }
        token = _current_thread.set(thread_id)
        try:
            final_state = await self.app.ainvoke(state, config=run_config)
        except Exception as e:
            logger.exception(f"{_log}Workflow failed: {e}")
            self.tracer.end_trace(trace, status="error", error=str(e))
            return self._error_result(thread_id, f"Workflow failed: {e}", destination, dict(state))
        finally:
            _current_thread.reset(token)

        final_state = dict(final_state)
        meta = final_state.get("meta") or {}
        pending = final_state.get("pending_interrupt")

        if pending:
            interrupt_type = InterruptType(pending["interrupt_type"])
            try:
                record = self.interrupts.create(
                    thread_id,
                    interrupt_type,
                    pending.get("message", ""),
                    pending.get("options") or {},
                    final_state,
                    default_resume_node(interrupt_type).value,
                )
            except CheckpointStoreError as e:
                logger.error(f"{_log}Could not persist suspension: {e}")
                self.tracer.end_trace(trace, status="error", error=str(e))
                return self._error_result(thread_id, str(e), destination, final_state)
            log_state_transition("workflow_suspended", final_state, {"interrupt_type": interrupt_type.value})
            self.tracer.end_trace(trace, status="interrupt")
            return self._finish(
                WorkflowResult(
                    thread_id=thread_id,
                    status="interrupt",
                    interrupt=record.model_dump(mode="json"),
                    budget_result=final_state.get("budget_result"),
                    retry_count=final_state.get("retry_count", 0) or 0,
                    errors=list(meta.get("errors", [])),
                    message=record.message,
                    state=final_state,
                )
            )

        try:
            self.store.save_checkpoint(
                Checkpoint(thread_id=thread_id, state=final_state, next_node=None, created_at=self.clock())
            )
        except CheckpointStoreError as e:
            # the itinerary is still returned; only get_status loses it
            logger.error(f"{_log}Could not persist final checkpoint: {e}")
        self.interrupts.supersede(thread_id)
        log_state_transition("workflow_complete", final_state)
        self.tracer.end_trace(trace, status="ok")
        logger.info(
            f"{_log}Workflow complete | retry_count={final_state.get('retry_count', 0)}, "
            f"errors={len(meta.get('errors', []))}"
        )
        return self._finish(
            WorkflowResult(
                thread_id=thread_id,
                status="complete",
                final_itinerary=final_state.get("final_itinerary"),
                budget_result=final_state.get("budget_result"),
                retry_count=final_state.get("retry_count", 0) or 0,
                errors=list(meta.get("errors", [])),
                state=final_state,
            )
        )

    async def _execute(
        self,
        user_input: Union[TripRequest, Dict[str, Any], None],
        thread_id: Optional[str],
        sink: Optional[EventSink],
    ) -> WorkflowResult:
        thread_id = thread_id or str(uuid.uuid4())
        _log = f"[thread={thread_id}] [graph=trip] [executor] "

        if isinstance(user_input, TripRequest):
            user_input = user_input.model_dump(mode="json")
        try:
            request = TripRequest.model_validate(user_input)
        except ValidationError as e:
            logger.warning(f"{_log}Invalid trip request: {e.error_count()} error(s)")
            destination = user_input.get("destination", "") if isinstance(user_input, dict) else ""
            return self._error_result(thread_id, f"Invalid trip request: {e}", destination)

        logger.info(
            f"{_log}Workflow starting | destination={request.destination}, days={request.trip_days}, "
            f"budget={request.budget} {request.currency}, hitl={self.config.hitl.enabled}"
        )
        state = create_initial_state(request.model_dump(mode="json"), thread_id)
        return await self._run(state, sink)

    async def _resume(
        self,
        thread_id: str,
        decision: Union[UserDecision, Dict[str, Any]],
        sink: Optional[EventSink],
    ) -> WorkflowResult:
        _log = f"[thread={thread_id}] [graph=trip] [executor] "
        try:
            if not isinstance(decision, UserDecision):
                decision = UserDecision.model_validate(decision)
        except ValidationError as e:
            return self._status_result(thread_id, "error", f"Invalid decision: {e}", "invalid_decision")

        if decision.type == "cancel":
            return self._cancel(thread_id, decision)

        try:
            record, checkpoint = self.interrupts.begin_resume(thread_id, decision)
        except ThreadNotFoundError as e:
            if self.store.load_checkpoint(thread_id) is not None:
                return self._status_result(thread_id, "error", "No pending interrupt for thread", "not_pending")
            return self._status_result(thread_id, "not_found", str(e))
        except InterruptExpiredError as e:
            return self._status_result(thread_id, "expired", str(e))
        except InterruptNotPendingError as e:
            return self._status_result(thread_id, "error", str(e), _not_pending_code(e))
        except InvalidDecisionError as e:
            return self._status_result(thread_id, "error", str(e), "invalid_decision")

        state, entry = apply_decision(
            checkpoint.state, record, decision, self.config.max_retries, now=self.clock()
        )
        logger.info(f"{_log}Resuming | interrupt={record.interrupt_type.value}, entry={entry.value}")
        if sink is not None:
            await sink(
                ProgressEvent(
                    type="resumed",
                    thread_id=thread_id,
                    node=entry.value,
                    data={"interrupt_type": record.interrupt_type.value, "decision": decision.type},
                )
            )
        result = await self._run(state, sink)
        if result.error_code == "workflow_failed":
            self._save_failed_checkpoint(thread_id, state, result)
        return result

    def _save_failed_checkpoint(self, thread_id: str, state: Dict[str, Any], result: WorkflowResult) -> None:
        """Mark a resumed thread whose run failed as finished with an error."""
        meta = dict(state.get("meta") or {})
        meta["flags"] = {**meta.get("flags", {}), "workflow_failed": result.message}
        failed = {**state, "meta": meta, "final_itinerary": result.final_itinerary, "pending_interrupt": None}
        try:
            self.store.save_checkpoint(
                Checkpoint(thread_id=thread_id, state=failed, next_node=None, created_at=self.clock())
            )
        except CheckpointStoreError as e:
            logger.error(f"[thread={thread_id}] [graph=trip] [executor] Could not persist failed run: {e}")

    def _cancel(self, thread_id: str, decision: Optional[UserDecision] = None) -> WorkflowResult:
        try:
            self.interrupts.cancel(thread_id, decision)
        except ThreadNotFoundError as e:
            return self._status_result(thread_id, "not_found", str(e))
        except InterruptExpiredError as e:
            return self._status_result(thread_id, "expired", str(e))
        except InterruptNotPendingError as e:
            return self._status_result(thread_id, "error", str(e), _not_pending_code(e))
        return self._status_result(thread_id, "cancelled", "Workflow cancelled by user")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        user_input: Union[TripRequest, Dict[str, Any], None],
        thread_id: Optional[str] = None,
    ) -> WorkflowResult:
        """
        Run a workflow to completion or to its first suspension.

        Returns:
            WorkflowResult with status complete, interrupt or error.
        """
        return await self._execute(user_input, thread_id, None)

    async def resume(
        self,
        thread_id: str,
        decision: Union[UserDecision, Dict[str, Any]],
    ) -> WorkflowResult:
        """
        Answer the pending interrupt of a thread and continue the run.

        Returns:
            WorkflowResult with status complete, interrupt, error, expired,
            not_found or cancelled.
        """
        return await self._resume(thread_id, decision, None)

    async def _stream(
        self,
        thread_id: str,
        run: Callable[[EventSink], Awaitable[WorkflowResult]],
        first_events: List[ProgressEvent],
    ) -> AsyncIterator[ProgressEvent]:
        queue: asyncio.Queue = asyncio.Queue()

        async def _enqueue(event: ProgressEvent) -> None:
            await queue.put(event)

        for event in first_events:
            await queue.put(event)

        task = asyncio.create_task(run(_ProgressSink(_enqueue)))
        task.add_done_callback(lambda _: queue.put_nowait(_DONE))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
            result = task.result()
        finally:
            if not task.done():
                task.cancel()

        yield self._terminal_event(result)

    def _terminal_event(self, result: WorkflowResult) -> ProgressEvent:
        if result.status == "complete":
            return ProgressEvent(
                type="complete",
                thread_id=result.thread_id,
                progress=100,
                data={"result": result.model_dump(mode="json", exclude={"state"})},
            )
        if result.status == "interrupt":
            interrupt = result.interrupt or {}
            return ProgressEvent(
                type="interrupt",
                thread_id=result.thread_id,
                data={
                    "interrupt_id": interrupt.get("interrupt_id"),
                    "interrupt_type": interrupt.get("interrupt_type"),
                    "message": interrupt.get("message"),
                    "options": interrupt.get("options"),
                    "expires_at": interrupt.get("expires_at"),
                    "thread_id": result.thread_id,
                },
            )
        return ProgressEvent(
            type=result.status if result.status in ("expired", "not_found", "cancelled") else "error",
            thread_id=result.thread_id,
            data={"message": result.message, "error_code": result.error_code,
                  "final_itinerary": result.final_itinerary},
        )

    async def stream(
        self,
        user_input: Union[TripRequest, Dict[str, Any], None],
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Run a workflow and yield progress events.

        Events: start, then node_start/node_complete/progress per node,
        then exactly one terminal event (complete, interrupt or error).
        """
        thread_id = thread_id or str(uuid.uuid4())
        start = ProgressEvent(
            type="start", thread_id=thread_id, progress=0, data={"nodes": get_workflow_nodes()}
        )
        async for event in self._stream(
            thread_id, lambda sink: self._execute(user_input, thread_id, sink), [start]
        ):
            yield event

    async def stream_resume(
        self,
        thread_id: str,
        decision: Union[UserDecision, Dict[str, Any]],
    ) -> AsyncIterator[ProgressEvent]:
        """Resume a thread and yield progress events (resumed, node events, terminal)."""
        async for event in self._stream(
            thread_id, lambda sink: self._resume(thread_id, decision, sink), []
        ):
            yield event

    async def cancel(self, thread_id: str) -> WorkflowResult:
        """Cancel the pending interrupt of a thread and drop its checkpoint."""
        return self._cancel(thread_id)

    def get_status(self, thread_id: str) -> Dict[str, Any]:
        """
        Current status of a thread.

        Returns:
            Dict with thread_id, status (interrupt, complete, error,
            expired, cancelled, resumed or not_found), the interrupt record and the
            key checkpointed fields.
        """
        record = self.store.get_interrupt(thread_id)
        checkpoint = self.store.load_checkpoint(thread_id)
        if record is None and checkpoint is None:
            return {"thread_id": thread_id, "status": "not_found"}

        if record is not None and record.status == InterruptStatus.PENDING:
            status = "expired" if record.is_expired(self.clock()) else "interrupt"
        elif checkpoint is not None and checkpoint.next_node is None:
            flags = (checkpoint.state.get("meta") or {}).get("flags") or {}
            status = "error" if flags.get("workflow_failed") else "complete"
        else:
            status = record.status.value if record is not None else "unknown"

        state = checkpoint.state if checkpoint is not None else {}
        return {
            "thread_id": thread_id,
            "status": status,
            "interrupt": record.model_dump(mode="json") if record is not None else None,
            "next_node": checkpoint.next_node if checkpoint is not None else None,
            "retry_count": state.get("retry_count", 0),
            "budget_result": state.get("budget_result"),
            "final_itinerary": state.get("final_itinerary"),
            "updated_at": checkpoint.created_at if checkpoint is not None else None,
        }

    def expire_stale(self, now: Optional[float] = None) -> List[str]:
        """Expire every pending interrupt past its expiry; returns thread ids."""
        return self.interrupts.expire_stale(now)


def create_trip_workflow(config: Optional[WorkflowConfig] = None, **kwargs: Any) -> TripWorkflowExecutor:
    """
    Create a trip workflow executor.

    Each call builds an independent executor; there is no shared instance.
    Keyword arguments are passed to TripWorkflowExecutor.
    """
    return TripWorkflowExecutor(config=config, **kwargs)
