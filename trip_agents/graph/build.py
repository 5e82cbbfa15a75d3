"""
Trip graph construction.

Builds the StateGraph from the adjacency table in graph/nodes.py. Every
node is wrapped by instrument_node, which reports progress events, opens
a tracer span, records an AgentExecution into meta and, when the node
raises, substitutes the node's fallback patch so the run continues.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from trip_agents.graph.config import WorkflowConfig
from trip_agents.graph.events import ProgressEvent
from trip_agents.graph.hitl import with_budget_decision, with_itinerary_review
from trip_agents.graph.nodes import (
    ADJACENCY,
    CONDITIONAL_EDGES,
    FAN_OUT_NODES,
    RESUME_TARGETS,
    NodeId,
    progress_for,
)
from trip_agents.graph.router import route_after_budget, route_after_planner, route_entry
from trip_agents.graph.state import TripState, error_entry
from trip_agents.integrations.interfaces import MapProvider, WeatherProvider
from trip_agents.nodes import (
    accommodation,
    attraction_enricher,
    budget_critic,
    dining,
    finalize,
    itinerary_planner,
    transport,
    weather_scout,
)
from trip_agents.observability.metrics import MetricsCollector
from trip_agents.observability.tracer import Tracer
from trip_agents.shared.contracts.run_meta import AgentExecution
from trip_agents.shared.llm.client import LLMCaller


logger = logging.getLogger(__name__)

NodeFn = Callable[[TripState], Awaitable[Dict[str, Any]]]
FallbackFn = Callable[[TripState], Dict[str, Any]]

_FALLBACKS: Dict[NodeId, FallbackFn] = {
    NodeId.WEATHER_SCOUT: weather_scout.fallback_patch,
    NodeId.ITINERARY_PLANNER: itinerary_planner.fallback_patch,
    NodeId.ATTRACTION_ENRICHER: attraction_enricher.fallback_patch,
    NodeId.ACCOMMODATION_AGENT: accommodation.fallback_patch,
    NodeId.TRANSPORT_AGENT: transport.fallback_patch,
    NodeId.DINING_AGENT: dining.fallback_patch,
    NodeId.BUDGET_CRITIC: budget_critic.fallback_patch,
    NodeId.FINALIZE: finalize.fallback_patch,
}


@dataclass
class NodeSpec:
    fn: NodeFn
    fallback: FallbackFn


def create_node_specs(
    config: WorkflowConfig,
    weather_provider: WeatherProvider,
    map_provider: MapProvider,
    llm: Optional[LLMCaller] = None,
    metrics: Optional[MetricsCollector] = None,
    overrides: Optional[Dict[str, NodeFn]] = None,
) -> Dict[NodeId, NodeSpec]:
    """
    Create the node functions for one workflow.

    Args:
        config: Workflow configuration
        weather_provider: Forecast source for weather_scout
        map_provider: POI, geocoding and routing source
        llm: Optional LLM caller for weather_scout and itinerary_planner
        metrics: Optional metrics collector for budget outcomes
        overrides: Node id -> replacement node function (HITL wrappers
            still apply to the replacement)

    Returns:
        NodeSpec per node id
    """
    timeout = config.external_call_timeout
    fns: Dict[NodeId, NodeFn] = {
        NodeId.WEATHER_SCOUT: weather_scout.create_weather_scout_node(
            weather_provider, llm, timeout, config.llm_timeout
        ),
        NodeId.ITINERARY_PLANNER: itinerary_planner.create_itinerary_planner_node(
            map_provider, llm, timeout, config.llm_timeout
        ),
        NodeId.ATTRACTION_ENRICHER: attraction_enricher.create_attraction_enricher_node(map_provider, timeout),
        NodeId.ACCOMMODATION_AGENT: accommodation.create_accommodation_node(map_provider, timeout),
        NodeId.TRANSPORT_AGENT: transport.create_transport_node(map_provider, timeout),
        NodeId.DINING_AGENT: dining.create_dining_node(map_provider, timeout),
        NodeId.BUDGET_CRITIC: budget_critic.create_budget_critic_node(config.max_retries, metrics),
        NodeId.FINALIZE: finalize.create_finalize_node(),
    }
    for name, fn in (overrides or {}).items():
        fns[NodeId(name)] = fn

    fns[NodeId.ITINERARY_PLANNER] = with_itinerary_review(fns[NodeId.ITINERARY_PLANNER], config.hitl)
    fns[NodeId.BUDGET_CRITIC] = with_budget_decision(fns[NodeId.BUDGET_CRITIC], config.hitl)

    return {node: NodeSpec(fn=fns[node], fallback=_FALLBACKS[node]) for node in NodeId}


def instrument_node(
    node: NodeId,
    spec: NodeSpec,
    tracer: Tracer,
    metrics: Optional[MetricsCollector] = None,
):
    """
    Wrap a node function with events, tracing, execution records and fallback.

    The per-run event sink is read from config["configurable"]["event_sink"].
    """

    async def _instrumented(state: TripState, config: RunnableConfig) -> Dict[str, Any]:
        sink = ((config or {}).get("configurable") or {}).get("event_sink")
        thread_id = state.get("thread_id") or "unknown"
        _log = f"[thread={thread_id}] [graph=trip] [node={node.value}] "

        if sink is not None:
            await sink(ProgressEvent(type="node_start", thread_id=thread_id, node=node.value))

        span = tracer.start_span(thread_id, node.value, {"retry_count": state.get("retry_count", 0)})
        start = time.time()
        error: Optional[str] = None
        try:
            patch = dict(await spec.fn(state) or {})
            status = "degraded" if (patch.get("meta") or {}).get("errors") else "success"
        except Exception as e:
            logger.exception(f"{_log}Node raised, using fallback: {e}")
            error = f"{type(e).__name__}: {e}"
            patch = dict(spec.fallback(state))
            meta = patch.get("meta") or {}
            meta["errors"] = list(meta.get("errors", [])) + error_entry(node.value, error)["errors"]
            patch["meta"] = meta
            status = "failed"
        end = time.time()

        execution = AgentExecution(
            agent=node.value,
            start_time=start,
            end_time=end,
            duration_ms=round((end - start) * 1000, 2),
            status=status,
            error=error,
        )
        meta = patch.get("meta") or {}
        meta["executions"] = list(meta.get("executions", [])) + [execution.model_dump()]
        patch["meta"] = meta

        tracer.end_span(span, status="ok" if status == "success" else status, error=error)
        if metrics is not None:
            metrics.inc("trip_node_executions_total", {"node": node.value, "status": status})
            metrics.observe("trip_node_duration_ms", execution.duration_ms, {"node": node.value})

        if sink is not None:
            await sink(
                ProgressEvent(
                    type="node_complete",
                    thread_id=thread_id,
                    node=node.value,
                    progress=progress_for(node),
                    data={"status": status, "duration_ms": execution.duration_ms},
                )
            )
        return patch

    _instrumented.__name__ = f"{node.value}_instrumented"
    return _instrumented


def create_trip_graph(
    specs: Dict[NodeId, NodeSpec],
    tracer: Tracer,
    metrics: Optional[MetricsCollector] = None,
):
    """
    Create and compile the trip graph.

    The graph structure is:
        Entry -> route_entry (weather_scout, or the resume target)
          weather_scout -> itinerary_planner
          itinerary_planner -> route_after_planner (attraction_enricher | END)
          attraction_enricher -> accommodation_agent, transport_agent, dining_agent
          [accommodation_agent, transport_agent, dining_agent] -> budget_critic
          budget_critic -> route_after_budget (finalize | itinerary_planner | END)
          finalize -> END

    Returns:
        Compiled LangGraph application ready for execution.
    """
    graph = StateGraph(TripState)

    for node in NodeId:
        graph.add_node(node.value, instrument_node(node, specs[node], tracer, metrics))

    graph.set_conditional_entry_point(
        route_entry,
        {target.value: target.value for target in RESUME_TARGETS},
    )

    for source, targets in ADJACENCY.items():
        if source in CONDITIONAL_EDGES or source in FAN_OUT_NODES:
            continue
        if not targets:
            graph.add_edge(source.value, END)
        for target in targets:
            graph.add_edge(source.value, target.value)

    # Join barrier: budget_critic runs once all three resource agents finish
    graph.add_edge([n.value for n in FAN_OUT_NODES], NodeId.BUDGET_CRITIC.value)

    graph.add_conditional_edges(
        NodeId.ITINERARY_PLANNER.value,
        route_after_planner,
        {NodeId.ATTRACTION_ENRICHER.value: NodeId.ATTRACTION_ENRICHER.value, END: END},
    )
    graph.add_conditional_edges(
        NodeId.BUDGET_CRITIC.value,
        route_after_budget,
        {
            NodeId.FINALIZE.value: NodeId.FINALIZE.value,
            NodeId.ITINERARY_PLANNER.value: NodeId.ITINERARY_PLANNER.value,
            END: END,
        },
    )

    return graph.compile()
