"""
Trip itinerary workflow built with LangGraph.

This package contains:
- shared/: Common infrastructure (LLM client, logging, contracts, errors)
- integrations/: Weather and map provider interfaces plus mocks
- nodes/: Agent nodes (weather, planner, enrichment, accommodation,
  transport, dining, budget critic, finalize)
- graph/: Graph wiring, routing, executor and HTTP API
- hitl/: Interrupt records, user decisions and their lifecycle
- persistence/: Checkpoint stores (in-memory and SQLite)
- observability/: Tracing and metrics
"""

from trip_agents.graph.executor import create_trip_workflow
from trip_agents.graph.nodes import get_workflow_nodes

__all__ = ["create_trip_workflow", "get_workflow_nodes"]
