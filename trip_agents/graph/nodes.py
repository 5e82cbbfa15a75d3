"""
Node identifiers and the static graph topology.

The adjacency table is the single description of the workflow shape:
build.py wires the StateGraph from it, and the progress stream uses the
node order to report percentages.
"""

from enum import Enum
from typing import Dict, List, Tuple


class NodeId(str, Enum):
    WEATHER_SCOUT = "weather_scout"
    ITINERARY_PLANNER = "itinerary_planner"
    ATTRACTION_ENRICHER = "attraction_enricher"
    ACCOMMODATION_AGENT = "accommodation_agent"
    TRANSPORT_AGENT = "transport_agent"
    DINING_AGENT = "dining_agent"
    BUDGET_CRITIC = "budget_critic"
    FINALIZE = "finalize"


# Execution order used for progress reporting
NODE_ORDER: List[NodeId] = list(NodeId)

# Resource agents that run concurrently between the enricher and the critic
FAN_OUT_NODES: Tuple[NodeId, ...] = (
    NodeId.ACCOMMODATION_AGENT,
    NodeId.TRANSPORT_AGENT,
    NodeId.DINING_AGENT,
)

# Static successors. Conditional edges (suspension, retry) are listed in
# CONDITIONAL_EDGES and resolved by graph/router.py.
ADJACENCY: Dict[NodeId, Tuple[NodeId, ...]] = {
    NodeId.WEATHER_SCOUT: (NodeId.ITINERARY_PLANNER,),
    NodeId.ITINERARY_PLANNER: (NodeId.ATTRACTION_ENRICHER,),
    NodeId.ATTRACTION_ENRICHER: FAN_OUT_NODES,
    NodeId.ACCOMMODATION_AGENT: (NodeId.BUDGET_CRITIC,),
    NodeId.TRANSPORT_AGENT: (NodeId.BUDGET_CRITIC,),
    NodeId.DINING_AGENT: (NodeId.BUDGET_CRITIC,),
    NodeId.BUDGET_CRITIC: (NodeId.FINALIZE,),
    NodeId.FINALIZE: (),
}

# Nodes whose outgoing edge is decided at runtime, with every possible target
# (None stands for suspension at END)
CONDITIONAL_EDGES: Dict[NodeId, Tuple[object, ...]] = {
    NodeId.ITINERARY_PLANNER: (NodeId.ATTRACTION_ENRICHER, None),
    NodeId.BUDGET_CRITIC: (NodeId.FINALIZE, NodeId.ITINERARY_PLANNER, None),
}

# Nodes a resume may re-enter at
RESUME_TARGETS: Tuple[NodeId, ...] = (
    NodeId.WEATHER_SCOUT,
    NodeId.ITINERARY_PLANNER,
    NodeId.ATTRACTION_ENRICHER,
    NodeId.FINALIZE,
)

_CATALOGUE = {
    NodeId.WEATHER_SCOUT: (
        "Weather analysis",
        "Fetches the destination forecast and derives planning strategy tags",
        False,
    ),
    NodeId.ITINERARY_PLANNER: (
        "Itinerary planning",
        "Builds the day-by-day skeleton from the request, weather and budget feedback",
        True,
    ),
    NodeId.ATTRACTION_ENRICHER: (
        "Attraction details",
        "Adds tickets, opening hours, ratings and tags to each attraction",
        False,
    ),
    NodeId.ACCOMMODATION_AGENT: (
        "Accommodation",
        "Recommends a hotel near the itinerary centroid",
        False,
    ),
    NodeId.TRANSPORT_AGENT: (
        "Transport",
        "Plans routes and fares between consecutive stops",
        False,
    ),
    NodeId.DINING_AGENT: (
        "Dining",
        "Assigns restaurants to meal slots near the day's attractions",
        False,
    ),
    NodeId.BUDGET_CRITIC: (
        "Budget audit",
        "Checks total cost against the budget and requests a revision when over",
        True,
    ),
    NodeId.FINALIZE: (
        "Final itinerary",
        "Assembles the complete priced itinerary",
        False,
    ),
}


def get_workflow_nodes() -> List[Dict[str, object]]:
    """
    List the workflow nodes in execution order for progress displays.

    Returns:
        One dict per node with id, name, description and hitl_enabled.
    """
    return [
        {
            "id": node.value,
            "name": _CATALOGUE[node][0],
            "description": _CATALOGUE[node][1],
            "hitl_enabled": _CATALOGUE[node][2],
        }
        for node in NODE_ORDER
    ]


def progress_for(node: NodeId) -> int:
    """Percent complete once the given node has finished."""
    return int(round((NODE_ORDER.index(node) + 1) * 100 / len(NODE_ORDER)))
