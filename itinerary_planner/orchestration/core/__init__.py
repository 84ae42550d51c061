"""
Core orchestration components for the itinerary planner workflow.

This package contains the node registry and the graph builder that turns
it into a LangGraph state graph. The graph builder is imported from its
module directly since it depends on the node implementations.
"""

from itinerary_planner.orchestration.core.node_registry import (
    NODE_REGISTRY,
    NodeId,
    NodeSpec,
    get_node,
    list_nodes,
)

__all__ = [
    "NODE_REGISTRY",
    "NodeId",
    "NodeSpec",
    "get_node",
    "list_nodes",
]
