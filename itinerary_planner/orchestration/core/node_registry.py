"""
Node registry for the itinerary planning pipeline.

The registry is the static, ordered catalogue of pipeline stages. Its
order is the pipeline order; the graph builder and progress UIs both
read it, and it carries no behaviour of its own.
"""

from enum import Enum

from pydantic import BaseModel


class NodeId(str, Enum):
    """Identifiers of the pipeline stages, in execution order."""

    GENERATE = "generate"
    CORRECT_COORDINATES = "correct_coordinates"
    CLUSTER_BY_GEOGRAPHY = "cluster_by_geography"
    BUDGET_CRITIC = "budget_critic"
    ITINERARY_REVIEW = "itinerary_review"
    FINALIZE = "finalize"


class NodeSpec(BaseModel):
    """Static description of one pipeline stage."""

    model_config = {"frozen": True}

    id: NodeId
    display_name: str
    description: str
    hitl_enabled: bool = False


NODE_REGISTRY: tuple[NodeSpec, ...] = (
    NodeSpec(
        id=NodeId.GENERATE,
        display_name="Itinerary generation",
        description="Drafts a day-by-day itinerary with the AI provider",
    ),
    NodeSpec(
        id=NodeId.CORRECT_COORDINATES,
        display_name="Coordinate correction",
        description="Fixes place coordinates for the destination's map datum",
    ),
    NodeSpec(
        id=NodeId.CLUSTER_BY_GEOGRAPHY,
        display_name="Route optimization",
        description="Groups each day's places by proximity",
    ),
    NodeSpec(
        id=NodeId.BUDGET_CRITIC,
        display_name="Budget review",
        description="Checks the cost against the budget and requests cheaper plans",
        hitl_enabled=True,
    ),
    NodeSpec(
        id=NodeId.ITINERARY_REVIEW,
        display_name="Itinerary review",
        description="Pauses for a human to approve or change the itinerary",
        hitl_enabled=True,
    ),
    NodeSpec(
        id=NodeId.FINALIZE,
        display_name="Finalize",
        description="Produces the final itinerary",
    ),
)


def list_nodes() -> list[NodeSpec]:
    """Ordered catalogue of pipeline stages."""
    return list(NODE_REGISTRY)


def get_node(node_id: NodeId | str) -> NodeSpec:
    """
    Look up a stage by id.

    Raises:
        ValueError: If no stage has that id
    """
    node_id = NodeId(node_id)
    return next(spec for spec in NODE_REGISTRY if spec.id == node_id)
