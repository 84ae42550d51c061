"""
Node implementations for the itinerary planner workflow.

This package contains one Step per pipeline stage and the adapter that
turns a Step into a LangGraph node.
"""

from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Failure,
    Pause,
    Step,
    StepContext,
    StepOutcome,
    create_node_function,
)
from itinerary_planner.orchestration.nodes.budget_critic import BudgetCriticStep
from itinerary_planner.orchestration.nodes.cluster import ClusterStep
from itinerary_planner.orchestration.nodes.correct_coordinates import (
    CorrectCoordinatesStep,
)
from itinerary_planner.orchestration.nodes.finalize import FinalizeStep
from itinerary_planner.orchestration.nodes.generate import GenerateStep
from itinerary_planner.orchestration.nodes.itinerary_review import (
    ItineraryReviewStep,
)

STEPS: dict[NodeId, type[Step]] = {
    NodeId.GENERATE: GenerateStep,
    NodeId.CORRECT_COORDINATES: CorrectCoordinatesStep,
    NodeId.CLUSTER_BY_GEOGRAPHY: ClusterStep,
    NodeId.BUDGET_CRITIC: BudgetCriticStep,
    NodeId.ITINERARY_REVIEW: ItineraryReviewStep,
    NodeId.FINALIZE: FinalizeStep,
}

__all__ = [
    "STEPS",
    "Advance",
    "BudgetCriticStep",
    "ClusterStep",
    "CorrectCoordinatesStep",
    "Failure",
    "FinalizeStep",
    "GenerateStep",
    "ItineraryReviewStep",
    "Pause",
    "Step",
    "StepContext",
    "StepOutcome",
    "create_node_function",
]
