"""
Graph builder for the itinerary planner workflow.

This module builds the workflow state graph using LangGraph. Nodes are
taken from the node registry in pipeline order; the edges implement this
flow:

    START -> [resume_from] -> generate -> correct_coordinates
        -> cluster_by_geography -> budget_critic
    budget_critic -> generate                (over budget, retries left)
    budget_critic -> itinerary_review        (accepted, review enabled)
    budget_critic -> finalize                (accepted, or retries spent)
    itinerary_review -> END
    finalize -> END

Every node edge leads to END as soon as the run stops being Running, so
an interrupt or a failure ends the invocation after the node raising it.
A graph is built per invocation because its nodes close over that
invocation's configuration and collaborators.
"""

from langgraph.graph import END, START, StateGraph

from itinerary_planner.orchestration.core.node_registry import NODE_REGISTRY, NodeId
from itinerary_planner.orchestration.nodes import (
    STEPS,
    StepContext,
    create_node_function,
)
from itinerary_planner.orchestration.routing.conditions import (
    END_ROUTE,
    after_budget_critic,
    continue_to,
    route_entry,
)
from itinerary_planner.orchestration.states.run_state import RunState
from itinerary_planner.orchestration.tracer import Tracer
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

# Straight-line edges of the pipeline
LINEAR_EDGES: tuple[tuple[NodeId, NodeId], ...] = (
    (NodeId.GENERATE, NodeId.CORRECT_COORDINATES),
    (NodeId.CORRECT_COORDINATES, NodeId.CLUSTER_BY_GEOGRAPHY),
    (NodeId.CLUSTER_BY_GEOGRAPHY, NodeId.BUDGET_CRITIC),
)


def create_planning_graph(context: StepContext, tracer: Tracer):
    """
    Create the compiled state graph for one invocation.

    Args:
        context: Collaborators and settings shared by the steps
        tracer: Span sink for node invocations

    Returns:
        Compiled StateGraph over RunState
    """
    workflow = StateGraph(RunState)

    # Define the nodes in registry order
    for spec in NODE_REGISTRY:
        step = STEPS[spec.id]()
        workflow.add_node(spec.id.value, create_node_function(step, context, tracer))

    # Fresh runs start at generation, cold re-entries at resume_from
    workflow.add_conditional_edges(
        START,
        route_entry,
        {spec.id.value: spec.id.value for spec in NODE_REGISTRY},
    )

    for source, target in LINEAR_EDGES:
        workflow.add_conditional_edges(
            source.value,
            continue_to(target),
            {target.value: target.value, END_ROUTE: END},
        )

    # Budget critic loop
    workflow.add_conditional_edges(
        NodeId.BUDGET_CRITIC.value,
        after_budget_critic(context.config.hitl),
        {
            NodeId.GENERATE.value: NodeId.GENERATE.value,
            NodeId.ITINERARY_REVIEW.value: NodeId.ITINERARY_REVIEW.value,
            NodeId.FINALIZE.value: NodeId.FINALIZE.value,
            END_ROUTE: END,
        },
    )

    # The review node always pauses
    workflow.add_edge(NodeId.ITINERARY_REVIEW.value, END)
    workflow.add_edge(NodeId.FINALIZE.value, END)

    logger.debug("Planning graph created")
    return workflow.compile()
