"""
Routing conditions for the itinerary planner workflow.

This module contains the functions that pick the next node from the run
state: the entry router used for fresh runs and cold re-entries, the
generic "continue unless the run stopped" router, and the router that
closes the budget critic loop.
"""

from collections.abc import Callable

from itinerary_planner.config import HITLConfig
from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.states.run_state import RunState, RunStatus

# Path-map key for "leave the graph"
END_ROUTE = "end"


def route_entry(state: RunState) -> str:
    """
    Pick the first node of an invocation.

    Args:
        state: Run state handed to the graph

    Returns:
        The node recorded in ``resume_from``, or generation for a fresh run
    """
    if state.resume_from:
        return NodeId(state.resume_from).value
    return NodeId.GENERATE.value


def is_stopped(state: RunState) -> bool:
    """True once a node has interrupted, failed, cancelled or completed the run."""
    return state.status != RunStatus.RUNNING


def continue_to(next_node: NodeId) -> Callable[[RunState], str]:
    """
    Build a router that proceeds to ``next_node`` while the run is running.

    Args:
        next_node: Node to run next

    Returns:
        Router returning the next node's id or ``END_ROUTE``
    """

    def router(state: RunState) -> str:
        if is_stopped(state):
            return END_ROUTE
        return next_node.value

    router.__name__ = f"continue_to_{next_node.value}"
    return router


def after_budget_critic(hitl: HITLConfig) -> Callable[[RunState], str]:
    """
    Build the router that follows the budget critic.

    An accepted (or user-approved) plan goes to review when that
    interrupt is enabled and to finalize otherwise. A rejected plan
    carrying a cost-reduction hint goes back to generation. A rejected
    plan without a hint means the retries ran out with the budget
    decision disabled, so it is finalized over budget.

    Args:
        hitl: Human-in-the-loop switches of the current invocation

    Returns:
        Router returning the next node's id or ``END_ROUTE``
    """

    def router(state: RunState) -> str:
        if is_stopped(state):
            return END_ROUTE

        result = state.budget_result
        if result is not None and (result.accepted or result.user_override):
            if hitl.enable_itinerary_review:
                return NodeId.ITINERARY_REVIEW.value
            return NodeId.FINALIZE.value

        if result is not None and result.hint is not None:
            return NodeId.GENERATE.value

        return NodeId.FINALIZE.value

    router.__name__ = "after_budget_critic"
    return router
