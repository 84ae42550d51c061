"""
Routing logic for the itinerary planner workflow.

This package contains the condition functions used for graph transitions,
including the budget critic loop edge.
"""

from itinerary_planner.orchestration.routing.conditions import (
    END_ROUTE,
    after_budget_critic,
    continue_to,
    is_stopped,
    route_entry,
)

__all__ = [
    "END_ROUTE",
    "after_budget_critic",
    "continue_to",
    "is_stopped",
    "route_entry",
]
