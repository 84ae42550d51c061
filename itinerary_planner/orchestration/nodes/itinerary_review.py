"""
Itinerary review node for the planning workflow.

Always pauses the run so a human can approve, adjust, request changes
to, or cancel the clustered itinerary. It is only routed to when the
review interrupt is enabled.
"""

from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Pause,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import (
    DecisionType,
    Interrupt,
    InterruptType,
    RunState,
)

REVIEW_OPTIONS = {
    DecisionType.APPROVE.value: "Accept the itinerary as it is",
    DecisionType.ADJUST.value: "Move, remove or reorder individual activities",
    DecisionType.REQUEST_CHANGES.value: "Regenerate the itinerary with feedback",
    DecisionType.CANCEL.value: "Stop planning",
}


class ItineraryReviewStep(Step):
    """Pause for a human to approve or change the itinerary."""

    node_id = NodeId.ITINERARY_REVIEW

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        clustered = self._require(state, "clustered_itinerary")
        message = (
            f"Please review the {len(clustered.days)}-day itinerary for "
            f"{state.user_input.destination}"
        )
        if state.budget_result is not None:
            message += (
                f" (estimated {state.budget_result.total_cost:.0f} "
                f"{context.currency})"
            )
        interrupt = Interrupt(
            type=InterruptType.ITINERARY_REVIEW,
            node=self.node_id.value,
            message=message + ".",
            options=dict(REVIEW_OPTIONS),
        )
        return Pause(interrupt)
