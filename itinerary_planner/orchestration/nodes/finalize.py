"""
Finalize node for the planning workflow.

Produces the final itinerary from the clustered one: the day list is
trimmed to the trip length and numbered from 1, dated trips get a date
on every day, and a missing cost estimate is filled from the budget
evaluation.
"""

from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import RunState, RunStatus
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


class FinalizeStep(Step):
    """Produce the final itinerary."""

    node_id = NodeId.FINALIZE

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        clustered = self._require(state, "clustered_itinerary")
        request = state.user_input

        days = []
        for index, day in enumerate(clustered.days[: request.trip_days]):
            update = {}
            if day.day != index + 1:
                update["day"] = index + 1
            if day.date is None and request.date_for_day(index) is not None:
                update["date"] = request.date_for_day(index)
            days.append(day.model_copy(update=update) if update else day)

        final_update = {}
        if days != clustered.days:
            final_update["days"] = days
        if clustered.estimated_cost.total == 0 and state.budget_result is not None:
            final_update["estimated_cost"] = state.budget_result.breakdown

        final = (
            clustered.model_copy(update=final_update, deep=True)
            if final_update
            else clustered
        )
        logger.info(
            f"[{state.thread_id}] Finalized {len(final.days)}-day itinerary with "
            f"{final.activity_count} activities"
        )
        return Advance({"final_itinerary": final, "status": RunStatus.COMPLETED})
