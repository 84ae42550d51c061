"""
Coordinate correction node for the planning workflow.

Correction is best effort: the corrector hands back its input unchanged
when it cannot improve it, so this node never fails the run on its own.
"""

from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import RunState


class CorrectCoordinatesStep(Step):
    """Fix place coordinates for the destination's map datum."""

    node_id = NodeId.CORRECT_COORDINATES

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        draft = self._require(state, "draft_itinerary")
        corrected = await context.corrector.correct(
            draft, state.user_input.destination
        )
        return Advance({"corrected_itinerary": corrected})
