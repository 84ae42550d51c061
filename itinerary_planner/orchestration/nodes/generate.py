"""
Itinerary generation node for the planning workflow.

Asks the completion provider for a draft itinerary. On a budget retry the
prompt carries the critic's cost-reduction hint, and after a review round
it carries the reviewer's accumulated feedback.
"""

from pydantic import ValidationError as PydanticValidationError

from itinerary_planner.data.models import Itinerary
from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import RunState
from itinerary_planner.prompts.itinerary import render_generation_prompt
from itinerary_planner.utils.error_handling import ProviderError
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


class GenerateStep(Step):
    """Draft an itinerary with the AI provider."""

    node_id = NodeId.GENERATE

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        prompt = render_generation_prompt(
            state.user_input,
            currency=context.currency,
            hint=state.cost_hint,
            retry_count=state.retry_count,
            feedback=state.review_feedback,
        )
        logger.info(
            f"[{state.thread_id}] Generating itinerary for "
            f"{state.user_input.destination} (retry {state.retry_count})"
        )

        raw = await context.provider.generate(prompt, context.config.model)

        try:
            draft = Itinerary.model_validate(raw)
        except PydanticValidationError as e:
            raise ProviderError(
                "response does not describe an itinerary", context.provider.name, e
            ) from e

        if not draft.days:
            raise ProviderError("itinerary has no days", context.provider.name)

        return Advance(
            {
                "draft_itinerary": draft,
                "corrected_itinerary": None,
                "clustered_itinerary": None,
            }
        )
