"""
Budget critic node for the planning workflow.

Prices the clustered itinerary against the trip budget. An over-budget
plan is sent back to generation with a cost-reduction hint until the
retry allowance is used up; after that the run either pauses for a
budget decision or, with that interrupt disabled, finalizes over budget.
"""

from itinerary_planner.orchestration.budget import (
    build_budget_decision_options,
    build_cost_hint,
    describe_overage,
    evaluate_budget,
)
from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Pause,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import (
    Interrupt,
    InterruptType,
    RunState,
)
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


class BudgetCriticStep(Step):
    """Check the cost against the budget and request cheaper plans."""

    node_id = NodeId.BUDGET_CRITIC

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        clustered = self._require(state, "clustered_itinerary")
        budget_config = context.config.budget
        result = evaluate_budget(clustered, state.user_input, budget_config)

        if result.accepted:
            logger.info(
                f"[{state.thread_id}] Budget accepted: {result.total_cost:.0f} / "
                f"{result.budget:.0f} {context.currency}"
            )
            return Advance({"budget_result": result, "cost_hint": None})

        if state.retry_count < budget_config.max_retries:
            hint = build_cost_hint(result, state.retry_count)
            logger.info(
                f"[{state.thread_id}] Over budget by {result.overage_ratio:.0%}, "
                f"retry {state.retry_count + 1}/{budget_config.max_retries} "
                f"with {hint.action.value}"
            )
            return Advance(
                {
                    "budget_result": result.model_copy(update={"hint": hint}),
                    "retry_count": state.retry_count + 1,
                    "cost_hint": hint,
                }
            )

        if context.config.hitl.enable_budget_decision:
            interrupt = Interrupt(
                type=InterruptType.BUDGET_DECISION,
                node=self.node_id.value,
                message=describe_overage(result, context.currency),
                options=build_budget_decision_options(result),
            )
            return Pause(interrupt, {"budget_result": result})

        logger.warning(
            f"[{state.thread_id}] Retries exhausted; finalizing "
            f"{result.overage_ratio:.0%} over budget"
        )
        return Advance({"budget_result": result})
