"""
Base node implementation for the itinerary planning workflow.

Every pipeline stage is a Step returning exactly one of three outcomes:
Advance (a partial state update), Pause (an interrupt requesting a human
decision) or Failure. ``create_node_function`` adapts a Step into a
LangGraph node that traces the invocation, converts exceptions into a
Failure and turns the outcome into a state update.
"""

import traceback
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from itinerary_planner.agents.itinerary_generator import ItineraryProvider
from itinerary_planner.config import WorkflowConfig
from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.states.run_state import (
    Interrupt,
    RunState,
    RunStatus,
)
from itinerary_planner.orchestration.tracer import SpanStatus, Tracer
from itinerary_planner.services.coordinate_correction import CoordinateCorrector
from itinerary_planner.utils.error_handling import NodeExecutionError
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StepContext:
    """Collaborators and settings shared by the steps of one invocation."""

    config: WorkflowConfig
    provider: ItineraryProvider
    corrector: CoordinateCorrector
    currency: str = "CNY"


@dataclass
class Advance:
    """The step finished; merge ``update`` into the run state."""

    update: dict[str, Any] = field(default_factory=dict)


@dataclass
class Pause:
    """The step needs a human decision before the run can continue."""

    interrupt: Interrupt
    update: dict[str, Any] = field(default_factory=dict)


@dataclass
class Failure:
    """The step failed; the run ends as Failed."""

    error: Exception


StepOutcome = Advance | Pause | Failure


class Step(ABC):
    """One pipeline stage."""

    node_id: ClassVar[NodeId]

    @abstractmethod
    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        """Execute the stage against the current state."""

    def _require(self, state: RunState, field_name: str) -> Any:
        """
        Fetch an input produced by an earlier stage.

        Raises:
            NodeExecutionError: If that stage has not produced it
        """
        value = getattr(state, field_name)
        if value is None:
            raise NodeExecutionError(
                f"missing input '{field_name}'", self.node_id.value
            )
        return value


def outcome_to_update(node_id: NodeId, outcome: StepOutcome) -> dict[str, Any]:
    """Translate a step outcome into a LangGraph state update."""
    if isinstance(outcome, Advance):
        return outcome.update
    if isinstance(outcome, Pause):
        return {
            **outcome.update,
            "status": RunStatus.INTERRUPTED,
            "pending_interrupt": outcome.interrupt,
        }
    error = outcome.error
    if not isinstance(error, NodeExecutionError):
        error = NodeExecutionError(type(error).__name__, node_id.value, error)
    return {
        "status": RunStatus.FAILED,
        "error": str(error),
        "failed_node": node_id.value,
    }


def create_node_function(
    step: Step, context: StepContext, tracer: Tracer
) -> Callable[[RunState], Awaitable[dict[str, Any]]]:
    """
    Wrap a Step as a LangGraph node.

    Args:
        step: The stage to run
        context: Collaborators and settings for this invocation
        tracer: Span sink

    Returns:
        Async node function returning a partial state update
    """
    node_id = step.node_id

    async def node_function(state: RunState) -> dict[str, Any]:
        span_id = tracer.start_span(state.thread_id, node_id.value)
        try:
            outcome = await step.run(state, context)
        except Exception as e:
            logger.debug(traceback.format_exc())
            outcome = Failure(e)

        if isinstance(outcome, Advance):
            tracer.end_span(span_id, SpanStatus.SUCCESS)
            logger.debug(f"[{state.thread_id}] {node_id.value} completed")
        elif isinstance(outcome, Pause):
            tracer.end_span(span_id, SpanStatus.INTERRUPTED)
            logger.info(
                f"[{state.thread_id}] {node_id.value} raised "
                f"{outcome.interrupt.type.value} interrupt"
            )
        else:
            tracer.end_span(span_id, SpanStatus.ERROR, str(outcome.error))
            logger.error(
                f"[{state.thread_id}] {node_id.value} failed: {outcome.error!s}"
            )

        return outcome_to_update(node_id, outcome)

    node_function.__name__ = node_id.value
    node_function.__doc__ = f"Execute the {node_id.value} step."
    return node_function
