"""
Interrupt gate for the itinerary planning workflow.

The gate sits between the engine and the checkpoint store. When a run
pauses it persists the run as a pending checkpoint; when a caller
resumes it loads that checkpoint, checks it may be resumed, validates the
decision against the interrupt type, claims the checkpoint and merges the
decision into a fresh RunState ready for cold re-entry.

Resume is ordered so that nothing is claimed until the decision is known
to be applicable: an invalid decision leaves the checkpoint pending.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from itinerary_planner.config import WorkflowConfig
from itinerary_planner.data.models import Itinerary
from itinerary_planner.orchestration.budget import build_selected_hint, evaluate_budget
from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.serialization.checkpoint import (
    Checkpoint,
    CheckpointStore,
)
from itinerary_planner.orchestration.states.run_state import (
    AdjustmentPayload,
    ChangeRequest,
    Decision,
    DecisionType,
    InterruptType,
    RunState,
    RunStatus,
)
from itinerary_planner.utils.error_handling import (
    NotFoundError,
    PlannerError,
    ValidationError,
)
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

# Decisions accepted by each interrupt type
ALLOWED_DECISIONS: dict[InterruptType, frozenset[DecisionType]] = {
    InterruptType.BUDGET_DECISION: frozenset(
        {DecisionType.APPROVE, DecisionType.ADJUST, DecisionType.CANCEL}
    ),
    InterruptType.ITINERARY_REVIEW: frozenset(DecisionType),
}

# (caller principal, checkpoint) -> may this caller resume it
OwnershipCheck = Callable[[str | None, Checkpoint], bool]


@dataclass
class SuspendOutcome:
    """Result of persisting a paused run."""

    persisted: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class ResumePlan:
    """A claimed checkpoint and the state to re-enter with."""

    checkpoint: Checkpoint
    state: RunState
    decision: Decision

    @property
    def cancelled(self) -> bool:
        return self.state.status == RunStatus.CANCELLED


def _parse_payload(decision: Decision, model: type[BaseModel]) -> BaseModel:
    try:
        return model.model_validate(decision.payload or {})
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid payload for a {decision.type.value} decision", e
        ) from e


def apply_adjustments(itinerary: Itinerary, payload: AdjustmentPayload) -> Itinerary:
    """
    Apply fine-grained edits to a copy of an itinerary.

    Edits are applied in groups: time adjustments, then reorders in the
    order given, then removals, then additions. Indices of each group
    refer to the itinerary as left by the previous group; removals within
    the group all refer to the same positions. Added activities go to the
    end of their day.

    Args:
        itinerary: Itinerary to edit; it is not modified
        payload: The edits

    Returns:
        The edited copy

    Raises:
        ValidationError: If an edit addresses a day or activity that does not exist
    """
    edited = itinerary.model_copy(deep=True)

    def activities_of(day_index: int) -> list:
        if day_index >= len(edited.days):
            raise ValidationError(
                f"Day index {day_index} is out of range "
                f"(itinerary has {len(edited.days)} days)"
            )
        return edited.days[day_index].activities

    def check_index(activities: list, index: int, day_index: int) -> None:
        if index >= len(activities):
            raise ValidationError(
                f"Activity index {index} is out of range for day index "
                f"{day_index} ({len(activities)} activities)"
            )

    for change in payload.time_adjustments:
        activities = activities_of(change.day_index)
        check_index(activities, change.activity_index, change.day_index)
        activities[change.activity_index].time = change.new_time

    for move in payload.reorder:
        activities = activities_of(move.day_index)
        check_index(activities, move.from_index, move.day_index)
        check_index(activities, move.to_index, move.day_index)
        activities.insert(move.to_index, activities.pop(move.from_index))

    removals: dict[int, set[int]] = {}
    for ref in payload.remove_activities:
        check_index(activities_of(ref.day_index), ref.activity_index, ref.day_index)
        removals.setdefault(ref.day_index, set()).add(ref.activity_index)
    for day_index, indices in removals.items():
        activities = activities_of(day_index)
        for index in sorted(indices, reverse=True):
            del activities[index]

    for addition in payload.add_activities:
        activities_of(addition.day_index).append(addition.activity.model_copy())

    return edited


class InterruptGate:
    """Persists paused runs and turns decisions into resumable state."""

    def __init__(
        self,
        store: CheckpointStore,
        ttl_hours: float = 24,
        ownership_check: OwnershipCheck | None = None,
    ):
        """
        Initialize the gate.

        Args:
            store: Checkpoint store shared by all runs of the engine
            ttl_hours: Lifetime of a pending checkpoint
            ownership_check: Optional auth hook deciding whether a caller may
                resume a checkpoint
        """
        self.store = store
        self.ttl_hours = ttl_hours
        self.ownership_check = ownership_check

    def suspend(self, state: RunState) -> SuspendOutcome:
        """
        Persist an interrupted run as the thread's pending checkpoint.

        A write that still fails after the store's retries does not fail
        the run; the outcome carries a warning instead.

        Args:
            state: Run state carrying the pending interrupt

        Returns:
            Whether the checkpoint was stored, plus any warnings
        """
        # Create checkpoint data
        checkpoint = Checkpoint.from_state(state, self.ttl_hours)
        try:
            self.store.upsert(checkpoint)
        except PlannerError as e:
            message = (
                f"Checkpoint for {state.thread_id} could not be stored; "
                f"the run cannot be resumed after a restart: {e!s}"
            )
            logger.warning(message)
            return SuspendOutcome(persisted=False, warnings=[message])

        logger.info(
            f"Run {state.thread_id} suspended at {checkpoint.node} "
            f"({checkpoint.interrupt_type.value})"
        )
        return SuspendOutcome(persisted=True)

    def resume(
        self,
        thread_id: str,
        decision: Decision,
        config: WorkflowConfig,
        owner_id: str | None = None,
    ) -> ResumePlan:
        """
        Claim a thread's pending checkpoint and apply a decision to it.

        Args:
            thread_id: Thread to resume
            decision: Caller decision
            config: Configuration of the resuming invocation
            owner_id: Calling principal, passed to the ownership check

        Returns:
            The claimed checkpoint and the state to continue with

        Raises:
            NotFoundError: If there is no pending checkpoint the caller may claim
            ValidationError: If the decision does not fit the interrupt
            PersistenceError: If the store cannot read or claim the checkpoint
        """
        checkpoint = self.store.get(thread_id)
        if checkpoint is None:
            raise NotFoundError(f"No pending checkpoint for thread {thread_id}")

        if self.ownership_check is not None and not self.ownership_check(
            owner_id, checkpoint
        ):
            logger.warning(f"Resume of {thread_id} rejected by ownership check")
            raise NotFoundError(f"No pending checkpoint for thread {thread_id}")

        try:
            state = checkpoint.restore_state()
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Checkpoint for {thread_id} cannot be restored: {e!s}")
            raise NotFoundError(
                f"Pending checkpoint for thread {thread_id} is unreadable", e
            ) from e

        continued = self._apply_decision(state, checkpoint, decision, config)

        if decision.type == DecisionType.CANCEL:
            claimed = self.store.mark_cancelled(thread_id, decision)
        else:
            claimed = self.store.mark_resumed(thread_id, decision)
        if not claimed:
            raise NotFoundError(
                f"Checkpoint for thread {thread_id} was already resumed or cancelled"
            )

        logger.info(
            f"Run {thread_id} resumed from {checkpoint.interrupt_type.value} "
            f"with {decision.type.value}"
        )
        return ResumePlan(checkpoint=checkpoint, state=continued, decision=decision)

    def _apply_decision(
        self,
        state: RunState,
        checkpoint: Checkpoint,
        decision: Decision,
        config: WorkflowConfig,
    ) -> RunState:
        """Merge a decision into the restored state."""
        interrupt_type = checkpoint.interrupt_type
        if decision.type not in ALLOWED_DECISIONS[interrupt_type]:
            raise ValidationError(
                f"Decision '{decision.type.value}' is not valid for a "
                f"{interrupt_type.value} interrupt"
            )

        base = {"pending_interrupt": None, "error": None, "failed_node": None}

        if decision.type == DecisionType.CANCEL:
            return state.apply({**base, "status": RunStatus.CANCELLED})

        base["status"] = RunStatus.RUNNING

        if decision.type == DecisionType.REQUEST_CHANGES:
            request = _parse_payload(decision, ChangeRequest)
            return state.apply(
                {
                    **base,
                    "review_feedback": [*state.review_feedback, request.feedback],
                    "retry_count": 0,
                    "draft_itinerary": None,
                    "corrected_itinerary": None,
                    "clustered_itinerary": None,
                    "budget_result": None,
                    "cost_hint": None,
                    "resume_from": NodeId.GENERATE.value,
                }
            )

        is_budget = interrupt_type == InterruptType.BUDGET_DECISION
        payload = None
        if decision.type == DecisionType.ADJUST:
            payload = _parse_payload(decision, AdjustmentPayload)

        if payload is not None and payload.selected_action is not None:
            if not is_budget or state.budget_result is None:
                raise ValidationError(
                    "A selected action only answers a budget decision"
                )
            hint = build_selected_hint(state.budget_result, payload.selected_action)
            logger.debug(
                f"Regenerating {state.thread_id} once with {hint.action.value}"
            )
            # Counted as one more retry, so the critic pauses again if still over
            return state.apply(
                {
                    **base,
                    "retry_count": state.retry_count + 1,
                    "cost_hint": hint,
                    "draft_itinerary": None,
                    "corrected_itinerary": None,
                    "clustered_itinerary": None,
                    "budget_result": None,
                    "resume_from": NodeId.GENERATE.value,
                }
            )

        if state.clustered_itinerary is None:
            raise ValidationError(
                f"Checkpoint for {state.thread_id} holds no itinerary to "
                f"{decision.type.value}"
            )

        update = {**base, "resume_from": NodeId.FINALIZE.value}

        if payload is not None:
            adjusted = apply_adjustments(state.clustered_itinerary, payload)
            result = evaluate_budget(adjusted, state.user_input, config.budget)
            previous = state.budget_result
            result = result.model_copy(
                update={
                    "user_override": is_budget
                    or (previous is not None and previous.user_override)
                }
            )
            update["clustered_itinerary"] = adjusted
            update["budget_result"] = result
            logger.debug(
                f"Adjusted itinerary of {state.thread_id} re-priced at "
                f"{result.total_cost:.0f}"
            )
        elif is_budget and state.budget_result is not None:
            update["budget_result"] = state.budget_result.model_copy(
                update={"accepted": True, "user_override": True}
            )

        return state.apply(update)
