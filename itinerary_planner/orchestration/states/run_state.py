"""
Run state for the itinerary planning pipeline.

This module defines RunState, the single value threaded through the
pipeline nodes and persisted in checkpoints, together with the budget,
interrupt and decision models that travel with it. Snapshots carry a
schema version; older snapshots are migrated before validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from itinerary_planner.data.models import (
    Activity,
    CostBreakdown,
    Itinerary,
    TripRequest,
)
from itinerary_planner.utils.helpers import utc_now

SCHEMA_VERSION = 2


class RunStatus(str, Enum):
    """Lifecycle status of a planning run."""

    RUNNING = "running"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class InterruptType(str, Enum):
    """Kinds of human decisions a run can pause for."""

    ITINERARY_REVIEW = "itinerary_review"
    BUDGET_DECISION = "budget_decision"


class DecisionType(str, Enum):
    """Kinds of decisions a caller can resume with."""

    APPROVE = "approve"
    ADJUST = "adjust"
    REQUEST_CHANGES = "request_changes"
    CANCEL = "cancel"


class HintAction(str, Enum):
    """Cost-reduction strategies offered to the generator."""

    DOWNGRADE_HOTEL = "downgrade_hotel"
    CHEAPER_TRANSPORT = "cheaper_transport"
    ADJUST_MEALS = "adjust_meals"
    REDUCE_ATTRACTIONS = "reduce_attractions"


class CostReductionHint(BaseModel):
    """Feedback passed to the generation step on a budget retry."""

    action: HintAction
    target_reduction: float = Field(..., ge=0)
    max_total: float = Field(..., ge=0)
    suggestion: str


class BudgetResult(BaseModel):
    """Outcome of one budget evaluation."""

    total_cost: float
    budget: float
    overage_ratio: float
    accepted: bool = False
    breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    hint: CostReductionHint | None = None
    user_override: bool = False

    @computed_field
    @property
    def overage_amount(self) -> float:
        return max(0.0, round(self.total_cost - self.budget, 2))


class Interrupt(BaseModel):
    """A pause request raised by a node."""

    type: InterruptType
    node: str
    message: str
    options: dict[str, Any] = Field(default_factory=dict)


class TimeAdjustment(BaseModel):
    """Move one activity to a new start time."""

    day_index: int = Field(..., ge=0)
    activity_index: int = Field(..., ge=0)
    new_time: str = Field(..., pattern=r"^([01]?\d|2[0-3]):[0-5]\d$")


class ActivityRef(BaseModel):
    """Address of one activity."""

    day_index: int = Field(..., ge=0)
    activity_index: int = Field(..., ge=0)


class ReorderEdit(BaseModel):
    """Move an activity to another position within its day."""

    day_index: int = Field(..., ge=0)
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class ActivityAddition(BaseModel):
    """Append a new activity to a day."""

    day_index: int = Field(..., ge=0)
    activity: Activity


class AdjustmentPayload(BaseModel):
    """
    What an ``adjust`` decision changes.

    Either fine-grained edits to the itinerary, or ``selected_action``
    naming one of the scope reductions offered by a budget decision, which
    regenerates the itinerary once with that reduction as the hint.
    """

    time_adjustments: list[TimeAdjustment] = Field(default_factory=list)
    remove_activities: list[ActivityRef] = Field(default_factory=list)
    reorder: list[ReorderEdit] = Field(default_factory=list)
    add_activities: list[ActivityAddition] = Field(default_factory=list)
    selected_action: HintAction | None = None

    @property
    def has_edits(self) -> bool:
        return bool(
            self.time_adjustments
            or self.remove_activities
            or self.reorder
            or self.add_activities
        )

    @model_validator(mode="after")
    def require_edit(self) -> "AdjustmentPayload":
        if self.selected_action is not None and self.has_edits:
            raise ValueError("A selected action cannot be combined with edits")
        if self.selected_action is None and not self.has_edits:
            raise ValueError("An adjust decision must carry at least one edit")
        return self


class ChangeRequest(BaseModel):
    """Reviewer feedback carried by a ``request_changes`` decision."""

    feedback: str

    @field_validator("feedback")
    @classmethod
    def validate_feedback(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Feedback must not be empty")
        return value


class Decision(BaseModel):
    """Caller input supplied to resume a paused run."""

    type: DecisionType
    payload: dict[str, Any] | None = None


class RunState(BaseModel):
    """
    State of one planning run.

    Itinerary fields are filled in pipeline order and stay None until the
    producing node completes. ``resume_from`` names the node a cold
    re-entry starts at; it is None for a fresh run.
    """

    schema_version: int = SCHEMA_VERSION
    thread_id: str
    user_input: TripRequest
    owner_id: str | None = None

    # Successive itinerary transformations
    draft_itinerary: Itinerary | None = None
    corrected_itinerary: Itinerary | None = None
    clustered_itinerary: Itinerary | None = None
    final_itinerary: Itinerary | None = None

    # Budget critic loop
    budget_result: BudgetResult | None = None
    retry_count: int = 0
    cost_hint: CostReductionHint | None = None

    # Control
    status: RunStatus = RunStatus.RUNNING
    resume_from: str | None = None
    review_feedback: list[str] = Field(default_factory=list)
    pending_interrupt: Interrupt | None = None
    error: str | None = None
    failed_node: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def channel_values(self) -> dict[str, Any]:
        """Top-level field values, with nested models left intact."""
        return {name: getattr(self, name) for name in type(self).model_fields}

    def apply(self, update: dict[str, Any] | None) -> "RunState":
        """Return a copy with a node's partial update merged in."""
        if not update:
            return self
        return self.model_copy(update={**update, "updated_at": utc_now()})

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe snapshot for checkpoint storage."""
        return self.model_dump(mode="json")

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> "RunState":
        """Rebuild a RunState from a snapshot of any supported schema version."""
        return cls.model_validate(migrate_snapshot(snapshot))


def migrate_snapshot(snapshot: dict[str, Any]) -> dict[str, Any]:
    """
    Bring a stored snapshot up to the current schema version.

    Args:
        snapshot: Raw snapshot as read from storage

    Returns:
        A snapshot in the current schema

    Raises:
        ValueError: If the snapshot's version is newer than this code supports
    """
    version = snapshot.get("schema_version", 1)
    if version > SCHEMA_VERSION:
        raise ValueError(
            f"Snapshot schema version {version} is newer than supported "
            f"version {SCHEMA_VERSION}"
        )
    if version == 1:
        snapshot = _migrate_v1(snapshot)
    return snapshot


def _migrate_v1(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Convert the original loosely typed camelCase blob."""
    user_input = dict(snapshot.get("userInput") or {})
    budget = float(user_input.get("budget") or 0)

    migrated: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "thread_id": snapshot.get("threadId") or snapshot.get("thread_id"),
        "user_input": user_input,
        "draft_itinerary": _migrate_v1_draft(snapshot.get("draftItinerary")),
        "corrected_itinerary": snapshot.get("correctedItinerary"),
        "clustered_itinerary": snapshot.get("clusteredItinerary"),
        "final_itinerary": snapshot.get("finalItinerary"),
        "retry_count": int(snapshot.get("retryCount") or 0),
    }

    old_budget = snapshot.get("budgetResult")
    if old_budget:
        total = float(old_budget.get("totalCost") or 0)
        costs = old_budget.get("costBreakdown") or {}
        migrated["budget_result"] = {
            "total_cost": total,
            "budget": budget,
            "overage_ratio": (total - budget) / budget if budget else 0.0,
            "accepted": bool(old_budget.get("isWithinBudget")),
            "breakdown": {
                "accommodation": costs.get("accommodation", 0),
                "transportation": costs.get("transport", 0),
                "food": costs.get("dining", 0),
                "attractions": costs.get("attractions", 0),
                "total": total,
            },
        }

    status = snapshot.get("status")
    if status in {s.value for s in RunStatus}:
        migrated["status"] = status
    return migrated


def _migrate_v1_draft(draft: dict[str, Any] | None) -> dict[str, Any] | None:
    """The v1 draft used ``attractions`` and ``mealSlots`` per day."""
    if not draft:
        return None
    if any("activities" in day for day in draft.get("days", [])):
        return draft

    days = []
    for day in draft.get("days", []):
        days.append(
            {
                "day": day.get("day", len(days) + 1),
                "date": day.get("date") or None,
                "activities": [
                    {
                        "time": slot.get("time", "09:00"),
                        "name": slot.get("name", ""),
                        "type": slot.get("type", "attraction"),
                        "duration": slot.get("duration", ""),
                        "location": slot.get("location") or {},
                    }
                    for slot in day.get("attractions", [])
                ],
                "meals": [
                    {
                        "time": slot.get("time", "12:00"),
                        "restaurant": slot.get("cuisine") or slot.get("mealType", ""),
                        "cuisine": slot.get("cuisine") or "",
                    }
                    for slot in day.get("mealSlots", [])
                ],
            }
        )
    return {"days": days}
