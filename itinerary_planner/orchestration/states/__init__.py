"""
State models for the itinerary planning workflow.

This package contains RunState, the value threaded through the pipeline,
and the budget, interrupt and decision models persisted alongside it.
"""

from itinerary_planner.orchestration.states.run_state import (
    SCHEMA_VERSION,
    ActivityAddition,
    ActivityRef,
    AdjustmentPayload,
    BudgetResult,
    ChangeRequest,
    CostReductionHint,
    Decision,
    DecisionType,
    HintAction,
    Interrupt,
    InterruptType,
    ReorderEdit,
    RunState,
    RunStatus,
    TimeAdjustment,
    migrate_snapshot,
)

__all__ = [
    "SCHEMA_VERSION",
    "ActivityAddition",
    "ActivityRef",
    "AdjustmentPayload",
    "BudgetResult",
    "ChangeRequest",
    "CostReductionHint",
    "Decision",
    "DecisionType",
    "HintAction",
    "Interrupt",
    "InterruptType",
    "ReorderEdit",
    "RunState",
    "RunStatus",
    "TimeAdjustment",
    "migrate_snapshot",
]
