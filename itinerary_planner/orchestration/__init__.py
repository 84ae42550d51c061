"""
Orchestration package for the itinerary planner.

This package implements the execution engine: a LangGraph state graph over
the pipeline nodes, the budget critic loop, the interrupt gate with its
checkpoint stores, progress events and the execution tracer.
"""

from itinerary_planner.orchestration.events import EventType, ProgressEvent
from itinerary_planner.orchestration.interrupts import InterruptGate
from itinerary_planner.orchestration.serialization import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    DynamoDBCheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
    create_checkpoint_store,
)
from itinerary_planner.orchestration.states import (
    Decision,
    DecisionType,
    InterruptType,
    RunState,
    RunStatus,
)
from itinerary_planner.orchestration.tracer import Tracer, TraceRecord, TraceStats
from itinerary_planner.orchestration.workflow import ExecutionEngine, RunResult

__all__ = [
    "Checkpoint",
    "CheckpointStatus",
    "CheckpointStore",
    "Decision",
    "DecisionType",
    "DynamoDBCheckpointStore",
    "EventType",
    "ExecutionEngine",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "InterruptGate",
    "InterruptType",
    "ProgressEvent",
    "RunResult",
    "RunState",
    "RunStatus",
    "TraceRecord",
    "TraceStats",
    "Tracer",
    "create_checkpoint_store",
]
