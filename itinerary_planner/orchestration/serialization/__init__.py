"""
Checkpoint persistence for the itinerary planning workflow.

This package contains the checkpoint model, the CheckpointStore interface
and its in-memory, JSON-file and DynamoDB implementations.
"""

from itinerary_planner.config import CheckpointBackend, CheckpointConfig
from itinerary_planner.orchestration.serialization.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from itinerary_planner.orchestration.serialization.dynamodb_store import (
    DynamoDBCheckpointStore,
)


def create_checkpoint_store(config: CheckpointConfig) -> CheckpointStore:
    """
    Build the store selected by a CheckpointConfig.

    Args:
        config: Checkpoint settings

    Returns:
        A checkpoint store for the configured backend
    """
    if config.backend == CheckpointBackend.FILE:
        return FileCheckpointStore(config.directory)
    if config.backend == CheckpointBackend.DYNAMODB:
        return DynamoDBCheckpointStore.from_config(config)
    return InMemoryCheckpointStore()


__all__ = [
    "Checkpoint",
    "CheckpointStatus",
    "CheckpointStore",
    "DynamoDBCheckpointStore",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "create_checkpoint_store",
]
