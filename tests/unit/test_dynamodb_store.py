"""Tests for the DynamoDB checkpoint store."""

import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from itinerary_planner.config import CheckpointBackend, CheckpointConfig
from itinerary_planner.data.dynamodb import DynamoDBClient
from itinerary_planner.data.models import TripRequest
from itinerary_planner.orchestration.serialization import (
    Checkpoint,
    CheckpointStatus,
    DynamoDBCheckpointStore,
    create_checkpoint_store,
)
from itinerary_planner.orchestration.serialization.dynamodb_store import PENDING_SK
from itinerary_planner.orchestration.states.run_state import (
    Decision,
    Interrupt,
    InterruptType,
    RunState,
    RunStatus,
)
from itinerary_planner.utils.error_handling import PersistenceError


def _checkpoint():
    state = RunState(
        thread_id="thread-1",
        user_input=TripRequest(destination="北京", budget=500, days=2),
        status=RunStatus.INTERRUPTED,
        pending_interrupt=Interrupt(
            type=InterruptType.BUDGET_DECISION,
            node="budget_critic",
            message="Over budget",
        ),
    )
    return Checkpoint.from_state(state)


def _conditional_failure():
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "failed"}},
        "DeleteItem",
    )


@pytest.fixture
def db():
    return MagicMock(spec=DynamoDBClient)


@pytest.fixture
def dynamo_store(db):
    return DynamoDBCheckpointStore(
        db, retry_attempts=2, retry_min_wait_seconds=0, retry_max_wait_seconds=0
    )


def test_upsert_writes_pending_row(dynamo_store, db):
    checkpoint = _checkpoint()

    dynamo_store.upsert(checkpoint)

    item = db.put_item.call_args.args[0]
    assert item["PK"] == "THREAD#thread-1"
    assert item["SK"] == PENDING_SK
    assert item["Status"] == "pending"
    assert item["ExpiresAt"] == int(checkpoint.expires_at.timestamp())
    assert json.loads(item["Data"])["checkpoint_id"] == checkpoint.checkpoint_id


def test_get_reads_pending_row_consistently(dynamo_store, db):
    checkpoint = _checkpoint()
    dynamo_store.upsert(checkpoint)
    db.get_item.return_value = db.put_item.call_args.args[0]

    loaded = dynamo_store.get("thread-1")

    db.get_item.assert_called_once_with("THREAD#thread-1", PENDING_SK, consistent=True)
    assert loaded == checkpoint
    assert loaded.restore_state().thread_id == "thread-1"


def test_get_missing_thread(dynamo_store, db):
    db.get_item.return_value = None

    assert dynamo_store.get("nonexistent-thread") is None


def test_claim_moves_row_to_history(dynamo_store, db):
    dynamo_store.upsert(_checkpoint())
    db.delete_item.return_value = db.put_item.call_args.args[0]

    assert dynamo_store.mark_resumed("thread-1", Decision(type="approve")) is True

    kwargs = db.delete_item.call_args.kwargs
    assert kwargs["condition"] == "#status = :pending"
    assert kwargs["condition_values"] == {":pending": "pending"}
    closed_item = db.put_item.call_args.args[0]
    assert closed_item["SK"].startswith("CHECKPOINT#")
    assert closed_item["SK"] != PENDING_SK
    assert closed_item["Status"] == "resumed"


def test_claim_lost_to_condition(dynamo_store, db):
    db.delete_item.side_effect = _conditional_failure()

    assert dynamo_store.mark_cancelled("thread-1") is False


def test_claim_without_pending_row(dynamo_store, db):
    db.delete_item.return_value = None

    assert dynamo_store.mark_resumed("thread-1", Decision(type="approve")) is False


def test_audit_row_failure_keeps_claim(dynamo_store, db):
    dynamo_store.upsert(_checkpoint())
    db.delete_item.return_value = db.put_item.call_args.args[0]
    db.put_item.side_effect = EndpointConnectionError(endpoint_url="http://x")

    assert dynamo_store.mark_cancelled("thread-1") is True


def test_write_failure_is_retried_then_raised(dynamo_store, db):
    db.put_item.side_effect = EndpointConnectionError(endpoint_url="http://x")

    with pytest.raises(PersistenceError):
        dynamo_store.upsert(_checkpoint())

    assert db.put_item.call_count == 2


def test_history_orders_closed_rows_before_pending(dynamo_store, db):
    first = _checkpoint().closed(CheckpointStatus.RESUMED)
    pending = _checkpoint()
    db.query.return_value = [
        dynamo_store._to_item(pending, PENDING_SK),
        dynamo_store._to_item(first, "CHECKPOINT#2025#a"),
    ]

    history = dynamo_store.history("thread-1")

    assert [c.status for c in history] == [
        CheckpointStatus.RESUMED,
        CheckpointStatus.PENDING,
    ]


def test_create_store_from_config():
    config = CheckpointConfig(
        backend=CheckpointBackend.DYNAMODB,
        table_name="test-table",
        endpoint_url="http://localhost:8000",
    )

    with patch("itinerary_planner.data.dynamodb.boto3") as mock_boto3:
        store = create_checkpoint_store(config)

    assert isinstance(store, DynamoDBCheckpointStore)
    mock_boto3.resource.assert_called_once_with(
        "dynamodb", region_name="ap-northeast-1", endpoint_url="http://localhost:8000"
    )
    # Local endpoints get their table created on demand
    mock_boto3.resource.return_value.Table.return_value.load.assert_called_once()


@pytest.mark.parametrize(
    "item",
    [
        {"PK": "THREAD#thread-1", "SK": PENDING_SK, "Data": "{not json"},
        {"PK": "THREAD#thread-1", "SK": PENDING_SK},
    ],
)
def test_corrupt_pending_row_raises_persistence_error(dynamo_store, db, item):
    db.get_item.return_value = item

    with pytest.raises(PersistenceError):
        dynamo_store.get("thread-1")


def test_history_skips_corrupt_rows(dynamo_store, db):
    pending = _checkpoint()
    db.query.return_value = [
        {"PK": "THREAD#thread-1", "SK": "CHECKPOINT#2025#a", "Data": "{not json"},
        dynamo_store._to_item(pending, PENDING_SK),
    ]

    assert dynamo_store.history("thread-1") == [pending]


def test_claim_of_corrupt_row_still_succeeds(dynamo_store, db):
    db.delete_item.return_value = {"PK": "THREAD#thread-1", "SK": PENDING_SK}

    assert dynamo_store.mark_cancelled("thread-1") is True
    db.put_item.assert_not_called()
