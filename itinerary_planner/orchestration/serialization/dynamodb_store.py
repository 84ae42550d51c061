"""
DynamoDB checkpoint store.

Single-table layout:
    PK = THREAD#<thread_id>
    SK = CHECKPOINT#PENDING                    the one pending checkpoint
    SK = CHECKPOINT#<created_at>#<id>          closed checkpoints

The pending row's fixed sort key makes "one pending checkpoint per
thread" a property of the key schema. Closing deletes the pending row
under a ``Status = pending`` condition, so concurrent resumes cannot
both claim it.
"""

import json
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from itinerary_planner.config import CheckpointConfig
from itinerary_planner.data.dynamodb import DynamoDBClient, is_conditional_check_failure
from itinerary_planner.orchestration.serialization.checkpoint import (
    Checkpoint,
    CheckpointStatus,
    CheckpointStore,
)
from itinerary_planner.orchestration.states.run_state import Decision
from itinerary_planner.utils.error_handling import PersistenceError
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

PENDING_SK = "CHECKPOINT#PENDING"
SK_PREFIX = "CHECKPOINT#"


def thread_pk(thread_id: str) -> str:
    return f"THREAD#{thread_id}"


def closed_sk(checkpoint: Checkpoint) -> str:
    return f"{SK_PREFIX}{checkpoint.created_at.isoformat()}#{checkpoint.checkpoint_id}"


class DynamoDBCheckpointStore(CheckpointStore):
    """Checkpoint store backed by a DynamoDB single table."""

    def __init__(self, db: DynamoDBClient, **retry_kwargs: Any):
        super().__init__(**retry_kwargs)
        self.db = db

    @classmethod
    def from_config(cls, config: CheckpointConfig) -> "DynamoDBCheckpointStore":
        db = DynamoDBClient(
            table_name=config.table_name,
            region=config.region,
            endpoint_url=config.endpoint_url,
        )
        if config.endpoint_url:
            db.create_table_if_not_exists()
        return cls(db)

    def _to_item(self, checkpoint: Checkpoint, sk: str) -> dict[str, Any]:
        item: dict[str, Any] = {
            "PK": thread_pk(checkpoint.thread_id),
            "SK": sk,
            "Status": checkpoint.status.value,
            "InterruptType": checkpoint.interrupt_type.value,
            "CreatedAt": checkpoint.created_at.isoformat(),
            "Data": json.dumps(checkpoint.model_dump(mode="json"), ensure_ascii=False),
        }
        if checkpoint.expires_at is not None:
            item["ExpiresAt"] = int(checkpoint.expires_at.timestamp())
        return item

    def _from_item(self, item: dict[str, Any]) -> Checkpoint:
        try:
            return Checkpoint.model_validate(json.loads(item["Data"]))
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(
                f"Unreadable checkpoint row {item.get('SK')} of {item.get('PK')}", e
            ) from e

    def _decode_rows(self, items: list[dict[str, Any]]) -> list[Checkpoint]:
        rows = []
        for item in items:
            try:
                rows.append(self._from_item(item))
            except PersistenceError as e:
                logger.error(f"Skipping checkpoint row: {e!s}")
        return rows

    def history(self, thread_id: str) -> list[Checkpoint]:
        try:
            items = self.db.query(pk=thread_pk(thread_id), sk_prefix=SK_PREFIX)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(
                f"Failed to query checkpoints of {thread_id}", e
            ) from e

        closed = self._decode_rows([i for i in items if i["SK"] != PENDING_SK])
        pending = self._decode_rows([i for i in items if i["SK"] == PENDING_SK])
        closed.sort(key=lambda c: c.created_at)
        return closed + pending

    def _put_pending(self, checkpoint: Checkpoint) -> None:
        try:
            self.db.put_item(self._to_item(checkpoint, PENDING_SK))
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(
                f"Failed to store checkpoint for {checkpoint.thread_id}", e
            ) from e

    def _get_pending(self, thread_id: str) -> Checkpoint | None:
        try:
            item = self.db.get_item(thread_pk(thread_id), PENDING_SK, consistent=True)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(
                f"Failed to read checkpoint of {thread_id}", e
            ) from e

        return self._from_item(item) if item else None

    def _close_pending(
        self, thread_id: str, status: CheckpointStatus, decision: Decision | None
    ) -> bool:
        try:
            old_item = self.db.delete_item(
                thread_pk(thread_id),
                PENDING_SK,
                condition="#status = :pending",
                condition_values={":pending": CheckpointStatus.PENDING.value},
                condition_names={"#status": "Status"},
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                return False
            raise PersistenceError(
                f"Failed to close checkpoint of {thread_id}", e
            ) from e
        except BotoCoreError as e:
            raise PersistenceError(
                f"Failed to close checkpoint of {thread_id}", e
            ) from e

        if not old_item:
            return False

        try:
            checkpoint = self._from_item(old_item).closed(status, decision)
            self.db.put_item(self._to_item(checkpoint, closed_sk(checkpoint)))
        except (BotoCoreError, ClientError, PersistenceError) as e:
            # The claim already succeeded; only the audit row is missing.
            logger.warning(f"Failed to record closed checkpoint of {thread_id}: {e!s}")
        logger.info(f"Checkpoint for {thread_id} marked {status.value}")
        return True
