"""
Checkpoint persistence for suspended planning runs.

A checkpoint holds the typed snapshot of a run that paused for a human
decision. Every store keeps at most one pending checkpoint per thread:
a new interrupt overwrites the pending one, and a resume or cancel moves
it to a closed status exactly once. Pending checkpoints past their expiry
are treated as absent.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from itinerary_planner.orchestration.states.run_state import (
    Decision,
    InterruptType,
    RunState,
)
from itinerary_planner.utils.error_handling import PersistenceError, with_retry
from itinerary_planner.utils.helpers import generate_id, utc_now
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

# Default directory for storing checkpoints
DEFAULT_CHECKPOINT_DIR = os.path.expanduser("~/.itinerary_planner/checkpoints")


class CheckpointStatus(str, Enum):
    """Lifecycle of a checkpoint."""

    PENDING = "pending"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Checkpoint(BaseModel):
    """Persisted snapshot of a paused run."""

    checkpoint_id: str = Field(default_factory=lambda: generate_id("ckpt"))
    thread_id: str
    interrupt_type: InterruptType
    node: str
    message: str = ""
    options: dict[str, Any] = Field(default_factory=dict)
    state_snapshot: dict[str, Any]
    status: CheckpointStatus = CheckpointStatus.PENDING
    owner_id: str | None = None
    decision: Decision | None = None
    created_at: datetime = Field(default_factory=utc_now)
    resumed_at: datetime | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_state(cls, state: RunState, ttl_hours: float = 24) -> "Checkpoint":
        """
        Build a pending checkpoint from an interrupted run.

        Raises:
            ValueError: If the state carries no pending interrupt
        """
        interrupt = state.pending_interrupt
        if interrupt is None:
            raise ValueError(f"Run {state.thread_id} has no pending interrupt")
        created_at = utc_now()
        return cls(
            thread_id=state.thread_id,
            interrupt_type=interrupt.type,
            node=interrupt.node,
            message=interrupt.message,
            options=interrupt.options,
            state_snapshot=state.to_snapshot(),
            owner_id=state.owner_id,
            created_at=created_at,
            expires_at=created_at + timedelta(hours=ttl_hours),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or utc_now()) >= self.expires_at

    def restore_state(self) -> RunState:
        """Rebuild the run state, migrating older snapshot versions."""
        return RunState.from_snapshot(self.state_snapshot)

    def closed(
        self, status: CheckpointStatus, decision: Decision | None = None
    ) -> "Checkpoint":
        """Copy of this checkpoint moved to a terminal status."""
        return self.model_copy(
            update={"status": status, "decision": decision, "resumed_at": utc_now()}
        )


class CheckpointStore(ABC):
    """
    Keyed persistence of suspended runs.

    Subclasses implement the storage primitives; writes are retried with
    exponential backoff when they raise PersistenceError.
    """

    def __init__(
        self,
        retry_attempts: int = 3,
        retry_min_wait_seconds: float = 0.5,
        retry_max_wait_seconds: float = 5.0,
    ):
        self._retry = with_retry(
            max_attempts=retry_attempts,
            min_wait_seconds=retry_min_wait_seconds,
            max_wait_seconds=retry_max_wait_seconds,
        )

    def upsert(self, checkpoint: Checkpoint) -> None:
        """
        Store a pending checkpoint, replacing any pending one for its thread.

        Raises:
            PersistenceError: If the write still fails after retries
        """
        self._retry(self._put_pending)(checkpoint)
        logger.debug(
            f"Stored {checkpoint.interrupt_type.value} checkpoint "
            f"for {checkpoint.thread_id}"
        )

    def get(self, thread_id: str) -> Checkpoint | None:
        """
        The pending checkpoint of a thread.

        Returns:
            The checkpoint, or None if there is none or it has expired
        """
        checkpoint = self._get_pending(thread_id)
        if checkpoint is None:
            return None
        if checkpoint.is_expired():
            if self._transition(thread_id, CheckpointStatus.EXPIRED, None):
                logger.info(f"Checkpoint for {thread_id} expired")
            return None
        return checkpoint

    def mark_resumed(self, thread_id: str, decision: Decision) -> bool:
        """
        Close the pending checkpoint as resumed.

        Returns:
            True if this call closed it, False if it was no longer pending
        """
        return self._transition(thread_id, CheckpointStatus.RESUMED, decision)

    def mark_cancelled(self, thread_id: str, decision: Decision | None = None) -> bool:
        """
        Close the pending checkpoint as cancelled.

        Returns:
            True if this call closed it, False if it was no longer pending
        """
        return self._transition(thread_id, CheckpointStatus.CANCELLED, decision)

    def _transition(
        self,
        thread_id: str,
        status: CheckpointStatus,
        decision: Decision | None,
    ) -> bool:
        return self._retry(self._close_pending)(thread_id, status, decision)

    @abstractmethod
    def history(self, thread_id: str) -> list[Checkpoint]:
        """All checkpoints of a thread, oldest first, pending one last."""

    @abstractmethod
    def _put_pending(self, checkpoint: Checkpoint) -> None:
        """Write the pending row, overwriting any existing one."""

    @abstractmethod
    def _get_pending(self, thread_id: str) -> Checkpoint | None:
        """Read the pending row."""

    @abstractmethod
    def _close_pending(
        self, thread_id: str, status: CheckpointStatus, decision: Decision | None
    ) -> bool:
        """Atomically move the pending row to a closed status."""


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store for tests and development."""

    def __init__(self, **retry_kwargs: Any):
        super().__init__(**retry_kwargs)
        self._lock = threading.Lock()
        self._pending: dict[str, Checkpoint] = {}
        self._closed: dict[str, list[Checkpoint]] = {}

    def history(self, thread_id: str) -> list[Checkpoint]:
        with self._lock:
            rows = list(self._closed.get(thread_id, []))
            if thread_id in self._pending:
                rows.append(self._pending[thread_id])
            return rows

    def _put_pending(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            self._pending[checkpoint.thread_id] = checkpoint.model_copy(deep=True)

    def _get_pending(self, thread_id: str) -> Checkpoint | None:
        with self._lock:
            checkpoint = self._pending.get(thread_id)
            return checkpoint.model_copy(deep=True) if checkpoint else None

    def _close_pending(
        self, thread_id: str, status: CheckpointStatus, decision: Decision | None
    ) -> bool:
        with self._lock:
            checkpoint = self._pending.pop(thread_id, None)
            if checkpoint is None:
                return False
            self._closed.setdefault(thread_id, []).append(
                checkpoint.closed(status, decision)
            )
            return True


class FileCheckpointStore(CheckpointStore):
    """
    JSON-file store.

    Each thread has a directory holding ``pending.json`` and one file per
    closed checkpoint. Writes go through a temporary file and an atomic
    replace; closing renames the pending file first so only one caller
    can claim it.
    """

    def __init__(self, checkpoint_dir: str | None = None, **retry_kwargs: Any):
        """
        Initialize the file store.

        Args:
            checkpoint_dir: Directory for storing checkpoints (optional)
        """
        super().__init__(**retry_kwargs)
        self.checkpoint_dir = checkpoint_dir or DEFAULT_CHECKPOINT_DIR

        # Ensure checkpoint directory exists
        os.makedirs(self.checkpoint_dir, exist_ok=True)

    def _thread_dir(self, thread_id: str) -> str:
        safe_name = quote(thread_id, safe="")
        return os.path.join(self.checkpoint_dir, f"thread-{safe_name}")

    def _pending_path(self, thread_id: str) -> str:
        return os.path.join(self._thread_dir(thread_id), "pending.json")

    def _write_json(self, path: str, checkpoint: Checkpoint) -> None:
        tmp_path = f"{path}.{generate_id()}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(
                    checkpoint.model_dump(mode="json"), f, indent=2, ensure_ascii=False
                )
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write checkpoint {path}", e) from e

    def _read_json(self, path: str) -> Checkpoint:
        """
        Load one checkpoint file.

        Raises:
            FileNotFoundError: If the file does not exist
            PersistenceError: If the file cannot be read or parsed
        """
        try:
            with open(path, encoding="utf-8") as f:
                return Checkpoint.model_validate(json.load(f))
        except FileNotFoundError:
            raise
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read checkpoint {path}", e) from e

    def history(self, thread_id: str) -> list[Checkpoint]:
        thread_dir = self._thread_dir(thread_id)
        if not os.path.isdir(thread_dir):
            return []

        rows = []
        for filename in sorted(os.listdir(thread_dir)):
            if not filename.endswith(".json") or filename == "pending.json":
                continue
            try:
                rows.append(self._read_json(os.path.join(thread_dir, filename)))
            except (OSError, PersistenceError) as e:
                logger.error(f"Error reading checkpoint {filename}: {e}")
        rows.sort(key=lambda c: c.created_at)

        pending = self._get_pending(thread_id)
        if pending is not None:
            rows.append(pending)
        return rows

    def _put_pending(self, checkpoint: Checkpoint) -> None:
        self._write_json(self._pending_path(checkpoint.thread_id), checkpoint)

    def _get_pending(self, thread_id: str) -> Checkpoint | None:
        try:
            return self._read_json(self._pending_path(thread_id))
        except FileNotFoundError:
            return None

    def _close_pending(
        self, thread_id: str, status: CheckpointStatus, decision: Decision | None
    ) -> bool:
        pending_path = self._pending_path(thread_id)
        claim_path = f"{pending_path}.{generate_id()}.claim"
        try:
            os.rename(pending_path, claim_path)
        except FileNotFoundError:
            return False

        # The rename is the claim; a failure past this point only loses the
        # closed record, and the claim file is left behind for inspection
        try:
            checkpoint = self._read_json(claim_path).closed(status, decision)
            closed_name = (
                f"{checkpoint.created_at:%Y%m%dT%H%M%S%f}-"
                f"{checkpoint.checkpoint_id}.json"
            )
            closed_path = os.path.join(self._thread_dir(thread_id), closed_name)
            self._write_json(closed_path, checkpoint)
            os.remove(claim_path)
        except (OSError, PersistenceError) as e:
            logger.warning(f"Failed to record closed checkpoint of {thread_id}: {e!s}")
        logger.info(f"Checkpoint for {thread_id} marked {status.value}")
        return True
