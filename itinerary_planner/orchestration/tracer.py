"""
Execution tracer for the itinerary planning pipeline.

Records one span per node invocation, including repeated invocations from
budget retries, plus one record per engine invocation for aggregate
statistics. Tracing is a side channel: a failure to record is logged and
never reaches the pipeline.
"""

import functools
import json
import threading
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar, cast

from pydantic import BaseModel, Field, computed_field

from itinerary_planner.utils.helpers import generate_id, utc_now
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class SpanStatus(str, Enum):
    """Outcome of one node invocation."""

    RUNNING = "running"
    SUCCESS = "success"
    INTERRUPTED = "interrupted"
    ERROR = "error"


class TraceRecord(BaseModel):
    """One node invocation."""

    span_id: str = Field(default_factory=lambda: generate_id("span"))
    thread_id: str
    node_id: str
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    status: SpanStatus = SpanStatus.RUNNING
    error: str | None = None

    @computed_field
    @property
    def duration_ms(self) -> float | None:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000


class RunRecord(BaseModel):
    """One start or resume invocation."""

    thread_id: str
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    status: str | None = None


class TraceStats(BaseModel):
    """Aggregate statistics over finished invocations."""

    total_runs: int = 0
    succeeded: int = 0
    failed: int = 0
    avg_duration_ms: float = 0.0


def best_effort(func: F) -> F:
    """Log and swallow tracer failures."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Tracer {func.__name__} failed: {e!s}")
            return None

    return cast(F, wrapper)


class Tracer:
    """
    In-memory, append-only trace sink.

    An engine owns one tracer; start and resume calls on the same engine
    append to the same per-thread trace.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._spans: dict[str, TraceRecord] = {}
        self._by_thread: dict[str, list[str]] = {}
        self._runs: dict[str, RunRecord] = {}

    @best_effort
    def start_run(self, thread_id: str) -> str:
        run_id = generate_id("run")
        with self._lock:
            self._runs[run_id] = RunRecord(thread_id=thread_id)
        return run_id

    @best_effort
    def end_run(self, run_id: str | None, status: str) -> None:
        if run_id is None:
            return
        with self._lock:
            run = self._runs[run_id]
            run.completed_at = utc_now()
            run.status = status

    @best_effort
    def start_span(self, thread_id: str, node_id: str) -> str:
        record = TraceRecord(thread_id=thread_id, node_id=node_id)
        with self._lock:
            self._spans[record.span_id] = record
            self._by_thread.setdefault(thread_id, []).append(record.span_id)
        return record.span_id

    @best_effort
    def end_span(
        self, span_id: str | None, status: SpanStatus, error: str | None = None
    ) -> None:
        if span_id is None:
            return
        with self._lock:
            record = self._spans[span_id]
            record.completed_at = utc_now()
            record.status = status
            record.error = error

    def get_trace(self, thread_id: str) -> list[TraceRecord]:
        """Spans of a thread in invocation order."""
        with self._lock:
            return [
                self._spans[span_id].model_copy()
                for span_id in self._by_thread.get(thread_id, [])
            ]

    def get_stats(self) -> TraceStats:
        """
        Statistics over finished start/resume invocations.

        ``succeeded`` counts invocations that completed the itinerary and
        ``failed`` those that ended in a node failure.
        """
        with self._lock:
            finished = [run for run in self._runs.values() if run.completed_at]

        if not finished:
            return TraceStats()

        durations = [
            (run.completed_at - run.started_at).total_seconds() * 1000
            for run in finished
        ]
        return TraceStats(
            total_runs=len(finished),
            succeeded=sum(1 for run in finished if run.status == "completed"),
            failed=sum(1 for run in finished if run.status == "failed"),
            avg_duration_ms=sum(durations) / len(durations),
        )

    def export_json(self) -> str:
        """All spans grouped by thread, as JSON."""
        with self._lock:
            data = {
                thread_id: [
                    self._spans[span_id].model_dump(mode="json") for span_id in span_ids
                ]
                for thread_id, span_ids in self._by_thread.items()
            }
        return json.dumps(data, indent=2, ensure_ascii=False)
