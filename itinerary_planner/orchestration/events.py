"""
Progress events emitted by the streaming engine entry points.

A stream is a finite, ordered sequence of events: one ``node_complete``
per finished node, then exactly one terminal event (``interrupt``,
``complete`` or ``error``) that closes it.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from itinerary_planner.utils.helpers import utc_now


class EventType(str, Enum):
    """Kinds of progress events."""

    NODE_COMPLETE = "node_complete"
    INTERRUPT = "interrupt"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not EventType.NODE_COMPLETE


class ProgressEvent(BaseModel):
    """One tagged progress record."""

    type: EventType
    thread_id: str | None = None
    node: str | None = None
    message: str | None = None
    data: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    def to_sse(self) -> str:
        """Render as a server-sent-events frame."""
        payload = self.model_dump(mode="json", exclude_none=True)
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"
