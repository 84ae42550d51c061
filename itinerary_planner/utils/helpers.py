"""
Helper utilities for the itinerary planner.

This module provides general utility functions used across the application.
"""

import json
import re
import uuid
from datetime import UTC, datetime
from typing import Any


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with an optional prefix.

    Args:
        prefix: Optional prefix for the ID

    Returns:
        A unique ID string
    """
    unique_id = str(uuid.uuid4()).replace("-", "")
    if prefix:
        return f"{prefix}-{unique_id}"
    return unique_id


def generate_thread_id() -> str:
    """
    Generate a unique thread ID for a planning run.

    Returns:
        A unique thread ID string
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    unique_part = str(uuid.uuid4())[:8]
    return f"trip-{timestamp}-{unique_part}"


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(UTC)


_FENCED_JSON = re.compile(r"```(?:json)?\s*\n([\s\S]*?)\n\s*```")


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Extract a JSON object from model output.

    Accepts bare JSON, JSON wrapped in a markdown code fence, or JSON
    surrounded by prose.

    Args:
        text: Raw model output

    Returns:
        Parsed JSON object

    Raises:
        ValueError: If no JSON object can be parsed
    """
    if not text or not text.strip():
        raise ValueError("Empty model response")

    match = _FENCED_JSON.search(text)
    candidate = match.group(1) if match else text.strip()

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON object found in model response") from None
        try:
            data = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed JSON in model response: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Model response JSON is not an object")
    return data

