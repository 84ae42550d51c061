"""
AWS Lambda handler for the itinerary planning engine.

Entry point for backend calls via lambda.invoke(). Routes events by
"action" field to the execution engine.
"""

import functools
from typing import Any

from itinerary_planner.config import initialize_config
from itinerary_planner.orchestration.workflow import ExecutionEngine
from itinerary_planner.utils.error_handling import (
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

# Error class -> error_type reported to the caller
_ERROR_TYPES: tuple[tuple[type[Exception], str], ...] = (
    (ValidationError, "validation_error"),
    (ConfigurationError, "configuration_error"),
    (NotFoundError, "not_found"),
)


def _extract_user_id(user_id_raw: str) -> str:
    """Extract user ID from USER#123 format."""
    if user_id_raw.startswith("USER#"):
        return user_id_raw[5:]
    return user_id_raw


@functools.cache
def get_engine() -> ExecutionEngine:
    """Engine for this Lambda container, built from the environment."""
    return ExecutionEngine.from_config(initialize_config())


def route_event(event: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Parse event and extract action + parameters."""
    action = event.get("action", "unknown")
    params: dict[str, Any] = {}

    user_id_raw = event.get("userId", "")
    params["owner_id"] = _extract_user_id(user_id_raw) if user_id_raw else None

    params["form_data"] = event.get("formData") or {}
    params["thread_id"] = event.get("threadId")
    params["decision"] = event.get("decision") or {}
    params["config"] = event.get("config")

    return action, params


async def _handle_start(
    engine: ExecutionEngine, params: dict[str, Any]
) -> dict[str, Any]:
    result = await engine.start(
        params["form_data"], params["config"], owner_id=params["owner_id"]
    )
    return {"status": "ok", "result": result.to_dict()}


async def _handle_resume(
    engine: ExecutionEngine, params: dict[str, Any]
) -> dict[str, Any]:
    if not params.get("thread_id"):
        return {"status": "error", "error": "No threadId provided"}

    result = await engine.resume(
        params["thread_id"],
        params["decision"],
        params["config"],
        owner_id=params["owner_id"],
    )
    return {"status": "ok", "result": result.to_dict()}


async def _handle_nodes(
    engine: ExecutionEngine, params: dict[str, Any]
) -> dict[str, Any]:
    return {
        "status": "ok",
        "data": [spec.model_dump(mode="json") for spec in engine.list_nodes()],
    }


async def _handle_trace(
    engine: ExecutionEngine, params: dict[str, Any]
) -> dict[str, Any]:
    if not params.get("thread_id"):
        return {"status": "error", "error": "No threadId provided"}

    return {
        "status": "ok",
        "data": [
            record.model_dump(mode="json")
            for record in engine.get_trace(params["thread_id"])
        ],
    }


async def _handle_stats(
    engine: ExecutionEngine, params: dict[str, Any]
) -> dict[str, Any]:
    return {"status": "ok", "data": engine.get_stats().model_dump(mode="json")}


# Action handlers map
_HANDLERS = {
    "start": _handle_start,
    "resume": _handle_resume,
    "nodes": _handle_nodes,
    "trace": _handle_trace,
    "stats": _handle_stats,
}


async def async_handler(
    event: dict[str, Any], engine: ExecutionEngine | None = None
) -> dict[str, Any]:
    """Main async handler."""
    action, params = route_event(event)

    handler_fn = _HANDLERS.get(action)
    if not handler_fn:
        return {"status": "error", "error": f"Unknown action: {action}"}

    try:
        return await handler_fn(engine or get_engine(), params)
    except Exception as e:
        logger.error(f"Error handling {action}: {e}")
        response = {"status": "error", "error": str(e)}
        for error_class, error_type in _ERROR_TYPES:
            if isinstance(e, error_class):
                response["error_type"] = error_type
                break
        return response


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Lambda entry point (sync wrapper)."""
    import asyncio

    return asyncio.run(async_handler(event))
