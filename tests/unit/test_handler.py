"""Tests for Lambda handler."""

from unittest.mock import patch

import pytest

from handler import _HANDLERS, _extract_user_id, async_handler, handler, route_event


def test_route_start():
    event = {
        "action": "start",
        "userId": "USER#123",
        "formData": {"destination": "杭州", "budget": 5000, "days": 3},
        "config": {"budget": {"max_retries": 1}},
    }
    action, params = route_event(event)
    assert action == "start"
    assert params["owner_id"] == "123"
    assert params["form_data"]["destination"] == "杭州"
    assert params["config"] == {"budget": {"max_retries": 1}}


def test_route_resume():
    event = {
        "action": "resume",
        "threadId": "thread-abc",
        "decision": {"type": "approve"},
    }
    action, params = route_event(event)
    assert action == "resume"
    assert params["thread_id"] == "thread-abc"
    assert params["decision"] == {"type": "approve"}
    assert params["owner_id"] is None


def test_route_unknown_action():
    event = {"action": "unknown"}
    action, params = route_event(event)
    assert action == "unknown"
    assert params["form_data"] == {}


def test_extract_user_id():
    assert _extract_user_id("USER#123") == "123"
    assert _extract_user_id("123") == "123"


def test_actions_registered():
    assert set(_HANDLERS) == {"start", "resume", "nodes", "trace", "stats"}


@pytest.mark.asyncio
async def test_unknown_action_is_error(engine):
    response = await async_handler({"action": "chat"}, engine=engine)

    assert response == {"status": "error", "error": "Unknown action: chat"}


@pytest.mark.asyncio
async def test_start_returns_result(engine, hangzhou_trip):
    response = await async_handler(
        {"action": "start", "userId": "USER#7", "formData": hangzhou_trip},
        engine=engine,
    )

    assert response["status"] == "ok"
    assert response["result"]["status"] == "completed"
    assert len(response["result"]["state"]["final_itinerary"]["days"]) == 3


@pytest.mark.asyncio
async def test_start_then_resume(engine, beijing_trip):
    started = await async_handler(
        {
            "action": "start",
            "formData": beijing_trip,
            "config": {"budget": {"max_retries": 3, "overage_threshold": 0.1}},
        },
        engine=engine,
    )
    assert started["result"]["status"] == "interrupted"
    assert started["result"]["interrupt_type"] == "budget_decision"

    resumed = await async_handler(
        {
            "action": "resume",
            "threadId": started["result"]["thread_id"],
            "decision": {"type": "approve"},
        },
        engine=engine,
    )

    assert resumed["status"] == "ok"
    assert resumed["result"]["status"] == "completed"


@pytest.mark.asyncio
async def test_resume_requires_thread_id(engine):
    response = await async_handler(
        {"action": "resume", "decision": {"type": "approve"}}, engine=engine
    )

    assert response == {"status": "error", "error": "No threadId provided"}


@pytest.mark.asyncio
async def test_resume_unknown_thread_is_not_found(engine):
    response = await async_handler(
        {
            "action": "resume",
            "threadId": "nonexistent-thread",
            "decision": {"type": "approve"},
        },
        engine=engine,
    )

    assert response["status"] == "error"
    assert response["error_type"] == "not_found"


@pytest.mark.asyncio
async def test_invalid_request_is_validation_error(engine):
    response = await async_handler(
        {"action": "start", "formData": {"destination": "", "budget": 100}},
        engine=engine,
    )

    assert response["status"] == "error"
    assert response["error_type"] == "validation_error"


@pytest.mark.asyncio
async def test_invalid_config_is_configuration_error(engine, hangzhou_trip):
    response = await async_handler(
        {
            "action": "start",
            "formData": hangzhou_trip,
            "config": {"budget": {"max_retries": -1}},
        },
        engine=engine,
    )

    assert response["status"] == "error"
    assert response["error_type"] == "configuration_error"


@pytest.mark.asyncio
async def test_nodes_action(engine):
    response = await async_handler({"action": "nodes"}, engine=engine)

    assert response["status"] == "ok"
    assert [node["id"] for node in response["data"]][0] == "generate"


@pytest.mark.asyncio
async def test_trace_and_stats_actions(engine, hangzhou_trip):
    started = await async_handler(
        {"action": "start", "formData": hangzhou_trip}, engine=engine
    )
    thread_id = started["result"]["thread_id"]

    trace = await async_handler(
        {"action": "trace", "threadId": thread_id}, engine=engine
    )
    stats = await async_handler({"action": "stats"}, engine=engine)

    assert [span["node_id"] for span in trace["data"]][-1] == "finalize"
    assert all(span["status"] == "success" for span in trace["data"])
    assert stats["data"]["total_runs"] == 1
    assert stats["data"]["succeeded"] == 1


@pytest.mark.asyncio
async def test_trace_requires_thread_id(engine):
    response = await async_handler({"action": "trace"}, engine=engine)

    assert response["status"] == "error"


def test_sync_handler_uses_cached_engine(engine):
    with patch("handler.get_engine", return_value=engine) as get_engine:
        response = handler({"action": "stats"})

    get_engine.assert_called_once()
    assert response["status"] == "ok"
    assert response["data"]["total_runs"] == 0
