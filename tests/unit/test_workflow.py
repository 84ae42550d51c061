"""
Tests for the execution engine: start/resume results, the budget critic
loop, human decisions and the error boundary.
"""

import pytest

from itinerary_planner.orchestration.serialization import (
    CheckpointStatus,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from itinerary_planner.orchestration.states.run_state import (
    Decision,
    DecisionType,
    InterruptType,
    RunStatus,
)
from itinerary_planner.utils.error_handling import (
    ConfigurationError,
    NotFoundError,
    PersistenceError,
    PersistenceWarning,
    ValidationError,
)

SCENARIO_2_CONFIG = {"budget": {"max_retries": 3, "overage_threshold": 0.1}}
REVIEW_CONFIG = {"hitl": {"enable_itinerary_review": True}}


def _spans(tracer, thread_id, node_id):
    return [r for r in tracer.get_trace(thread_id) if r.node_id == node_id]


# Scenario 1


@pytest.mark.asyncio
async def test_start_within_budget_completes(engine, fake_provider, hangzhou_trip):
    result = await engine.start(hangzhou_trip)

    assert result.status == RunStatus.COMPLETED
    state = result.state
    assert len(state.final_itinerary.days) == 3
    assert state.budget_result.accepted is True
    assert state.retry_count == 0
    assert fake_provider.calls == 1


@pytest.mark.asyncio
async def test_completed_run_traces_every_node_in_order(
    engine, tracer, hangzhou_trip
):
    result = await engine.start(hangzhou_trip)

    nodes = [r.node_id for r in tracer.get_trace(result.thread_id)]
    assert nodes == [
        "generate",
        "correct_coordinates",
        "cluster_by_geography",
        "budget_critic",
        "finalize",
    ]
    assert all(r.status.value == "success" for r in tracer.get_trace(result.thread_id))


# Scenario 2


@pytest.mark.asyncio
async def test_start_over_budget_interrupts_after_retries(
    engine, fake_provider, store, beijing_trip
):
    result = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    assert result.status == RunStatus.INTERRUPTED
    assert result.interrupt_type == InterruptType.BUDGET_DECISION
    assert set(result.options) == {"accept_over_budget", "reduce_scope", "cancel"}
    assert result.checkpoint_persisted is True

    checkpoint = store.get(result.thread_id)
    assert checkpoint is not None
    assert checkpoint.status == CheckpointStatus.PENDING
    assert checkpoint.restore_state().retry_count == 3
    assert fake_provider.calls == 4


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 1, 2, 5])
async def test_exactly_max_retries_regenerations(
    make_engine, make_provider, tracer, beijing_trip, max_retries
):
    provider = make_provider()
    engine = make_engine(provider)

    result = await engine.start(beijing_trip, {"budget": {"max_retries": max_retries}})

    assert result.status == RunStatus.INTERRUPTED
    assert provider.calls == max_retries + 1
    assert len(_spans(tracer, result.thread_id, "budget_critic")) == max_retries + 1
    assert result.state.retry_count == max_retries


@pytest.mark.asyncio
async def test_retry_prompt_carries_cost_hint(engine, fake_provider, beijing_trip):
    await engine.start(beijing_trip, {"budget": {"max_retries": 1}})

    assert "Budget feedback" not in fake_provider.prompts[0]
    assert "Budget feedback (retry 1)" in fake_provider.prompts[1]
    assert "must not exceed 500" in fake_provider.prompts[1]


@pytest.mark.asyncio
async def test_budget_loop_stops_once_cost_fits(make_engine, make_provider):
    provider = make_provider(retry_factor=0.5)
    engine = make_engine(provider)

    result = await engine.start({"destination": "杭州", "budget": 1000, "days": 3})

    assert result.status == RunStatus.COMPLETED
    assert result.state.retry_count == 2
    assert result.state.budget_result.accepted is True
    assert result.state.cost_hint is None
    assert provider.calls == 3


@pytest.mark.asyncio
async def test_exhausted_retries_finalize_when_budget_decision_disabled(
    engine, fake_provider, beijing_trip
):
    config = {**SCENARIO_2_CONFIG, "hitl": {"enable_budget_decision": False}}

    result = await engine.start(beijing_trip, config)

    assert result.status == RunStatus.COMPLETED
    assert result.state.budget_result.accepted is False
    assert result.state.final_itinerary is not None
    assert fake_provider.calls == 4


# Scenario 3


@pytest.mark.asyncio
async def test_approve_budget_decision_finalizes_verbatim(
    engine, fake_provider, store, tracer, beijing_trip
):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    thread_id = interrupted.thread_id
    snapshot = store.get(thread_id).restore_state()
    generate_spans = len(_spans(tracer, thread_id, "generate"))

    result = await engine.resume(thread_id, {"type": "approve"})

    assert result.status == RunStatus.COMPLETED
    assert result.state.final_itinerary == snapshot.clustered_itinerary
    assert result.state.budget_result.user_override is True
    assert len(_spans(tracer, thread_id, "generate")) == generate_spans
    assert fake_provider.calls == 4
    assert store.get(thread_id) is None
    assert store.history(thread_id)[-1].status == CheckpointStatus.RESUMED


# Scenario 4


@pytest.mark.asyncio
async def test_adjust_budget_decision_applies_time_change(
    engine, fake_provider, store, tracer, beijing_trip
):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    thread_id = interrupted.thread_id
    snapshot = store.get(thread_id).restore_state()
    critic_spans = len(_spans(tracer, thread_id, "budget_critic"))

    result = await engine.resume(
        thread_id,
        {
            "type": "adjust",
            "payload": {
                "time_adjustments": [
                    {"day_index": 0, "activity_index": 1, "new_time": "10:30"}
                ]
            },
        },
    )

    assert result.status == RunStatus.COMPLETED
    final = result.state.final_itinerary
    assert final.days[0].activities[1].time == "10:30"

    before = snapshot.clustered_itinerary
    for day_index, day in enumerate(final.days):
        for activity_index, activity in enumerate(day.activities):
            if (day_index, activity_index) == (0, 1):
                continue
            assert activity == before.days[day_index].activities[activity_index]

    assert result.state.budget_result.user_override is True
    assert result.state.retry_count == 3
    assert len(_spans(tracer, thread_id, "budget_critic")) == critic_spans
    assert fake_provider.calls == 4


@pytest.mark.asyncio
async def test_adjust_removal_reprices_itinerary(engine, beijing_trip):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    before = interrupted.state.budget_result.total_cost

    result = await engine.resume(
        interrupted.thread_id,
        {
            "type": "adjust",
            "payload": {"remove_activities": [{"day_index": 0, "activity_index": 0}]},
        },
    )

    assert len(result.state.final_itinerary.days[0].activities) == 1
    assert result.state.budget_result.total_cost == before - 100


@pytest.mark.asyncio
async def test_selected_reduction_regenerates_once(
    engine, fake_provider, store, beijing_trip
):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    option = interrupted.options["reduce_scope"]["adjustments"][0]
    assert option["action"] == "downgrade_hotel"

    result = await engine.resume(
        interrupted.thread_id, option["decision"], SCENARIO_2_CONFIG
    )

    # Still over budget after the extra pass, so the decision is asked again
    assert result.status == RunStatus.INTERRUPTED
    assert result.interrupt_type == InterruptType.BUDGET_DECISION
    assert fake_provider.calls == 5
    assert result.state.retry_count == 4
    assert "Budget feedback (retry 4)" in fake_provider.prompts[-1]
    assert "economical accommodation" in fake_provider.prompts[-1]
    assert store.get(interrupted.thread_id).status == CheckpointStatus.PENDING


@pytest.mark.asyncio
async def test_selected_reduction_completes_when_plan_fits(
    make_engine, make_provider
):
    provider = make_provider(retry_factor=0.5)
    engine = make_engine(provider)
    config = {"budget": {"max_retries": 2}}
    trip = {"destination": "北京", "budget": 700, "days": 6}
    interrupted = await engine.start(trip, config)
    assert interrupted.status == RunStatus.INTERRUPTED

    result = await engine.resume(
        interrupted.thread_id,
        {"type": "adjust", "payload": {"selected_action": "reduce_attractions"}},
        config,
    )

    assert result.status == RunStatus.COMPLETED
    assert provider.calls == 4
    assert result.state.budget_result.accepted is True
    assert result.state.budget_result.total_cost == 600
    assert "Replace some paid attractions" in provider.prompts[-1]


@pytest.mark.asyncio
async def test_selected_reduction_rejected_for_review(engine, store, hangzhou_trip):
    interrupted = await engine.start(hangzhou_trip, REVIEW_CONFIG)

    with pytest.raises(ValidationError):
        await engine.resume(
            interrupted.thread_id,
            {"type": "adjust", "payload": {"selected_action": "downgrade_hotel"}},
            REVIEW_CONFIG,
        )

    assert store.get(interrupted.thread_id) is not None


@pytest.mark.asyncio
async def test_resume_corrupt_checkpoint_raises_persistence_error(
    make_engine, fake_provider, beijing_trip, tmp_path
):
    store = FileCheckpointStore(
        str(tmp_path), retry_min_wait_seconds=0, retry_max_wait_seconds=0
    )
    engine = make_engine(fake_provider, store=store)
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    with open(store._pending_path(interrupted.thread_id), "w", encoding="utf-8") as f:
        f.write('{"thread_id": ')

    with pytest.raises(PersistenceError):
        await engine.resume(interrupted.thread_id, {"type": "approve"})


# Scenario 5


@pytest.mark.asyncio
async def test_resume_unknown_thread_raises_not_found(engine):
    with pytest.raises(NotFoundError):
        await engine.resume("nonexistent-thread", {"type": "approve"})


# Cancellation and claims


@pytest.mark.asyncio
async def test_cancel_never_generates(engine, fake_provider, store, beijing_trip):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    calls = fake_provider.calls

    result = await engine.resume(interrupted.thread_id, Decision(type="cancel"))

    assert result.status == RunStatus.CANCELLED
    assert fake_provider.calls == calls
    assert store.get(interrupted.thread_id) is None
    assert store.history(interrupted.thread_id)[-1].status == CheckpointStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_works_without_provider_credentials(
    make_engine, make_provider, beijing_trip
):
    provider = make_provider()
    engine = make_engine(provider)
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    provider.configured = False

    result = await engine.resume(interrupted.thread_id, {"type": "cancel"})

    assert result.status == RunStatus.CANCELLED


@pytest.mark.asyncio
async def test_second_resume_raises_not_found(engine, beijing_trip):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    await engine.resume(interrupted.thread_id, {"type": "approve"})

    with pytest.raises(NotFoundError):
        await engine.resume(interrupted.thread_id, {"type": "approve"})


@pytest.mark.asyncio
async def test_invalid_decision_leaves_checkpoint_pending(engine, store, beijing_trip):
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    with pytest.raises(ValidationError):
        await engine.resume(
            interrupted.thread_id,
            {"type": "request_changes", "payload": {"feedback": "cheaper"}},
        )
    with pytest.raises(ValidationError):
        await engine.resume(
            interrupted.thread_id,
            {
                "type": "adjust",
                "payload": {
                    "remove_activities": [{"day_index": 9, "activity_index": 0}]
                },
            },
        )
    with pytest.raises(ValidationError):
        await engine.resume(interrupted.thread_id, {"type": "teleport"})

    assert store.get(interrupted.thread_id) is not None


@pytest.mark.asyncio
async def test_expired_checkpoint_cannot_be_resumed(
    make_engine, fake_provider, store, beijing_trip
):
    engine = make_engine(fake_provider, checkpoint_ttl_hours=-1)
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    with pytest.raises(NotFoundError):
        await engine.resume(interrupted.thread_id, {"type": "approve"})
    assert store.history(interrupted.thread_id)[-1].status == CheckpointStatus.EXPIRED


@pytest.mark.asyncio
async def test_ownership_check_hides_foreign_checkpoints(
    make_engine, fake_provider, beijing_trip
):
    engine = make_engine(
        fake_provider,
        ownership_check=lambda owner_id, checkpoint: owner_id == checkpoint.owner_id,
    )
    interrupted = await engine.start(beijing_trip, SCENARIO_2_CONFIG, owner_id="alice")

    with pytest.raises(NotFoundError):
        await engine.resume(interrupted.thread_id, {"type": "approve"}, owner_id="bob")

    result = await engine.resume(
        interrupted.thread_id, {"type": "approve"}, owner_id="alice"
    )
    assert result.status == RunStatus.COMPLETED


# Itinerary review


@pytest.mark.asyncio
async def test_review_interrupt_then_approve(engine, hangzhou_trip):
    interrupted = await engine.start(hangzhou_trip, REVIEW_CONFIG)

    assert interrupted.status == RunStatus.INTERRUPTED
    assert interrupted.interrupt_type == InterruptType.ITINERARY_REVIEW
    assert DecisionType.REQUEST_CHANGES.value in interrupted.options

    result = await engine.resume(interrupted.thread_id, {"type": "approve"})
    assert result.status == RunStatus.COMPLETED
    assert len(result.state.final_itinerary.days) == 3


@pytest.mark.asyncio
async def test_request_changes_regenerates_with_feedback(
    engine, fake_provider, store, hangzhou_trip
):
    interrupted = await engine.start(hangzhou_trip, REVIEW_CONFIG)

    result = await engine.resume(
        interrupted.thread_id,
        {"type": "request_changes", "payload": {"feedback": "More museums"}},
        REVIEW_CONFIG,
    )

    assert fake_provider.calls == 2
    assert "More museums" in fake_provider.prompts[-1]
    assert result.status == RunStatus.INTERRUPTED
    assert result.interrupt_type == InterruptType.ITINERARY_REVIEW

    # Two interrupts on one thread leave one pending checkpoint, the latest
    history = store.history(interrupted.thread_id)
    pending = [c for c in history if c.status == CheckpointStatus.PENDING]
    assert len(pending) == 1
    assert store.get(interrupted.thread_id).restore_state().review_feedback == [
        "More museums"
    ]

    final = await engine.resume(interrupted.thread_id, {"type": "approve"})
    assert final.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_request_changes_requires_feedback(engine, hangzhou_trip):
    interrupted = await engine.start(hangzhou_trip, REVIEW_CONFIG)

    with pytest.raises(ValidationError):
        await engine.resume(
            interrupted.thread_id,
            {"type": "request_changes", "payload": {"feedback": "  "}},
        )


# Independence of runs


@pytest.mark.asyncio
async def test_identical_runs_are_independent(engine, store, beijing_trip):
    first = await engine.start(beijing_trip, SCENARIO_2_CONFIG)
    second = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    assert first.thread_id != second.thread_id
    assert first.state is not second.state

    await engine.resume(first.thread_id, {"type": "cancel"})

    assert store.get(first.thread_id) is None
    remaining = store.get(second.thread_id)
    assert remaining is not None
    assert remaining.restore_state().status == RunStatus.INTERRUPTED


# Error boundary


@pytest.mark.asyncio
async def test_provider_failure_fails_without_checkpoint(
    make_engine, failing_provider, store, tracer, hangzhou_trip
):
    engine = make_engine(failing_provider)

    result = await engine.start(hangzhou_trip)

    assert result.status == RunStatus.FAILED
    assert result.failed_node == "generate"
    assert "service unavailable" in result.error
    assert "generate" in result.message
    assert store.get(result.thread_id) is None
    assert store.history(result.thread_id) == []
    assert _spans(tracer, result.thread_id, "generate")[0].status.value == "error"


@pytest.mark.asyncio
async def test_invalid_request_raises_before_execution(engine, fake_provider):
    with pytest.raises(ValidationError):
        await engine.start({"destination": "", "budget": 100, "days": 2})
    with pytest.raises(ValidationError):
        await engine.start({"destination": "杭州", "budget": -1, "days": 2})
    with pytest.raises(ValidationError):
        await engine.start({"destination": "杭州", "budget": 100})

    assert fake_provider.calls == 0


@pytest.mark.asyncio
async def test_invalid_config_raises_configuration_error(engine, hangzhou_trip):
    with pytest.raises(ConfigurationError):
        await engine.start(hangzhou_trip, {"budget": {"max_retries": -1}})


@pytest.mark.asyncio
async def test_unconfigured_provider_raises_configuration_error(
    make_engine, make_provider, hangzhou_trip
):
    engine = make_engine(make_provider(configured=False))

    with pytest.raises(ConfigurationError):
        await engine.start(hangzhou_trip)


@pytest.mark.asyncio
async def test_recursion_limit_fails_run(engine, beijing_trip):
    result = await engine.start(beijing_trip, {"recursion_limit": 3})

    assert result.status == RunStatus.FAILED
    assert "Workflow error" in result.error


@pytest.mark.asyncio
async def test_many_retries_still_end_in_budget_decision(
    make_engine, make_provider, beijing_trip
):
    provider = make_provider()
    engine = make_engine(provider)

    result = await engine.start(beijing_trip, {"budget": {"max_retries": 30}})

    assert result.status == RunStatus.INTERRUPTED
    assert result.interrupt_type == InterruptType.BUDGET_DECISION
    assert provider.calls == 31
    assert result.state.retry_count == 30


class FailingStore(InMemoryCheckpointStore):
    def _put_pending(self, checkpoint):
        raise PersistenceError("disk full")


@pytest.mark.asyncio
async def test_checkpoint_write_failure_is_a_warning(
    make_engine, fake_provider, beijing_trip
):
    store = FailingStore(retry_min_wait_seconds=0, retry_max_wait_seconds=0)
    engine = make_engine(fake_provider, store=store)

    with pytest.warns(PersistenceWarning):
        result = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    assert result.status == RunStatus.INTERRUPTED
    assert result.checkpoint_persisted is False
    assert "disk full" in result.warnings[0]


# Introspection


def test_list_nodes(engine):
    nodes = engine.list_nodes()

    assert [n.id.value for n in nodes] == [
        "generate",
        "correct_coordinates",
        "cluster_by_geography",
        "budget_critic",
        "itinerary_review",
        "finalize",
    ]
    assert [n.id.value for n in nodes if n.hitl_enabled] == [
        "budget_critic",
        "itinerary_review",
    ]


@pytest.mark.asyncio
async def test_stats_count_invocations(
    make_engine, fake_provider, failing_provider, tracer, hangzhou_trip
):
    await make_engine(fake_provider).start(hangzhou_trip)
    await make_engine(failing_provider).start(hangzhou_trip)

    stats = tracer.get_stats()
    assert stats.total_runs == 2
    assert stats.succeeded == 1
    assert stats.failed == 1
    assert stats.avg_duration_ms >= 0


@pytest.mark.asyncio
async def test_result_to_dict_is_json_safe(engine, beijing_trip):
    result = await engine.start(beijing_trip, SCENARIO_2_CONFIG)

    data = result.to_dict()
    assert data["status"] == "interrupted"
    assert data["interrupt_type"] == "budget_decision"
    assert data["state"]["schema_version"] == 2
