"""
Workflow orchestration for the itinerary planner.

This module implements the execution engine: it validates requests,
drives the LangGraph state graph over a RunState, persists runs that
pause for a human decision and resumes them from their checkpoint.

Every entry point has a result form (``start``/``resume``) and a
streaming form (``stream``/``stream_resume``); both are fed by the same
execution core so they always agree on the outcome of a run.
"""

import asyncio
import traceback
import warnings
from collections.abc import AsyncIterator
from typing import Any

from langgraph.errors import GraphRecursionError
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from itinerary_planner.agents.itinerary_generator import (
    ItineraryGeneratorAgent,
    ItineraryProvider,
)
from itinerary_planner.config import PlannerConfig, WorkflowConfig
from itinerary_planner.data.models import TripRequest
from itinerary_planner.orchestration.core.graph_builder import create_planning_graph
from itinerary_planner.orchestration.core.node_registry import NodeSpec, list_nodes
from itinerary_planner.orchestration.events import EventType, ProgressEvent
from itinerary_planner.orchestration.interrupts import (
    InterruptGate,
    OwnershipCheck,
    ResumePlan,
)
from itinerary_planner.orchestration.nodes import StepContext
from itinerary_planner.orchestration.serialization import (
    CheckpointStore,
    InMemoryCheckpointStore,
    create_checkpoint_store,
)
from itinerary_planner.orchestration.states.run_state import (
    Decision,
    DecisionType,
    InterruptType,
    RunState,
    RunStatus,
)
from itinerary_planner.orchestration.tracer import TraceRecord, Tracer, TraceStats
from itinerary_planner.services.coordinate_correction import CoordinateCorrector
from itinerary_planner.utils.error_handling import (
    PersistenceWarning,
    PlannerError,
    ValidationError,
)
from itinerary_planner.utils.helpers import generate_thread_id
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


class RunResult(BaseModel):
    """Outcome of a start or resume invocation."""

    status: RunStatus
    thread_id: str
    state: RunState | None = None
    interrupt_type: InterruptType | None = None
    message: str | None = None
    options: dict[str, Any] | None = None
    error: str | None = None
    failed_node: str | None = None
    warnings: list[str] = Field(default_factory=list)
    checkpoint_persisted: bool = True

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for transport layers."""
        return self.model_dump(mode="json", exclude_none=True)


def _result_from_state(
    state: RunState, persisted: bool = True, warnings: list[str] | None = None
) -> RunResult:
    """Build the caller-facing result of a run that stopped."""
    result = RunResult(
        status=state.status,
        thread_id=state.thread_id,
        state=state,
        checkpoint_persisted=persisted,
        warnings=warnings or [],
    )
    if state.status == RunStatus.INTERRUPTED and state.pending_interrupt:
        interrupt = state.pending_interrupt
        result.interrupt_type = interrupt.type
        result.message = interrupt.message
        result.options = interrupt.options
    elif state.status == RunStatus.FAILED:
        result.error = state.error
        result.failed_node = state.failed_node
        result.message = (
            f"Planning failed at {state.failed_node}: {state.error}"
            if state.failed_node
            else state.error
        )
    return result


def _terminal_event(result: RunResult) -> ProgressEvent:
    """The event that closes a stream for a given result."""
    state = result.state
    if result.status == RunStatus.INTERRUPTED:
        return ProgressEvent(
            type=EventType.INTERRUPT,
            thread_id=result.thread_id,
            node=state.pending_interrupt.node if state else None,
            message=result.message,
            data={
                "interrupt_type": result.interrupt_type.value,
                "options": result.options,
                "checkpoint_persisted": result.checkpoint_persisted,
                "warnings": result.warnings,
            },
        )
    if result.status == RunStatus.FAILED:
        return ProgressEvent(
            type=EventType.ERROR,
            thread_id=result.thread_id,
            node=result.failed_node,
            message=result.message,
        )

    data: dict[str, Any] = {"status": result.status.value}
    if state is not None and state.final_itinerary is not None:
        data["final_itinerary"] = state.final_itinerary.model_dump(mode="json")
    if state is not None and state.budget_result is not None:
        data["budget_result"] = state.budget_result.model_dump(mode="json")
    return ProgressEvent(
        type=EventType.COMPLETE,
        thread_id=result.thread_id,
        message=(
            "Itinerary completed"
            if result.status == RunStatus.COMPLETED
            else "Planning cancelled"
        ),
        data=data,
    )


class ExecutionEngine:
    """
    Drives planning runs through the node graph.

    The engine holds no per-run state: each invocation builds its own graph
    and step context from the configuration it is given. The checkpoint
    store and the tracer are shared by all runs of one engine.
    """

    def __init__(
        self,
        provider: ItineraryProvider,
        corrector: CoordinateCorrector | None = None,
        store: CheckpointStore | None = None,
        tracer: Tracer | None = None,
        currency: str = "CNY",
        checkpoint_ttl_hours: float = 24,
        ownership_check: OwnershipCheck | None = None,
        default_config: WorkflowConfig | None = None,
    ):
        """
        Initialize the engine.

        Args:
            provider: AI completion provider used by the generation step
            corrector: Coordinate correction collaborator
            store: Checkpoint store; defaults to an in-memory store
            tracer: Trace sink; defaults to a fresh tracer
            currency: Currency prices and budgets are expressed in
            checkpoint_ttl_hours: Lifetime of pending checkpoints
            ownership_check: Optional auth hook consulted on resume
            default_config: Workflow configuration for calls that pass none
        """
        self.provider = provider
        self.corrector = corrector or CoordinateCorrector()
        self.store = store or InMemoryCheckpointStore()
        self.tracer = tracer or Tracer()
        self.currency = currency
        self.default_config = default_config or WorkflowConfig()
        self.gate = InterruptGate(self.store, checkpoint_ttl_hours, ownership_check)

    @classmethod
    def from_config(
        cls,
        planner_config: PlannerConfig,
        provider: ItineraryProvider | None = None,
        **kwargs: Any,
    ) -> "ExecutionEngine":
        """
        Assemble an engine from process-level configuration.

        Args:
            planner_config: Loaded configuration
            provider: Provider override; defaults to the Gemini agent
            **kwargs: Further constructor arguments

        Returns:
            A configured engine
        """
        if provider is None:
            provider = ItineraryGeneratorAgent(
                api_key=planner_config.api.gemini_api_key or None
            )
        kwargs.setdefault("store", create_checkpoint_store(planner_config.checkpoint))
        kwargs.setdefault("currency", planner_config.system.default_currency)
        kwargs.setdefault("checkpoint_ttl_hours", planner_config.checkpoint.ttl_hours)
        kwargs.setdefault("default_config", planner_config.workflow_defaults())
        return cls(provider, **kwargs)

    # Introspection

    def list_nodes(self) -> list[NodeSpec]:
        """Ordered catalogue of pipeline stages."""
        return list_nodes()

    def get_trace(self, thread_id: str) -> list[TraceRecord]:
        """Node invocations of a thread, in order."""
        return self.tracer.get_trace(thread_id)

    def get_stats(self) -> TraceStats:
        """Aggregate statistics over finished invocations."""
        return self.tracer.get_stats()

    # Result entry points

    async def start(
        self,
        form_data: TripRequest | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> RunResult:
        """
        Plan a trip from a new request.

        Args:
            form_data: The trip request
            config: Per-call workflow configuration
            owner_id: Calling principal, recorded on checkpoints

        Returns:
            Completed, Interrupted or Failed result

        Raises:
            ValidationError: If the request is malformed
            ConfigurationError: If the configuration or provider is unusable
        """
        state, workflow_config = self._prepare_start(form_data, config, owner_id)
        return await self._collect(self._execute(state, workflow_config))

    async def resume(
        self,
        thread_id: str,
        decision: Decision | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> RunResult:
        """
        Continue a paused run with a human decision.

        Args:
            thread_id: Thread of the paused run
            decision: The decision
            config: Per-call workflow configuration
            owner_id: Calling principal, passed to the ownership check

        Returns:
            Completed, Interrupted, Cancelled or Failed result

        Raises:
            NotFoundError: If the thread has no pending checkpoint
            ValidationError: If the decision does not fit the interrupt
            ConfigurationError: If the configuration or provider is unusable
            PersistenceError: If the checkpoint store cannot be read
        """
        plan, workflow_config = await self._prepare_resume(
            thread_id, decision, config, owner_id
        )
        return await self._collect(self._continue(plan, workflow_config))

    # Streaming entry points

    async def stream(
        self,
        form_data: TripRequest | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Plan a trip, yielding progress events.

        Pre-execution errors are reported as a single ``error`` event.
        """
        try:
            state, workflow_config = self._prepare_start(form_data, config, owner_id)
        except PlannerError as e:
            yield ProgressEvent(type=EventType.ERROR, message=str(e))
            return
        except Exception as e:
            logger.error(f"Unexpected error preparing a run: {e!s}")
            logger.debug(traceback.format_exc())
            yield ProgressEvent(
                type=EventType.ERROR, message=f"Unexpected error: {e!s}"
            )
            return

        async for event, _ in self._execute(state, workflow_config):
            yield event

    async def stream_resume(
        self,
        thread_id: str,
        decision: Decision | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None = None,
        owner_id: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Continue a paused run, yielding progress events.

        Pre-execution errors, including an unknown thread, are reported as
        a single ``error`` event.
        """
        try:
            plan, workflow_config = await self._prepare_resume(
                thread_id, decision, config, owner_id
            )
        except PlannerError as e:
            yield ProgressEvent(
                type=EventType.ERROR, thread_id=thread_id, message=str(e)
            )
            return
        except Exception as e:
            logger.error(f"Unexpected error resuming {thread_id}: {e!s}")
            logger.debug(traceback.format_exc())
            yield ProgressEvent(
                type=EventType.ERROR,
                thread_id=thread_id,
                message=f"Unexpected error: {e!s}",
            )
            return

        async for event, _ in self._continue(plan, workflow_config):
            yield event

    # Preparation

    def _prepare_start(
        self,
        form_data: TripRequest | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None,
        owner_id: str | None,
    ) -> tuple[RunState, WorkflowConfig]:
        workflow_config = WorkflowConfig.coerce(config or self.default_config)

        if isinstance(form_data, TripRequest):
            request = form_data
        else:
            try:
                request = TripRequest.model_validate(form_data)
            except PydanticValidationError as e:
                raise ValidationError("Invalid trip request", e) from e

        self.provider.check_configuration()

        state = RunState(
            thread_id=generate_thread_id(), user_input=request, owner_id=owner_id
        )
        return state, workflow_config

    async def _prepare_resume(
        self,
        thread_id: str,
        decision: Decision | dict[str, Any],
        config: WorkflowConfig | dict[str, Any] | None,
        owner_id: str | None,
    ) -> tuple[ResumePlan, WorkflowConfig]:
        workflow_config = WorkflowConfig.coerce(config or self.default_config)

        if not isinstance(decision, Decision):
            try:
                decision = Decision.model_validate(decision)
            except PydanticValidationError as e:
                raise ValidationError("Invalid decision", e) from e

        # A cancel never reaches the provider
        if decision.type != DecisionType.CANCEL:
            self.provider.check_configuration()

        # Store I/O and its retry back-off stay off the event loop
        plan = await asyncio.to_thread(
            self.gate.resume, thread_id, decision, workflow_config, owner_id
        )
        return plan, workflow_config

    # Execution core

    async def _collect(
        self, events: AsyncIterator[tuple[ProgressEvent, RunResult | None]]
    ) -> RunResult:
        """Drain an execution and return its result."""
        result = None
        async for _, outcome in events:
            if outcome is not None:
                result = outcome
        return result

    async def _continue(
        self, plan: ResumePlan, config: WorkflowConfig
    ) -> AsyncIterator[tuple[ProgressEvent, RunResult | None]]:
        """Execution core of a resume: a cancel ends here, anything else re-enters."""
        if plan.cancelled:
            run_id = self.tracer.start_run(plan.state.thread_id)
            logger.info(f"Run {plan.state.thread_id} cancelled")
            result = _result_from_state(plan.state)
            self.tracer.end_run(run_id, result.status.value)
            yield _terminal_event(result), result
            return

        async for item in self._execute(plan.state, config):
            yield item

    async def _execute(
        self, state: RunState, config: WorkflowConfig
    ) -> AsyncIterator[tuple[ProgressEvent, RunResult | None]]:
        """
        Run the graph from the state's entry node until the run stops.

        Yields ``(event, None)`` for each completed node and finally
        ``(terminal_event, result)``. Nothing raised inside the graph
        escapes: it ends the run as Failed.
        """
        thread_id = state.thread_id
        run_id = self.tracer.start_run(thread_id)
        logger.info(
            f"Run {thread_id} starting at {state.resume_from or 'generate'} "
            f"for {state.user_input.destination}"
        )

        context = StepContext(
            config=config,
            provider=self.provider,
            corrector=self.corrector,
            currency=self.currency,
        )
        current = state

        try:
            graph = create_planning_graph(context, self.tracer)
            async for chunk in graph.astream(
                current.channel_values(),
                config={"recursion_limit": config.recursion_limit},
                stream_mode="updates",
            ):
                for node_name, update in chunk.items():
                    current = current.apply(update)
                    if current.status in (RunStatus.RUNNING, RunStatus.COMPLETED):
                        yield (
                            ProgressEvent(
                                type=EventType.NODE_COMPLETE,
                                thread_id=thread_id,
                                node=node_name,
                                data={"retry_count": current.retry_count},
                            ),
                            None,
                        )
        except GraphRecursionError as e:
            logger.error(f"Run {thread_id} exceeded the recursion limit: {e!s}")
            current = current.apply(
                {"status": RunStatus.FAILED, "error": f"Workflow error: {e!s}"}
            )
        except Exception as e:
            logger.error(f"Unexpected error in run {thread_id}: {e!s}")
            logger.debug(traceback.format_exc())
            current = current.apply(
                {"status": RunStatus.FAILED, "error": f"Unexpected error: {e!s}"}
            )

        if current.status == RunStatus.RUNNING:
            current = current.apply(
                {
                    "status": RunStatus.FAILED,
                    "error": "Workflow ended without reaching a terminal node",
                }
            )

        if current.status == RunStatus.INTERRUPTED:
            outcome = await asyncio.to_thread(self.gate.suspend, current)
            for message in outcome.warnings:
                warnings.warn(message, PersistenceWarning, stacklevel=2)
            result = _result_from_state(current, outcome.persisted, outcome.warnings)
        else:
            result = _result_from_state(current)

        self.tracer.end_run(run_id, result.status.value)
        logger.info(f"Run {thread_id} finished with status {result.status.value}")
        yield _terminal_event(result), result
