"""
Execution Engine - Async workflow execution.

This module provides the run controller that executes a workflow graph with
bounded concurrency, progress reporting and cancellation support.

The controller is the only writer of run results: node executors run as
asyncio tasks and hand back a ``NodeOutcome``; the controller applies it to
the graph store and asks the scheduler what became ready.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from uuid import uuid4

from node_banana.core.errors import (
    BlockedError,
    MissingInputError,
    RunInProgressError,
)
from node_banana.core.history import GenerationHistory, HistoryRecord, save_generation
from node_banana.core.inputs import ResolvedInputs, resolve_inputs
from node_banana.core.node_types import (
    GENERATION_KINDS,
    SOURCE_KINDS,
    HandleType,
    NodeKind,
    NodeStatus,
)
from node_banana.core.scheduler import (
    MISSING_INPUT,
    ExecutionPlan,
    blocked,
    next_ready_batch,
    plan,
    refresh_plan,
    regenerate_closure,
)
from node_banana.core.settings import EngineSettings
from node_banana.nodes import get_executor
from node_banana.providers.base import ProviderError, ProviderTimeoutError

if TYPE_CHECKING:
    from node_banana.core.graph import GraphStore, Node
    from node_banana.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    """Status of a run."""
    RUNNING = auto()
    COMPLETED = auto()
    DEGRADED = auto()   # Finished with errored or skipped nodes
    CANCELLED = auto()


@dataclass
class RunProgress:
    """Progress event emitted during a run."""
    run_id: str
    event: str  # run_started, node_started, node_finished, node_skipped, run_finished
    status: RunStatus
    node_id: str | None = None
    node_status: NodeStatus | None = None
    nodes_completed: int = 0
    nodes_total: int = 0
    message: str = ""
    error: str | None = None

    @property
    def progress_percent(self) -> float:
        if self.nodes_total == 0:
            return 0.0
        return (self.nodes_completed / self.nodes_total) * 100


@dataclass
class NodeOutcome:
    """What an executor task hands back to the controller."""
    node_id: str
    updates: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunState:
    """Book-keeping for the active run."""
    run_id: str
    status: RunStatus = RunStatus.RUNNING
    cancelled: bool = False
    per_node_status: dict[str, NodeStatus] = field(default_factory=dict)


@dataclass
class RunResult:
    """
    Summary of a finished run.

    Attributes:
        succeeded: Nodes that finished with ``success``, in completion order
        errored: Node id -> error message
        skipped: Node id -> reason the node did not run
        warnings: Non-fatal validation findings
    """
    run_id: str
    status: RunStatus
    succeeded: list[str] = field(default_factory=list)
    errored: dict[str, str] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None

    @property
    def degraded(self) -> bool:
        return bool(self.errored or self.skipped)

    @property
    def duration(self) -> float:
        if self.completed_at is None:
            return 0.0
        return self.completed_at - self.started_at

    def summary(self) -> str:
        return (
            f"Run {self.status.name.lower()}: {len(self.succeeded)} succeeded, "
            f"{len(self.errored)} errored, {len(self.skipped)} skipped"
        )


class ExecutionContext:
    """
    Context passed to node executors during execution.

    Provides access to:
    - The provider registry for generation calls
    - Engine settings (timeouts)
    - Cancellation checking
    """

    def __init__(
        self,
        run_id: str,
        providers: ProviderRegistry,
        settings: EngineSettings,
        is_cancelled: Callable[[], bool] | None = None,
    ):
        self.run_id = run_id
        self.providers = providers
        self.settings = settings
        self._is_cancelled = is_cancelled

    @property
    def is_cancelled(self) -> bool:
        return bool(self._is_cancelled and self._is_cancelled())

    def check_cancelled(self) -> None:
        """Raise if cancelled."""
        if self.is_cancelled:
            raise asyncio.CancelledError("Execution cancelled")

    async def bounded(self, call: Awaitable[Any], timeout: float) -> Any:
        """
        Await a provider call with an upper bound.

        Raises:
            ProviderTimeoutError: If the call does not finish in time.
        """
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                f"Provider call timed out after {timeout:g}s"
            ) from None


class RunController:
    """
    Runs workflows on a graph store.

    Features:
    - Up-front validation before any node loads
    - Concurrent execution of ready nodes, bounded by ``max_in_flight``
    - Single-node regenerate
    - Progress reporting
    - Cancellation (late results are discarded)
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        settings: EngineSettings | None = None,
        history: GenerationHistory | None = None,
    ):
        self.providers = providers
        self.settings = settings or EngineSettings()
        self.history = history if history is not None else GenerationHistory(
            self.settings.history_size
        )
        self._state: RunState | None = None
        self._cancel_event: asyncio.Event | None = None
        self._on_progress: Callable[[RunProgress], None] | None = None

    def set_progress_callback(self, callback: Callable[[RunProgress], None]) -> None:
        """Set the progress callback."""
        self._on_progress = callback

    @property
    def is_running(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> RunState | None:
        """State of the active run, if any."""
        return self._state

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def validate(self, store: GraphStore) -> tuple[ExecutionPlan, list[str]]:
        """
        Check a graph before a full run.

        Returns:
            The execution plan and any warnings

        Raises:
            CycleError: If the data edges contain a cycle.
            MissingInputError: If a generation node has no usable text input.
        """
        execution_plan = plan(store)

        for node in store.nodes.values():
            if node.kind not in GENERATION_KINDS or store.is_locked(node.id):
                continue
            text_edges = store.incoming_edges(node.id, HandleType.TEXT)
            if not text_edges:
                raise MissingInputError(node.id, "text")
            active = max(text_edges, key=lambda e: e.seq)
            source = store.require_node(active.source)
            settled = source.kind in SOURCE_KINDS or store.is_locked(source.id)
            if settled and source.data.produces_text() is None:
                raise MissingInputError(node.id, "text")

        warnings = []
        if not store.nodes_of_kind(NodeKind.OUTPUT):
            logger.warning("Workflow has no output node")
            warnings.append("Workflow has no output node")
        return execution_plan, warnings

    async def run(self, store: GraphStore) -> RunResult:
        """
        Execute every runnable node of the graph.

        Raises:
            RunInProgressError: If a run is already active.
            ValidationError: If up-front validation fails; no node loads.
        """
        self._ensure_idle()
        execution_plan, warnings = self.validate(store)
        return await self._execute(store, execution_plan, warnings)

    async def regenerate(self, store: GraphStore, node_id: str) -> RunResult:
        """
        Re-run a single node from its current upstream outputs.

        Raises:
            RunInProgressError: If a run is already active.
            MissingUpstreamError: If a direct dependency has no output.
        """
        self._ensure_idle()
        execution_plan = regenerate_closure(store, node_id)
        return await self._execute(store, execution_plan, [])

    def cancel(self) -> bool:
        """
        Cancel the active run.

        In-flight provider calls are left to finish; their results are
        discarded and their nodes return to ``idle``.

        Returns:
            True if a run was cancelled
        """
        if self._state is None or self._state.cancelled:
            return False
        logger.info("Cancelling run %s", self._state.run_id)
        self._state.cancelled = True
        if self._cancel_event is not None:
            self._cancel_event.set()
        return True

    # -------------------------------------------------------------------------
    # Run loop
    # -------------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self._state is not None:
            raise RunInProgressError(f"Run {self._state.run_id} is already in progress")

    async def _execute(
        self,
        store: GraphStore,
        execution_plan: ExecutionPlan,
        warnings: list[str],
    ) -> RunResult:
        state = RunState(run_id=str(uuid4()))
        self._state = state
        self._cancel_event = asyncio.Event()

        result = RunResult(run_id=state.run_id, status=RunStatus.RUNNING, warnings=list(warnings))
        context = ExecutionContext(
            run_id=state.run_id,
            providers=self.providers,
            settings=self.settings,
            is_cancelled=lambda: state.cancelled,
        )
        semaphore = asyncio.Semaphore(self.settings.max_in_flight)
        total = len(execution_plan.nodes)

        completed: set[str] = set()
        failed: set[str] = set()
        started: set[str] = set()
        in_flight: dict[asyncio.Task[NodeOutcome], str] = {}

        logger.info(
            "Run %s started: %d node(s) in %d batch(es)",
            state.run_id, total, len(execution_plan.batches),
        )
        self._emit(RunProgress(
            run_id=state.run_id,
            event="run_started",
            status=RunStatus.RUNNING,
            nodes_total=total,
            message="Starting execution",
        ))

        def finished() -> int:
            return len(completed) + len(failed)

        def skip(node_id: str, reason: str) -> None:
            self._mark_skipped(store, state, result, node_id, reason)
            failed.add(node_id)
            self._emit(RunProgress(
                run_id=state.run_id,
                event="node_skipped",
                status=RunStatus.RUNNING,
                node_id=node_id,
                node_status=NodeStatus.SKIPPED,
                nodes_completed=finished(),
                nodes_total=total,
                message=reason,
            ))

        try:
            while True:
                if execution_plan.is_stale(store):
                    execution_plan = refresh_plan(store, execution_plan)
                    total = len(execution_plan.nodes | completed | failed)
                    logger.debug("Graph changed during run %s, re-planned", state.run_id)

                if not state.cancelled:
                    for node_id in sorted(next_ready_batch(execution_plan, completed, started)):
                        node = store.get_node(node_id)
                        if node is None:
                            # Removed by a progress listener earlier in this batch
                            continue
                        started.add(node_id)
                        inputs = resolve_inputs(store, node_id)
                        missing = inputs.missing_for(node.data.requirements())
                        if missing:
                            logger.debug("Node %s lacks %s input", node_id, missing[0])
                            skip(node_id, MISSING_INPUT)
                            continue

                        self._set_status(store, state, node_id, NodeStatus.LOADING, error=None)
                        self._emit(RunProgress(
                            run_id=state.run_id,
                            event="node_started",
                            status=RunStatus.RUNNING,
                            node_id=node_id,
                            node_status=NodeStatus.LOADING,
                            nodes_completed=finished(),
                            nodes_total=total,
                            message=f"Executing {node.kind.value}",
                        ))
                        task = asyncio.create_task(
                            self._run_node(node, inputs, context, semaphore)
                        )
                        in_flight[task] = node_id

                if not in_flight or state.cancelled:
                    break

                cancel_wait = asyncio.create_task(self._cancel_event.wait())
                try:
                    done, _ = await asyncio.wait(
                        [*in_flight, cancel_wait],
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    cancel_wait.cancel()

                if state.cancelled:
                    break

                for task in done:
                    if task is cancel_wait:
                        continue
                    outcome = task.result()
                    del in_flight[task]
                    if self._apply(store, state, result, outcome):
                        completed.add(outcome.node_id)
                    else:
                        failed.add(outcome.node_id)
                    self._emit(RunProgress(
                        run_id=state.run_id,
                        event="node_finished",
                        status=RunStatus.RUNNING,
                        node_id=outcome.node_id,
                        node_status=state.per_node_status[outcome.node_id],
                        nodes_completed=finished(),
                        nodes_total=total,
                        error=outcome.error,
                    ))

            if state.cancelled:
                for task, node_id in in_flight.items():
                    task.add_done_callback(_discard_late_result)
                    self._set_status(store, state, node_id, NodeStatus.IDLE)
                in_flight.clear()
                result.status = RunStatus.CANCELLED
            else:
                if execution_plan.is_stale(store):
                    execution_plan = refresh_plan(store, execution_plan)
                for node_id, reason in blocked(execution_plan, completed, failed).items():
                    if node_id in store:
                        skip(node_id, reason)
                result.status = RunStatus.DEGRADED if result.degraded else RunStatus.COMPLETED

            state.status = result.status
            result.completed_at = time.time()
            logger.info("%s (%.2fs)", result.summary(), result.duration)
            self._emit(RunProgress(
                run_id=state.run_id,
                event="run_finished",
                status=result.status,
                nodes_completed=finished(),
                nodes_total=total,
                message=result.summary(),
            ))
            return result
        finally:
            # Only reached with tasks left when the loop itself raised
            for task, node_id in in_flight.items():
                task.cancel()
                if node_id in store:
                    self._set_status(store, state, node_id, NodeStatus.IDLE)
            self._state = None
            self._cancel_event = None

    async def _run_node(
        self,
        node: Node,
        inputs: ResolvedInputs,
        context: ExecutionContext,
        semaphore: asyncio.Semaphore,
    ) -> NodeOutcome:
        """Execute one node; every failure becomes an outcome error."""
        executor = get_executor(node.kind)
        async with semaphore:
            # Queued behind the semaphore when the run was cancelled
            context.check_cancelled()
            start = time.monotonic()
            try:
                updates = await executor(node.data, inputs, context)
            except ProviderError as e:
                logger.warning("Node %s failed: %s", node.id, e)
                return NodeOutcome(node.id, error=str(e), elapsed=time.monotonic() - start)
            except Exception as e:
                logger.exception("Unexpected error executing node %s", node.id)
                return NodeOutcome(
                    node.id,
                    error=str(e) or type(e).__name__,
                    elapsed=time.monotonic() - start,
                )
            return NodeOutcome(node.id, updates=updates, elapsed=time.monotonic() - start)

    def _apply(
        self,
        store: GraphStore,
        state: RunState,
        result: RunResult,
        outcome: NodeOutcome,
    ) -> bool:
        """Write an outcome into the store. Returns True on success."""
        node_id = outcome.node_id
        if not outcome.ok:
            # Prior output stays in place
            self._set_status(store, state, node_id, NodeStatus.ERROR, error=outcome.error)
            result.errored[node_id] = outcome.error or ""
            return False

        store.update_node_data(node_id, **outcome.updates)
        self._set_status(store, state, node_id, NodeStatus.SUCCESS, error=None)
        result.succeeded.append(node_id)
        logger.debug("Node %s finished in %.2fs", node_id, outcome.elapsed)

        node = store.require_node(node_id)
        if node.kind is NodeKind.NANO_BANANA and outcome.updates.get("output_image"):
            record = HistoryRecord(
                image=outcome.updates["output_image"],
                prompt=outcome.updates.get("input_prompt") or "",
                model=node.data.model,
            )
            self.history.append(record)
            if self.settings.generations_dir:
                self._save_generation(record)
        return True

    def _save_generation(self, record: HistoryRecord) -> None:
        # A failed save never fails the node
        try:
            save_generation(
                Path(self.settings.generations_dir), record.image, record.prompt, record.id
            )
        except (OSError, ValueError) as e:
            logger.warning("Could not save generation %s: %s", record.id, e)

    def _mark_skipped(
        self,
        store: GraphStore,
        state: RunState,
        result: RunResult,
        node_id: str,
        reason: str,
    ) -> None:
        blocked_error = BlockedError(node_id, reason)
        logger.debug("%s", blocked_error)
        self._set_status(store, state, node_id, NodeStatus.SKIPPED, error=str(blocked_error))
        result.skipped[node_id] = reason

    def _set_status(
        self,
        store: GraphStore,
        state: RunState,
        node_id: str,
        status: NodeStatus,
        **changes: Any,
    ) -> None:
        store.update_node_data(node_id, status=status, **changes)
        state.per_node_status[node_id] = status

    def _emit(self, progress: RunProgress) -> None:
        if self._on_progress:
            self._on_progress(progress)


def _discard_late_result(task: asyncio.Task[NodeOutcome]) -> None:
    if task.cancelled():
        return
    outcome = task.result()
    logger.warning("Discarding late result for node %s after cancel", outcome.node_id)
