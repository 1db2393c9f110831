"""
Execution orchestration.

The orchestrator turns a stored pipeline into a submitted run, then keeps the
run's state in step with the events the remote executor pushes back.

Execution states: ``pending -> running -> succeeded | failed | cancelled``.
Step states: ``pending -> running -> succeeded | failed | skipped | cancelled``.
A pending step is skipped when any of its transitive dependencies ends failed
or cancelled. Terminal step states never change except through ``retry_step``.

All mutations of one execution run under that execution's lock, and
subscribers are notified while the lock is held, so they see events in
arrival order. There is no ordering across executions.

Example:
    orchestrator = ExecutionOrchestrator(source, resolver, TaskiqRemoteExecutor())
    execution = await orchestrator.execute(pipeline_id, project_path="/srv/app")
    unsubscribe = orchestrator.subscribe(execution.id, print)
"""

import asyncio
import inspect
from collections.abc import AsyncIterable, Mapping
from typing import Protocol

from stepflow.exceptions import (
    BusinessRuleViolationError,
    ExecutionFinishedError,
    ExecutionNotFoundError,
    ExecutorStreamError,
    PipelineDisabledError,
    PipelineValidationError,
    StepNotFoundError,
    StepNotRetryableError,
    SubmissionError,
)
from stepflow.models.base import ExecutionStatus, StepStatus, utcnow
from stepflow.models.execution import ExecutionEvent, PipelineExecution, StepExecution
from stepflow.models.pipeline import PipelineRead, Step
from stepflow.models.variable import VariableScope
from stepflow.settings import settings
from stepflow.types import Environment, EventCallback, Unsubscribe
from stepflow.utils.logger import logger

from ..variables.resolver import VariableResolver
from ..variables.substitution import find_missing_variables, substitute
from .executor import PlannedStep, RemoteExecutor, SubmissionPlan
from .graph import plan_waves, transitive_dependencies, transitive_dependents, validate_steps
from .state_store import ExecutionStateStore

# Events buffered per unknown execution ID before the oldest are dropped
MAX_ORPHAN_EVENTS = 500
# Unknown execution IDs buffered at once before the oldest ID is dropped
MAX_ORPHAN_EXECUTIONS = 1000
# Purged execution IDs remembered so their late events are discarded
MAX_PURGED_IDS = 1000


class PipelineLoader(Protocol):
    """Loads a fully assembled pipeline by ID."""

    async def get_pipeline(self, pipeline_id: str) -> PipelineRead: ...


class ExecutionOrchestrator:
    """Plans, submits, and tracks pipeline executions.

    Args:
        pipelines: Source of stored pipelines.
        resolver: Resolves the pipeline-scope variables and secrets.
        executor: Remote executor receiving plans and control signals.
        store: Execution history; a fresh store is created when omitted.
        step_timeout: Default per-step deadline in seconds.
    """

    def __init__(
        self,
        pipelines: PipelineLoader,
        resolver: VariableResolver,
        executor: RemoteExecutor,
        store: ExecutionStateStore | None = None,
        step_timeout: float | None = None,
    ):
        self.pipelines = pipelines
        self.resolver = resolver
        self.executor = executor
        self.store = store or ExecutionStateStore()
        self.step_timeout = step_timeout or settings.step_timeout_seconds

        self._locks: dict[str, asyncio.Lock] = {}
        self._steps: dict[str, dict[str, Step]] = {}
        self._environments: dict[str, Environment] = {}
        self._subscribers: dict[str, list[EventCallback]] = {}
        self._orphans: dict[str, list[ExecutionEvent]] = {}
        self._purged: dict[str, None] = {}
        self._deadlines: dict[tuple[str, str], asyncio.TimerHandle] = {}
        self._background: set[asyncio.Task[None]] = set()

    # Execute

    async def execute(
        self,
        pipeline_id: str,
        *,
        project_path: str | None = None,
        overrides: Mapping[str, str] | None = None,
        triggered_by: str = "user",
    ) -> PipelineExecution:
        """Validate, plan, and submit a pipeline run.

        Args:
            pipeline_id: Pipeline to run
            project_path: Value of ``PROJECT_PATH``; defaults to the configured projects root
            overrides: Values that replace resolved variables for this run only
            triggered_by: User ID or ``system``

        Returns:
            The new execution, usually still pending

        Raises:
            PipelineNotFoundError: If the pipeline does not exist
            PipelineDisabledError: If the pipeline is disabled
            PipelineValidationError: If the step graph is malformed; nothing is submitted
            BusinessRuleViolationError: If every step is disabled
            SubmissionError: If the executor did not accept the plan; no execution is recorded
        """
        pipeline = await self.pipelines.get_pipeline(pipeline_id)
        if not pipeline.enabled:
            raise PipelineDisabledError(pipeline_id)

        result = validate_steps(pipeline.steps)
        if not result.valid:
            logger.warning(
                f"Pipeline '{pipeline_id}' refused: {len(result.errors)} validation errors"
            )
            raise PipelineValidationError(result.errors, pipeline_id)

        enabled_ids = {step.id for step in pipeline.steps if step.enabled}
        if not enabled_ids:
            raise BusinessRuleViolationError(f"Pipeline '{pipeline_id}' has no enabled steps")

        env = await self._build_environment(pipeline, project_path, overrides)
        waves = [
            [step_id for step_id in wave if step_id in enabled_ids]
            for wave in plan_waves(pipeline.steps)
        ]
        waves = [wave for wave in waves if wave]
        plan = self._build_plan(pipeline, waves, enabled_ids, env)

        try:
            execution_id = await self.executor.submit(plan, env)
        except SubmissionError:
            logger.error(f"Pipeline '{pipeline_id}' could not be submitted")
            raise

        now = utcnow()
        execution = PipelineExecution(
            id=execution_id,
            pipeline_id=pipeline.id,
            project_id=pipeline.project_id,
            started_at=now,
            waves=waves,
            triggered_by=triggered_by,
            steps=[
                StepExecution(step_id=step.id, step_name=step.name)
                if step.enabled
                else StepExecution(
                    step_id=step.id,
                    step_name=step.name,
                    status=StepStatus.SKIPPED,
                    finished_at=now,
                )
                for step in pipeline.steps
            ],
        )

        lock = asyncio.Lock()
        self._locks[execution_id] = lock
        self._steps[execution_id] = {step.id: step for step in pipeline.steps}
        self._environments[execution_id] = env

        # Acquiring a free lock does not yield, so buffered events replay
        # before any event that arrives from now on
        async with lock:
            self.store.put(execution)
            orphans = self._orphans.pop(execution_id, [])
            for event in orphans:
                await self._handle_locked(execution_id, event)

        logger.info(
            f"Execution {execution_id} of pipeline '{pipeline_id}' recorded "
            f"({len(enabled_ids)} steps, {len(waves)} waves, {len(orphans)} early events)"
        )
        return self.store.require(execution_id)

    async def _build_environment(
        self,
        pipeline: PipelineRead,
        project_path: str | None,
        overrides: Mapping[str, str] | None,
    ) -> Environment:
        env: Environment = dict(pipeline.execution_context.environment)
        env.update(await self.resolver.resolve_all(VariableScope.pipeline(pipeline.id)))
        env.update(overrides or {})

        env.setdefault("PROJECT_ID", pipeline.project_id)
        env.setdefault("PIPELINE_ID", pipeline.id)
        path = project_path or settings.project_path(pipeline.project_id)
        if path is not None:
            env.setdefault("PROJECT_PATH", path)
        return env

    def _build_plan(
        self,
        pipeline: PipelineRead,
        waves: list[list[str]],
        enabled_ids: set[str],
        env: Environment,
    ) -> SubmissionPlan:
        context = pipeline.execution_context.model_copy(deep=True)
        context.working_directory = substitute(context.working_directory, variables=env)
        for step in pipeline.steps:
            if step.id in enabled_ids:
                self._warn_undefined(pipeline.id, step, env)
        return SubmissionPlan(
            pipeline_id=pipeline.id,
            project_id=pipeline.project_id,
            waves=waves,
            execution_context=context,
            steps=[
                PlannedStep(
                    id=step.id,
                    name=step.name,
                    marker=step.kind.marker,
                    config=step.config,
                    depends_on=[d for d in step.depends_on if d in enabled_ids],
                    timeout=step.timeout or self.step_timeout,
                )
                for step in pipeline.steps
                if step.id in enabled_ids
            ],
        )

    @staticmethod
    def _warn_undefined(pipeline_id: str, step: Step, env: Environment) -> None:
        # Placeholders in step config are filled in by the executor
        for key, value in step.config.items():
            if not isinstance(value, str):
                continue
            missing = find_missing_variables(value, variables=env)
            if missing:
                logger.warning(
                    f"Step '{step.id}' of pipeline '{pipeline_id}' references undefined "
                    f"variables in '{key}': {', '.join(missing)}"
                )

    # Control

    async def cancel(self, execution_id: str) -> PipelineExecution:
        """Send a cancel signal and cancel every step that never started.

        Running steps stay running until the executor confirms. Returns once the
        signal is sent.

        Raises:
            ExecutionNotFoundError: If the execution is unknown
            ExecutionFinishedError: If the execution already finished
            SubmissionError: If the signal could not be sent; nothing changes
        """
        lock = self._lock_for(execution_id)
        async with lock:
            execution = self.store.require(execution_id)
            if execution.status.is_terminal:
                raise ExecutionFinishedError(execution_id, execution.status.value)
            if execution.cancel_requested:
                return execution

            await self.executor.cancel(execution_id)

            execution.cancel_requested = True
            derived: list[ExecutionEvent] = []
            for step in execution.steps:
                if step.status == StepStatus.PENDING:
                    derived.append(self._finish_step(execution, step, StepStatus.CANCELLED))
            derived.extend(self._maybe_finalize(execution))

            self.store.put(execution)
            logger.info(
                f"Cancel requested for execution {execution_id}; "
                f"{sum(1 for s in execution.steps if s.status == StepStatus.RUNNING)} steps running"
            )
            await self._broadcast(execution_id, derived)
            return execution

    async def retry_step(self, execution_id: str, step_id: str) -> PipelineExecution:
        """Run a failed step again, reusing the environment of the original run.

        Skipped dependents whose other dependencies are not failed or cancelled
        go back to pending as well. A failed execution reopens as running.

        Raises:
            ExecutionNotFoundError: If the execution is unknown
            StepNotFoundError: If the execution has no such step
            StepNotRetryableError: If the step is not failed
            ExecutionFinishedError: If the execution was cancelled
            SubmissionError: If the retry could not be sent; nothing changes
        """
        lock = self._lock_for(execution_id)
        async with lock:
            execution = self.store.require(execution_id)
            if execution.cancel_requested or execution.status == ExecutionStatus.CANCELLED:
                raise ExecutionFinishedError(execution_id, ExecutionStatus.CANCELLED.value)
            step = execution.get_step(step_id)
            if step is None:
                raise StepNotFoundError(execution_id, step_id)
            if step.status != StepStatus.FAILED:
                raise StepNotRetryableError(step_id, step.status.value)

            await self.executor.retry_step(execution_id, step_id)

            derived = [self._reset_step(execution, step, count_retry=True)]
            derived.extend(self._requeue_dependents(execution, step_id))

            if execution.status.is_terminal:
                execution.status = ExecutionStatus.RUNNING
                execution.finished_at = None
                execution.error = None
                derived.append(self._execution_event(execution))

            self.store.put(execution)
            logger.info(
                f"Step '{step_id}' of execution {execution_id} retried "
                f"(attempt {step.retry_count + 1}, {len(derived) - 1} updates)"
            )
            await self._broadcast(execution_id, derived)
            return execution

    def _requeue_dependents(
        self, execution: PipelineExecution, step_id: str
    ) -> list[ExecutionEvent]:
        steps = list(self._steps[execution.id].values())
        events = []
        for dependent_id in transitive_dependents(steps, step_id):
            dependent = execution.get_step(dependent_id)
            if dependent is None or dependent.status != StepStatus.SKIPPED:
                continue
            if not self._steps[execution.id][dependent_id].enabled:
                continue
            blocked = any(
                (ancestor := execution.get_step(ancestor_id)) is not None
                and ancestor.status.blocks_dependents
                for ancestor_id in transitive_dependencies(steps, dependent_id)
            )
            if not blocked:
                events.append(self._reset_step(execution, dependent, count_retry=False))
        return events

    # Subscriptions

    def subscribe(self, execution_id: str, callback: EventCallback) -> Unsubscribe:
        """Receive every event of one execution, in arrival order.

        Callbacks may be plain functions or coroutines. They must not call back
        into the orchestrator for the same execution.

        Returns:
            A function that removes this subscription
        """
        self._subscribers.setdefault(execution_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(execution_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(execution_id, None)

        return unsubscribe

    async def _broadcast(self, execution_id: str, events: list[ExecutionEvent]) -> None:
        for event in events:
            for callback in list(self._subscribers.get(execution_id, [])):
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Subscriber of execution {execution_id} failed: {e}")

    # Events

    async def handle_event(self, event: ExecutionEvent) -> None:
        """Apply one executor event.

        Events for an execution that is not recorded yet are buffered and
        replayed once ``execute`` records it. Events for a purged execution
        are discarded.
        """
        lock = self._locks.get(event.execution_id)
        if lock is None:
            if event.execution_id in self._purged:
                logger.warning(f"Event for purged execution {event.execution_id} ignored")
                return
            self._buffer_orphan(event)
            return
        async with lock:
            await self._handle_locked(event.execution_id, event)

    async def listen(self, events: AsyncIterable[ExecutionEvent]) -> None:
        """Consume an executor event stream until it ends.

        Raises:
            ExecutorStreamError: If the stream breaks; there is no retry
        """
        iterator = aiter(events)
        while True:
            try:
                event = await anext(iterator)
            except StopAsyncIteration:
                return
            except Exception as e:
                logger.error(f"Executor event stream broke: {e}")
                raise ExecutorStreamError(f"Executor event stream broke: {e}") from e
            await self.handle_event(event)

    def _buffer_orphan(self, event: ExecutionEvent) -> None:
        if event.execution_id not in self._orphans and len(self._orphans) >= MAX_ORPHAN_EXECUTIONS:
            dropped = next(iter(self._orphans))
            del self._orphans[dropped]
            logger.warning(f"Dropped buffered events of unknown execution {dropped}")
        buffered = self._orphans.setdefault(event.execution_id, [])
        buffered.append(event)
        if len(buffered) > MAX_ORPHAN_EVENTS:
            del buffered[0]
            logger.warning(
                f"Dropped oldest buffered event of unknown execution {event.execution_id}"
            )
        else:
            logger.debug(f"Buffered event for unknown execution {event.execution_id}")

    async def _handle_locked(self, execution_id: str, event: ExecutionEvent) -> None:
        execution = self.store.get(execution_id)
        if execution is None:
            logger.warning(f"Event for purged execution {execution_id} ignored")
            return

        if event.step_id is None:
            derived = self._apply_execution_event(execution, event)
        else:
            derived = self._apply_step_event(execution, event)
        derived.extend(self._maybe_finalize(execution))

        self.store.put(execution)
        await self._broadcast(execution_id, [event, *derived])

    def _apply_step_event(
        self, execution: PipelineExecution, event: ExecutionEvent
    ) -> list[ExecutionEvent]:
        step = execution.get_step(event.step_id or "")
        if step is None:
            logger.warning(
                f"Event for unknown step '{event.step_id}' of execution {execution.id} ignored"
            )
            return []
        if step.status.is_terminal:
            logger.warning(
                f"Late event '{event.status.value}' for step '{step.step_id}' of execution "
                f"{execution.id} ignored: step already {step.status.value}"
            )
            return []

        if event.log_ref:
            step.logs_ref = event.log_ref

        if execution.status == ExecutionStatus.PENDING:
            execution.status = ExecutionStatus.RUNNING

        if event.status == StepStatus.PENDING:
            return []

        if event.status == StepStatus.RUNNING:
            if step.status != StepStatus.RUNNING:
                step.status = StepStatus.RUNNING
                step.started_at = event.timestamp
                self._arm_deadline(execution.id, step.step_id)
            return []

        self._disarm_deadline(execution.id, step.step_id)
        if step.started_at is None:
            step.started_at = event.timestamp
        step.status = event.status
        step.finished_at = event.timestamp
        step.error = event.error

        if step.status.blocks_dependents:
            return self._skip_dependents(execution, step.step_id)
        return []

    def _apply_execution_event(
        self, execution: PipelineExecution, event: ExecutionEvent
    ) -> list[ExecutionEvent]:
        if execution.status.is_terminal:
            logger.warning(
                f"Late event '{event.status.value}' for execution {execution.id} ignored: "
                f"already {execution.status.value}"
            )
            return []

        derived: list[ExecutionEvent] = []
        match event.status:
            case StepStatus.PENDING:
                pass
            case StepStatus.RUNNING:
                execution.status = ExecutionStatus.RUNNING
            case StepStatus.CANCELLED:
                execution.cancel_requested = True
                for step in execution.steps:
                    if not step.status.is_terminal:
                        derived.append(self._finish_step(execution, step, StepStatus.CANCELLED))
            case StepStatus.FAILED:
                execution.error = event.error
                for step in execution.steps:
                    if step.status == StepStatus.RUNNING:
                        derived.append(
                            self._finish_step(execution, step, StepStatus.FAILED, event.error)
                        )
                for step in execution.steps:
                    if step.status == StepStatus.PENDING:
                        derived.append(self._finish_step(execution, step, StepStatus.SKIPPED))
            case StepStatus.SUCCEEDED:
                if any(not step.status.is_terminal for step in execution.steps):
                    logger.warning(
                        f"Execution {execution.id} reported succeeded with unfinished steps"
                    )
            case StepStatus.SKIPPED:
                logger.warning(f"Execution-level 'skipped' event for {execution.id} ignored")
        return derived

    # Step transitions

    def _finish_step(
        self,
        execution: PipelineExecution,
        step: StepExecution,
        status: StepStatus,
        error: str | None = None,
    ) -> ExecutionEvent:
        self._disarm_deadline(execution.id, step.step_id)
        step.status = status
        step.finished_at = utcnow()
        step.error = error
        return ExecutionEvent(
            execution_id=execution.id,
            step_id=step.step_id,
            status=status,
            timestamp=step.finished_at,
            error=error,
        )

    def _reset_step(
        self, execution: PipelineExecution, step: StepExecution, count_retry: bool
    ) -> ExecutionEvent:
        step.status = StepStatus.PENDING
        step.started_at = None
        step.finished_at = None
        step.error = None
        step.logs_ref = None
        if count_retry:
            step.retry_count += 1
        return ExecutionEvent(execution_id=execution.id, step_id=step.step_id, status=step.status)

    def _skip_dependents(self, execution: PipelineExecution, step_id: str) -> list[ExecutionEvent]:
        steps = list(self._steps[execution.id].values())
        events = []
        for dependent_id in transitive_dependents(steps, step_id):
            dependent = execution.get_step(dependent_id)
            if dependent is not None and dependent.status == StepStatus.PENDING:
                events.append(self._finish_step(execution, dependent, StepStatus.SKIPPED))
        return events

    def _maybe_finalize(self, execution: PipelineExecution) -> list[ExecutionEvent]:
        if execution.status.is_terminal:
            return []
        if any(not step.status.is_terminal for step in execution.steps):
            return []

        if execution.cancel_requested:
            execution.status = ExecutionStatus.CANCELLED
        elif any(step.status.blocks_dependents for step in execution.steps):
            execution.status = ExecutionStatus.FAILED
            if execution.error is None:
                failed = [s.step_id for s in execution.steps if s.status.blocks_dependents]
                execution.error = f"Steps did not succeed: {', '.join(failed)}"
        else:
            execution.status = ExecutionStatus.SUCCEEDED
        execution.finished_at = utcnow()

        logger.info(f"Execution {execution.id} finished: {execution.status.value}")
        return [self._execution_event(execution)]

    @staticmethod
    def _execution_event(execution: PipelineExecution) -> ExecutionEvent:
        return ExecutionEvent(
            execution_id=execution.id,
            status=StepStatus(execution.status.value),
            error=execution.error,
        )

    # Deadlines

    def _arm_deadline(self, execution_id: str, step_id: str) -> None:
        self._disarm_deadline(execution_id, step_id)
        step = self._steps[execution_id].get(step_id)
        timeout = (step.timeout if step else None) or self.step_timeout
        loop = asyncio.get_running_loop()
        self._deadlines[(execution_id, step_id)] = loop.call_later(
            timeout, self._on_deadline, execution_id, step_id, timeout
        )

    def _disarm_deadline(self, execution_id: str, step_id: str) -> None:
        handle = self._deadlines.pop((execution_id, step_id), None)
        if handle is not None:
            handle.cancel()

    def _on_deadline(self, execution_id: str, step_id: str, timeout: float) -> None:
        self._deadlines.pop((execution_id, step_id), None)
        task = asyncio.create_task(self._expire_step(execution_id, step_id, timeout))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _expire_step(self, execution_id: str, step_id: str, timeout: float) -> None:
        lock = self._locks.get(execution_id)
        if lock is None:
            return
        async with lock:
            execution = self.store.get(execution_id)
            if execution is None:
                return
            step = execution.get_step(step_id)
            if step is None or step.status != StepStatus.RUNNING:
                return

            logger.warning(f"Step '{step_id}' of execution {execution_id} timed out")
            derived = [
                self._finish_step(
                    execution, step, StepStatus.FAILED, f"Step timed out after {timeout:g}s"
                )
            ]
            derived.extend(self._skip_dependents(execution, step_id))
            derived.extend(self._maybe_finalize(execution))
            self.store.put(execution)
            await self._broadcast(execution_id, derived)

    # Housekeeping

    def _lock_for(self, execution_id: str) -> asyncio.Lock:
        lock = self._locks.get(execution_id)
        if lock is None:
            raise ExecutionNotFoundError(execution_id)
        return lock

    def get_execution(self, execution_id: str) -> PipelineExecution:
        return self.store.require(execution_id)

    def environment_names(self, execution_id: str) -> list[str]:
        """Names, never values, of the environment handed to the executor."""
        self._lock_for(execution_id)
        return sorted(self._environments.get(execution_id, {}))

    def purge(self, **filters: object) -> list[str]:
        """Purge finished executions and drop their private state.

        Accepts the filters of ``ExecutionStateStore.purge``.
        """
        purged = self.store.purge(**filters)  # type: ignore[arg-type]
        for execution_id in purged:
            self._locks.pop(execution_id, None)
            self._steps.pop(execution_id, None)
            self._environments.pop(execution_id, None)
            self._subscribers.pop(execution_id, None)
            self._orphans.pop(execution_id, None)
            self._purged[execution_id] = None
        while len(self._purged) > MAX_PURGED_IDS:
            del self._purged[next(iter(self._purged))]
        return purged

    async def close(self) -> None:
        """Cancel pending deadlines and background work."""
        for handle in self._deadlines.values():
            handle.cancel()
        self._deadlines.clear()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
