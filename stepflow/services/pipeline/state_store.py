"""
In-memory store of in-flight and historical executions.

The orchestrator is the only writer. Every write stores a deep copy and
every read returns one, so readers never observe a half-applied update.
Observers are notified with a snapshot after each write.
"""

from collections.abc import Callable
from datetime import datetime

from stepflow.exceptions import ExecutionNotFoundError
from stepflow.models.base import ExecutionStatus, StepStatus
from stepflow.models.execution import (
    ExecutionMetrics,
    ExecutionProgress,
    PipelineExecution,
    StepDuration,
)
from stepflow.types import Unsubscribe
from stepflow.utils.logger import logger

type StoreObserver = Callable[[PipelineExecution], None]


class ExecutionStateStore:
    """Observable container of PipelineExecution snapshots keyed by ID."""

    def __init__(self) -> None:
        self._executions: dict[str, PipelineExecution] = {}
        self._observers: list[StoreObserver] = []

    def __contains__(self, execution_id: str) -> bool:
        return execution_id in self._executions

    def __len__(self) -> int:
        return len(self._executions)

    # Writes

    def put(self, execution: PipelineExecution) -> None:
        """Store a snapshot of an execution and notify observers."""
        snapshot = execution.model_copy(deep=True)
        self._executions[execution.id] = snapshot
        for observer in list(self._observers):
            try:
                observer(snapshot.model_copy(deep=True))
            except Exception as e:
                logger.error(f"Execution store observer failed for {execution.id}: {e}")

    def purge(
        self,
        execution_id: str | None = None,
        *,
        pipeline_id: str | None = None,
        finished_before: datetime | None = None,
    ) -> list[str]:
        """Drop finished executions from history.

        Executions that are still pending or running are never purged.

        Args:
            execution_id: Purge only this execution
            pipeline_id: Purge only executions of this pipeline
            finished_before: Purge only executions finished before this time

        Returns:
            IDs of the purged executions
        """
        purged = []
        for execution in list(self._executions.values()):
            if not execution.status.is_terminal:
                continue
            if execution_id is not None and execution.id != execution_id:
                continue
            if pipeline_id is not None and execution.pipeline_id != pipeline_id:
                continue
            if finished_before is not None and (
                execution.finished_at is None or execution.finished_at >= finished_before
            ):
                continue
            del self._executions[execution.id]
            purged.append(execution.id)

        if purged:
            logger.info(f"Purged {len(purged)} executions from history")
        return purged

    # Reads

    def get(self, execution_id: str) -> PipelineExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    def require(self, execution_id: str) -> PipelineExecution:
        """Get an execution snapshot.

        Raises:
            ExecutionNotFoundError: If the store has no such execution
        """
        execution = self.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def list_executions(
        self,
        *,
        pipeline_id: str | None = None,
        project_id: str | None = None,
        status: ExecutionStatus | None = None,
        triggered_by: str | None = None,
    ) -> list[PipelineExecution]:
        """List execution snapshots, newest first."""
        matches = [
            e
            for e in self._executions.values()
            if (pipeline_id is None or e.pipeline_id == pipeline_id)
            and (project_id is None or e.project_id == project_id)
            and (status is None or e.status == status)
            and (triggered_by is None or e.triggered_by == triggered_by)
        ]
        matches.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in matches]

    def progress(self, execution_id: str) -> ExecutionProgress:
        """Summarize how far an execution has come.

        Raises:
            ExecutionNotFoundError: If the store has no such execution
        """
        execution = self.require(execution_id)
        total = len(execution.steps)
        completed = sum(1 for step in execution.steps if step.status.is_terminal)
        if total:
            percent = round(completed * 100 / total)
        else:
            percent = 100 if execution.status.is_terminal else 0
        return ExecutionProgress(
            execution_id=execution.id,
            pipeline_id=execution.pipeline_id,
            status=execution.status,
            current_steps=[s.step_id for s in execution.steps if s.status == StepStatus.RUNNING],
            completed_steps=completed,
            total_steps=total,
            progress=percent,
            started_at=execution.started_at,
        )

    def metrics(self, execution_id: str) -> ExecutionMetrics:
        """Compute duration statistics over the steps that ran.

        Raises:
            ExecutionNotFoundError: If the store has no such execution
        """
        execution = self.require(execution_id)
        timed = [
            StepDuration(step_id=s.step_id, step_name=s.step_name, duration=s.duration)
            for s in execution.steps
            if s.duration is not None
        ]
        total_duration = None
        if execution.finished_at is not None:
            total_duration = (execution.finished_at - execution.started_at).total_seconds()

        return ExecutionMetrics(
            execution_id=execution.id,
            total_duration=total_duration,
            steps_executed=len(timed),
            steps_succeeded=sum(1 for s in execution.steps if s.status == StepStatus.SUCCEEDED),
            steps_failed=sum(1 for s in execution.steps if s.status == StepStatus.FAILED),
            steps_skipped=sum(1 for s in execution.steps if s.status == StepStatus.SKIPPED),
            average_step_duration=sum(t.duration for t in timed) / len(timed) if timed else None,
            longest_step=max(timed, key=lambda t: t.duration) if timed else None,
            shortest_step=min(timed, key=lambda t: t.duration) if timed else None,
        )

    # Observers

    def add_observer(self, observer: StoreObserver) -> Unsubscribe:
        """Register a callback invoked with a snapshot after every write."""
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove
