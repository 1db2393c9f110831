"""
Execution models for Stepflow.

Executions live in the in-memory state store; these models are plain
pydantic schemas without a table.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import ExecutionStatus, StepStatus, new_id, utcnow


class StepExecution(SQLModel):
    """Runtime record of one step within an execution."""

    step_id: str
    step_name: str
    status: StepStatus = StepStatus.PENDING
    logs_ref: str | None = None
    retry_count: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def duration(self) -> float | None:
        """Duration in seconds, once the step has finished."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class PipelineExecution(SQLModel):
    """One run of a pipeline.

    The resolved environment is deliberately absent: it may hold secret
    values and stays private to the orchestrator.
    """

    id: str = Field(default_factory=new_id)
    pipeline_id: str
    project_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    steps: list[StepExecution] = Field(default_factory=list)
    waves: list[list[str]] = Field(default_factory=list)
    cancel_requested: bool = False
    error: str | None = None
    triggered_by: str = "user"

    def get_step(self, step_id: str) -> StepExecution | None:
        return next((step for step in self.steps if step.step_id == step_id), None)


class ExecutionEvent(SQLModel):
    """Status update pushed by the remote executor.

    Events without ``step_id`` describe the execution as a whole; they use
    the step statuses shared with executions (every value but ``skipped``).
    """

    execution_id: str
    step_id: str | None = None
    status: StepStatus
    timestamp: datetime = Field(default_factory=utcnow)
    log_ref: str | None = None
    error: str | None = None


class ExecutionProgress(SQLModel):
    """Progress summary of an execution."""

    execution_id: str
    pipeline_id: str
    status: ExecutionStatus
    current_steps: list[str] = Field(default_factory=list)
    completed_steps: int = 0
    total_steps: int = 0
    progress: int = 0
    started_at: datetime


class StepDuration(SQLModel):
    step_id: str
    step_name: str
    duration: float


class ExecutionMetrics(SQLModel):
    """Duration statistics of an execution, in seconds."""

    execution_id: str
    total_duration: float | None = None
    steps_executed: int = 0
    steps_succeeded: int = 0
    steps_failed: int = 0
    steps_skipped: int = 0
    average_step_duration: float | None = None
    longest_step: StepDuration | None = None
    shortest_step: StepDuration | None = None


class ExecuteRequest(SQLModel):
    """Payload for starting an execution."""

    project_path: str | None = None
    overrides: dict[str, str] = Field(default_factory=dict)
    triggered_by: str = "user"
