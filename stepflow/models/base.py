"""
Base models for Stepflow.

Common enumerations and helpers shared by the pipeline, execution,
variable and template models.
"""

import enum
from datetime import UTC, datetime
from uuid import uuid4


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a new opaque identifier."""
    return str(uuid4())


class StepExecutionType(str, enum.Enum):
    """How the remote executor runs a template-generated step."""

    COMMAND = "command"
    SDK_COMMAND = "sdk_command"
    DOCKER_COMMAND = "docker_command"


class VariableType(str, enum.Enum):
    """Declared type of a variable value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


class ScopeLevel(str, enum.Enum):
    """Level a variable or secret reference is declared at."""

    PROJECT = "project"
    PIPELINE = "pipeline"


class ExecutionStatus(str, enum.Enum):
    """Lifecycle status of a pipeline execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.SUCCEEDED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class StepStatus(str, enum.Enum):
    """Lifecycle status of a single step within an execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            StepStatus.SUCCEEDED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
            StepStatus.CANCELLED,
        )

    @property
    def blocks_dependents(self) -> bool:
        """Whether transitive dependents of a step in this state must be skipped."""
        return self in (StepStatus.FAILED, StepStatus.CANCELLED)
