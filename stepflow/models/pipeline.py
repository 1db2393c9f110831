"""
Pipeline models for Stepflow.

A pipeline is an ordered list of steps linked by ``depends_on`` edges, plus the
execution context and variables needed to run it.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import Discriminator, model_validator
from sqlmodel import JSON, Column, Field, SQLModel

from ..types import JSONDict, StepConfig
from .base import StepExecutionType, new_id, utcnow
from .variable import (
    SecretReferenceCreate,
    SecretReferenceRead,
    VariableCreate,
    VariableRead,
)


class TemplateStepKind(SQLModel):
    """Step generated from a template, dispatched by its execution type."""

    kind: Literal["template"] = "template"
    execution_type: StepExecutionType
    step_id: str

    @property
    def marker(self) -> str:
        return f"template-{self.execution_type.value}-{self.step_id}"


class BlockStepKind(SQLModel):
    """Step backed by a reusable block from the block library."""

    kind: Literal["block"] = "block"
    block_id: str

    @property
    def marker(self) -> str:
        return self.block_id


StepKind = Annotated[TemplateStepKind | BlockStepKind, Discriminator("kind")]


class Step(SQLModel):
    """One node of the pipeline graph.

    Args:
        id: Unique within the pipeline.
        kind: Dispatch tag consumed by the remote executor.
        name: Human readable name.
        config: Free-form configuration passed through to the executor.
        depends_on: IDs of steps that must succeed before this one runs.
        enabled: Disabled steps are skipped without blocking their dependents.
        timeout: Per-step deadline in seconds; falls back to the global default.
    """

    id: str = Field(min_length=1)
    kind: StepKind
    name: str
    config: StepConfig = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    enabled: bool = True
    timeout: float | None = Field(default=None, gt=0)


class ExecutionContext(SQLModel):
    """Where and how the remote executor runs the steps.

    ``working_directory`` may contain placeholders such as ``${PROJECT_PATH}``
    which are resolved when an execution starts.
    """

    type: Literal["sdk", "docker"] = "sdk"
    sdk_type: str | None = None
    sdk_version: str | None = None
    docker_image: str | None = None
    dockerfile: str | None = None
    docker_context: str | None = None
    working_directory: str = "${PROJECT_PATH}"
    environment: dict[str, str] = Field(default_factory=dict)


class PipelineBase(SQLModel):
    """Shared pipeline fields."""

    project_id: str = Field(index=True, min_length=1)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    enabled: bool = True


class Pipeline(PipelineBase, table=True):
    """Stored pipeline.

    Steps and execution context are kept as JSON documents; variables and
    secret references live in their own tables keyed by the pipeline scope.
    """

    __tablename__ = "pipeline"

    id: str = Field(default_factory=new_id, primary_key=True)
    steps: list[JSONDict] = Field(default_factory=list, sa_column=Column(JSON))
    execution_context: JSONDict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


def _check_unique_names(
    variables: list[VariableCreate], secrets: list[SecretReferenceCreate]
) -> None:
    for label, names in (
        ("variable", [v.name for v in variables]),
        ("secret reference", [s.name for s in secrets]),
    ):
        repeated = sorted({name for name in names if names.count(name) > 1})
        if repeated:
            raise ValueError(f"Duplicate {label} names: {', '.join(repeated)}")


class PipelineCreate(PipelineBase):
    """Payload for creating a pipeline."""

    steps: list[Step] = Field(default_factory=list)
    variables: list[VariableCreate] = Field(default_factory=list)
    secrets: list[SecretReferenceCreate] = Field(default_factory=list)
    execution_context: ExecutionContext = Field(default_factory=ExecutionContext)

    @model_validator(mode="after")
    def check_unique_names(self) -> "PipelineCreate":
        _check_unique_names(self.variables, self.secrets)
        return self


class PipelineUpdate(SQLModel):
    """Partial pipeline update.

    When ``variables`` or ``secrets`` is given, it replaces the whole list of
    the pipeline scope.
    """

    name: str | None = None
    description: str | None = None
    steps: list[Step] | None = None
    variables: list[VariableCreate] | None = None
    secrets: list[SecretReferenceCreate] | None = None
    execution_context: ExecutionContext | None = None
    enabled: bool | None = None

    @model_validator(mode="after")
    def check_unique_names(self) -> "PipelineUpdate":
        _check_unique_names(self.variables or [], self.secrets or [])
        return self


class PipelineRead(PipelineBase):
    """Fully assembled pipeline, as consumed by the orchestrator and the API."""

    id: str
    steps: list[Step] = Field(default_factory=list)
    variables: list[VariableRead] = Field(default_factory=list)
    secrets: list[SecretReferenceRead] = Field(default_factory=list)
    execution_context: ExecutionContext = Field(default_factory=ExecutionContext)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def coerce_empty_context(cls, data: Any) -> Any:
        # Stored rows may carry an empty JSON object for the context
        if isinstance(data, dict) and not data.get("execution_context"):
            data = {**data, "execution_context": ExecutionContext()}
        return data

    @property
    def secret_ids(self) -> list[str]:
        return [secret.id for secret in self.secrets]

    def get_step(self, step_id: str) -> Step | None:
        return next((step for step in self.steps if step.id == step_id), None)


class ValidationResult(SQLModel):
    """Outcome of validating a pipeline graph."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


class PipelinePlan(SQLModel):
    """Validation outcome together with the wave plan of a pipeline."""

    pipeline_id: str
    valid: bool
    errors: list[str] = Field(default_factory=list)
    waves: list[list[str]] = Field(default_factory=list)
