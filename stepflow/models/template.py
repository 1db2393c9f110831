"""
Pipeline template models.

Templates use camelCase field names on the wire so that exported JSON
matches the format users already share; snake_case names are accepted too.
"""

from datetime import datetime
from typing import Literal

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import JSON, Column, Field, SQLModel

from ..types import JSONDict, StepConfig
from .base import StepExecutionType, VariableType, new_id, utcnow
from .pipeline import ExecutionContext

type TemplateCategory = Literal["build", "test", "deploy", "ci-cd", "full-stack"]
type DefaultValue = str | int | float | bool


class CamelModel(SQLModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)  # type: ignore[assignment]


class TemplateStep(CamelModel):
    """Step declaration inside a template, identified by a template-local key."""

    key: str | None = None
    name: str = Field(min_length=1)
    type: StepExecutionType = StepExecutionType.COMMAND
    config: StepConfig = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    enabled: bool = True


class TemplateVariable(CamelModel):
    """Variable declaration with an optional default."""

    name: str
    type: VariableType = VariableType.STRING
    default_value: DefaultValue | None = None
    description: str | None = None


class TemplateExecutionContext(CamelModel):
    """Default execution context carried by a template."""

    type: Literal["sdk", "docker"] = "sdk"
    sdk_type: str | None = None
    sdk_version: str | None = None
    docker_image: str | None = None
    dockerfile: str | None = None
    docker_context: str | None = None
    working_directory: str = "${PROJECT_PATH}"
    environment: dict[str, str] = Field(default_factory=dict)

    def to_context(self) -> ExecutionContext:
        return ExecutionContext.model_validate(self.model_dump())


class TemplateBase(CamelModel):
    """Shared template fields."""

    name: str = Field(min_length=1)
    description: str
    framework: str | None = None
    category: TemplateCategory | None = None
    package_manager: str | None = None
    steps: list[TemplateStep]
    variables: list[TemplateVariable] = Field(default_factory=list)
    execution_context: TemplateExecutionContext = Field(default_factory=TemplateExecutionContext)
    tags: list[str] = Field(default_factory=list)


class Template(TemplateBase):
    """Pipeline template.

    Built-in templates have no ``id``; user templates carry the identity of
    their stored row and may be edited or deleted.
    """

    key: str = Field(min_length=1)
    id: str | None = None

    @property
    def is_builtin(self) -> bool:
        return self.id is None


class TemplateUpdate(CamelModel):
    """Partial template update. The key can never change."""

    name: str | None = None
    description: str | None = None
    framework: str | None = None
    category: TemplateCategory | None = None
    package_manager: str | None = None
    steps: list[TemplateStep] | None = None
    variables: list[TemplateVariable] | None = None
    execution_context: TemplateExecutionContext | None = None
    tags: list[str] | None = None


class TemplateCustomizations(CamelModel):
    """Caller overrides applied when generating a pipeline from a template.

    Args:
        variables: Values that replace template defaults.
        enabled_steps: When given, only template steps with these keys are enabled.
    """

    variables: dict[str, DefaultValue] = Field(default_factory=dict)
    enabled_steps: list[str] | None = None


class GenerateRequest(CamelModel):
    """Payload for generating a pipeline from a template."""

    project_id: str
    project_name: str
    customizations: TemplateCustomizations = Field(default_factory=TemplateCustomizations)
    save: bool = False


class PipelineTemplate(SQLModel, table=True):
    """Stored user-defined template. ``data`` holds the exported JSON document."""

    __tablename__ = "pipeline_template"

    id: str = Field(default_factory=new_id, primary_key=True)
    key: str = Field(unique=True, index=True)
    data: JSONDict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
