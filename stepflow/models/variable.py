"""
Variable and secret reference models.

Variables hold plain values. Secret references only point at a vault key;
the secret value itself is never stored by Stepflow.
"""

from pydantic import ConfigDict, field_validator
from sqlmodel import Field, SQLModel

from ..exceptions import InvalidVariableNameError
from ..utils.validation import validate_variable_name
from .base import ScopeLevel, VariableType


def _check_name(value: str) -> str:
    try:
        return validate_variable_name(value)
    except InvalidVariableNameError as e:
        raise ValueError(str(e)) from e


class VariableScope(SQLModel):
    """Identifies one scope: a project or a single pipeline.

    Args:
        level: Whether the scope is a project or a pipeline.
        owner_id: ID of the owning project or pipeline.
    """

    model_config = ConfigDict(frozen=True)  # type: ignore[assignment]

    level: ScopeLevel
    owner_id: str

    @classmethod
    def project(cls, project_id: str) -> "VariableScope":
        return cls(level=ScopeLevel.PROJECT, owner_id=project_id)

    @classmethod
    def pipeline(cls, pipeline_id: str) -> "VariableScope":
        return cls(level=ScopeLevel.PIPELINE, owner_id=pipeline_id)

    def __str__(self) -> str:
        return f"{self.level.value}:{self.owner_id}"


# Variables


class VariableBase(SQLModel):
    """Shared variable fields."""

    name: str = Field(min_length=1, max_length=100)
    type: VariableType = VariableType.STRING
    value: str = ""
    description: str | None = None


class Variable(VariableBase, table=True):
    """Stored variable, unique by name within its scope."""

    __tablename__ = "variable"

    scope: ScopeLevel = Field(primary_key=True)
    owner_id: str = Field(primary_key=True, index=True)
    name: str = Field(primary_key=True, max_length=100)


class VariableCreate(VariableBase):
    """Payload for declaring a variable."""

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _check_name(value)


class VariableUpdate(SQLModel):
    """Partial variable update. The name is immutable."""

    type: VariableType | None = None
    value: str | None = None
    description: str | None = None


class VariableRead(VariableBase):
    """Variable as returned by the API."""

    scope: ScopeLevel
    owner_id: str


# Secret references


class SecretReferenceBase(SQLModel):
    """Shared secret reference fields.

    Args:
        id: Opaque vault key.
        name: Display name, used as the environment variable name at run time.
    """

    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)


class SecretReference(SecretReferenceBase, table=True):
    """Stored secret reference, unique by display name within its scope."""

    __tablename__ = "secret_reference"

    scope: ScopeLevel = Field(primary_key=True)
    owner_id: str = Field(primary_key=True, index=True)
    name: str = Field(primary_key=True, max_length=100)
    id: str


class SecretReferenceCreate(SecretReferenceBase):
    """Payload for declaring a secret reference."""

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _check_name(value)


class SecretReferenceRead(SecretReferenceBase):
    """Secret reference as returned by the API. Never carries the value."""

    scope: ScopeLevel
    owner_id: str
