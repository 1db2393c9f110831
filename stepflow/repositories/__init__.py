"""Repository layer for data access operations."""

from stepflow.repositories.base import BaseRepository
from stepflow.repositories.pipeline_repository import PipelineRepository
from stepflow.repositories.template_repository import TemplateRepository
from stepflow.repositories.variable_repository import (
    SecretReferenceRepository,
    VariableRepository,
)

__all__ = [
    "BaseRepository",
    "PipelineRepository",
    "SecretReferenceRepository",
    "TemplateRepository",
    "VariableRepository",
]
