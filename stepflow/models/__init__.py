"""
Stepflow data models.

SQLModel tables for persisted pipelines, variables, secret references and
templates, plus the pydantic schemas used by services and the API.
"""

# Base models
from .base import (
    ExecutionStatus,
    ScopeLevel,
    StepExecutionType,
    StepStatus,
    VariableType,
)

# Execution models
from .execution import (
    ExecuteRequest,
    ExecutionEvent,
    ExecutionMetrics,
    ExecutionProgress,
    PipelineExecution,
    StepDuration,
    StepExecution,
)

# Pipeline models
from .pipeline import (
    BlockStepKind,
    ExecutionContext,
    Pipeline,
    PipelineCreate,
    PipelinePlan,
    PipelineRead,
    PipelineUpdate,
    Step,
    StepKind,
    TemplateStepKind,
    ValidationResult,
)

# Template models
from .template import (
    GenerateRequest,
    PipelineTemplate,
    Template,
    TemplateCustomizations,
    TemplateExecutionContext,
    TemplateStep,
    TemplateUpdate,
    TemplateVariable,
)

# Variable models
from .variable import (
    SecretReference,
    SecretReferenceCreate,
    SecretReferenceRead,
    Variable,
    VariableCreate,
    VariableRead,
    VariableScope,
    VariableUpdate,
)

__all__ = [
    # Base
    "ExecutionStatus",
    "ScopeLevel",
    "StepExecutionType",
    "StepStatus",
    "VariableType",
    # Execution
    "ExecuteRequest",
    "ExecutionEvent",
    "ExecutionMetrics",
    "ExecutionProgress",
    "PipelineExecution",
    "StepDuration",
    "StepExecution",
    # Pipeline
    "BlockStepKind",
    "ExecutionContext",
    "Pipeline",
    "PipelineCreate",
    "PipelinePlan",
    "PipelineRead",
    "PipelineUpdate",
    "Step",
    "StepKind",
    "TemplateStepKind",
    "ValidationResult",
    # Template
    "GenerateRequest",
    "PipelineTemplate",
    "Template",
    "TemplateCustomizations",
    "TemplateExecutionContext",
    "TemplateStep",
    "TemplateUpdate",
    "TemplateVariable",
    # Variable
    "SecretReference",
    "SecretReferenceCreate",
    "SecretReferenceRead",
    "Variable",
    "VariableCreate",
    "VariableRead",
    "VariableScope",
    "VariableUpdate",
]
