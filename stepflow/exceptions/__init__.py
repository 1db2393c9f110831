"""
Stepflow exceptions.

Domain exceptions are raised by services and repositories; the API layer
maps them to HTTP responses in ``stepflow.api.exception_handlers``.
"""

from .domain import (
    BuiltinTemplateConflictError,
    BuiltinTemplateReadOnlyError,
    BusinessRuleViolationError,
    ConfigurationError,
    DatabaseError,
    DatabaseIntegrityError,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    ExecutionFinishedError,
    ExecutionNotFoundError,
    ExecutorError,
    ExecutorStreamError,
    InvalidVariableNameError,
    PipelineDisabledError,
    PipelineNotFoundError,
    PipelineValidationError,
    SecretDecryptionError,
    SecretNotFoundError,
    SecretReferenceNotFoundError,
    SecretResolutionError,
    StepflowError,
    StepNotFoundError,
    StepNotRetryableError,
    SubmissionError,
    TemplateAlreadyExistsError,
    TemplateFormatError,
    TemplateImportError,
    TemplateNotFoundError,
    TemplateReferenceError,
    ValidationError,
    VariableNotFoundError,
)

__all__ = [
    "BuiltinTemplateConflictError",
    "BuiltinTemplateReadOnlyError",
    "BusinessRuleViolationError",
    "ConfigurationError",
    "DatabaseError",
    "DatabaseIntegrityError",
    "EntityAlreadyExistsError",
    "EntityNotFoundError",
    "ExecutionFinishedError",
    "ExecutionNotFoundError",
    "ExecutorError",
    "ExecutorStreamError",
    "InvalidVariableNameError",
    "PipelineDisabledError",
    "PipelineNotFoundError",
    "PipelineValidationError",
    "SecretDecryptionError",
    "SecretNotFoundError",
    "SecretReferenceNotFoundError",
    "SecretResolutionError",
    "StepNotFoundError",
    "StepNotRetryableError",
    "StepflowError",
    "SubmissionError",
    "TemplateAlreadyExistsError",
    "TemplateFormatError",
    "TemplateImportError",
    "TemplateNotFoundError",
    "TemplateReferenceError",
    "ValidationError",
    "VariableNotFoundError",
]
