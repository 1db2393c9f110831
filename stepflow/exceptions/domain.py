"""
Domain exceptions for business logic layer.

These exceptions are used in repositories and services to represent
business logic errors without coupling to HTTP status codes.
"""


class StepflowError(Exception):
    """Base exception for all Stepflow-specific errors."""

    pass


# Base domain exceptions
class EntityNotFoundError(StepflowError):
    """Raised when an entity is not found in the database."""

    pass


class EntityAlreadyExistsError(StepflowError):
    """Raised when trying to create an entity that already exists."""

    pass


class ValidationError(StepflowError):
    """Raised when data validation fails."""

    pass


class BusinessRuleViolationError(StepflowError):
    """Raised when a business rule is violated."""

    pass


# Pipeline exceptions
class PipelineNotFoundError(EntityNotFoundError):
    """Raised when a pipeline is not found."""

    def __init__(self, pipeline_id: str) -> None:
        super().__init__(f"Pipeline with ID '{pipeline_id}' not found")


class PipelineValidationError(ValidationError):
    """Raised when a pipeline's step graph is malformed.

    Args:
        errors: Every structural problem found by the graph validator.
    """

    def __init__(self, errors: list[str], pipeline_id: str | None = None) -> None:
        self.errors = list(errors)
        self.pipeline_id = pipeline_id
        prefix = f"Pipeline '{pipeline_id}'" if pipeline_id else "Pipeline"
        super().__init__(f"{prefix} validation failed: {'; '.join(self.errors)}")


class PipelineDisabledError(BusinessRuleViolationError):
    """Raised when trying to execute a disabled pipeline."""

    def __init__(self, pipeline_id: str) -> None:
        super().__init__(f"Pipeline '{pipeline_id}' is disabled")


# Execution exceptions
class ExecutionNotFoundError(EntityNotFoundError):
    """Raised when an execution is not found."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Execution '{execution_id}' not found")


class ExecutionFinishedError(BusinessRuleViolationError):
    """Raised when a control operation targets an execution that can no longer change."""

    def __init__(self, execution_id: str, status: str) -> None:
        super().__init__(f"Execution '{execution_id}' is already {status}")


class StepNotFoundError(EntityNotFoundError):
    """Raised when an execution has no step with the given ID."""

    def __init__(self, execution_id: str, step_id: str) -> None:
        super().__init__(f"Execution '{execution_id}' has no step '{step_id}'")


class StepNotRetryableError(BusinessRuleViolationError):
    """Raised when retrying a step that is not in the failed state."""

    def __init__(self, step_id: str, status: str) -> None:
        super().__init__(f"Step '{step_id}' is {status}; only failed steps can be retried")


class ExecutorError(StepflowError):
    """Base exception for remote executor communication errors."""

    pass


class SubmissionError(ExecutorError):
    """Raised when the remote executor rejects or cannot receive a request."""

    pass


class ExecutorStreamError(ExecutorError):
    """Raised when the executor event stream breaks."""

    pass


# Variable and secret exceptions
class VariableNotFoundError(EntityNotFoundError):
    """Raised when a variable is not declared in a scope."""

    def __init__(self, name: str, scope: str) -> None:
        super().__init__(f"Variable '{name}' not found in {scope} scope")


class InvalidVariableNameError(ValidationError):
    """Raised when a variable name does not follow the naming rules."""

    pass


class SecretReferenceNotFoundError(EntityNotFoundError):
    """Raised when a secret reference is not declared in a scope."""

    def __init__(self, secret_id: str, scope: str) -> None:
        super().__init__(f"Secret reference '{secret_id}' not found in {scope} scope")


class SecretResolutionError(StepflowError):
    """Base exception for secret vault failures."""

    pass


class SecretNotFoundError(SecretResolutionError):
    """Raised when the vault has no secret with the given ID."""

    def __init__(self, secret_id: str) -> None:
        self.secret_id = secret_id
        super().__init__(f"Secret '{secret_id}' not found in vault")


class SecretDecryptionError(SecretResolutionError):
    """Raised when the vault cannot decrypt a secret."""

    def __init__(self, secret_id: str, reason: str = "") -> None:
        self.secret_id = secret_id
        suffix = f": {reason}" if reason else ""
        super().__init__(f"Failed to decrypt secret '{secret_id}'{suffix}")


# Template exceptions
class TemplateNotFoundError(EntityNotFoundError):
    """Raised when a template key is unknown."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Template with key '{key}' not found")


class TemplateReferenceError(ValidationError):
    """Raised when a template step depends on a key the template does not declare."""

    def __init__(self, template_key: str, step_key: str, missing_key: str) -> None:
        super().__init__(
            f"Template '{template_key}': step '{step_key}' depends on undeclared key '{missing_key}'"
        )


class BuiltinTemplateReadOnlyError(BusinessRuleViolationError):
    """Raised when trying to update or delete a built-in template."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Template '{key}' is built-in and cannot be modified")


class TemplateImportError(StepflowError):
    """Base exception for template import failures."""

    pass


class TemplateFormatError(TemplateImportError):
    """Raised when imported template JSON is malformed."""

    pass


class BuiltinTemplateConflictError(TemplateImportError):
    """Raised when an imported template reuses the key of a built-in template."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Template with key '{key}' already exists as a built-in template")


class TemplateAlreadyExistsError(TemplateImportError):
    """Raised when an imported template reuses the key of a user template."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Template with key '{key}' already exists")


# Configuration errors
class ConfigurationError(StepflowError):
    """Raised when there's a configuration problem."""

    pass


# Database errors
class DatabaseError(StepflowError):
    """Raised when there's a database operation error."""

    pass


class DatabaseIntegrityError(DatabaseError):
    """Raised when database integrity constraint is violated."""

    pass
