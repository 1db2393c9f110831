"""
Exception handlers for converting domain exceptions to HTTP responses.

This module maps domain exceptions to appropriate HTTP status codes
and response formats for the API layer using FastAPI decorators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request, status
from fastapi.responses import JSONResponse

from stepflow.utils.logger import logger

if TYPE_CHECKING:
    from fastapi import FastAPI


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup exception handlers using decorators.

    FastAPI resolves handlers along the exception's MRO, so the most specific
    registered class wins.

    Args:
        app: FastAPI application instance
    """
    # Import domain exceptions inside function to avoid circular imports
    from stepflow.exceptions.domain import (
        BusinessRuleViolationError,
        ConfigurationError,
        DatabaseError,
        DatabaseIntegrityError,
        EntityAlreadyExistsError,
        EntityNotFoundError,
        ExecutorError,
        PipelineValidationError,
        SecretResolutionError,
        TemplateFormatError,
        TemplateImportError,
        ValidationError,
    )

    @app.exception_handler(EntityNotFoundError)
    async def handle_entity_not_found(_: Request, exc: EntityNotFoundError) -> JSONResponse:
        """Convert EntityNotFoundError to 404 response."""
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc) if str(exc) else "Resource not found"},
        )

    @app.exception_handler(EntityAlreadyExistsError)
    async def handle_entity_already_exists(
        _: Request, exc: EntityAlreadyExistsError
    ) -> JSONResponse:
        """Convert EntityAlreadyExistsError to 409 response."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc) if str(exc) else "Resource already exists"},
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        """Convert ValidationError to 422 response."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc) if str(exc) else "Validation failed"},
        )

    @app.exception_handler(PipelineValidationError)
    async def handle_pipeline_validation(
        _: Request, exc: PipelineValidationError
    ) -> JSONResponse:
        """Convert PipelineValidationError to 422 response listing every problem."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Pipeline validation failed", "errors": exc.errors},
        )

    @app.exception_handler(BusinessRuleViolationError)
    async def handle_business_rule_violation(
        _: Request, exc: BusinessRuleViolationError
    ) -> JSONResponse:
        """Convert BusinessRuleViolationError to 409 response."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc) if str(exc) else "Business rule violation"},
        )

    @app.exception_handler(TemplateImportError)
    async def handle_template_conflict(_: Request, exc: TemplateImportError) -> JSONResponse:
        """Convert template key conflicts to 409 response."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc) if str(exc) else "Template already exists"},
        )

    @app.exception_handler(TemplateFormatError)
    async def handle_template_format(_: Request, exc: TemplateFormatError) -> JSONResponse:
        """Convert TemplateFormatError to 422 response."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc) if str(exc) else "Invalid template"},
        )

    @app.exception_handler(ExecutorError)
    async def handle_executor_error(_: Request, exc: ExecutorError) -> JSONResponse:
        """Convert ExecutorError to 502 response."""
        logger.error(f"Remote executor error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc) if str(exc) else "Remote executor is not reachable"},
        )

    @app.exception_handler(SecretResolutionError)
    async def handle_secret_resolution(_: Request, exc: SecretResolutionError) -> JSONResponse:
        """Convert SecretResolutionError to 502 response."""
        # Only the error type is logged; the message may name the secret
        logger.error(f"Secret vault error: {type(exc).__name__}")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Secret vault request failed"},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
        """Convert ConfigurationError to 500 response."""
        logger.error(f"Configuration error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Server is misconfigured"},
        )

    @app.exception_handler(DatabaseIntegrityError)
    async def handle_database_integrity_error(
        _: Request, _exc: DatabaseIntegrityError
    ) -> JSONResponse:
        """Convert DatabaseIntegrityError to 409 response."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "Conflicting data was not saved"},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(_: Request, _exc: DatabaseError) -> JSONResponse:
        """Convert DatabaseError to 500 response."""
        # Don't expose internal database errors to clients
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Database operation failed"},
        )
