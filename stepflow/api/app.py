"""
Main API application module for Stepflow.

This module creates and configures the FastAPI application with all routers,
the exception handlers, and the long-lived services kept on ``app.state``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stepflow import __version__
from stepflow.api.exception_handlers import setup_exception_handlers
from stepflow.api.routers import executions, pipelines, templates, variables
from stepflow.repositories import TemplateRepository
from stepflow.services.pipeline.executor import RemoteExecutor, TaskiqRemoteExecutor
from stepflow.services.pipeline.orchestrator import ExecutionOrchestrator
from stepflow.services.pipeline_service import DatabasePipelineSource
from stepflow.services.templates import TemplateRegistry, TemplateService
from stepflow.services.variables import HttpSecretVault, SecretVault, VariableResolver
from stepflow.settings import settings
from stepflow.utils.db_manager import DatabaseManager, db_manager
from stepflow.utils.logger import logger


async def startup(app: FastAPI) -> None:
    """Create tables and the services shared by every request.

    Collaborators passed to ``create_app`` are used as given; missing ones are
    built from settings.
    """
    database: DatabaseManager = app.state.database
    await database.create_db_and_tables_async()
    logger.info("Database initialized")

    registry = TemplateRegistry()
    async with database.get_async_session_context() as session:
        await TemplateService(TemplateRepository(session), registry).load()
    app.state.template_registry = registry

    if app.state.vault is None:
        app.state.vault = HttpSecretVault()
        app.state.owns_vault = True
    if app.state.executor is None:
        executor = TaskiqRemoteExecutor()
        await executor.broker.startup()
        app.state.executor = executor
        app.state.owns_broker = True

    source = DatabasePipelineSource(database)
    app.state.orchestrator = ExecutionOrchestrator(
        source, VariableResolver(source, app.state.vault), app.state.executor
    )
    logger.info(f"Application startup complete ({len(registry)} templates)")


async def shutdown(app: FastAPI) -> None:
    """Release what ``startup`` created."""
    orchestrator: ExecutionOrchestrator | None = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.close()
    if getattr(app.state, "owns_broker", False):
        await app.state.executor.broker.shutdown()
    if getattr(app.state, "owns_vault", False):
        await app.state.vault.close()
    await app.state.database.close()
    logger.info("Application shutdown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan context manager."""
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


# noinspection PyTypeChecker
def create_app(
    root_path: str = "/",
    *,
    executor: RemoteExecutor | None = None,
    vault: SecretVault | None = None,
    database: DatabaseManager | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        root_path: The root path for the application
        executor: Remote executor; defaults to the TaskIQ executor
        vault: Secret vault; defaults to the HTTP vault from settings
        database: Database manager; defaults to the shared one

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Stepflow",
        description="Pipeline planning and execution orchestration",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        root_path=root_path,
    )
    app.state.executor = executor
    app.state.vault = vault
    app.state.database = database or db_manager

    # Configure CORS
    origins = ["http://localhost", "http://localhost:8080", "*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    # Include routers with /api prefix for backend endpoints
    app.include_router(pipelines.router, prefix="/api/pipelines", tags=["Pipelines"])
    app.include_router(executions.router, prefix="/api/executions", tags=["Executions"])
    app.include_router(templates.router, prefix="/api/templates", tags=["Templates"])
    app.include_router(variables.router, prefix="/api/scopes", tags=["Variables"])

    return app


# Create default application instance
app = create_app(root_path=settings.root_url)
