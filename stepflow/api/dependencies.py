"""
Common dependencies for Stepflow API endpoints.

Services are built per request around the request's database session.
Long-lived collaborators (orchestrator, template registry) live on
``app.state`` and are created by the application lifespan.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import ScopeLevel
from ..models.variable import VariableScope
from ..repositories import (
    PipelineRepository,
    SecretReferenceRepository,
    TemplateRepository,
    VariableRepository,
)
from ..services.pipeline.orchestrator import ExecutionOrchestrator
from ..services.pipeline_service import PipelineService
from ..services.templates import TemplateRegistry, TemplateService
from ..services.variables import VariableService


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Yield a session from the application's database manager."""
    async for session in request.app.state.database.get_async_session():
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


def get_variable_service(session: SessionDep) -> VariableService:
    return VariableService(VariableRepository(session), SecretReferenceRepository(session))


VariableServiceDep = Annotated[VariableService, Depends(get_variable_service)]


def get_pipeline_service(session: SessionDep, variables: VariableServiceDep) -> PipelineService:
    return PipelineService(PipelineRepository(session), variables)


PipelineServiceDep = Annotated[PipelineService, Depends(get_pipeline_service)]


def get_template_registry(request: Request) -> TemplateRegistry:
    """Template registry shared by the whole application."""
    return request.app.state.template_registry


def get_template_service(
    session: SessionDep,
    registry: Annotated[TemplateRegistry, Depends(get_template_registry)],
) -> TemplateService:
    return TemplateService(TemplateRepository(session), registry)


TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]


def get_orchestrator(request: Request) -> ExecutionOrchestrator:
    """Execution orchestrator created at startup."""
    return request.app.state.orchestrator


OrchestratorDep = Annotated[ExecutionOrchestrator, Depends(get_orchestrator)]


def get_scope(
    level: Annotated[ScopeLevel, Path(description="Scope level: project or pipeline")],
    owner_id: Annotated[str, Path(description="Project or pipeline ID")],
) -> VariableScope:
    """Build a variable scope from path parameters."""
    return VariableScope(level=level, owner_id=owner_id)


ScopeDep = Annotated[VariableScope, Depends(get_scope)]
