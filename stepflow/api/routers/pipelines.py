"""
Pipeline API router.

CRUD for stored pipelines, graph validation and planning, and the entry
point that starts an execution.
"""

from typing import Annotated

from fastapi import APIRouter, Body, Query, status

from stepflow.api.dependencies import OrchestratorDep, PipelineServiceDep
from stepflow.models import (
    ExecuteRequest,
    PipelineCreate,
    PipelineExecution,
    PipelinePlan,
    PipelineRead,
    PipelineUpdate,
    Step,
    ValidationResult,
)
from stepflow.services.pipeline.graph import validate_steps

router = APIRouter(
    responses={
        404: {"description": "Not found"},
        409: {"description": "Conflict"},
        422: {"description": "Validation failed"},
    },
)


@router.get("", response_model=list[PipelineRead])
async def list_pipelines(
    service: PipelineServiceDep,
    project_id: Annotated[str, Query(description="Owning project ID")],
) -> list[PipelineRead]:
    """List the pipelines of a project, oldest first."""
    return await service.list_by_project(project_id)


@router.post("", response_model=PipelineRead, status_code=status.HTTP_201_CREATED)
async def create_pipeline(data: PipelineCreate, service: PipelineServiceDep) -> PipelineRead:
    """Store a new pipeline.

    The step graph is stored as given; use ``/validate`` to check it.
    """
    return await service.create(data)


@router.post("/validate", response_model=ValidationResult)
async def validate_draft(steps: Annotated[list[Step], Body(embed=True)]) -> ValidationResult:
    """Validate an unsaved list of steps."""
    return validate_steps(steps)


@router.get("/{pipeline_id}", response_model=PipelineRead)
async def get_pipeline(pipeline_id: str, service: PipelineServiceDep) -> PipelineRead:
    return await service.get(pipeline_id)


@router.patch("/{pipeline_id}", response_model=PipelineRead)
async def update_pipeline(
    pipeline_id: str, data: PipelineUpdate, service: PipelineServiceDep
) -> PipelineRead:
    """Partially update a pipeline.

    ``variables`` and ``secrets`` replace the whole pipeline-scope lists when present.
    """
    return await service.update(pipeline_id, data)


@router.delete("/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pipeline(pipeline_id: str, service: PipelineServiceDep) -> None:
    await service.delete(pipeline_id)


@router.post(
    "/{pipeline_id}/duplicate",
    response_model=PipelineRead,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_pipeline(
    pipeline_id: str,
    service: PipelineServiceDep,
    name: Annotated[str | None, Query(description="Name of the copy")] = None,
) -> PipelineRead:
    return await service.duplicate(pipeline_id, name)


@router.post("/{pipeline_id}/enable", response_model=PipelineRead)
async def enable_pipeline(pipeline_id: str, service: PipelineServiceDep) -> PipelineRead:
    return await service.set_enabled(pipeline_id, True)


@router.post("/{pipeline_id}/disable", response_model=PipelineRead)
async def disable_pipeline(pipeline_id: str, service: PipelineServiceDep) -> PipelineRead:
    return await service.set_enabled(pipeline_id, False)


@router.get("/{pipeline_id}/validate", response_model=ValidationResult)
async def validate_pipeline(pipeline_id: str, service: PipelineServiceDep) -> ValidationResult:
    """Report every structural problem of the stored step graph."""
    return await service.validate(pipeline_id)


@router.get("/{pipeline_id}/plan", response_model=PipelinePlan)
async def plan_pipeline(pipeline_id: str, service: PipelineServiceDep) -> PipelinePlan:
    """Validate the step graph and compute its execution waves."""
    return await service.plan(pipeline_id)


@router.post(
    "/{pipeline_id}/execute",
    response_model=PipelineExecution,
    status_code=status.HTTP_202_ACCEPTED,
)
async def execute_pipeline(
    pipeline_id: str,
    orchestrator: OrchestratorDep,
    payload: ExecuteRequest | None = None,
) -> PipelineExecution:
    """Submit a pipeline to the remote executor.

    Returns:
        The recorded execution, usually still pending

    Raises:
        PipelineValidationError: If the step graph is malformed (422)
        PipelineDisabledError: If the pipeline is disabled (409)
        SubmissionError: If the executor did not accept the plan (502)
    """
    payload = payload or ExecuteRequest()
    return await orchestrator.execute(
        pipeline_id,
        project_path=payload.project_path,
        overrides=payload.overrides,
        triggered_by=payload.triggered_by,
    )


@router.get("/{pipeline_id}/executions", response_model=list[PipelineExecution])
async def list_pipeline_executions(
    pipeline_id: str, orchestrator: OrchestratorDep
) -> list[PipelineExecution]:
    """List the recorded executions of a pipeline, newest first."""
    return orchestrator.store.list_executions(pipeline_id=pipeline_id)


@router.delete("/{pipeline_id}/executions", response_model=dict[str, int])
async def purge_pipeline_executions(
    pipeline_id: str, orchestrator: OrchestratorDep
) -> dict[str, int]:
    """Drop the finished executions of a pipeline from history."""
    return {"purged": len(orchestrator.purge(pipeline_id=pipeline_id))}

