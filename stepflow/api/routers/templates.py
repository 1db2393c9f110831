"""
Template API router.

Templates are addressed by their key. Built-in templates are read-only;
imported templates are persisted and can be updated or deleted.
"""

from fastapi import APIRouter, Request, Response, status

from stepflow.api.dependencies import PipelineServiceDep, TemplateServiceDep
from stepflow.models import GenerateRequest, PipelineCreate, PipelineRead, Template, TemplateUpdate

router = APIRouter(
    responses={
        404: {"description": "Not found"},
        409: {"description": "Conflict"},
        422: {"description": "Invalid template"},
    },
)


@router.get("", response_model=list[Template])
async def list_templates(
    service: TemplateServiceDep, framework: str | None = None
) -> list[Template]:
    """List built-in templates first, then imported ones."""
    return service.list_templates(framework)


@router.get("/recommended", response_model=list[Template])
async def recommended_templates(
    service: TemplateServiceDep, framework: str | None = None
) -> list[Template]:
    return service.recommended(framework)


@router.post("/import", response_model=Template, status_code=status.HTTP_201_CREATED)
async def import_template(request: Request, service: TemplateServiceDep) -> Template:
    """Import a template from its exported JSON document.

    Raises:
        TemplateFormatError: If the document is malformed (422)
        BuiltinTemplateConflictError: If the key is a built-in key (409)
        TemplateAlreadyExistsError: If the key is taken (409)
    """
    text = (await request.body()).decode("utf-8", errors="replace")
    return await service.import_json(text)


@router.get("/{key}", response_model=Template)
async def get_template(key: str, service: TemplateServiceDep) -> Template:
    return service.get(key)


@router.get("/{key}/export")
async def export_template(key: str, service: TemplateServiceDep) -> Response:
    """Export a template as a pretty-printed JSON document."""
    return Response(
        content=service.export_json(key),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{key}.json"'},
    )


@router.post("/{key}/generate", response_model=PipelineRead | PipelineCreate)
async def generate_pipeline(
    key: str,
    data: GenerateRequest,
    service: TemplateServiceDep,
    pipelines: PipelineServiceDep,
) -> PipelineRead | PipelineCreate:
    """Generate a pipeline from a template.

    The generated pipeline is returned unsaved unless ``save`` is set.
    """
    pipeline = service.generate(key, data.project_id, data.project_name, data.customizations)
    if data.save:
        return await pipelines.create(pipeline)
    return pipeline


@router.patch("/{key}", response_model=Template)
async def update_template(
    key: str, data: TemplateUpdate, service: TemplateServiceDep
) -> Template:
    return await service.update(key, data)


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(key: str, service: TemplateServiceDep) -> None:
    await service.delete(key)
