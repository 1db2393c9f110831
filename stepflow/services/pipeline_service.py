"""Service layer for pipeline CRUD, validation and planning."""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from stepflow.models.base import utcnow
from stepflow.models.pipeline import (
    Pipeline,
    PipelineCreate,
    PipelinePlan,
    PipelineRead,
    PipelineUpdate,
    Step,
    ValidationResult,
)
from stepflow.models.variable import (
    SecretReferenceBase,
    SecretReferenceCreate,
    VariableBase,
    VariableCreate,
    VariableScope,
)
from stepflow.repositories.pipeline_repository import PipelineRepository
from stepflow.repositories.variable_repository import (
    SecretReferenceRepository,
    VariableRepository,
)
from stepflow.services.pipeline.graph import plan_waves, validate_steps
from stepflow.services.variables.service import VariableService
from stepflow.utils.db_manager import DatabaseManager, db_manager
from stepflow.utils.logger import logger


class PipelineService:
    """Service for stored pipelines and their pipeline-scope declarations.

    Step graphs are stored as given; a malformed graph is reported by
    ``validate`` and refused at execution time.

    A pipeline and its declarations are written in one transaction, so
    ``variable_service`` must share the pipeline repository's session.
    """

    def __init__(self, pipeline_repo: PipelineRepository, variable_service: VariableService):
        """Initialize pipeline service.

        Args:
            pipeline_repo: Pipeline repository instance
            variable_service: Service owning the pipeline-scope variables and secrets
        """
        self.pipeline_repo = pipeline_repo
        self.variable_service = variable_service

    async def _assemble(self, pipeline: Pipeline) -> PipelineRead:
        scope = VariableScope.pipeline(pipeline.id)
        return PipelineRead.model_validate(
            {
                **pipeline.model_dump(),
                "variables": await self.variable_service.list_variables(scope),
                "secrets": await self.variable_service.list_secrets(scope),
            }
        )

    async def list_by_project(self, project_id: str) -> list[PipelineRead]:
        """List the pipelines of a project, oldest first."""
        pipelines = await self.pipeline_repo.list_by_project(project_id)
        return [await self._assemble(p) for p in pipelines]

    async def get(self, pipeline_id: str) -> PipelineRead:
        """Get a fully assembled pipeline.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        return await self._assemble(await self.pipeline_repo.get(pipeline_id))

    async def get_pipeline(self, pipeline_id: str) -> PipelineRead:
        return await self.get(pipeline_id)

    async def create(self, data: PipelineCreate) -> PipelineRead:
        """Store a new pipeline with its variables and secret references.

        Args:
            data: Pipeline payload

        Returns:
            The stored pipeline

        Raises:
            DatabaseIntegrityError: If the declarations could not be stored; nothing is written
        """
        pipeline = Pipeline(
            project_id=data.project_id,
            name=data.name,
            description=data.description,
            enabled=data.enabled,
            steps=[step.model_dump(mode="json") for step in data.steps],
            execution_context=data.execution_context.model_dump(mode="json"),
        )
        pipeline = await self.pipeline_repo.create(pipeline, commit=False)

        scope = VariableScope.pipeline(pipeline.id)
        await self.variable_service.replace_variables(scope, data.variables, commit=False)
        await self.variable_service.replace_secrets(scope, data.secrets, commit=False)
        await self.pipeline_repo.commit()

        logger.info(
            f"Pipeline '{pipeline.id}' ({pipeline.name}) created for project "
            f"'{pipeline.project_id}' with {len(data.steps)} steps"
        )
        return await self._assemble(pipeline)

    async def update(self, pipeline_id: str, data: PipelineUpdate) -> PipelineRead:
        """Partially update a pipeline.

        ``variables`` and ``secrets``, when given, replace the whole lists.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
            DatabaseIntegrityError: If the declarations could not be stored; nothing changes
        """
        pipeline = await self.pipeline_repo.get(pipeline_id)

        changes = data.model_dump(
            exclude_unset=True, exclude={"variables", "secrets", "steps", "execution_context"}
        )
        if data.steps is not None:
            changes["steps"] = [step.model_dump(mode="json") for step in data.steps]
        if data.execution_context is not None:
            changes["execution_context"] = data.execution_context.model_dump(mode="json")
        changes["updated_at"] = utcnow()
        pipeline = await self.pipeline_repo.update(
            pipeline, changes, exclude_unset=False, commit=False
        )

        scope = VariableScope.pipeline(pipeline_id)
        if data.variables is not None:
            await self.variable_service.replace_variables(scope, data.variables, commit=False)
        if data.secrets is not None:
            await self.variable_service.replace_secrets(scope, data.secrets, commit=False)
        await self.pipeline_repo.commit()

        logger.info(f"Pipeline '{pipeline_id}' updated")
        return await self._assemble(pipeline)

    async def set_enabled(self, pipeline_id: str, enabled: bool) -> PipelineRead:
        """Enable or disable a pipeline."""
        return await self.update(pipeline_id, PipelineUpdate(enabled=enabled))

    async def delete(self, pipeline_id: str) -> None:
        """Delete a pipeline together with its pipeline-scope declarations.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.variable_service.clear_scope(VariableScope.pipeline(pipeline_id), commit=False)
        await self.pipeline_repo.delete(pipeline)
        logger.info(f"Pipeline '{pipeline_id}' deleted")

    async def duplicate(self, pipeline_id: str, name: str | None = None) -> PipelineRead:
        """Copy a pipeline, its variables and its secret references under a new ID.

        Args:
            pipeline_id: Pipeline to copy
            name: Name of the copy; defaults to "<name> (copy)"

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        source = await self.get(pipeline_id)
        copy = PipelineCreate(
            project_id=source.project_id,
            name=name or f"{source.name} (copy)",
            description=source.description,
            enabled=source.enabled,
            steps=source.steps,
            variables=[
                VariableCreate(name=v.name, type=v.type, value=v.value, description=v.description)
                for v in source.variables
            ],
            secrets=[SecretReferenceCreate(id=s.id, name=s.name) for s in source.secrets],
            execution_context=source.execution_context,
        )
        return await self.create(copy)

    # Graph checks

    async def validate(self, pipeline_id: str) -> ValidationResult:
        """Validate the stored step graph of a pipeline."""
        pipeline = await self.get(pipeline_id)
        return validate_steps(pipeline.steps)

    async def plan(self, pipeline_id: str) -> PipelinePlan:
        """Validate a pipeline and compute its waves.

        Waves are only computed for a valid graph; disabled steps stay in the
        plan and are skipped when the pipeline runs.
        """
        pipeline = await self.get(pipeline_id)
        return plan_steps(pipeline.id, pipeline.steps)


def plan_steps(pipeline_id: str, steps: Sequence[Step]) -> PipelinePlan:
    result = validate_steps(steps)
    waves = plan_waves(steps) if result.valid else []
    return PipelinePlan(
        pipeline_id=pipeline_id, valid=result.valid, errors=result.errors, waves=waves
    )


class DatabasePipelineSource:
    """Reads pipelines and pipeline-scope declarations with a short-lived session per call.

    Used by the orchestrator and the resolver, which outlive any request session.
    """

    def __init__(self, manager: DatabaseManager | None = None):
        self.manager = manager or db_manager

    @staticmethod
    def _services(session: AsyncSession) -> tuple[PipelineService, VariableService]:
        variables = VariableService(VariableRepository(session), SecretReferenceRepository(session))
        return PipelineService(PipelineRepository(session), variables), variables

    async def get_pipeline(self, pipeline_id: str) -> PipelineRead:
        """Load a pipeline.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        async with self.manager.get_async_session_context() as session:
            pipelines, _ = self._services(session)
            return await pipelines.get(pipeline_id)

    async def list_variables(self, scope: VariableScope) -> Sequence[VariableBase]:
        async with self.manager.get_async_session_context() as session:
            _, variables = self._services(session)
            return await variables.list_variables(scope)

    async def list_secrets(self, scope: VariableScope) -> Sequence[SecretReferenceBase]:
        async with self.manager.get_async_session_context() as session:
            _, variables = self._services(session)
            return await variables.list_secrets(scope)
