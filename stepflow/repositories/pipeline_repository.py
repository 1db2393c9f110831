"""Repository for pipeline CRUD operations."""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from stepflow.exceptions import PipelineNotFoundError
from stepflow.models.pipeline import Pipeline
from stepflow.repositories.base import BaseRepository


class PipelineRepository(BaseRepository[Pipeline]):
    """Repository for managing stored pipelines."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Pipeline)

    async def get(self, id: str) -> Pipeline:  # type: ignore[override]
        """Get pipeline by ID.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        pipeline = await self.get_optional(id)
        if pipeline is None:
            raise PipelineNotFoundError(id)
        return pipeline

    async def list_by_project(self, project_id: str) -> Sequence[Pipeline]:
        """List pipelines of a project, oldest first.

        Args:
            project_id: Owning project ID

        Returns:
            Pipelines ordered by creation time
        """
        statement = (
            select(Pipeline)
            .where(Pipeline.project_id == project_id)
            .order_by(Pipeline.created_at)  # type: ignore[arg-type]
        )
        result = await self.session.execute(statement)
        return result.scalars().all()
