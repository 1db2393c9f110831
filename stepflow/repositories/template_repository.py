"""Repository for user-defined pipeline templates."""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from stepflow.models.template import PipelineTemplate
from stepflow.repositories.base import BaseRepository


class TemplateRepository(BaseRepository[PipelineTemplate]):
    """Repository for stored templates, looked up by their unique key."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PipelineTemplate)

    async def find_by_key(self, key: str) -> PipelineTemplate | None:
        return await self.get_by(key=key)

    async def list_ordered(self) -> Sequence[PipelineTemplate]:
        """List stored templates in creation order."""
        statement = select(PipelineTemplate).order_by(PipelineTemplate.created_at)  # type: ignore[arg-type]
        result = await self.session.execute(statement)
        return result.scalars().all()
