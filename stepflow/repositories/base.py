"""Base repository with common CRUD operations.

Writes commit by default. Pass ``commit=False`` to stage several writes on the
shared session and finish them with ``commit()`` as one transaction.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from stepflow.exceptions import DatabaseIntegrityError, EntityNotFoundError
from stepflow.utils.logger import logger

type FilterValueT = str | int | float | bool


class BaseRepository[ModelT: SQLModel]:
    """Base repository providing common database operations."""

    def __init__(self, session: AsyncSession, model_class: type[ModelT]):
        """Initialize repository with session and model class.

        Args:
            session: Database session
            model_class: SQLModel class this repository operates on
        """
        self.session = session
        self.model_class = model_class

    def _filtered(self, statement: Any, filters: dict[str, FilterValueT]) -> Any:
        for field, value in filters.items():
            if hasattr(self.model_class, field):
                statement = statement.where(getattr(self.model_class, field) == value)
        return statement

    async def commit(self) -> None:
        """Commit the session, rolling everything back on a constraint violation.

        Raises:
            DatabaseIntegrityError: If a constraint is violated; nothing is written
        """
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(f"Failed to write {self.model_class.__name__}: {e}")
            raise DatabaseIntegrityError(
                f"{self.model_class.__name__} violates a database constraint"
            ) from e

    async def get(self, id: Any) -> ModelT:
        """Get entity by ID or raise EntityNotFoundError.

        Args:
            id: Entity ID

        Returns:
            Found entity

        Raises:
            EntityNotFoundError: If entity doesn't exist
        """
        entity = await self.session.get(self.model_class, id)
        if not entity:
            raise EntityNotFoundError(f"{self.model_class.__name__} with ID {id} not found")
        return entity

    async def get_optional(self, id: Any) -> ModelT | None:
        """Get entity by ID or return None."""
        return await self.session.get(self.model_class, id)

    async def get_by(self, **filters: FilterValueT) -> ModelT | None:
        """Get single entity by filters.

        Args:
            **filters: Field-value pairs to filter by

        Returns:
            Found entity or None
        """
        statement = self._filtered(select(self.model_class), filters)
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def list_all(self, **filters: FilterValueT) -> Sequence[ModelT]:
        """List all entities matching filters."""
        statement = self._filtered(select(self.model_class), filters)
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def create(self, entity: ModelT, commit: bool = True) -> ModelT:
        """Create new entity.

        Args:
            entity: Entity to create
            commit: Whether to commit now or leave the insert staged

        Returns:
            Created entity, refreshed when committed
        """
        self.session.add(entity)
        if commit:
            await self.commit()
            await self.session.refresh(entity)
        return entity

    async def replace_where(
        self, entities: list[ModelT], commit: bool = True, **filters: FilterValueT
    ) -> list[ModelT]:
        """Replace every entity matching filters with the given ones.

        The deletes and inserts share one transaction: when the inserts fail,
        the old entities are kept.

        Args:
            entities: New entities
            commit: Whether to commit now or leave the changes staged
            **filters: Field-value pairs selecting the entities to replace

        Returns:
            The new entities
        """
        for entity in await self.list_all(**filters):
            await self.session.delete(entity)
        # Deletes must reach the database before inserts reusing their keys
        await self.session.flush()
        self.session.add_all(entities)
        if commit:
            await self.commit()
            for entity in entities:
                await self.session.refresh(entity)
        return entities

    async def update(
        self,
        entity: ModelT,
        update_data: dict[str, Any],
        exclude_unset: bool = True,
        commit: bool = True,
    ) -> ModelT:
        """Update entity with given data.

        Args:
            entity: Entity to update
            update_data: Dictionary with fields to update
            exclude_unset: Whether to skip None values
            commit: Whether to commit now or leave the update staged

        Returns:
            Updated entity
        """
        for field, value in update_data.items():
            if exclude_unset and value is None:
                continue
            if hasattr(entity, field):
                setattr(entity, field, value)

        if commit:
            await self.commit()
            await self.session.refresh(entity)
        return entity

    async def delete(self, entity: ModelT, commit: bool = True) -> None:
        """Delete entity."""
        await self.session.delete(entity)
        if commit:
            await self.commit()

    async def delete_where(self, commit: bool = True, **filters: FilterValueT) -> int:
        """Delete all entities matching filters.

        Returns:
            Number of deleted entities
        """
        entities = await self.list_all(**filters)
        for entity in entities:
            await self.session.delete(entity)
        if commit:
            await self.commit()
        return len(entities)
