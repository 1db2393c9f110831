"""Repositories for scoped variables and secret references."""

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from stepflow.models.variable import SecretReference, Variable, VariableScope
from stepflow.repositories.base import BaseRepository


class VariableRepository(BaseRepository[Variable]):
    """Repository for plain variables, keyed by scope and name."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Variable)

    async def list_scope(self, scope: VariableScope) -> Sequence[Variable]:
        """List the variables of one scope in name order."""
        statement = (
            select(Variable)
            .where(Variable.scope == scope.level, Variable.owner_id == scope.owner_id)
            .order_by(Variable.name)  # type: ignore[arg-type]
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def find(self, scope: VariableScope, name: str) -> Variable | None:
        return await self.get_by(scope=scope.level, owner_id=scope.owner_id, name=name)

    async def clear_scope(self, scope: VariableScope, commit: bool = True) -> int:
        return await self.delete_where(commit=commit, scope=scope.level, owner_id=scope.owner_id)

    async def replace_scope(
        self, scope: VariableScope, entities: list[Variable], commit: bool = True
    ) -> list[Variable]:
        return await self.replace_where(
            entities, commit=commit, scope=scope.level, owner_id=scope.owner_id
        )


class SecretReferenceRepository(BaseRepository[SecretReference]):
    """Repository for secret references, keyed by scope and display name."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, SecretReference)

    async def list_scope(self, scope: VariableScope) -> Sequence[SecretReference]:
        """List the secret references of one scope in name order."""
        statement = (
            select(SecretReference)
            .where(
                SecretReference.scope == scope.level,
                SecretReference.owner_id == scope.owner_id,
            )
            .order_by(SecretReference.name)  # type: ignore[arg-type]
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def find(self, scope: VariableScope, name: str) -> SecretReference | None:
        return await self.get_by(scope=scope.level, owner_id=scope.owner_id, name=name)

    async def clear_scope(self, scope: VariableScope, commit: bool = True) -> int:
        return await self.delete_where(commit=commit, scope=scope.level, owner_id=scope.owner_id)

    async def replace_scope(
        self, scope: VariableScope, entities: list[SecretReference], commit: bool = True
    ) -> list[SecretReference]:
        return await self.replace_where(
            entities, commit=commit, scope=scope.level, owner_id=scope.owner_id
        )
