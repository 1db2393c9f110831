"""Service layer for scoped variables and secret references."""

from collections.abc import Sequence

from stepflow.exceptions import (
    EntityAlreadyExistsError,
    SecretReferenceNotFoundError,
    VariableNotFoundError,
)
from stepflow.models.variable import (
    SecretReference,
    SecretReferenceCreate,
    SecretReferenceRead,
    Variable,
    VariableCreate,
    VariableRead,
    VariableScope,
    VariableUpdate,
)
from stepflow.repositories.variable_repository import (
    SecretReferenceRepository,
    VariableRepository,
)
from stepflow.utils.logger import logger


def _variable_read(variable: Variable) -> VariableRead:
    return VariableRead.model_validate(variable, from_attributes=True)


def _secret_read(secret: SecretReference) -> SecretReferenceRead:
    return SecretReferenceRead.model_validate(secret, from_attributes=True)


class VariableService:
    """CRUD for variables and secret references of a project or pipeline scope.

    Also serves as the declaration source of ``VariableResolver``.
    """

    def __init__(
        self,
        variable_repo: VariableRepository,
        secret_repo: SecretReferenceRepository,
    ):
        """Initialize variable service with repositories.

        Args:
            variable_repo: Variable repository instance
            secret_repo: Secret reference repository instance
        """
        self.variable_repo = variable_repo
        self.secret_repo = secret_repo

    # Variable operations

    async def list_variables(self, scope: VariableScope) -> Sequence[VariableRead]:
        return [_variable_read(v) for v in await self.variable_repo.list_scope(scope)]

    async def get_variable(self, scope: VariableScope, name: str) -> VariableRead:
        """Get one variable.

        Raises:
            VariableNotFoundError: If the scope has no variable with that name
        """
        variable = await self.variable_repo.find(scope, name)
        if variable is None:
            raise VariableNotFoundError(name, str(scope))
        return _variable_read(variable)

    async def create_variable(self, scope: VariableScope, data: VariableCreate) -> VariableRead:
        """Declare a new variable.

        Raises:
            EntityAlreadyExistsError: If the name is taken in this scope
        """
        if await self.variable_repo.find(scope, data.name):
            raise EntityAlreadyExistsError(
                f"Variable '{data.name}' already exists in {scope} scope"
            )
        variable = Variable(scope=scope.level, owner_id=scope.owner_id, **data.model_dump())
        variable = await self.variable_repo.create(variable)
        logger.info(f"Variable '{data.name}' created in scope {scope}")
        return _variable_read(variable)

    async def set_variable(self, scope: VariableScope, data: VariableCreate) -> VariableRead:
        """Create or overwrite a variable."""
        existing = await self.variable_repo.find(scope, data.name)
        if existing is None:
            return await self.create_variable(scope, data)
        updated = await self.variable_repo.update(
            existing, data.model_dump(exclude={"name"}), exclude_unset=False
        )
        return _variable_read(updated)

    async def update_variable(
        self, scope: VariableScope, name: str, data: VariableUpdate
    ) -> VariableRead:
        """Partially update a variable.

        Raises:
            VariableNotFoundError: If the scope has no variable with that name
        """
        variable = await self.variable_repo.find(scope, name)
        if variable is None:
            raise VariableNotFoundError(name, str(scope))
        updated = await self.variable_repo.update(variable, data.model_dump(exclude_unset=True))
        return _variable_read(updated)

    async def delete_variable(self, scope: VariableScope, name: str) -> None:
        """Delete a variable.

        Raises:
            VariableNotFoundError: If the scope has no variable with that name
        """
        variable = await self.variable_repo.find(scope, name)
        if variable is None:
            raise VariableNotFoundError(name, str(scope))
        await self.variable_repo.delete(variable)
        logger.info(f"Variable '{name}' deleted from scope {scope}")

    async def replace_variables(
        self, scope: VariableScope, variables: Sequence[VariableCreate], commit: bool = True
    ) -> Sequence[VariableRead]:
        """Replace every variable of a scope with the given list.

        The old variables are kept when the new ones cannot be stored.

        Raises:
            DatabaseIntegrityError: If the list repeats a name
        """
        created = await self.variable_repo.replace_scope(
            scope,
            [
                Variable(scope=scope.level, owner_id=scope.owner_id, **v.model_dump())
                for v in variables
            ],
            commit=commit,
        )
        return [_variable_read(v) for v in created]

    # Secret reference operations

    async def list_secrets(self, scope: VariableScope) -> Sequence[SecretReferenceRead]:
        return [_secret_read(s) for s in await self.secret_repo.list_scope(scope)]

    async def add_secret(
        self, scope: VariableScope, data: SecretReferenceCreate
    ) -> SecretReferenceRead:
        """Attach a secret reference to a scope.

        Raises:
            EntityAlreadyExistsError: If the display name is taken in this scope
        """
        if await self.secret_repo.find(scope, data.name):
            raise EntityAlreadyExistsError(
                f"Secret reference '{data.name}' already exists in {scope} scope"
            )
        secret = SecretReference(
            scope=scope.level, owner_id=scope.owner_id, id=data.id, name=data.name
        )
        secret = await self.secret_repo.create(secret)
        logger.info(f"Secret reference '{data.name}' added to scope {scope}")
        return _secret_read(secret)

    async def remove_secret(self, scope: VariableScope, name: str) -> None:
        """Detach a secret reference from a scope.

        Raises:
            SecretReferenceNotFoundError: If the scope has no reference with that name
        """
        secret = await self.secret_repo.find(scope, name)
        if secret is None:
            raise SecretReferenceNotFoundError(name, str(scope))
        await self.secret_repo.delete(secret)
        logger.info(f"Secret reference '{name}' removed from scope {scope}")

    async def replace_secrets(
        self,
        scope: VariableScope,
        secrets: Sequence[SecretReferenceCreate],
        commit: bool = True,
    ) -> Sequence[SecretReferenceRead]:
        """Replace every secret reference of a scope with the given list.

        Raises:
            DatabaseIntegrityError: If the list repeats a display name
        """
        created = await self.secret_repo.replace_scope(
            scope,
            [
                SecretReference(scope=scope.level, owner_id=scope.owner_id, id=s.id, name=s.name)
                for s in secrets
            ],
            commit=commit,
        )
        return [_secret_read(s) for s in created]

    async def clear_scope(self, scope: VariableScope, commit: bool = True) -> None:
        """Remove every variable and secret reference of a scope."""
        removed = await self.variable_repo.clear_scope(scope, commit=False)
        removed += await self.secret_repo.clear_scope(scope, commit=commit)
        logger.debug(f"Cleared {removed} declarations from scope {scope}")
