"""
Variable and secret resolution for one scope.

Plain variables are applied first and secrets second, so a secret shadows a
variable with the same name. Only one scope is read at a time: a pipeline
scope does not fall back to its project's scope.
"""

from collections.abc import Sequence
from typing import Protocol

from stepflow.exceptions import SecretResolutionError
from stepflow.models.variable import SecretReferenceBase, VariableBase, VariableScope
from stepflow.types import Environment
from stepflow.utils.logger import logger

from .vault import SecretVault


class VariableSource(Protocol):
    """Provides the variables and secret references declared for a scope."""

    async def list_variables(self, scope: VariableScope) -> Sequence[VariableBase]: ...

    async def list_secrets(self, scope: VariableScope) -> Sequence[SecretReferenceBase]: ...


class VariableResolver:
    """Resolves names to values for a single scope.

    Args:
        source: Where variable and secret declarations come from.
        vault: Decrypts secret references on demand.
    """

    def __init__(self, source: VariableSource, vault: SecretVault):
        self.source = source
        self.vault = vault

    async def _decrypt(self, scope: VariableScope, secret: SecretReferenceBase) -> str | None:
        try:
            return await self.vault.decrypt(secret.id)
        except SecretResolutionError as e:
            logger.warning(
                f"Secret '{secret.name}' in scope {scope} could not be resolved: "
                f"{type(e).__name__}"
            )
            return None

    async def resolve(self, scope: VariableScope, name: str) -> str | None:
        """Resolve one name.

        Args:
            scope: Scope to look in
            name: Variable name, or secret display name

        Returns:
            The variable value, the decrypted secret, or None when the name is
            unknown or its secret cannot be decrypted
        """
        for variable in await self.source.list_variables(scope):
            if variable.name == name:
                return variable.value

        for secret in await self.source.list_secrets(scope):
            if secret.name == name:
                return await self._decrypt(scope, secret)

        return None

    async def resolve_all(self, scope: VariableScope) -> Environment:
        """Resolve every variable and secret of a scope.

        Secrets that fail to decrypt are logged and left out.

        Returns:
            Name to value mapping; secrets override variables of the same name
        """
        resolved: Environment = {}
        for variable in await self.source.list_variables(scope):
            resolved[variable.name] = variable.value

        secrets = await self.source.list_secrets(scope)
        failed = 0
        for secret in secrets:
            value = await self._decrypt(scope, secret)
            if value is None:
                failed += 1
                continue
            resolved[secret.name] = value

        logger.debug(
            f"Resolved {len(resolved)} names for scope {scope} "
            f"({len(secrets) - failed}/{len(secrets)} secrets)"
        )
        return resolved
