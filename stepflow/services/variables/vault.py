"""
Secret vault clients.

Stepflow never stores secret values; it asks a vault to decrypt a secret by
its opaque ID at the moment the value is needed.
"""

from typing import Any, Protocol

import httpx

from stepflow.exceptions import SecretDecryptionError, SecretNotFoundError
from stepflow.settings import settings
from stepflow.utils.logger import logger


class SecretVault(Protocol):
    """Anything able to decrypt a secret by ID."""

    async def decrypt(self, secret_id: str) -> str:
        """Return the plaintext value of a secret.

        Raises:
            SecretNotFoundError: If the vault has no such secret
            SecretDecryptionError: If the secret exists but cannot be decrypted
        """
        ...


class HttpSecretVault:
    """Vault client talking to an HTTP secrets service.

    The service answers ``POST {base_url}/v1/secrets/{id}/decrypt`` with
    ``{"value": "..."}``; 404 means the secret does not exist.

    Example:
        ```python
        async with HttpSecretVault("http://127.0.0.1:8200", token="s.xyz") as vault:
            value = await vault.decrypt("github-token")
        ```
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the vault client.

        Args:
            base_url: Vault service URL; defaults to ``settings.vault_url``
            token: Bearer token; defaults to ``settings.vault_token``
            timeout: Request timeout in seconds; defaults to ``settings.vault_timeout``
            client: Pre-built HTTP client, mainly for tests
        """
        self.base_url = (base_url or settings.vault_url).rstrip("/")
        token = token if token is not None else settings.vault_token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.vault_timeout,
        )

    async def __aenter__(self) -> "HttpSecretVault":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def decrypt(self, secret_id: str) -> str:
        """Decrypt one secret.

        Args:
            secret_id: Opaque vault key

        Returns:
            Plaintext secret value

        Raises:
            SecretNotFoundError: On HTTP 404
            SecretDecryptionError: On any other failure, including transport errors
        """
        try:
            response = await self.client.post(f"/v1/secrets/{secret_id}/decrypt")
        except httpx.HTTPError as e:
            logger.error(f"Vault request for secret '{secret_id}' failed: {e}")
            raise SecretDecryptionError(secret_id, f"vault unreachable: {e!s}") from e

        if response.status_code == 404:
            raise SecretNotFoundError(secret_id)
        if response.status_code >= 400:
            raise SecretDecryptionError(secret_id, f"vault returned {response.status_code}")

        try:
            value = response.json()["value"]
        except (ValueError, KeyError, TypeError) as e:
            raise SecretDecryptionError(secret_id, "malformed vault response") from e

        if not isinstance(value, str):
            raise SecretDecryptionError(secret_id, "malformed vault response")
        return value
