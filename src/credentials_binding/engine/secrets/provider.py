"""Where binding secrets come from.

Bindings name a secret key; a SecretProvider resolves it to the secret text.
"""

import os
from abc import ABC, abstractmethod

from .exceptions import SecretNotFoundError

DEFAULT_PREFIX = "CREDENTIALS_SECRET_"


class SecretProvider(ABC):
    """Resolves secret keys for bindings. Async so remote stores fit too."""

    @abstractmethod
    async def get_secret(self, key: str) -> str:
        """Return the secret text for key.

        Raises:
            SecretNotFoundError: Unknown key
            SecretProviderError: The backing store failed
        """

    @abstractmethod
    async def list_secret_keys(self) -> list[str]:
        """Keys that can be bound (never values)."""


class EnvVarSecretProvider(SecretProvider):
    """Reads secret ``key`` from the environment variable ``{prefix}{KEY}``.

    The prefix comes from CREDENTIALS_SECRET_PREFIX, default CREDENTIALS_SECRET_.
    """

    def __init__(self, prefix: str | None = None) -> None:
        if prefix is None:
            prefix = os.getenv("CREDENTIALS_SECRET_PREFIX") or DEFAULT_PREFIX
        self.prefix = prefix

    async def get_secret(self, key: str) -> str:
        env_var_name = f"{self.prefix}{key.upper()}"
        value = os.environ.get(env_var_name)
        if value is None:
            raise SecretNotFoundError(
                key=key,
                provider_hint=f"Set environment variable: {env_var_name}=<secret_value>",
            )
        return value

    async def list_secret_keys(self) -> list[str]:
        return [
            name[len(self.prefix) :].lower()
            for name in os.environ
            if name.startswith(self.prefix)
        ]
