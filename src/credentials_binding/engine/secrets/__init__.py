"""Secret handling for credential bindings.

Core Components:
    - SecretProvider: Abstract base class for secret sources
    - EnvVarSecretProvider: Environment variable-based secrets
    - Secret / SecretCipher: Secret text that persists only in encrypted form
    - BindingAuditLog: Audit trail of bind/unbind operations
    - Custom exceptions: Structured error handling

Example:
    >>> import os
    >>> from credentials_binding.engine.secrets import EnvVarSecretProvider, Secret
    >>>
    >>> os.environ["CREDENTIALS_SECRET_API_KEY"] = "sk-1234567890abcdef"
    >>> provider = EnvVarSecretProvider()
    >>> secret = Secret(await provider.get_secret("api_key"))
    >>> secret
    Secret('**********')
"""

from .audit import BindingAuditLog, BindingEvent
from .cipher import Secret, SecretCipher, get_default_cipher, set_default_cipher
from .exceptions import (
    SecretDecryptionError,
    SecretError,
    SecretNotFoundError,
    SecretProviderError,
)
from .provider import EnvVarSecretProvider, SecretProvider

__all__ = [
    # Exceptions
    "SecretError",
    "SecretNotFoundError",
    "SecretProviderError",
    "SecretDecryptionError",
    # Providers
    "SecretProvider",
    "EnvVarSecretProvider",
    # Wrapping
    "Secret",
    "SecretCipher",
    "get_default_cipher",
    "set_default_cipher",
    # Audit
    "BindingEvent",
    "BindingAuditLog",
]
