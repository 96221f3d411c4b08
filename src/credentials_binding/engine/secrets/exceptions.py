"""Custom exceptions for secret handling.

Exception Hierarchy:
    SecretError (base)
    ├── SecretNotFoundError (missing secret)
    ├── SecretProviderError (provider-level failure)
    └── SecretDecryptionError (wrapped value cannot be unwrapped)

Messages never include secret values, only keys and provider names.

Example:
    >>> try:
    ...     secret = await provider.get_secret("missing_key")
    ... except SecretNotFoundError as e:
    ...     print(f"Secret {e.key} not found. Try: {e.provider_hint}")
"""


class SecretError(Exception):
    """Base exception for all secrets-related errors.

    Example:
        >>> try:
        ...     await secret_operation()
        ... except SecretError as e:
        ...     logger.error(f"Secret operation failed: {e}")
    """

    pass


class SecretNotFoundError(SecretError):
    """Exception raised when a requested secret is not found.

    Attributes:
        key: The secret key that was not found
        provider_hint: Optional hint about where to configure the secret

    Example:
        >>> raise SecretNotFoundError(
        ...     key="database_password",
        ...     provider_hint="Set CREDENTIALS_SECRET_DATABASE_PASSWORD env var"
        ... )
    """

    def __init__(self, key: str, provider_hint: str | None = None) -> None:
        """Initialize SecretNotFoundError.

        Args:
            key: The secret key that was not found
            provider_hint: Optional hint about where to configure the secret
        """
        self.key = key
        self.provider_hint = provider_hint

        message = f"Secret '{key}' not found"
        if provider_hint:
            message += f". {provider_hint}"

        super().__init__(message)


class SecretProviderError(SecretError):
    """Exception raised when a secret provider encounters an error.

    Attributes:
        provider_name: Name of the provider that encountered the error
        details: Detailed error information from the provider
    """

    def __init__(self, provider_name: str, details: str) -> None:
        """Initialize SecretProviderError.

        Args:
            provider_name: Name of the provider that encountered the error
            details: Detailed error information from the provider
        """
        self.provider_name = provider_name
        self.details = details

        message = f"Secret provider '{provider_name}' error: {details}"
        super().__init__(message)


class SecretDecryptionError(SecretError):
    """Exception raised when a wrapped secret cannot be decrypted.

    Usually means the value was wrapped under a different master key
    (e.g. CREDENTIALS_MASTER_KEY changed between save and restore).
    """

    def __init__(self) -> None:
        super().__init__(
            "Unable to decrypt wrapped secret. "
            "The master key may have changed since the value was stored."
        )
