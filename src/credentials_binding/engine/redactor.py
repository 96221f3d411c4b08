"""Secret redaction for structured values.

Output streams are masked line by line by the MaskingDecorator. Values that do
not flow through a stream (tool results, error messages) are redacted here,
with the same aggregate pattern and mask so both paths agree.

Features:
    - Recursive redaction of nested data structures
    - Type-preserving redaction (maintains dict/list/tuple structure)
    - Longest secret wins where secrets overlap

Example:
    >>> redactor = SecretRedactor(["my_secret_password"])
    >>> redactor.redact({"password": "my_secret_password", "user": "admin"})
    {'password': '****', 'user': 'admin'}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .masking import MASK
from .patterns import get_aggregate_secret_pattern, is_never_match
from .secrets.provider import SecretProvider

logger = logging.getLogger(__name__)


class SecretRedactor:
    """Redacts secrets from data structures to prevent exposure.

    Attributes:
        REDACTION_MARKER: String used to replace redacted secrets
    """

    REDACTION_MARKER = MASK

    def __init__(self, values: Iterable[str] = ()) -> None:
        """Initialize the secret redactor.

        Args:
            values: Secret values to redact
        """
        self._values = {value for value in values if value}
        self._pattern = get_aggregate_secret_pattern(self._values)

    @classmethod
    async def from_provider(cls, provider: SecretProvider) -> SecretRedactor:
        """Build a redactor covering every secret the provider can list.

        Keys that are listed but cannot be read are skipped.
        """
        values: list[str] = []
        for key in await provider.list_secret_keys():
            try:
                values.append(await provider.get_secret(key))
            except Exception as e:
                logger.debug(f"Skipping unreadable secret '{key}': {type(e).__name__}")
        return cls(values)

    def _compile_redaction_pattern(self) -> None:
        self._pattern = get_aggregate_secret_pattern(self._values)

    def redact(self, data: Any) -> Any:  # noqa: ANN401
        """Redact secrets from any data structure.

        Args:
            data: Data to redact (can be str, dict, list, tuple or any other type)

        Returns:
            Redacted data with the same structure and types as the input
        """
        if isinstance(data, str):
            return self._redact_string(data)

        if isinstance(data, dict):
            return {key: self.redact(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self.redact(item) for item in data]

        if isinstance(data, tuple):
            return tuple(self.redact(item) for item in data)

        # For other types (int, float, bool, None, etc.), return as-is
        return data

    def _redact_string(self, text: str) -> str:
        if is_never_match(self._pattern):
            return text
        return self._pattern.sub(self.REDACTION_MARKER, text)

    def add_secret(self, value: str) -> None:
        """Add a secret value (e.g. one generated during a run) for redaction."""
        if value and value not in self._values:
            self._values.add(value)
            self._compile_redaction_pattern()

    @property
    def secret_count(self) -> int:
        """Number of distinct secret values being redacted."""
        return len(self._values)
