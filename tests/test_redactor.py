"""Tests for structured-data secret redaction."""

import pytest

from credentials_binding.engine import SecretRedactor
from credentials_binding.engine.secrets import EnvVarSecretProvider


class TestSecretRedactor:
    def test_redacts_nested_structures(self) -> None:
        redactor = SecretRedactor(["my_secret_password", "tok"])
        data = {
            "config": {"password": "my_secret_password", "timeout": 30},
            "items": ["tok", ("a tok", None)],
        }
        assert redactor.redact(data) == {
            "config": {"password": "****", "timeout": 30},
            "items": ["****", ("a ****", None)],
        }

    def test_no_secrets_is_identity(self) -> None:
        redactor = SecretRedactor()
        assert redactor.secret_count == 0
        assert redactor.redact("anything") == "anything"

    def test_add_secret(self) -> None:
        redactor = SecretRedactor(["first"])
        redactor.add_secret("second")
        redactor.add_secret("")
        assert redactor.secret_count == 2
        assert redactor.redact("first second") == "**** ****"

    def test_longest_secret_wins(self) -> None:
        redactor = SecretRedactor(["abc", "abcdef"])
        assert redactor.redact("abcdef") == "****"

    @pytest.mark.asyncio
    async def test_from_provider(self) -> None:
        redactor = await SecretRedactor.from_provider(EnvVarSecretProvider())
        assert redactor.redact("x s3cr3t y p@ss") == "x **** y ****"
