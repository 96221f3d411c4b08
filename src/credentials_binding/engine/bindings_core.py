"""Core credential bindings - String and File."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import ClassVar

from .binding_base import (
    BindingRegistry,
    BindingSpec,
    BoundCredential,
    CredentialBinding,
    Unbinder,
)
from .secrets.provider import SecretProvider
from .step_context import StepContext

logger = logging.getLogger(__name__)

# ============================================================================
# String Binding
# ============================================================================


class StringBinding(CredentialBinding):
    """
    Binds secret text directly to one environment variable.

    Acquires nothing, so unbinding is a no-op.
    """

    type_name: ClassVar[str] = "string"

    def __init__(self, variable: str, secret_key: str, provider: SecretProvider):
        self.variable = variable
        self.secret_key = secret_key
        self.provider = provider

    @classmethod
    def from_spec(cls, spec: BindingSpec, provider: SecretProvider) -> StringBinding:
        return cls(spec.variable, spec.secret, provider)

    def variables(self) -> list[str]:
        return [self.variable]

    async def bind(self, context: StepContext) -> BoundCredential:
        value = await self.provider.get_secret(self.secret_key)
        return BoundCredential(values={self.variable: value})


# ============================================================================
# File Binding
# ============================================================================


class FileBinding(CredentialBinding):
    """
    Writes secret text to a private temp file; the variable holds its path.

    The file lives under ``<workspace>@tmp/secretFiles/<random>/`` so it is
    never inside the workspace itself. Unbinding deletes that directory.

    Note: the bound value is the file path, so the path (not the content) is
    what gets masked in output.
    """

    type_name: ClassVar[str] = "file"
    requires_workspace: ClassVar[bool] = True

    def __init__(self, variable: str, secret_key: str, provider: SecretProvider):
        self.variable = variable
        self.secret_key = secret_key
        self.provider = provider

    @classmethod
    def from_spec(cls, spec: BindingSpec, provider: SecretProvider) -> FileBinding:
        return cls(spec.variable, spec.secret, provider)

    def variables(self) -> list[str]:
        return [self.variable]

    @staticmethod
    def secrets_dir(workspace: Path) -> Path:
        """Directory holding secret files for a workspace."""
        return workspace.parent / f"{workspace.name}@tmp" / "secretFiles"

    async def bind(self, context: StepContext) -> BoundCredential:
        assert context.workspace is not None
        value = await self.provider.get_secret(self.secret_key)

        directory = self.secrets_dir(context.workspace) / uuid.uuid4().hex
        secret_file = directory / "secret"

        def write() -> None:
            directory.mkdir(parents=True, mode=0o700)
            fd = os.open(secret_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)

        task = asyncio.ensure_future(asyncio.to_thread(write))
        try:
            await asyncio.shield(task)
        except BaseException:
            # A cancelled write keeps running in its thread; remove the directory after it
            if not task.done():
                await asyncio.wait([task])
            await asyncio.to_thread(shutil.rmtree, directory, ignore_errors=True)
            raise
        logger.debug(f"Wrote secret file for {self.variable} under {directory}")
        return BoundCredential(
            values={self.variable: str(secret_file)},
            unbinder=DeleteDirectoryUnbinder(directory),
        )


class DeleteDirectoryUnbinder(Unbinder):
    """Deletes a directory created during binding."""

    def __init__(self, directory: Path):
        self.directory = directory

    def unbind(self, context: StepContext) -> None:
        shutil.rmtree(self.directory)
        logger.debug(f"Deleted secret directory {self.directory}")

    def __repr__(self) -> str:
        return f"DeleteDirectoryUnbinder({str(self.directory)!r})"


def create_default_registry() -> BindingRegistry:
    """Create a registry with all built-in binding kinds."""
    registry = BindingRegistry()
    registry.register(StringBinding)
    registry.register(FileBinding)
    return registry


__all__ = [
    "DeleteDirectoryUnbinder",
    "FileBinding",
    "StringBinding",
    "create_default_registry",
]
