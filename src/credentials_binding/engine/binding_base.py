"""Base binding architecture.

A CredentialBinding turns one configured credential into environment variables
(and possibly files or agent processes) for the duration of a scoped body. The
binding step depends only on this interface:

    bind(context) -> BoundCredential(values, unbinder)

Concrete binding kinds register themselves in a BindingRegistry by type name.

Key principles:
- bind() and unbind() may block (file I/O, secret stores). Plain methods are
  dispatched to a worker thread, async methods are awaited directly.
- Exceptions indicate failure; nothing here retries.
"""

from __future__ import annotations

import asyncio
import inspect
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from pydantic import BaseModel, Field, PrivateAttr, field_validator

if TYPE_CHECKING:
    from .secrets.provider import SecretProvider
    from .step_context import StepContext

T = TypeVar("T")

_VARIABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


async def call_blocking(func: Callable[..., T | Awaitable[T]], *args: Any) -> T:
    """Call func without blocking the event loop.

    Coroutine functions are awaited; plain callables run in a worker thread.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    return await asyncio.to_thread(func, *args)  # type: ignore[arg-type]


class Unbinder(ABC):
    """Releases whatever a binding acquired (temp files, agents, ...)."""

    @abstractmethod
    def unbind(self, context: StepContext) -> None | Awaitable[None]:
        """Release resources. May be a coroutine function."""
        pass


class NullUnbinder(Unbinder):
    """Unbinder for bindings that acquire nothing."""

    def unbind(self, context: StepContext) -> None:
        return None


@dataclass
class BoundCredential:
    """Result of binding one credential.

    Attributes:
        values: Environment variable name -> secret value contributed
        unbinder: Releases resources; invoked exactly once by the binding step
    """

    values: dict[str, str]
    unbinder: Unbinder = field(default_factory=NullUnbinder)

    def __repr__(self) -> str:
        return f"BoundCredential(variables={list(self.values)!r}, unbinder={self.unbinder!r})"


class BindingSpec(BaseModel):
    """Declarative description of one binding (as received by the server tool)."""

    model_config = {"extra": "forbid"}

    type: str = Field(description="Binding type (e.g. 'string', 'file')")
    variable: str = Field(description="Environment variable to bind")
    secret: str = Field(description="Secret key to read from the provider")

    @field_validator("variable")
    @classmethod
    def _check_variable(cls, value: str) -> str:
        if not _VARIABLE_NAME.match(value):
            raise ValueError(f"Invalid environment variable name: {value!r}")
        return value


class CredentialBinding(ABC):
    """Base class for credential bindings.

    Subclasses must:
    1. Set type_name
    2. Implement variables() and bind()
    3. Set requires_workspace if bind() needs a workspace and launcher
    4. Implement from_spec() to be creatable through a BindingRegistry
    """

    type_name: ClassVar[str]
    requires_workspace: ClassVar[bool] = False

    @abstractmethod
    def variables(self) -> list[str]:
        """Names of the environment variables this binding sets."""
        pass

    @abstractmethod
    def bind(self, context: StepContext) -> BoundCredential | Awaitable[BoundCredential]:
        """Materialize the credential. May be a coroutine function.

        Raises:
            Exception: Any exception indicates bind failure
        """
        pass

    @classmethod
    def from_spec(cls, spec: BindingSpec, provider: SecretProvider) -> CredentialBinding:
        raise NotImplementedError(f"{cls.__name__} cannot be created from a spec")


class BindingRegistry(BaseModel):
    """
    Registry of binding kinds.

    Maps binding type names to binding classes.
    """

    model_config = {"arbitrary_types_allowed": True}

    _bindings: dict[str, type[CredentialBinding]] = PrivateAttr(default_factory=dict)

    def register(self, binding_class: type[CredentialBinding]) -> None:
        """Register binding class using binding_class.type_name as key."""
        if binding_class.type_name in self._bindings:
            raise ValueError(f"Binding already registered: {binding_class.type_name}")
        self._bindings[binding_class.type_name] = binding_class

    def get(self, type_name: str) -> type[CredentialBinding]:
        """Get binding class by type name."""
        if type_name not in self._bindings:
            available = list(self._bindings.keys())
            raise ValueError(f"Unknown binding type: {type_name}. Available: {available}")
        return self._bindings[type_name]

    def list_types(self) -> list[str]:
        """List registered binding types."""
        return list(self._bindings.keys())

    def has(self, type_name: str) -> bool:
        """Check if binding type is registered."""
        return type_name in self._bindings

    def create(self, spec: BindingSpec, provider: SecretProvider) -> CredentialBinding:
        """Instantiate the binding described by spec."""
        return self.get(spec.type).from_spec(spec, provider)


__all__ = [
    "BindingRegistry",
    "BindingSpec",
    "BoundCredential",
    "CredentialBinding",
    "NullUnbinder",
    "Unbinder",
    "call_blocking",
]
