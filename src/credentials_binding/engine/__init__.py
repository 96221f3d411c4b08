"""Credential binding engine.

Key Components:

- BindingStep / BindingExecution: Bind credentials, run a scoped body, unbind
- CredentialBinding / BoundCredential / Unbinder: Binding interface
- BindingRegistry: Registry of binding kinds (StringBinding, FileBinding built in)
- StepContext / RunInfo: Context injected into bindings and bodies
- EnvironmentOverlay: Secret environment overrides (expansion chain member)
- MaskingDecorator: Line-buffered output masking (decorator chain member)
- get_aggregate_secret_pattern: One regex matching any bound secret
- Launcher: Async subprocess launcher streaming into an output sink
"""

from .binding_base import (
    BindingRegistry,
    BindingSpec,
    BoundCredential,
    CredentialBinding,
    NullUnbinder,
    Unbinder,
)
from .bindings_core import FileBinding, StringBinding, create_default_registry
from .environment import (
    ConstantEnvironment,
    EnvironmentExpander,
    EnvironmentOverlay,
    merge_expanders,
)
from .exceptions import MissingContextVariableError, UnbindError
from .launcher import Launcher
from .masking import MASK, MaskingDecorator, StreamDecorator, merge_decorators
from .orchestrator import BindingExecution, BindingState, BindingStep
from .patterns import SecretPattern, get_aggregate_secret_pattern, is_never_match
from .redactor import SecretRedactor
from .step_context import RunInfo, StepContext

__all__ = [
    # Orchestration
    "BindingStep",
    "BindingExecution",
    "BindingState",
    # Binding interface
    "CredentialBinding",
    "BoundCredential",
    "Unbinder",
    "NullUnbinder",
    "BindingSpec",
    "BindingRegistry",
    "StringBinding",
    "FileBinding",
    "create_default_registry",
    # Context
    "StepContext",
    "RunInfo",
    "Launcher",
    # Environment
    "EnvironmentExpander",
    "EnvironmentOverlay",
    "ConstantEnvironment",
    "merge_expanders",
    # Masking
    "MASK",
    "StreamDecorator",
    "MaskingDecorator",
    "merge_decorators",
    "SecretPattern",
    "SecretRedactor",
    "get_aggregate_secret_pattern",
    "is_never_match",
    # Errors
    "MissingContextVariableError",
    "UnbindError",
]
