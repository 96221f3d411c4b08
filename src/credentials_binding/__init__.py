"""credentials-binding: bind credentials to environment variables for a scoped body.

Secrets bound by a BindingStep are exposed to the body as environment
variables, masked in its output, and released when the body finishes.
"""

from .engine import (
    BindingState,
    BindingStep,
    BoundCredential,
    CredentialBinding,
    MissingContextVariableError,
    RunInfo,
    StepContext,
    UnbindError,
    Unbinder,
)

__version__ = "0.1.0"

__all__ = [
    "BindingState",
    "BindingStep",
    "BoundCredential",
    "CredentialBinding",
    "MissingContextVariableError",
    "RunInfo",
    "StepContext",
    "UnbindError",
    "Unbinder",
    "__version__",
]
