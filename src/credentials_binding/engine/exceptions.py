"""Binding step exceptions.

Failure taxonomy of the binding lifecycle:
    MissingContextVariableError - a required capability is absent (fails before any bind)
    UnbindError                 - one or more unbinders failed (aggregated, never dropped)

Bind failures are not wrapped: the binding's own exception propagates after
rollback, so callers can catch the concrete error type they expect.
"""

from __future__ import annotations


class MissingContextVariableError(Exception):
    """
    Required step context variable is not available.

    Raised at step start when the context lacks something the step or one of
    its bindings needs (a workspace and launcher for file-based bindings, or
    the run and listener every binding step needs).

    Attributes:
        variable: Name of the missing context variable (e.g. "workspace")
    """

    def __init__(self, variable: str):
        self.variable = variable
        super().__init__(
            f"Required context variable '{variable}' is missing. "
            f"Perhaps you forgot to run this step inside a node or workspace?"
        )

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return f"MissingContextVariableError(variable={self.variable!r})"


class UnbindError(Exception):
    """
    One or more credentials failed to unbind.

    Every unbinder runs even if an earlier one failed. The first failure is the
    primary error, the rest are kept in order as secondary errors. When the
    scoped body itself failed, that failure is kept as ``body_error`` and the
    UnbindError is chained from it.

    Attributes:
        errors: All unbind failures, in unbind order
        primary: First unbind failure
        secondary: Remaining unbind failures, in unbind order
        body_error: Failure of the scoped body, if any
    """

    def __init__(self, errors: list[Exception], body_error: BaseException | None = None):
        if not errors:
            raise ValueError("UnbindError requires at least one error")
        self.errors = list(errors)
        self.body_error = body_error

        # Only exception types go into the message; error text may carry secrets
        summary = ", ".join(type(e).__name__ for e in self.errors)
        message = f"Failed to unbind {len(self.errors)} credential(s): {summary}"
        if body_error is not None:
            message += f" (body also failed with {type(body_error).__name__})"
        super().__init__(message)

    @property
    def primary(self) -> Exception:
        """First unbind failure encountered."""
        return self.errors[0]

    @property
    def secondary(self) -> list[Exception]:
        """Unbind failures after the primary one."""
        return self.errors[1:]

    def __repr__(self) -> str:
        """Developer-friendly representation."""
        return (
            f"UnbindError(primary={self.primary!r}, "
            f"secondary={len(self.secondary)}, body_error={self.body_error!r})"
        )


__all__ = ["MissingContextVariableError", "UnbindError"]
