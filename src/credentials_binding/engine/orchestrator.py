"""Binding step orchestration.

Binds every requested credential, runs a scoped body with the merged
environment overlay and a masking output decorator in effect, then unbinds
every credential whatever the body's outcome.

Lifecycle (BindingState):
    IDLE -> BINDING -> BODY_RUNNING -> UNBINDING -> DONE
    FAILED is reachable from every state.

Error propagation:
- Missing context capability: fails before anything is bound.
- Bind failure: credentials already bound are unbound (rollback), then the
  bind failure itself is raised.
- Body failure: passed through unchanged once unbinding is done.
- Unbind failures: every unbinder runs; failures are aggregated into one
  UnbindError (first failure primary, rest secondary), chained from the body
  failure when there is one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import ClassVar, Generic, TypeVar

from .binding_base import BoundCredential, CredentialBinding, Unbinder, call_blocking
from .environment import EnvironmentOverlay, merge_expanders
from .exceptions import MissingContextVariableError, UnbindError
from .masking import MaskingDecorator
from .patterns import SecretPattern, get_aggregate_secret_pattern, is_never_match
from .secrets.audit import BindingAuditLog
from .step_context import StepContext

logger = logging.getLogger(__name__)

T = TypeVar("T")

Body = Callable[[StepContext], Awaitable[T]]

# A bound credential paired with the binding that produced it
_Bound = tuple[CredentialBinding, Unbinder]


class BindingState(str, Enum):
    """Lifecycle states of one binding step execution."""

    IDLE = "idle"
    """Created, not started."""

    BINDING = "binding"
    """Binding credentials in declared order."""

    BODY_RUNNING = "body_running"
    """Scoped body is running with the overlay and decorator installed."""

    UNBINDING = "unbinding"
    """Releasing bound credentials in bind order."""

    DONE = "done"
    """Finished; body outcome (success or failure) reported unchanged."""

    FAILED = "failed"
    """Failed in this step's own machinery (capability, bind or unbind)."""

    def is_terminal(self) -> bool:
        """Check if no further transitions can happen."""
        return self in (BindingState.DONE, BindingState.FAILED)


class BindingStep:
    """
    Step binding credentials to environment variables around a scoped body.

    Example:
        step = BindingStep([StringBinding("TOKEN", "api_token", provider)])
        result = await step.run(context, body)
    """

    function_name: ClassVar[str] = "withCredentials"
    display_name: ClassVar[str] = "Bind credentials to variables"
    required_context: ClassVar[frozenset[str]] = frozenset({"run", "listener"})

    def __init__(
        self,
        bindings: Sequence[CredentialBinding],
        audit_log: BindingAuditLog | None = None,
    ):
        """
        Initialize binding step.

        Args:
            bindings: Bindings in declared order (later ones win on duplicate variables)
            audit_log: Optional audit log recording bind/unbind events
        """
        self.bindings = list(bindings)
        self.audit_log = audit_log

    def start(self, context: StepContext) -> BindingExecution[T]:
        """Create an execution of this step for the given context."""
        return BindingExecution(self, context)

    async def run(self, context: StepContext, body: Body[T]) -> T:
        """Bind, run body, unbind. Returns the body's result."""
        execution: BindingExecution[T] = self.start(context)
        return await execution.run(body)


class BindingExecution(Generic[T]):
    """Single execution of a BindingStep (one pass through the state machine)."""

    def __init__(self, step: BindingStep, context: StepContext):
        self.step = step
        self.context = context
        self.unbind_error: UnbindError | None = None
        self._state = BindingState.IDLE

    @property
    def state(self) -> BindingState:
        return self._state

    def _transition(self, state: BindingState) -> None:
        logger.debug(f"Binding step {self._run_id}: {self._state.value} -> {state.value}")
        self._state = state

    @property
    def _run_id(self) -> str:
        return self.context.run.run_id if self.context.run is not None else "<no run>"

    async def run(self, body: Body[T]) -> T:
        """
        Run the full lifecycle around body.

        Args:
            body: Coroutine function receiving the child StepContext; started exactly once

        Returns:
            The body's result, unchanged

        Raises:
            MissingContextVariableError: Required capability absent (nothing bound)
            UnbindError: One or more unbinders failed
            Exception: Bind failure or the body's own failure, unchanged
        """
        if self._state is not BindingState.IDLE:
            raise RuntimeError(f"Binding step already started (state: {self._state.value})")

        try:
            self._check_context()
        except MissingContextVariableError:
            self._transition(BindingState.FAILED)
            raise

        self._transition(BindingState.BINDING)
        try:
            overrides, unbinders = await self._bind_all()
        except BaseException:
            self._transition(BindingState.FAILED)
            raise

        try:
            body_context = self._create_body_context(overrides)
        except BaseException as e:
            logger.warning(
                f"Installing overlay/decorator failed ({type(e).__name__}); "
                f"rolling back {len(unbinders)} bound credential(s)"
            )
            await self._rollback(unbinders, e)
            self._transition(BindingState.FAILED)
            raise

        self._transition(BindingState.BODY_RUNNING)
        body_error: BaseException | None = None
        result: T | None = None
        try:
            result = await body(body_context)
        except BaseException as e:
            body_error = e

        self._transition(BindingState.UNBINDING)
        errors = await self._unbind_all_shielded(unbinders)

        if errors:
            self._transition(BindingState.FAILED)
            self.unbind_error = UnbindError(errors, body_error=body_error)
            if body_error is not None and not isinstance(body_error, Exception):
                # Cancellation and interrupts keep propagating as themselves
                logger.error(f"Unbind failed while step was interrupted: {self.unbind_error}")
                raise body_error
            raise self.unbind_error from (body_error if body_error is not None else errors[0])

        self._transition(BindingState.DONE)
        if body_error is not None:
            raise body_error
        return result  # type: ignore[return-value]

    def _check_context(self) -> None:
        """Fail fast on missing capabilities, before any binding happens."""
        if self.context.run is None:
            raise MissingContextVariableError("run")
        if self.context.listener is None:
            raise MissingContextVariableError("listener")
        for binding in self.step.bindings:
            if binding.requires_workspace:
                if self.context.workspace is None:
                    raise MissingContextVariableError("workspace")
                if self.context.launcher is None:
                    raise MissingContextVariableError("launcher")

    async def _bind_all(self) -> tuple[dict[str, str], list[_Bound]]:
        """Bind every credential in order; roll back on the first failure."""
        overrides: dict[str, str] = {}
        unbinders: list[_Bound] = []

        for binding in self.step.bindings:
            try:
                bound = await self._bind_one(binding, unbinders)
            except BaseException as e:
                logger.warning(
                    f"Binding {binding.type_name} for {binding.variables()} failed "
                    f"({type(e).__name__}); rolling back {len(unbinders)} bound credential(s)"
                )
                await self._audit(binding.type_name, binding.variables(), "bind", e)
                await self._rollback(unbinders, e)
                raise

            await self._audit(binding.type_name, list(bound.values), "bind", None)
            unbinders.append((binding, bound.unbinder))
            overrides.update(bound.values)

        return overrides, unbinders

    async def _bind_one(
        self, binding: CredentialBinding, unbinders: list[_Bound]
    ) -> BoundCredential:
        """Bind one credential, recording it for rollback even if cancelled meanwhile.

        A cancelled worker thread keeps running, so a sync bind can still
        complete after cancellation; its result must not be lost.
        """
        task = asyncio.ensure_future(call_blocking(binding.bind, self.context))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                await asyncio.wait([task])
            if not task.cancelled() and task.exception() is None:
                unbinders.append((binding, task.result().unbinder))
            raise

    async def _rollback(self, unbinders: list[_Bound], error: BaseException) -> None:
        """Unbind what is already bound; rollback failures are noted on error."""
        rollback_errors = await self._unbind_all_shielded(unbinders, action="rollback")
        if rollback_errors and isinstance(error, Exception):
            error.add_note(
                "Rollback of already bound credentials also failed: "
                + ", ".join(type(err).__name__ for err in rollback_errors)
            )

    def _create_body_context(self, overrides: dict[str, str]) -> StepContext:
        """Install overlay and (when there is something to mask) the masking decorator."""
        context = self.context
        decorator = context.decorator

        if overrides:
            self._write_masking_notice(list(overrides))
            pattern = get_aggregate_secret_pattern(overrides.values())
            if not is_never_match(pattern):
                decorator = MaskingDecorator.create_from(
                    SecretPattern(pattern), context.charset, decorator
                )

        environment = merge_expanders(context.environment, EnvironmentOverlay(overrides))
        return context.create_child_context(environment=environment, decorator=decorator)

    def _write_masking_notice(self, names: list[str]) -> None:
        launcher = self.context.launcher
        formatted = [
            launcher.format_variable(name) if launcher is not None else f"${name}"
            for name in names
        ]
        notice = f"Masking supported pattern matches of {' or '.join(formatted)}\n"
        assert self.context.listener is not None
        self.context.listener.write(notice.encode(self.context.charset))

    async def _unbind_all_shielded(
        self, unbinders: list[_Bound], action: str = "unbind"
    ) -> list[Exception]:
        """Run _unbind_all to completion even if this task is cancelled meanwhile."""
        task = asyncio.ensure_future(self._unbind_all(unbinders, action))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            errors = await task
            if errors:
                self.unbind_error = UnbindError(errors)
            raise

    async def _unbind_all(self, unbinders: list[_Bound], action: str) -> list[Exception]:
        """Invoke every unbinder in bind order, collecting failures."""
        errors: list[Exception] = []
        for binding, unbinder in unbinders:
            try:
                await call_blocking(unbinder.unbind, self.context)
            except Exception as e:
                logger.error(
                    f"Failed to {action} {binding.type_name} for {binding.variables()} "
                    f"({type(e).__name__})",
                    exc_info=True,
                )
                errors.append(e)
                await self._audit(binding.type_name, binding.variables(), action, e)
            else:
                await self._audit(binding.type_name, binding.variables(), action, None)
        return errors

    async def _audit(
        self,
        binding_type: str,
        variables: list[str],
        action: str,
        error: BaseException | None,
    ) -> None:
        if self.step.audit_log is None:
            return
        await self.step.audit_log.log_event(
            run_id=self._run_id,
            binding_type=binding_type,
            variables=variables,
            action=action,
            success=error is None,
            error_type=type(error).__name__ if error is not None else None,
        )


__all__ = ["BindingExecution", "BindingState", "BindingStep"]
