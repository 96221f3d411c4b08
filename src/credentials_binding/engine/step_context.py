"""
Step context for dependency injection into bindings and scoped bodies.

Provides access to:
- Run identity and output charset
- Output sink (the listener) and its decorator chain
- Workspace directory and process launcher (optional)
- Environment expansion chain

A binding step never mutates the context it was started with. The scoped body
receives a child context with the step's overlay and masking decorator
appended to the inherited chains.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from .environment import EnvironmentExpander
from .launcher import Launcher
from .masking import OutputSink, StreamDecorator


@dataclass(frozen=True)
class RunInfo:
    """Identity of the run a step belongs to."""

    run_id: str
    charset: str = "utf-8"


@dataclass(frozen=True)
class StepContext:
    """
    Context handed to bindings, unbinders and scoped bodies.

    Design:
    - Immutable (use create_child_context for nesting)
    - run and listener are required by every binding step
    - workspace and launcher are required only by bindings that need them
    """

    run: RunInfo | None
    listener: OutputSink | None
    workspace: Path | None = None
    launcher: Launcher | None = None
    environment: EnvironmentExpander | None = None
    decorator: StreamDecorator | None = None

    @property
    def charset(self) -> str:
        return self.run.charset if self.run is not None else "utf-8"

    def create_child_context(
        self,
        environment: EnvironmentExpander | None,
        decorator: StreamDecorator | None,
    ) -> StepContext:
        """Create context for a nested body with replaced chains."""
        return replace(self, environment=environment, decorator=decorator)

    def get_environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """
        Build the effective environment for a process.

        Args:
            base: Base environment (default: os.environ); never modified

        Returns:
            New dict with the expansion chain applied
        """
        env = dict(os.environ if base is None else base)
        if self.environment is not None:
            self.environment.expand(env)
        return env

    def get_output(self) -> OutputSink:
        """
        Get the listener wrapped in this context's decorator chain.

        Each call decorates afresh, so callers own the returned stream and
        should flush or close it when done.

        Raises:
            RuntimeError: If the context has no listener
        """
        if self.listener is None:
            raise RuntimeError("Step context has no output listener")
        if self.decorator is None:
            return self.listener
        return self.decorator.decorate(self.listener)


__all__ = ["RunInfo", "StepContext"]
