"""Shared test utilities for credentials-binding test suite.

Provides:
- RecordingSink: byte sink recording writes, flushes and closes
- FakeBinding / RecordingUnbinder: scriptable bindings for lifecycle tests
"""

from __future__ import annotations

from typing import Any, ClassVar

from credentials_binding.engine import BoundCredential, CredentialBinding, StepContext, Unbinder


class RecordingSink:
    """Output sink recording everything written to it."""

    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.flush_count = 0
        self.close_count = 0

    def write(self, data: bytes) -> int:
        self.writes.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        self.flush_count += 1

    def close(self) -> None:
        self.close_count += 1

    def getvalue(self) -> bytes:
        return b"".join(self.writes)

    def text(self) -> str:
        return self.getvalue().decode("utf-8")


class RecordingUnbinder(Unbinder):
    """Unbinder appending its name to a shared call log, optionally failing."""

    def __init__(self, name: str, calls: list[str], error: Exception | None = None):
        self.name = name
        self.calls = calls
        self.error = error

    def unbind(self, context: StepContext) -> None:
        self.calls.append(f"unbind:{self.name}")
        if self.error is not None:
            raise self.error


class FakeBinding(CredentialBinding):
    """Binding contributing fixed values, recording bind/unbind calls."""

    type_name: ClassVar[str] = "fake"

    def __init__(
        self,
        name: str,
        values: dict[str, str],
        calls: list[str],
        bind_error: Exception | None = None,
        unbind_error: Exception | None = None,
        requires_workspace: bool = False,
    ):
        self.name = name
        self.values = values
        self.calls = calls
        self.bind_error = bind_error
        self.unbind_error = unbind_error
        self.requires_workspace = requires_workspace  # type: ignore[misc]

    def variables(self) -> list[str]:
        return list(self.values)

    def bind(self, context: StepContext) -> BoundCredential:
        self.calls.append(f"bind:{self.name}")
        if self.bind_error is not None:
            raise self.bind_error
        return BoundCredential(
            values=dict(self.values),
            unbinder=RecordingUnbinder(self.name, self.calls, self.unbind_error),
        )


class AsyncFakeBinding(FakeBinding):
    """FakeBinding with a coroutine bind()."""

    type_name: ClassVar[str] = "async-fake"

    async def bind(self, context: StepContext) -> BoundCredential:  # type: ignore[override]
        return super().bind(context)


def body_writing(*chunks: bytes) -> Any:
    """Build a scoped body that writes chunks to its output, flushes, returns 'ok'."""

    async def body(context: StepContext) -> str:
        output = context.get_output()
        for chunk in chunks:
            output.write(chunk)
        output.flush()
        return "ok"

    return body
