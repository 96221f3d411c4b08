"""Tests for the binding step lifecycle (bind -> body -> unbind)."""

import asyncio
import threading
from pathlib import Path

import pytest
from test_utils import AsyncFakeBinding, FakeBinding, RecordingSink, body_writing

from credentials_binding.engine import (
    BindingState,
    BindingStep,
    BoundCredential,
    ConstantEnvironment,
    Launcher,
    MissingContextVariableError,
    RunInfo,
    StepContext,
    UnbindError,
)
from credentials_binding.engine.secrets import BindingAuditLog


def body_lines(sink: RecordingSink) -> list[str]:
    """Output lines written by the body (masking notice removed)."""
    lines = sink.text().splitlines(keepends=True)
    return [line for line in lines if not line.startswith("Masking")]


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_end_to_end_masking(
        self, step_context: StepContext, sink: RecordingSink, calls: list[str]
    ) -> None:
        step = BindingStep(
            [
                FakeBinding("c1", {"USER_TOKEN": "s3cr3t"}, calls),
                FakeBinding("c2", {"DB_PASS": "p@ss"}, calls),
            ]
        )
        result = await step.run(step_context, body_writing(b"login s3cr3t then p@ss\n"))

        assert result == "ok"
        assert body_lines(sink) == ["login **** then ****\n"]
        assert calls == ["bind:c1", "bind:c2", "unbind:c1", "unbind:c2"]

    @pytest.mark.asyncio
    async def test_masking_notice_lists_names_not_values(
        self, step_context: StepContext, sink: RecordingSink, calls: list[str]
    ) -> None:
        step = BindingStep(
            [
                FakeBinding("c1", {"USER_TOKEN": "s3cr3t"}, calls),
                FakeBinding("c2", {"DB_PASS": "p@ss"}, calls),
            ]
        )
        await step.run(step_context, body_writing())
        assert sink.text() == "Masking supported pattern matches of $USER_TOKEN or $DB_PASS\n"

    @pytest.mark.asyncio
    async def test_masking_notice_windows_format(
        self, sink: RecordingSink, tmp_path: Path
    ) -> None:
        context = StepContext(
            run=RunInfo("r"), listener=sink, workspace=tmp_path, launcher=Launcher(is_unix=False)
        )
        step = BindingStep([FakeBinding("c1", {"TOKEN": "x"}, [])])
        await step.run(context, body_writing())
        assert sink.text() == "Masking supported pattern matches of %TOKEN%\n"

    @pytest.mark.asyncio
    async def test_environment_overlay_last_write_wins(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep(
            [
                FakeBinding("c1", {"FOO": "a"}, calls),
                FakeBinding("c2", {"FOO": "b"}, calls),
            ]
        )

        async def body(context: StepContext) -> str:
            return context.get_environment({})["FOO"]

        assert await step.run(step_context, body) == "b"

    @pytest.mark.asyncio
    async def test_overlay_appended_to_ambient_chain(self, sink: RecordingSink) -> None:
        context = StepContext(
            run=RunInfo("r"),
            listener=sink,
            environment=ConstantEnvironment({"FOO": "ambient", "PATH": "/bin"}),
        )
        step = BindingStep([FakeBinding("c1", {"FOO": "bound"}, [])])

        async def body(body_context: StepContext) -> dict[str, str]:
            return body_context.get_environment({})

        assert await step.run(context, body) == {"FOO": "bound", "PATH": "/bin"}
        # Parent context is untouched
        assert context.get_environment({}) == {"FOO": "ambient", "PATH": "/bin"}

    @pytest.mark.asyncio
    async def test_async_bind_supported(self, step_context: StepContext, calls: list[str]) -> None:
        step = BindingStep([AsyncFakeBinding("c1", {"A": "1"}, calls)])

        async def body(context: StepContext) -> str:
            return context.get_environment({})["A"]

        assert await step.run(step_context, body) == "1"
        assert calls == ["bind:c1", "unbind:c1"]

    @pytest.mark.asyncio
    async def test_state_transitions(self, step_context: StepContext) -> None:
        execution = BindingStep([FakeBinding("c1", {"A": "1"}, [])]).start(step_context)
        seen: list[BindingState] = []

        async def body(context: StepContext) -> None:
            seen.append(execution.state)

        assert execution.state is BindingState.IDLE
        await execution.run(body)
        assert seen == [BindingState.BODY_RUNNING]
        assert execution.state is BindingState.DONE
        assert execution.state.is_terminal()

    @pytest.mark.asyncio
    async def test_execution_runs_only_once(self, step_context: StepContext) -> None:
        execution = BindingStep([]).start(step_context)
        await execution.run(body_writing())
        with pytest.raises(RuntimeError):
            await execution.run(body_writing())


class TestNoSecrets:
    @pytest.mark.asyncio
    async def test_no_decorator_when_nothing_bound(
        self, step_context: StepContext, sink: RecordingSink
    ) -> None:
        raw = b"\xff\xfe raw \x80 no newline"
        captured: list[StepContext] = []

        async def body(context: StepContext) -> None:
            captured.append(context)
            output = context.get_output()
            output.write(raw)

        await BindingStep([]).run(step_context, body)
        assert captured[0].decorator is None
        # Written straight through: no buffering, no notice
        assert sink.getvalue() == raw

    @pytest.mark.asyncio
    async def test_only_empty_values_installs_no_decorator(
        self, step_context: StepContext, sink: RecordingSink
    ) -> None:
        captured: list[StepContext] = []

        async def body(context: StepContext) -> None:
            captured.append(context)

        await BindingStep([FakeBinding("c1", {"EMPTY": ""}, [])]).run(step_context, body)
        assert captured[0].decorator is None
        assert captured[0].get_environment({}) == {"EMPTY": ""}


class TestCapabilityCheck:
    @pytest.mark.asyncio
    async def test_missing_workspace_fails_before_binding(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls),
                FakeBinding("c2", {"B": "2"}, calls, requires_workspace=True),
            ]
        )
        execution = step.start(step_context)
        with pytest.raises(MissingContextVariableError) as exc_info:
            await execution.run(body_writing())

        assert exc_info.value.variable == "workspace"
        assert calls == []
        assert execution.state is BindingState.FAILED

    @pytest.mark.asyncio
    async def test_missing_launcher_fails(self, sink: RecordingSink, tmp_path: Path) -> None:
        context = StepContext(run=RunInfo("r"), listener=sink, workspace=tmp_path)
        step = BindingStep([FakeBinding("c1", {"A": "1"}, [], requires_workspace=True)])
        with pytest.raises(MissingContextVariableError) as exc_info:
            await step.run(context, body_writing())
        assert exc_info.value.variable == "launcher"

    @pytest.mark.asyncio
    async def test_workspace_binding_with_full_context(
        self, workspace_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep([FakeBinding("c1", {"A": "1"}, calls, requires_workspace=True)])
        assert await step.run(workspace_context, body_writing()) == "ok"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["run", "listener"])
    async def test_required_context(self, missing: str, sink: RecordingSink) -> None:
        context = StepContext(
            run=None if missing == "run" else RunInfo("r"),
            listener=None if missing == "listener" else sink,
        )
        with pytest.raises(MissingContextVariableError) as exc_info:
            await BindingStep([]).run(context, body_writing())
        assert exc_info.value.variable == missing


class TestBindFailure:
    @pytest.mark.asyncio
    async def test_rollback_unbinds_already_bound(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        failure = ValueError("c2 cannot bind")
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls),
                FakeBinding("c2", {"B": "2"}, calls, bind_error=failure),
                FakeBinding("c3", {"C": "3"}, calls),
            ]
        )
        body_ran = False

        async def body(context: StepContext) -> None:
            nonlocal body_ran
            body_ran = True

        execution = step.start(step_context)
        with pytest.raises(ValueError) as exc_info:
            await execution.run(body)

        assert exc_info.value is failure
        assert calls == ["bind:c1", "bind:c2", "unbind:c1"]
        assert not body_ran
        assert execution.state is BindingState.FAILED

    @pytest.mark.asyncio
    async def test_rollback_failure_does_not_replace_bind_failure(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        failure = ValueError("bind failed")
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls, unbind_error=OSError("cleanup")),
                FakeBinding("c2", {"B": "2"}, calls, bind_error=failure),
            ]
        )
        with pytest.raises(ValueError) as exc_info:
            await step.run(step_context, body_writing())

        assert exc_info.value is failure
        assert any("OSError" in note for note in getattr(failure, "__notes__", []))

    @pytest.mark.asyncio
    async def test_first_bind_failure_needs_no_rollback(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep([FakeBinding("c1", {"A": "1"}, calls, bind_error=KeyError("x"))])
        with pytest.raises(KeyError):
            await step.run(step_context, body_writing())
        assert calls == ["bind:c1"]

    @pytest.mark.asyncio
    async def test_failure_installing_scope_unbinds(self, calls: list[str]) -> None:
        class BrokenListener(RecordingSink):
            def write(self, data: bytes) -> int:
                raise OSError("listener closed")

        context = StepContext(run=RunInfo(run_id="run-1"), listener=BrokenListener())
        step = BindingStep([FakeBinding("c1", {"A": "s3cr3t"}, calls)])
        body_ran = False

        async def body(context: StepContext) -> None:
            nonlocal body_ran
            body_ran = True

        execution = step.start(context)
        with pytest.raises(OSError, match="listener closed"):
            await execution.run(body)

        assert calls == ["bind:c1", "unbind:c1"]
        assert not body_ran
        assert execution.state is BindingState.FAILED

    @pytest.mark.asyncio
    async def test_cancel_during_blocking_bind_unbinds_it(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        started = threading.Event()
        release = threading.Event()

        class BlockingBinding(FakeBinding):
            def bind(self, context: StepContext) -> BoundCredential:
                started.set()
                release.wait(5)
                return super().bind(context)

        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls),
                BlockingBinding("c2", {"B": "2"}, calls),
            ]
        )
        task = asyncio.create_task(step.run(step_context, body_writing()))
        assert await asyncio.to_thread(started.wait, 5)

        task.cancel()
        release.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == ["bind:c1", "bind:c2", "unbind:c1", "unbind:c2"]


class TestUnbindFailure:
    @pytest.mark.asyncio
    async def test_all_unbinders_run_and_errors_aggregate(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        first = OSError("c1 unbind")
        third = RuntimeError("c3 unbind")
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls, unbind_error=first),
                FakeBinding("c2", {"B": "2"}, calls),
                FakeBinding("c3", {"C": "3"}, calls, unbind_error=third),
            ]
        )
        execution = step.start(step_context)
        with pytest.raises(UnbindError) as exc_info:
            await execution.run(body_writing())

        error = exc_info.value
        assert calls[-3:] == ["unbind:c1", "unbind:c2", "unbind:c3"]
        assert error.primary is first
        assert error.secondary == [third]
        assert error.errors == [first, third]
        assert error.__cause__ is first
        assert error.body_error is None
        assert execution.unbind_error is error
        assert execution.state is BindingState.FAILED

    @pytest.mark.asyncio
    async def test_unbind_failure_chained_with_body_failure(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        unbind_failure = OSError("unbind")
        body_failure = ValueError("body")
        step = BindingStep([FakeBinding("c1", {"A": "1"}, calls, unbind_error=unbind_failure)])

        async def body(context: StepContext) -> None:
            raise body_failure

        with pytest.raises(UnbindError) as exc_info:
            await step.run(step_context, body)

        assert exc_info.value.body_error is body_failure
        assert exc_info.value.__cause__ is body_failure
        assert exc_info.value.primary is unbind_failure

    @pytest.mark.asyncio
    async def test_error_message_has_no_secret_text(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep(
            [FakeBinding("c1", {"A": "s3cr3t"}, calls, unbind_error=OSError("s3cr3t leaked"))]
        )
        with pytest.raises(UnbindError) as exc_info:
            await step.run(step_context, body_writing())
        assert "s3cr3t" not in str(exc_info.value)
        assert "OSError" in str(exc_info.value)


class TestBodyOutcome:
    @pytest.mark.asyncio
    async def test_body_failure_passes_through_after_unbind(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        failure = ValueError("body failed")
        step = BindingStep([FakeBinding("c1", {"A": "1"}, calls)])

        async def body(context: StepContext) -> None:
            raise failure

        execution = step.start(step_context)
        with pytest.raises(ValueError) as exc_info:
            await execution.run(body)

        assert exc_info.value is failure
        assert calls == ["bind:c1", "unbind:c1"]
        assert execution.state is BindingState.DONE

    @pytest.mark.asyncio
    async def test_result_returned_unchanged(self, step_context: StepContext) -> None:
        sentinel = object()

        async def body(context: StepContext) -> object:
            return sentinel

        step = BindingStep([FakeBinding("c1", {"A": "1"}, [])])
        assert await step.run(step_context, body) is sentinel

    @pytest.mark.asyncio
    async def test_cancellation_still_unbinds(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        step = BindingStep(
            [FakeBinding("c1", {"A": "1"}, calls), FakeBinding("c2", {"B": "2"}, calls)]
        )
        started = asyncio.Event()

        async def body(context: StepContext) -> None:
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(step.run(step_context, body))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == ["bind:c1", "bind:c2", "unbind:c1", "unbind:c2"]

    @pytest.mark.asyncio
    async def test_cancellation_with_unbind_failure_stays_cancellation(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        execution = BindingStep(
            [FakeBinding("c1", {"A": "1"}, calls, unbind_error=OSError("x"))]
        ).start(step_context)
        started = asyncio.Event()

        async def body(context: StepContext) -> None:
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(execution.run(body))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert execution.unbind_error is not None
        assert isinstance(execution.unbind_error.primary, OSError)


class TestAudit:
    @pytest.mark.asyncio
    async def test_bind_and_unbind_events_recorded(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        audit_log = BindingAuditLog()
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "s3cr3t"}, calls),
                FakeBinding("c2", {"B": "2"}, calls, unbind_error=OSError("x")),
            ],
            audit_log=audit_log,
        )
        with pytest.raises(UnbindError):
            await step.run(step_context, body_writing())

        events = audit_log.get_events(run_id="run-1")
        actions = [(e.action, e.variables, e.success) for e in events]
        assert actions == [
            ("bind", ["A"], True),
            ("bind", ["B"], True),
            ("unbind", ["A"], True),
            ("unbind", ["B"], False),
        ]
        assert audit_log.get_events(action="unbind")[1].error_type == "OSError"
        assert all("s3cr3t" not in e.model_dump_json() for e in audit_log.events)

    @pytest.mark.asyncio
    async def test_rollback_events_recorded(
        self, step_context: StepContext, calls: list[str]
    ) -> None:
        audit_log = BindingAuditLog()
        step = BindingStep(
            [
                FakeBinding("c1", {"A": "1"}, calls),
                FakeBinding("c2", {"B": "2"}, calls, bind_error=ValueError("x")),
            ],
            audit_log=audit_log,
        )
        with pytest.raises(ValueError):
            await step.run(step_context, body_writing())

        assert [(e.action, e.success) for e in audit_log.events] == [
            ("bind", True),
            ("bind", False),
            ("rollback", True),
        ]
