"""MCP tool implementations for credential binding.

Following official Anthropic MCP Python SDK patterns:
- Tool functions decorated with @mcp.tool()
- Flat parameter signatures with Annotated types for validation
- Async functions for all tools
- Clear docstrings (become tool descriptions)
"""

import io
import uuid
from pathlib import Path
from typing import Annotated, Any

from mcp.types import ToolAnnotations
from pydantic import Field

from .context import AppContextType
from .engine import (
    BindingSpec,
    BindingStep,
    RunInfo,
    SecretRedactor,
    StepContext,
)
from .server import mcp

# =============================================================================
# MCP Tools (following official SDK decorator pattern)
# =============================================================================


@mcp.tool(
    annotations=ToolAnnotations(
        title=BindingStep.display_name,
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,  # Runs an arbitrary command
        openWorldHint=True,
    )
)
async def with_credentials(
    command: Annotated[
        str,
        Field(description="Shell command to run with the credentials bound", min_length=1),
    ],
    bindings: Annotated[
        list[BindingSpec],
        Field(description="Bindings: {type: string|file, variable, secret}"),
    ],
    working_dir: Annotated[
        str,
        Field(description="Working directory / workspace (empty = server cwd)"),
    ] = "",
    timeout: Annotated[
        int | None,
        Field(description="Timeout in seconds", ge=1, le=3600),
    ] = None,
    *,
    ctx: AppContextType,
) -> dict[str, Any]:
    """Run a command with secrets bound to environment variables; secrets are masked in output."""
    app_ctx = ctx.request_context.lifespan_context
    workspace = Path(working_dir).expanduser() if working_dir else Path.cwd()
    run = RunInfo(run_id=f"{BindingStep.function_name}-{uuid.uuid4().hex[:12]}")

    try:
        step = BindingStep(
            [app_ctx.binding_registry.create(spec, app_ctx.secret_provider) for spec in bindings],
            audit_log=app_ctx.audit_log,
        )
    except ValueError as e:
        return {"status": "failure", "error": str(e)}

    sink = io.BytesIO()
    context = StepContext(
        run=run,
        listener=sink,
        workspace=workspace,
        launcher=app_ctx.launcher,
    )

    async def body(body_context: StepContext) -> int:
        assert body_context.launcher is not None
        return await body_context.launcher.launch(
            command,
            env=body_context.get_environment(),
            output=body_context.get_output(),
            cwd=body_context.workspace,
            timeout=timeout or app_ctx.command_timeout,
        )

    try:
        exit_code = await step.run(context, body)
    except Exception as e:
        # Error text may quote bound values; redact everything the provider knows
        redactor = await SecretRedactor.from_provider(app_ctx.secret_provider)
        return {
            "status": "failure",
            "run_id": run.run_id,
            "error": redactor.redact(f"{type(e).__name__}: {e}"),
            "output": sink.getvalue().decode(run.charset, errors="replace"),
        }

    return {
        "status": "success" if exit_code == 0 else "failure",
        "run_id": run.run_id,
        "exit_code": exit_code,
        "output": sink.getvalue().decode(run.charset, errors="replace"),
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Credentials",
        readOnlyHint=True,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def list_credentials(*, ctx: AppContextType) -> dict[str, Any]:
    """List secret keys available for binding (never values) and supported binding types."""
    app_ctx = ctx.request_context.lifespan_context
    return {
        "secrets": sorted(await app_ctx.secret_provider.list_secret_keys()),
        "binding_types": app_ctx.binding_registry.list_types(),
    }
