"""Process launcher used by steps running inside a bound scope.

Runs a command as an async subprocess with an explicit environment and
working directory, streaming combined stdout/stderr into an output sink as it
arrives (so a decorated sink can mask it line by line).
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from collections.abc import Mapping
from pathlib import Path

from .masking import OutputSink

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class Launcher:
    """
    Async subprocess launcher.

    Features:
    - Shell or direct (argv) execution
    - Environment and working directory control
    - Combined stdout/stderr streamed into an output sink
    - Timeout and cancellation kill the child process
    """

    def __init__(self, is_unix: bool | None = None):
        """
        Initialize launcher.

        Args:
            is_unix: Whether commands run on a Unix-like system
                     (default: detected from the current platform)
        """
        self.is_unix = os.name != "nt" if is_unix is None else is_unix

    def format_variable(self, name: str) -> str:
        """Format an environment variable reference for this platform's shell."""
        return f"${name}" if self.is_unix else f"%{name}%"

    async def launch(
        self,
        command: str,
        *,
        env: Mapping[str, str],
        output: OutputSink,
        cwd: Path | None = None,
        timeout: float | None = None,
        shell: bool = True,
    ) -> int:
        """Run command, streaming its output into the sink.

        The sink is flushed (not closed) once the process finishes.

        Returns:
            Process exit code

        Raises:
            FileNotFoundError: If the working directory doesn't exist
            TimeoutError: If the command exceeds timeout
        """
        if cwd is not None and not cwd.exists():
            raise FileNotFoundError(f"Working directory does not exist: {cwd}")

        if shell:
            # Execute via shell (supports pipes, redirects, variable expansion)
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=cwd,
                env=dict(env),
            )
        else:
            args = shlex.split(command)
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=cwd,
                env=dict(env),
            )
        logger.debug(f"Launched process pid={process.pid}")

        async def pump() -> None:
            assert process.stdout is not None
            while chunk := await process.stdout.read(READ_CHUNK_SIZE):
                output.write(chunk)

        try:
            await asyncio.wait_for(asyncio.gather(pump(), process.wait()), timeout=timeout)
        except TimeoutError:
            await _kill(process)
            # Command text is not included: it may reference secret material
            raise TimeoutError(f"Command timed out after {timeout} seconds")
        except asyncio.CancelledError:
            await _kill(process)
            raise
        finally:
            output.flush()

        return process.returncode or 0


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


__all__ = ["Launcher"]
