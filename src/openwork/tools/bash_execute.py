"""bash_execute tool - run shell commands."""

from __future__ import annotations

import asyncio
import os
from typing import Any

from openwork.errors import ToolExecutionError
from openwork.logging import get_logger
from openwork.tools.registry import BaseTool

logger = get_logger("tools.bash_execute")

# Default timeout in milliseconds
_DEFAULT_TIMEOUT_MS = 30_000

# Upper bound on a single command, in milliseconds
_MAX_TIMEOUT_MS = 600_000

# Maximum output size in characters before truncation
_MAX_OUTPUT = 100_000


class BashExecuteTool(BaseTool):
    """Execute a shell command and return its output."""

    @property
    def name(self) -> str:
        return "bash_execute"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command and return the output. Use this for running "
            "builds, tests, git commands, and other system operations."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute.",
                },
                "cwd": {
                    "type": "string",
                    "description": "Working directory for the command. Defaults to the agent's working directory.",
                },
                "timeout": {
                    "type": "integer",
                    "description": f"Timeout in milliseconds. Defaults to {_DEFAULT_TIMEOUT_MS}.",
                },
                "env": {
                    "type": "object",
                    "description": "Additional environment variables to set.",
                },
            },
            "required": ["command"],
        }

    async def execute(self, args: dict[str, Any]) -> str:
        command = args.get("command", "")
        if not command:
            raise ToolExecutionError("command is required")

        timeout_ms = args.get("timeout") or _DEFAULT_TIMEOUT_MS
        if not isinstance(timeout_ms, (int, float)):
            timeout_ms = _DEFAULT_TIMEOUT_MS
        timeout = max(1, min(timeout_ms, _MAX_TIMEOUT_MS)) / 1000

        cwd = str(self._resolve_path(args["cwd"])) if args.get("cwd") else self.cwd
        env = os.environ.copy()
        extra_env = args.get("env")
        if isinstance(extra_env, dict):
            env.update({str(k): str(v) for k, v in extra_env.items()})

        logger.debug("Executing: %s (cwd=%s, timeout=%ss)", command, cwd, timeout)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
            )
        except FileNotFoundError as e:
            raise ToolExecutionError(f"Working directory does not exist: {cwd}") from e
        except OSError as e:
            raise ToolExecutionError(f"Failed to start command: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise ToolExecutionError(
                f"Command timed out after {int(timeout * 1000)}ms"
            ) from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        stdout_str = self._truncate(stdout.decode("utf-8", errors="replace").strip())
        stderr_str = self._truncate(stderr.decode("utf-8", errors="replace").strip())

        parts: list[str] = []
        if stdout_str:
            parts.append(stdout_str)
        if stderr_str:
            parts.append(f"STDERR:\n{stderr_str}" if stdout_str else stderr_str)
        output = "\n".join(parts) if parts else "(no output)"

        exit_code = process.returncode or 0
        logger.debug("Command finished (exit=%d, %d chars)", exit_code, len(output))
        if exit_code != 0:
            return f"Exit code: {exit_code}\n{output}"
        return output

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    @staticmethod
    def _truncate(text: str) -> str:
        """Keep the tail of oversized output."""
        if len(text) > _MAX_OUTPUT:
            return f"... ({len(text) - _MAX_OUTPUT} characters truncated) ...\n" + text[-_MAX_OUTPUT:]
        return text
