"""code_read tool - read file contents with optional line range."""

from __future__ import annotations

import mimetypes
from typing import Any

from openwork.errors import ToolExecutionError
from openwork.logging import get_logger
from openwork.tools.registry import BaseTool

logger = get_logger("tools.code_read")

# Maximum line length before truncation
_MAX_LINE_LENGTH = 2000


class CodeReadTool(BaseTool):
    """Read a text file, returning numbered lines."""

    @property
    def name(self) -> str:
        return "code_read"

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file. Optionally specify a line range to read "
            "a portion of the file. Use this to examine code files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute or relative path of the file to read.",
                },
                "startLine": {
                    "type": "integer",
                    "description": "Starting line number (1-based). Defaults to the first line.",
                },
                "endLine": {
                    "type": "integer",
                    "description": "Ending line number (1-based, inclusive). Defaults to the last line.",
                },
            },
            "required": ["path"],
        }

    async def execute(self, args: dict[str, Any]) -> str:
        path = args.get("path", "")
        if not path:
            raise ToolExecutionError("path is required")

        resolved = self._resolve_path(path)
        if not resolved.exists():
            raise ToolExecutionError(f"File not found: {resolved}")
        if not resolved.is_file():
            raise ToolExecutionError(f"Path is not a file: {resolved}")

        try:
            data = resolved.read_bytes()
        except OSError as e:
            logger.warning("Failed to read %s: %s", resolved, e)
            raise ToolExecutionError(f"Error reading file: {e}") from e

        if b"\x00" in data[:8192]:
            mime = mimetypes.guess_type(str(resolved))[0] or "application/octet-stream"
            return f"Binary file: {resolved} ({mime}, {len(data)} bytes)"

        lines = data.decode("utf-8", errors="replace").split("\n")
        total = len(lines)

        start = max(1, int(args.get("startLine") or 1))
        end = min(total, int(args.get("endLine") or total))
        if start > total:
            raise ToolExecutionError(f"Start line {start} exceeds total lines {total}")

        output: list[str] = []
        for number, line in enumerate(lines[start - 1:end], start=start):
            line = line.rstrip("\r")
            if len(line) > _MAX_LINE_LENGTH:
                line = line[:_MAX_LINE_LENGTH] + "... (truncated)"
            output.append(f"{number:>4} | {line}")

        result = "\n".join(output)
        if start > 1 or end < total:
            result += f"\n\n(Showing lines {start}-{end} of {total} total.)"
        return result
