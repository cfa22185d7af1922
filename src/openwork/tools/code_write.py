"""code_write tool - create or overwrite files."""

from __future__ import annotations

from typing import Any

from openwork.errors import ToolExecutionError
from openwork.logging import get_logger
from openwork.tools.registry import BaseTool

logger = get_logger("tools.code_write")


class CodeWriteTool(BaseTool):
    """Create or overwrite a file."""

    @property
    def name(self) -> str:
        return "code_write"

    @property
    def description(self) -> str:
        return (
            "Write content to a file. Creates the file if it doesn't exist, or "
            "overwrites it if it does. Use this to create or modify code files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute or relative path of the file to write.",
                },
                "content": {
                    "type": "string",
                    "description": "The content to write to the file.",
                },
                "createDirectories": {
                    "type": "boolean",
                    "description": "Create parent directories if they don't exist. Defaults to true.",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, args: dict[str, Any]) -> str:
        path = args.get("path", "")
        content = args.get("content", "")
        create_dirs = args.get("createDirectories", True)
        if not path:
            raise ToolExecutionError("path is required")

        resolved = self._resolve_path(path)
        try:
            if create_dirs:
                resolved.parent.mkdir(parents=True, exist_ok=True)
            existed = resolved.exists()
            resolved.write_text(content, encoding="utf-8")
        except PermissionError as e:
            raise ToolExecutionError(f"Permission denied writing to {resolved}") from e
        except OSError as e:
            logger.warning("Failed to write %s: %s", resolved, e)
            raise ToolExecutionError(f"Error writing file: {e}") from e

        size = len(content.encode("utf-8"))
        logger.debug("%s %s (%d bytes)", "Overwrote" if existed else "Created", resolved, size)
        return f"Successfully wrote {size} bytes to {resolved}"
