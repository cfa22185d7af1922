"""file_search tool - find files by name pattern."""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Any

from openwork.errors import ToolExecutionError
from openwork.logging import get_logger
from openwork.tools.registry import BaseTool

logger = get_logger("tools.file_search")

# Default maximum number of results
_DEFAULT_LIMIT = 100


class FileSearchTool(BaseTool):
    """Find files whose names match a glob-like pattern."""

    @property
    def name(self) -> str:
        return "file_search"

    @property
    def description(self) -> str:
        return (
            "Search for files in a directory by name pattern (e.g. '*.py', 'test*.js'). "
            "Returns paths relative to the searched directory."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "directory": {
                    "type": "string",
                    "description": "The directory to search in.",
                },
                "pattern": {
                    "type": "string",
                    "description": "Pattern to match file names against (e.g. '*.ts'). Matches all files if omitted.",
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Search subdirectories. Defaults to true.",
                },
                "maxResults": {
                    "type": "integer",
                    "description": f"Maximum number of results. Defaults to {_DEFAULT_LIMIT}.",
                },
                "includeHidden": {
                    "type": "boolean",
                    "description": "Include hidden files and directories. Defaults to false.",
                },
            },
            "required": ["directory"],
        }

    async def execute(self, args: dict[str, Any]) -> str:
        directory = args.get("directory") or "."
        pattern = (args.get("pattern") or "").lower()
        recursive = args.get("recursive", True)
        limit = args.get("maxResults") or _DEFAULT_LIMIT
        include_hidden = args.get("includeHidden", False)

        base = self._resolve_path(directory)
        if not base.exists():
            raise ToolExecutionError(f"Directory not found: {base}")
        if not base.is_dir():
            raise ToolExecutionError(f"{base} is not a directory")

        matches: list[str] = []
        for root, dirs, files in os.walk(base):
            if not include_hidden:
                dirs[:] = [d for d in dirs if not d.startswith(".")]
            dirs.sort()
            for name in sorted(files):
                if not include_hidden and name.startswith("."):
                    continue
                if pattern and not fnmatch.fnmatchcase(name.lower(), pattern):
                    continue
                matches.append(str(Path(root, name).relative_to(base)))
                if len(matches) >= limit:
                    break
            if len(matches) >= limit or not recursive:
                break

        logger.debug("file_search %s %r: %d matches", base, pattern, len(matches))
        if not matches:
            return "No files found."
        suffix = f"\n\n(showing first {limit})" if len(matches) >= limit else f"\n\n({len(matches)} files)"
        return "\n".join(matches) + suffix
