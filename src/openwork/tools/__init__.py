"""Built-in tools available to agents."""

from __future__ import annotations

from openwork.logging import get_logger
from openwork.tools.bash_execute import BashExecuteTool
from openwork.tools.code_read import CodeReadTool
from openwork.tools.code_write import CodeWriteTool
from openwork.tools.file_search import FileSearchTool
from openwork.tools.registry import BaseTool, ToolDefinition, ToolHandler, ToolRegistry

logger = get_logger("tools")

BUILTIN_TOOLS: dict[str, type[BaseTool]] = {
    "code_read": CodeReadTool,
    "code_write": CodeWriteTool,
    "bash_execute": BashExecuteTool,
    "file_search": FileSearchTool,
}


def create_builtin_tools(tool_ids: list[str] | tuple[str, ...], cwd: str | None = None) -> ToolRegistry:
    """
    Build a registry holding the requested built-in tools.

    Ids without an implementation (e.g. ``web_search``) are skipped with a
    warning.
    """
    registry = ToolRegistry()
    for tool_id in tool_ids:
        tool_cls = BUILTIN_TOOLS.get(tool_id)
        if tool_cls is None:
            logger.warning("Built-in tool %s is not available, skipping", tool_id)
            continue
        registry.register(tool_cls(cwd=cwd))
    return registry


__all__ = [
    "BUILTIN_TOOLS",
    "BaseTool",
    "BashExecuteTool",
    "CodeReadTool",
    "CodeWriteTool",
    "FileSearchTool",
    "ToolDefinition",
    "ToolHandler",
    "ToolRegistry",
    "create_builtin_tools",
]
