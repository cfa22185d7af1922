"""Tool registry for built-in tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from openwork.schema import ObjectSchema, adapt_input_schema

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """A locally executed tool: name, JSON-Schema parameters, and handler."""

    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler | None = None  # async callable(args) -> result
    input_schema: ObjectSchema = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.input_schema = adapt_input_schema(self.parameters)


class BaseTool(ABC):
    """
    Base class for built-in tools.

    ``execute`` returns the tool's output and raises ``ToolExecutionError``
    when the tool cannot do what was asked.
    """

    def __init__(self, cwd: str | None = None) -> None:
        self.cwd = cwd or "."

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]: ...

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> Any: ...

    def _resolve_path(self, file_path: str) -> Path:
        """Resolve a path against the tool's working directory."""
        p = Path(file_path).expanduser()
        if p.is_absolute():
            return p
        return Path(self.cwd) / p

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            handler=self.execute,
        )


class ToolRegistry:
    """Registry for built-in tools."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition | BaseTool) -> None:
        if isinstance(tool, BaseTool):
            tool = tool.definition()
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())
