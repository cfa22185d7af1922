"""
Exception types for the orchestration runtime.

Errors that make a whole operation unusable (a bad prompt source, a server
that cannot be reached, a duplicate registration) are raised. Errors local
to a single tool call are reported as data through ``DispatchErrorCode`` so a
turn can keep going.
"""

from __future__ import annotations

from enum import Enum


class OpenworkError(Exception):
    """Base class for all runtime errors."""


class ConfigurationError(OpenworkError):
    """A configuration source is missing, unreadable, or malformed."""


class SkillParseError(ConfigurationError):
    """A skill document could not be parsed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ServerConnectionError(OpenworkError):
    """Connecting to (or discovering capabilities of) a tool server failed."""

    def __init__(self, server_id: str, message: str) -> None:
        super().__init__(f"Server {server_id}: {message}")
        self.server_id = server_id
        self.reason = message


class DuplicateServerError(OpenworkError):
    """A server with the same id is already registered."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server {server_id} already exists")
        self.server_id = server_id


class ServerNotFoundError(OpenworkError):
    """No server is registered under the given id."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server {server_id} not found")
        self.server_id = server_id


class SchemaValidationError(OpenworkError):
    """Tool arguments do not satisfy the declared input schema."""

    def __init__(self, message: str, path: str = "$") -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.reason = message


class ToolExecutionError(OpenworkError):
    """A tool ran but reported failure."""


class ModelError(OpenworkError):
    """The model provider failed mid-stream."""


class DispatchErrorCode(str, Enum):
    """Codes for tool calls rejected or failed without raising."""

    INVALID_IDENTIFIER = "invalid-identifier"
    NOT_FOUND = "not-found"
    NOT_CONNECTED = "not-connected"
    INVALID_ARGUMENTS = "invalid-arguments"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport-error"
    TOOL_ERROR = "tool-error"
