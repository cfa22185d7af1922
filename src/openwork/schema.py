"""
Schema adapter for externally declared tool inputs.

Tool servers describe their inputs with JSON-Schema-like documents. This
module translates those documents into a small closed set of schema nodes
that can both describe a capability to a model and validate the arguments
the model sends back.

Only a handful of constructs are understood: ``string``, ``number``,
``integer``, ``boolean``, ``array`` (with ``items``) and ``object`` (with
``properties`` and ``required``). Anything else becomes ``AnySchema``,
which accepts every value, so one odd field never hides a whole tool.

Example:
    from openwork.schema import adapt_input_schema

    schema = adapt_input_schema({
        "type": "object",
        "properties": {"count": {"type": "integer"}},
        "required": ["count"],
    })
    schema.validate({"count": "3"})  # -> {"count": 3}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from openwork.errors import SchemaValidationError

# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

TOOL_PREFIX = "mcp_"
NAME_SEPARATOR = "_"


def qualify_tool_name(server_id: str, tool_name: str) -> str:
    """Namespace a server-local tool name: ``mcp_<server>_<tool>``."""
    return f"{TOOL_PREFIX}{server_id}{NAME_SEPARATOR}{tool_name}"


def parse_tool_name(qualified: str) -> tuple[str, str] | None:
    """
    Split a namespaced name into ``(server_id, tool_name)``.

    The server id ends at the first separator after the prefix, so tool
    names may themselves contain underscores. Returns None when the name
    is not in namespaced form.
    """
    if not qualified.startswith(TOOL_PREFIX):
        return None
    rest = qualified[len(TOOL_PREFIX):]
    server_id, sep, tool_name = rest.partition(NAME_SEPARATOR)
    if not sep or not server_id or not tool_name:
        return None
    return server_id, tool_name


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Schema nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchemaNode:
    """Base class for schema nodes."""

    description: str | None = None

    def validate(self, value: Any, path: str = "$") -> Any:
        """Validate ``value``, returning it (possibly coerced)."""
        raise NotImplementedError

    def to_json_schema(self) -> dict[str, Any]:
        raise NotImplementedError

    def _with_description(self, schema: dict[str, Any]) -> dict[str, Any]:
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class AnySchema(SchemaNode):
    """Accepts any value unchanged."""

    def validate(self, value: Any, path: str = "$") -> Any:
        return value

    def to_json_schema(self) -> dict[str, Any]:
        return self._with_description({})


@dataclass(frozen=True)
class StringSchema(SchemaNode):
    def validate(self, value: Any, path: str = "$") -> Any:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise SchemaValidationError(f"expected string, got {_type_name(value)}", path)

    def to_json_schema(self) -> dict[str, Any]:
        return self._with_description({"type": "string"})


@dataclass(frozen=True)
class NumberSchema(SchemaNode):
    integer: bool = False

    def validate(self, value: Any, path: str = "$") -> Any:
        expected = "integer" if self.integer else "number"
        if isinstance(value, bool):
            raise SchemaValidationError(f"expected {expected}, got bool", path)
        if isinstance(value, str):
            try:
                value = float(value.strip())
            except ValueError:
                raise SchemaValidationError(
                    f"expected {expected}, got non-numeric string", path,
                ) from None
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise SchemaValidationError(f"expected {expected}, got {value}", path)
            if value.is_integer():
                return int(value)
            if self.integer:
                raise SchemaValidationError(f"expected integer, got {value}", path)
            return value
        raise SchemaValidationError(f"expected {expected}, got {_type_name(value)}", path)

    def to_json_schema(self) -> dict[str, Any]:
        return self._with_description({"type": "integer" if self.integer else "number"})


@dataclass(frozen=True)
class BooleanSchema(SchemaNode):
    def validate(self, value: Any, path: str = "$") -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise SchemaValidationError(f"expected boolean, got {_type_name(value)}", path)

    def to_json_schema(self) -> dict[str, Any]:
        return self._with_description({"type": "boolean"})


@dataclass(frozen=True)
class ArraySchema(SchemaNode):
    items: SchemaNode = field(default_factory=AnySchema)

    def validate(self, value: Any, path: str = "$") -> Any:
        if not isinstance(value, (list, tuple)):
            raise SchemaValidationError(f"expected array, got {_type_name(value)}", path)
        return [self.items.validate(item, f"{path}[{i}]") for i, item in enumerate(value)]

    def to_json_schema(self) -> dict[str, Any]:
        return self._with_description({"type": "array", "items": self.items.to_json_schema()})


@dataclass(frozen=True)
class ObjectSchema(SchemaNode):
    """
    An object with named fields.

    ``open`` objects declare no fields at all and accept any mapping.
    Undeclared keys on closed objects are passed through untouched.
    """

    fields: dict[str, SchemaNode] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    open: bool = False

    def validate(self, value: Any, path: str = "$") -> Any:
        if value is None and path == "$":
            value = {}
        if not isinstance(value, dict):
            raise SchemaValidationError(f"expected object, got {_type_name(value)}", path)

        for name in self.required:
            if value.get(name) is None:
                raise SchemaValidationError("required field is missing", f"{path}.{name}")

        result: dict[str, Any] = {}
        for key, item in value.items():
            node = self.fields.get(key)
            if node is None:
                result[key] = item
            elif item is None and key not in self.required:
                continue
            else:
                result[key] = node.validate(item, f"{path}.{key}")
        return result

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {name: node.to_json_schema() for name, node in self.fields.items()},
        }
        if self.required:
            schema["required"] = list(self.required)
        if self.open:
            schema["additionalProperties"] = True
        return self._with_description(schema)


# ---------------------------------------------------------------------------
# Adaptation
# ---------------------------------------------------------------------------


def adapt_schema(raw: Any) -> SchemaNode:
    """Translate a foreign schema node. Never raises."""
    if not isinstance(raw, dict):
        return AnySchema()

    description = raw.get("description")
    if not isinstance(description, str):
        description = None

    kind = raw.get("type")
    if kind is None and isinstance(raw.get("properties"), dict):
        kind = "object"

    if kind == "string":
        return StringSchema(description=description)
    if kind == "number":
        return NumberSchema(description=description)
    if kind == "integer":
        return NumberSchema(description=description, integer=True)
    if kind == "boolean":
        return BooleanSchema(description=description)
    if kind == "array":
        items = adapt_schema(raw["items"]) if "items" in raw else AnySchema()
        return ArraySchema(description=description, items=items)
    if kind == "object":
        return _adapt_object(raw, description)
    return AnySchema(description=description)


def _adapt_object(raw: dict[str, Any], description: str | None) -> ObjectSchema:
    properties = raw.get("properties")
    if not isinstance(properties, dict) or not properties:
        return ObjectSchema(description=description, open=True)

    fields = {
        name: adapt_schema(node)
        for name, node in properties.items()
        if isinstance(name, str)
    }
    required_raw = raw.get("required")
    required: tuple[str, ...] = ()
    if isinstance(required_raw, list):
        required = tuple(
            name for name in dict.fromkeys(required_raw)
            if isinstance(name, str) and name in fields
        )
    return ObjectSchema(description=description, fields=fields, required=required)


def adapt_input_schema(raw: Any) -> ObjectSchema:
    """
    Translate a tool's top-level input schema.

    Tool arguments are always an object; a schema that does not adapt to
    one becomes an open record.
    """
    node = adapt_schema(raw)
    if isinstance(node, ObjectSchema):
        return node
    return ObjectSchema(description=node.description, open=True)


# ---------------------------------------------------------------------------
# Capability descriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapabilityDescriptor:
    """A capability discovered on an external tool server."""

    name: str
    description: str
    input_schema: ObjectSchema
    server_id: str
    server_name: str = ""
    raw_schema: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def qualified_name(self) -> str:
        return qualify_tool_name(self.server_id, self.name)

    def validate_arguments(self, arguments: Any) -> dict[str, Any]:
        return self.input_schema.validate(arguments)

    @classmethod
    def from_tool_info(
        cls, server_id: str, server_name: str, tool: dict[str, Any],
    ) -> CapabilityDescriptor:
        """Build a descriptor from a discovered ``{name, description, inputSchema}``."""
        raw_schema = tool.get("inputSchema")
        if not isinstance(raw_schema, dict):
            raw_schema = {}
        return cls(
            name=tool["name"],
            description=tool.get("description") or f"Tool from {server_name or server_id}",
            input_schema=adapt_input_schema(raw_schema),
            server_id=server_id,
            server_name=server_name,
            raw_schema=raw_schema,
        )
