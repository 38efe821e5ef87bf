"""Validate a model-selected tool call against the registry's schemas.

Validation is fail-fast: rules are applied in a fixed order and the first
violation is raised, so the same bad call always produces the same error.

1. the tool exists in the registry
2. every required parameter is present (schema order)
3. every supplied parameter is declared (supplied order)
4. every supplied value matches its declared type, enum and array item type
   (supplied order)
"""
import logging
from typing import Any, Dict, List

from todo_ai.llm.tools import PRIMITIVE_TYPES, ParameterProperty, ToolRegistry

logger = logging.getLogger(__name__)


class ValidationFailure(Exception):
    """Base class for rejected tool calls. ``user_message`` is safe to display."""

    user_message = "I couldn't carry out that request. Could you try rephrasing it?"


class UnknownTool(ValidationFailure):
    user_message = "I'm sorry, I can't perform that action. Could you try asking in a different way?"

    def __init__(self, name: Any):
        self.name = name
        super().__init__(f"Unknown tool: {name!r}")


class MissingParameter(ValidationFailure):
    def __init__(self, tool: str, name: str):
        self.tool = tool
        self.name = name
        super().__init__(f"Missing required parameter {name!r} for tool {tool!r}")

    @property
    def user_message(self) -> str:
        return f"I need a bit more information to do that: please tell me the {self.name}."


class UnknownParameter(ValidationFailure):
    user_message = "I couldn't work out the details of that request. Could you try rephrasing it?"

    def __init__(self, tool: str, key: str):
        self.tool = tool
        self.key = key
        super().__init__(f"Unknown parameter {key!r} for tool {tool!r}")


class TypeMismatch(ValidationFailure):
    def __init__(self, tool: str, key: str, expected: str, actual: Any):
        self.tool = tool
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Parameter {key!r} of tool {tool!r} expected {expected}, got {type(actual).__name__}"
        )

    @property
    def user_message(self) -> str:
        return f"The {self.key} in that request doesn't look right. Could you try rephrasing it?"


def matches_type(value: Any, expected: str) -> bool:
    """Runtime check of a JSON value against a JSON-schema primitive type."""
    if expected == "string":
        return isinstance(value, str)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "object":
        return isinstance(value, dict)
    return False


def _describe(alternatives: List[Dict[str, Any]]) -> str:
    parts = []
    for alt in alternatives:
        items = alt.get("items")
        if alt.get("enum"):
            parts.append(f"{alt['type']} one of {alt['enum']}")
        elif alt["type"] == "array" and isinstance(items, dict) and items.get("type"):
            parts.append(f"array of {items['type']}")
        else:
            parts.append(alt["type"])
    return " or ".join(parts)


def _matches_alternative(value: Any, alt: Dict[str, Any]) -> bool:
    if not matches_type(value, alt["type"]):
        return False
    allowed = alt.get("enum")
    if allowed and value not in allowed:
        return False
    items = alt.get("items")
    if alt["type"] == "array" and isinstance(items, dict) and items.get("type") in PRIMITIVE_TYPES:
        return all(_matches_alternative(item, items) for item in value)
    return True


def _check_value(tool: str, key: str, prop: ParameterProperty, value: Any) -> None:
    alternatives = prop.declared_types()
    if not alternatives:
        return
    if any(_matches_alternative(value, alt) for alt in alternatives):
        return
    raise TypeMismatch(tool, key, _describe(alternatives), value)


def validate_parameters(tool_name: Any, parameters: Dict[str, Any], registry: ToolRegistry) -> Dict[str, Any]:
    """Return a copy of ``parameters`` if they satisfy the tool's schema, else raise."""
    tool = registry.find(tool_name)
    if tool is None:
        raise UnknownTool(tool_name)

    schema = tool.parameters
    for name in schema.required:
        if name not in parameters:
            raise MissingParameter(tool.name, name)

    for key in parameters:
        if key not in schema.properties:
            raise UnknownParameter(tool.name, key)

    for key, value in parameters.items():
        _check_value(tool.name, key, schema.properties[key], value)

    logger.debug(f"[VALIDATE] {tool.name} accepted parameters {sorted(parameters)}")
    return dict(parameters)
