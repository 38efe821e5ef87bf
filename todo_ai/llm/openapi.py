"""Convert an OpenAPI description into tool definitions."""
import json
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Set, Tuple, Union

import yaml
from pydantic import ValidationError

from todo_ai.llm.tools import ParameterProperty, ParameterSchema, ToolSchema, PRIMITIVE_TYPES

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


class SchemaSourceError(Exception):
    """The API description could not be read or has the wrong shape."""


def load_openapi(path: Union[str, Path]) -> Dict[str, Any]:
    """Read an OpenAPI description from a YAML or JSON file."""
    path = Path(path)
    if not path.exists():
        raise SchemaSourceError(f"OpenAPI description not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SchemaSourceError(f"Invalid YAML in OpenAPI description {path}: {e}") from e
    if not isinstance(document, dict):
        raise SchemaSourceError(f"OpenAPI description {path} is not a mapping")
    return document


def tool_name(path: str, method: str, operation: Dict[str, Any]) -> str:
    """Operation id if present, else method + path with separators and braces stripped."""
    operation_id = operation.get("operationId")
    if isinstance(operation_id, str) and operation_id.strip():
        return operation_id.strip()
    return f"{method}{path}".replace("/", "").replace("{", "").replace("}", "")


def tool_description(path: str, method: str, operation: Dict[str, Any]) -> str:
    """Description, then summary, then "METHOD path", followed by endpoint metadata lines."""
    text = operation.get("description") or operation.get("summary") or f"{method.upper()} {path}"
    return f"{str(text).strip()}\nEndpoint: {path}\nMethod: {method.upper()}"


def _has_usable_type(schema: Dict[str, Any]) -> bool:
    if schema.get("type") in PRIMITIVE_TYPES:
        return True
    branches = schema.get("oneOf") or schema.get("anyOf") or []
    if not isinstance(branches, list):
        return False
    return any(isinstance(b, dict) and b.get("type") in PRIMITIVE_TYPES for b in branches)


def _build_property(tool: str, name: str, schema: Any, description: Optional[str]) -> Optional[ParameterProperty]:
    """Best-effort property for one parameter; ``None`` when the schema has no usable type."""
    if not isinstance(schema, dict) or not _has_usable_type(schema):
        logger.warning(f"[SCHEMA] Skipping '{name}' of {tool}: no usable schema type")
        return None
    data = dict(schema)
    if "anyOf" in data and "oneOf" not in data:
        data["oneOf"] = data.pop("anyOf")
    if data.get("type") not in PRIMITIVE_TYPES:
        data.pop("type", None)
    if description and not data.get("description"):
        data["description"] = description
    try:
        return ParameterProperty.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[SCHEMA] Skipping '{name}' of {tool}: {e.error_count()} schema errors")
        return None


def _merge_parameters(shared: List[Any], own: List[Any]) -> List[Dict[str, Any]]:
    """Path-level parameters followed by operation parameters; the operation wins per (name, in)."""
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for param in list(shared or []) + list(own or []):
        if not isinstance(param, dict) or not isinstance(param.get("name"), str):
            continue
        merged[(param["name"], param.get("in", ""))] = param
    return list(merged.values())


def _json_body_schema(request_body: Any) -> Optional[Dict[str, Any]]:
    """Schema of the ``application/json`` request body, if the operation has one."""
    node: Any = request_body
    for key in ("content", "application/json", "schema"):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, dict) else None


def build_parameter_schema(tool: str, parameters: List[Dict[str, Any]], request_body: Any) -> ParameterSchema:
    """Merge path/query parameters with JSON body properties.

    Body properties override same-named path/query parameters. Required names
    are deduplicated, and names whose property was skipped are dropped.
    """
    properties: Dict[str, ParameterProperty] = {}
    required: List[str] = []

    for param in parameters:
        name = param["name"]
        description = param.get("description")
        if not isinstance(description, str) or not description:
            description = f"{param.get('in', 'query')} parameter {name}"
        prop = _build_property(tool, name, param.get("schema"), description)
        if prop is None:
            continue
        properties[name] = prop
        if param.get("required"):
            required.append(name)

    body_schema = _json_body_schema(request_body)
    if body_schema:
        body_properties = body_schema.get("properties")
        if not isinstance(body_properties, dict):
            body_properties = {}
        for name, schema in body_properties.items():
            prop = _build_property(tool, name, schema, None)
            if prop is not None:
                properties[name] = prop
        body_required = body_schema.get("required") or []
        if isinstance(body_required, list):
            required.extend(body_required)

    deduped: List[str] = []
    for name in required:
        if name in deduped:
            continue
        if not isinstance(name, str) or name not in properties:
            logger.warning(f"[SCHEMA] Dropping required '{name}' of {tool}: property not declared")
            continue
        deduped.append(name)

    return ParameterSchema(properties=properties, required=deduped)


def normalize(api_description: Dict[str, Any]) -> List[ToolSchema]:
    """Produce one tool definition per operation, in source order.

    Colliding names get a ``_2``, ``_3``... suffix in the order they appear, so
    the same description always yields the same names.
    """
    paths = api_description.get("paths") or {}
    if not isinstance(paths, dict):
        raise SchemaSourceError("OpenAPI description has no 'paths' mapping")

    tools: List[ToolSchema] = []
    used: Set[str] = set()
    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        shared = path_item.get("parameters") or []
        for method, operation in path_item.items():
            if str(method).lower() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            method = method.lower()
            name = tool_name(path, method, operation)
            if name in used:
                suffix = 2
                while f"{name}_{suffix}" in used:
                    suffix += 1
                logger.warning(f"[SCHEMA] Tool name '{name}' already used, renaming {method.upper()} {path} to '{name}_{suffix}'")
                name = f"{name}_{suffix}"
            used.add(name)

            tools.append(ToolSchema(
                name=name,
                description=tool_description(path, method, operation),
                parameters=build_parameter_schema(
                    name,
                    _merge_parameters(shared, operation.get("parameters") or []),
                    operation.get("requestBody"),
                ),
            ))

    logger.info(f"[SCHEMA] Normalized {len(tools)} operations into tools")
    return tools


def to_tools_document(tools: List[ToolSchema]) -> Dict[str, Any]:
    return {"tools": [tool.as_dict() for tool in tools]}


def write_tools_json(tools: List[ToolSchema], path: Union[str, Path]) -> Path:
    """Write the ``{"tools": [...]}`` document used to rebuild a registry without the source schema."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(to_tools_document(tools), f, indent=2)
        f.write("\n")
    return path
