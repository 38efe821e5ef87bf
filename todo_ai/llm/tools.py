"""Tool schemas and the registry the dispatcher selects from."""
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Any, List, Optional, Literal, Iterator, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

PrimitiveType = Literal["string", "number", "integer", "boolean", "array", "object"]
PRIMITIVE_TYPES = ("string", "number", "integer", "boolean", "array", "object")


class ParameterProperty(BaseModel):
    """Schema of a single tool parameter.

    Unknown JSON-schema keywords (``items``, ``format``, ``default``...) are kept
    so they reach the model unchanged.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    type: Optional[PrimitiveType] = None
    description: Optional[str] = None
    enum: Optional[List[Any]] = None
    one_of: Optional[List[Dict[str, Any]]] = Field(default=None, alias="oneOf")

    def declared_types(self) -> List[Dict[str, Any]]:
        """Typed alternatives a value may match: the property itself or its oneOf branches."""
        if self.type:
            return [{"type": self.type, "enum": self.enum, "items": (self.model_extra or {}).get("items")}]
        return [branch for branch in (self.one_of or []) if branch.get("type") in PRIMITIVE_TYPES]


class ParameterSchema(BaseModel):
    """Object schema describing all parameters of a tool."""
    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: Dict[str, ParameterProperty] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _required_are_declared(self) -> "ParameterSchema":
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required parameters not declared in properties: {missing}")
        return self


class ToolSchema(BaseModel):
    """Tool definition exposed to the model: one API operation."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: ParameterSchema = Field(default_factory=ParameterSchema)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToolRegistry:
    """Read-only collection of tool definitions with lookup by name.

    A registry is never mutated after construction. Reloading builds a new
    registry and swaps the reference held by the caller.
    """

    def __init__(self, tools: List[ToolSchema]):
        index: Dict[str, ToolSchema] = {}
        for tool in tools:
            if tool.name in index:
                raise ValueError(f"Duplicate tool name in registry: {tool.name}")
            index[tool.name] = tool
        self._tools = tuple(tools)
        self._index = MappingProxyType(index)

    def all(self) -> List[ToolSchema]:
        return list(self._tools)

    def find(self, name: str) -> Optional[ToolSchema]:
        if not isinstance(name, str):
            return None
        return self._index.get(name)

    def names(self) -> List[str]:
        return [tool.name for tool in self._tools]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._index

    def __iter__(self) -> Iterator[ToolSchema]:
        return iter(self._tools)

    @classmethod
    def from_openapi(cls, path: Union[str, Path]) -> "ToolRegistry":
        """Build a registry by normalizing an OpenAPI description file."""
        from todo_ai.llm.openapi import load_openapi, normalize

        tools = normalize(load_openapi(path))
        logger.info(f"[REGISTRY] Loaded {len(tools)} tools from OpenAPI description {path}")
        return cls(tools)

    @classmethod
    def from_tools_json(cls, path: Union[str, Path]) -> "ToolRegistry":
        """Build a registry from a pre-generated ``{"tools": [...]}`` document."""
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
        tools = [ToolSchema.model_validate(item) for item in document.get("tools", [])]
        logger.info(f"[REGISTRY] Loaded {len(tools)} tools from {path}")
        return cls(tools)


def to_openai_tool(tool: ToolSchema) -> Dict[str, Any]:
    """Chat-completions function declaration for a tool."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters.model_dump(mode="json", by_alias=True, exclude_none=True),
        },
    }


def _gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite a JSON schema fragment into the subset Gemini accepts."""
    out: Dict[str, Any] = {}
    for key, value in schema.items():
        if key == "oneOf":
            out["anyOf"] = [_gemini_schema(branch) for branch in value]
        elif key == "properties":
            out["properties"] = {name: _gemini_schema(prop) for name, prop in value.items()}
        elif key == "items" and isinstance(value, dict):
            out["items"] = _gemini_schema(value)
        elif key in ("type", "description", "enum", "required", "format", "anyOf", "nullable"):
            out[key] = value
    return out


def to_gemini_declaration(tool: ToolSchema) -> Dict[str, Any]:
    """Gemini functionDeclaration for a tool. Parameterless tools omit ``parameters``."""
    declaration: Dict[str, Any] = {"name": tool.name, "description": tool.description}
    if tool.parameters.properties:
        declaration["parameters"] = _gemini_schema(
            tool.parameters.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
    return declaration


def tools_catalogue(registry: ToolRegistry) -> str:
    """Tool list rendered as JSON for inclusion in the system prompt."""
    return json.dumps([tool.as_dict() for tool in registry], indent=2)
