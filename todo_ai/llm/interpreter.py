"""Parse raw model output into a tool selection.

Model output is untrusted text. It is decoded into exactly one of three
variants, which the dispatcher handles exhaustively:

- ``ParsedCandidate``: the model named a tool and supplied parameters. The
  parameters have only been shape-checked; they still go through validation.
- ``ParsedExplanationOnly``: the model said no tool applies (``"tool": null``).
  The explanation is used as display text only.
- ``ParseFailure``: anything else. The raw text is never surfaced.
"""
import json
import logging
import re
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError, field_validator

logger = logging.getLogger(__name__)

REPHRASE_MESSAGE = (
    "I apologize, but I'm having trouble understanding how to help with that specific request. "
    "Could you try rephrasing it?"
)

_FENCE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class _ToolCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: StrictStr
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("tool name is blank")
        return v

    @field_validator("parameters", mode="before")
    @classmethod
    def _parameters_is_object(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("parameters must be an object")
        return v


class _ModelReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tool: Optional[_ToolCall]
    explanation: StrictStr = ""


class ParsedCandidate(BaseModel):
    kind: Literal["candidate"] = "candidate"
    tool_name: str
    parameters: Dict[str, Any]
    explanation: str = ""


class ParsedExplanationOnly(BaseModel):
    kind: Literal["explanation_only"] = "explanation_only"
    explanation: str


class ParseFailure(BaseModel):
    kind: Literal["parse_failure"] = "parse_failure"
    message: str = REPHRASE_MESSAGE
    reason: str = ""


Interpretation = Union[ParsedCandidate, ParsedExplanationOnly, ParseFailure]


def strip_code_fence(text: str) -> str:
    """Remove one Markdown code fence wrapping the whole reply, if present."""
    match = _FENCE.match(text)
    return match.group(1) if match else text


def interpret(raw_text: Any) -> Interpretation:
    """Decode raw completion text into a tagged interpretation. Never raises."""
    if not isinstance(raw_text, str) or not raw_text.strip():
        return ParseFailure(reason="empty reply")

    try:
        payload = json.loads(strip_code_fence(raw_text))
    except (json.JSONDecodeError, RecursionError):
        logger.warning(f"[INTERPRET] Reply is not valid JSON ({len(raw_text)} chars)")
        logger.debug(f"[INTERPRET] Raw reply: {raw_text[:500]}")
        return ParseFailure(reason="invalid json")

    if not isinstance(payload, dict) or "tool" not in payload:
        logger.warning("[INTERPRET] Reply JSON does not have the expected shape")
        return ParseFailure(reason="unexpected shape")

    try:
        reply = _ModelReply.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"[INTERPRET] Reply JSON failed shape validation: {e.error_count()} errors")
        return ParseFailure(reason="unexpected shape")

    if reply.tool is None:
        return ParsedExplanationOnly(explanation=reply.explanation)
    return ParsedCandidate(
        tool_name=reply.tool.name,
        parameters=reply.tool.parameters,
        explanation=reply.explanation,
    )
