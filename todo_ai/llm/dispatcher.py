"""Dispatch a natural-language query to a validated tool selection.

Querying -> Interpreting -> Validating -> Succeeded | Rejected

Every path ends in a DispatchOutcome; nothing raised inside escapes
``Dispatcher.dispatch``. The selected tool is never executed here.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from todo_ai.llm.agent import ModelProvider, ProviderError
from todo_ai.llm.interpreter import (
    ParseFailure,
    ParsedCandidate,
    ParsedExplanationOnly,
    interpret,
)
from todo_ai.llm.tools import ToolRegistry, tools_catalogue
from todo_ai.llm.validator import ValidationFailure, validate_parameters

logger = logging.getLogger(__name__)

PROVIDER_TROUBLE_MESSAGE = (
    "I apologize, but I'm currently having trouble processing your request. Please try again later."
)
EMPTY_QUERY_MESSAGE = "Please provide a valid query."
NO_TOOL_MESSAGE = "I'm sorry, I can't help with that request."


class DispatchState(str, Enum):
    QUERYING = "querying"
    INTERPRETING = "interpreting"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"


class DispatchOutcome(BaseModel):
    """Safe-to-display result of one query."""
    response: str
    success: bool
    selectedTool: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def render_system_prompt(template: str, registry: ToolRegistry) -> str:
    """Fill the ``{tools}`` placeholder of a prompt template with the tool catalogue."""
    return template.replace("{tools}", tools_catalogue(registry))


def rejected(message: str) -> DispatchOutcome:
    logger.info(f"[DISPATCH] {DispatchState.REJECTED.value}")
    return DispatchOutcome(response=message, success=False)


class Dispatcher:
    """Turns one user query into one DispatchOutcome."""

    def __init__(self, registry: ToolRegistry, provider: ModelProvider, system_prompt: str,
                 timeout: Optional[float] = None):
        self.registry = registry
        self.provider = provider
        self.system_prompt = render_system_prompt(system_prompt, registry)
        self.timeout = timeout

    async def _query_model(self, query: str) -> str:
        try:
            return await asyncio.wait_for(
                self.provider.complete(self.system_prompt, self.registry.all(), query),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Provider call exceeded {self.timeout}s") from e
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Provider call failed: {type(e).__name__}") from e

    async def dispatch(self, query: str) -> DispatchOutcome:
        state = DispatchState.QUERYING
        try:
            if not isinstance(query, str) or not query.strip():
                logger.info("[DISPATCH] Rejected empty query")
                return rejected(EMPTY_QUERY_MESSAGE)
            query = query.strip()

            logger.info(f"[DISPATCH] {state.value}: query_len={len(query)} tools={len(self.registry)}")
            try:
                raw_text = await self._query_model(query)
            except ProviderError as e:
                logger.error(f"[DISPATCH] Provider error: {e}")
                return rejected(PROVIDER_TROUBLE_MESSAGE)

            state = DispatchState.INTERPRETING
            interpretation = interpret(raw_text)
            if isinstance(interpretation, ParseFailure):
                logger.warning(f"[DISPATCH] {state.value}: parse failure ({interpretation.reason})")
                return rejected(interpretation.message)
            if isinstance(interpretation, ParsedExplanationOnly):
                logger.info(f"[DISPATCH] {state.value}: model chose no tool")
                return rejected(interpretation.explanation or NO_TOOL_MESSAGE)
            candidate: ParsedCandidate = interpretation

            state = DispatchState.VALIDATING
            try:
                parameters = validate_parameters(
                    candidate.tool_name, candidate.parameters, self.registry
                )
            except ValidationFailure as e:
                logger.warning(f"[DISPATCH] {state.value}: {type(e).__name__}: {e}")
                return rejected(e.user_message)

            state = DispatchState.SUCCEEDED
            logger.info(f"[DISPATCH] {state.value}: selected {candidate.tool_name}")
            return DispatchOutcome(
                response=candidate.explanation or f"Running {candidate.tool_name}.",
                success=True,
                selectedTool=candidate.tool_name,
                parameters=parameters,
            )
        except Exception as e:
            logger.error(f"[DISPATCH] Unexpected error while {state.value}: {e}", exc_info=True)
            return rejected(PROVIDER_TROUBLE_MESSAGE)
