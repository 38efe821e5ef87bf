"""Router for the Ask AI endpoint."""
import logging
import sqlite3
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from todo_ai.llm.dispatcher import Dispatcher
from todo_ai.llm.tools import ToolRegistry
from todo_ai.tools.executor import CommandExecutor
from todo_ai.tools.store import TodoNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai"])

EXECUTION_FAILED_MESSAGE = "I understood the request, but couldn't complete it."


class AskAiRequest(BaseModel):
    query: str
    execute: bool = False


class AskAiResponse(BaseModel):
    response: str
    success: bool
    selectedTool: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    result: Optional[Any] = None


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def get_executor(request: Request) -> CommandExecutor:
    return request.app.state.executor


@router.post("/ask-ai", response_model=AskAiResponse, response_model_exclude_none=True)
async def ask_ai(
    request: AskAiRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
    executor: CommandExecutor = Depends(get_executor),
):
    """Pick a tool for the query; optionally run it when the client asks to."""
    outcome = await dispatcher.dispatch(request.query)
    response = AskAiResponse(**outcome.to_json())
    if not (request.execute and outcome.success):
        return response

    if not executor.supports(outcome.selectedTool):
        logger.error(f"[ASK AI] No handler for tool {outcome.selectedTool!r}")
        return AskAiResponse(response=EXECUTION_FAILED_MESSAGE, success=False)

    try:
        result = await run_in_threadpool(executor.execute, outcome.selectedTool, outcome.parameters or {})
    except TodoNotFound as e:
        logger.warning(f"[ASK AI] {outcome.selectedTool} failed: {e}")
        return AskAiResponse(response="I couldn't find that todo.", success=False)
    except sqlite3.Error as e:
        logger.error(f"[ASK AI] {outcome.selectedTool} failed in the store: {type(e).__name__}: {e}")
        return AskAiResponse(response=EXECUTION_FAILED_MESSAGE, success=False)
    response.result = jsonable_encoder(result)
    return response


@router.get("/openapi-tools")
async def list_tools(registry: ToolRegistry = Depends(get_registry)) -> Dict[str, List[Dict[str, Any]]]:
    """Tool definitions currently offered to the model."""
    return {"tools": [tool.as_dict() for tool in registry]}
