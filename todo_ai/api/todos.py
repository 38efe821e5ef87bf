# api/todos.py

import logging
from typing import Any, Dict, List, Literal, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from todo_ai.tools.store import Todo, TodoNotFound, TodoStore

todos_router = APIRouter(prefix="/api/todos", tags=["todos"])
logger = logging.getLogger(__name__)


class CreateTodoRequest(BaseModel):
    text: str


class UpdateTodoRequest(BaseModel):
    text: Optional[str] = None
    completed: Optional[bool] = None


class BatchDeleteRequest(BaseModel):
    ids: Union[List[str], Literal["all"]]


class BatchCompleteRequest(BaseModel):
    ids: Union[List[str], Literal["all"]]
    completed: bool


def get_store(request: Request) -> TodoStore:
    return request.app.state.store


@todos_router.get("", response_model=List[Todo])
def list_todos(store: TodoStore = Depends(get_store)):
    return store.list_todos()


@todos_router.post("", response_model=Todo)
def create_todo(request: CreateTodoRequest, store: TodoStore = Depends(get_store)):
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Todo text must not be empty")
    return store.create_todo(request.text)


@todos_router.patch("/{todo_id}", response_model=Todo)
def update_todo(todo_id: str, request: UpdateTodoRequest, store: TodoStore = Depends(get_store)):
    try:
        return store.update_todo(todo_id, completed=request.completed, text=request.text)
    except TodoNotFound:
        raise HTTPException(status_code=404, detail="Todo not found")


@todos_router.delete("/{todo_id}")
def delete_todo(todo_id: str, store: TodoStore = Depends(get_store)):
    try:
        store.delete_todo(todo_id)
    except TodoNotFound:
        raise HTTPException(status_code=404, detail="Todo not found")
    return None


@todos_router.post("/batch/delete")
def delete_todos(request: BatchDeleteRequest, store: TodoStore = Depends(get_store)) -> Dict[str, Any]:
    return store.delete_todos(request.ids)


@todos_router.post("/batch/complete", response_model=List[Todo])
def complete_todos(request: BatchCompleteRequest, store: TodoStore = Depends(get_store)):
    return store.complete_todos(request.ids, request.completed)
