"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from todo_ai import config
from todo_ai.api.health import health_router
from todo_ai.api.todos import todos_router
from todo_ai.llm.agent import build_provider
from todo_ai.llm.dispatcher import Dispatcher
from todo_ai.llm.router import router as ai_router
from todo_ai.llm.tools import ToolRegistry
from todo_ai.tools.executor import CommandExecutor
from todo_ai.tools.store import TodoStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_registry() -> ToolRegistry:
    """Pre-generated tools JSON if configured, otherwise the OpenAPI description."""
    if config.TOOLS_JSON_PATH:
        return ToolRegistry.from_tools_json(config.TOOLS_JSON_PATH)
    return ToolRegistry.from_openapi(config.OPENAPI_PATH)


def reload_registry(app: FastAPI, registry: Optional[ToolRegistry] = None) -> ToolRegistry:
    """Swap in a new registry and the dispatcher bound to it.

    In-flight requests keep the dispatcher they already resolved.
    """
    if registry is None:
        registry = load_registry()
    settings = config.load_ai_settings()
    app.state.dispatcher = Dispatcher(
        registry,
        build_provider(settings),
        config.SYSTEM_PROMPT,
        timeout=settings.timeout,
    )
    app.state.registry = registry
    logger.info(f"[STARTUP] Registry ready with tools: {registry.names()}")
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = TodoStore(config.DB_NAME)
    app.state.executor = CommandExecutor(app.state.store)
    reload_registry(app)
    if not config.AI_API_KEY:
        logger.warning("[STARTUP] AI_API_KEY / GEMINI_API_KEY not set; Ask AI requests will fail")
    yield
    app.state.store.close()


app = FastAPI(title="Todo AI API", version="1.0.0", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_router)
app.include_router(ai_router)
app.include_router(todos_router)


def run():
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)


if __name__ == "__main__":
    run()
