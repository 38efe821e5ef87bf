"""Environment configuration for the todo AI service."""
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

PACKAGE_DIR = Path(__file__).resolve().parent

# Model provider configuration
AI_PROVIDER = os.getenv("AI_PROVIDER", "openai").lower()
AI_API_KEY = os.getenv("AI_API_KEY") or os.getenv("GEMINI_API_KEY", "")
AI_MODEL = os.getenv("AI_MODEL", "gemini-2.0-flash")
AI_BASE_URL = os.getenv("AI_BASE_URL", "")
AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.0"))
AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "30"))

DEFAULT_BASE_URLS = {
    "openai": "https://generativelanguage.googleapis.com/v1beta/openai",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
}

# Schema source and storage
OPENAPI_PATH = os.getenv("OPENAPI_PATH", str(PACKAGE_DIR / "openapi.yaml"))
TOOLS_JSON_PATH = os.getenv("TOOLS_JSON_PATH", "")
DB_NAME = os.getenv("DB_NAME", "todos.sqlite")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

SYSTEM_PROMPT = """You are an assistant that turns requests about a todo list into API tool calls.
You are given a list of tools. Pick the single tool that fulfils the user's request and fill in its parameters
using only the parameter names the tool declares.

Always answer with JSON only, using exactly this structure:
{
  "tool": {"name": "<tool name>", "parameters": {<parameter name>: <value>}},
  "explanation": "A short, friendly sentence describing what will be done"
}

If no tool can fulfil the request, answer with:
{
  "tool": null,
  "explanation": "A short, friendly sentence explaining why nothing can be done"
}

Available tools:
{tools}"""


class AISettings(BaseModel):
    """Settings needed to talk to a language model provider."""
    provider: str = "openai"
    api_key: str = ""
    model: str = "gemini-2.0-flash"
    base_url: Optional[str] = None
    temperature: float = 0.0
    timeout: float = 30.0

    def resolved_base_url(self) -> str:
        """Base URL for the provider, falling back to the provider default."""
        base = self.base_url or DEFAULT_BASE_URLS.get(self.provider, DEFAULT_BASE_URLS["openai"])
        return base.rstrip("/")


def load_ai_settings() -> AISettings:
    """Build provider settings from the environment."""
    return AISettings(
        provider=AI_PROVIDER,
        api_key=AI_API_KEY,
        model=AI_MODEL,
        base_url=AI_BASE_URL or None,
        temperature=AI_TEMPERATURE,
        timeout=AI_TIMEOUT,
    )
