"""Language model providers used to pick a tool for a user query."""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from todo_ai.config import AISettings
from todo_ai.llm.tools import ToolSchema, to_gemini_declaration, to_openai_tool

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The model provider could not produce a completion."""


UNREADABLE_FUNCTION_CALL = "<unreadable function call>"


def render_function_call(name: Any, arguments: Any) -> str:
    """Render a native function call as the JSON text the interpreter expects.

    Arguments that are not a JSON object yield text the interpreter rejects;
    they are never repaired here.
    """
    if arguments is None:
        arguments = {}
    elif isinstance(arguments, str):
        if not arguments.strip():
            arguments = {}
        else:
            try:
                arguments = json.loads(arguments)
            except (ValueError, RecursionError):
                logger.warning("[PROVIDER] Function call arguments are not valid JSON")
                return UNREADABLE_FUNCTION_CALL
    if not isinstance(arguments, dict):
        logger.warning("[PROVIDER] Function call arguments are not a JSON object")
        return UNREADABLE_FUNCTION_CALL
    return json.dumps({"tool": {"name": name, "parameters": arguments}, "explanation": ""})


class ModelProvider(ABC):
    """Completes one chat turn given a system prompt, tool declarations and a user query."""

    def __init__(self, settings: AISettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def name(self) -> str:
        return self.settings.provider

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport)

    @abstractmethod
    async def complete(self, system: str, tools: List[ToolSchema], query: str) -> str:
        """Return the raw text of the top completion. Raises ProviderError."""

    async def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None,
                    params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if not self.settings.api_key:
            raise ProviderError("AI API key not configured")
        try:
            async with self._client() as client:
                logger.info(f"[PROVIDER] {self.name} request model={self.settings.model} tools={len(payload.get('tools', []))}")
                response = await client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} request timed out: {e.__class__.__name__}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e.__class__.__name__}: {e}") from e

        if response.status_code == 429:
            logger.warning(f"[PROVIDER] {self.name} rate limited. Retry-After: {response.headers.get('Retry-After', 'n/a')}")
        if not response.is_success:
            body_preview = response.text[:500]
            raise ProviderError(f"{self.name} returned HTTP {response.status_code}: {body_preview}")
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{self.name} returned an unexpected body")
        return data


class OpenAICompatibleProvider(ModelProvider):
    """Chat completions endpoint (OpenAI, or Gemini through its OpenAI-compatible API)."""

    async def complete(self, system: str, tools: List[ToolSchema], query: str) -> str:
        payload: Dict[str, Any] = {
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": query},
            ],
        }
        if tools:
            payload["tools"] = [to_openai_tool(tool) for tool in tools]
        data = await self._post(
            f"{self.settings.resolved_base_url()}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.settings.api_key}"},
        )

        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise ProviderError("No choices returned by provider")
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise ProviderError("No message in provider response")
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            logger.info(f"[PROVIDER] Response chars={len(content)}")
            return content

        tool_calls = message.get("tool_calls") or []
        if tool_calls and isinstance(tool_calls[0], dict):
            function = tool_calls[0].get("function") or {}
            logger.info(f"[PROVIDER] Response is a function call to {function.get('name')!r}")
            return render_function_call(function.get("name"), function.get("arguments"))

        raise ProviderError("No response content from provider")


class GeminiProvider(ModelProvider):
    """Native Gemini ``generateContent`` endpoint."""

    async def complete(self, system: str, tools: List[ToolSchema], query: str) -> str:
        payload: Dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": query}],
                }
            ],
            "generationConfig": {"temperature": self.settings.temperature},
        }
        if tools:
            payload["tools"] = [{"functionDeclarations": [to_gemini_declaration(tool) for tool in tools]}]
        data = await self._post(
            f"{self.settings.resolved_base_url()}/models/{self.settings.model}:generateContent",
            payload,
            params={"key": self.settings.api_key},
        )

        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            raise ProviderError("No candidates returned by Gemini")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            call = part.get("functionCall") if isinstance(part, dict) else None
            if isinstance(call, dict):
                logger.info(f"[PROVIDER] Gemini response is a function call to {call.get('name')!r}")
                return render_function_call(call.get("name"), call.get("args") or {})
        text = "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict))
        if not text.strip():
            raise ProviderError("No response content from Gemini")
        logger.info(f"[PROVIDER] Gemini response chars={len(text)}")
        return text


PROVIDERS = {
    "openai": OpenAICompatibleProvider,
    "gemini": GeminiProvider,
}


def build_provider(settings: AISettings, transport: Optional[httpx.AsyncBaseTransport] = None) -> ModelProvider:
    """Instantiate the provider named by ``settings.provider``."""
    try:
        provider_cls = PROVIDERS[settings.provider]
    except KeyError:
        raise ValueError(f"Unknown AI provider: {settings.provider!r} (expected one of {sorted(PROVIDERS)})")
    return provider_cls(settings, transport=transport)
