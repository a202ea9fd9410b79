"""
Model Backends - execution handles for selected models

The orchestrator talks to models only through ModelHandle. OllamaModelHandle
is the bundled adapter over Ollama's /api/chat; other transports plug in by
implementing ModelHandle and ModelProvider.
"""

import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from ..core.exceptions import ModelNotAvailableError
from ..core.types import GenerationResult, ModelCapabilities, ToolCall, ToolDeclaration

logger = logging.getLogger(__name__)


class ModelHandle(ABC):
    """Execution handle for one model"""

    name: str

    @abstractmethod
    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        """Generate a plain completion for *prompt*"""

    @abstractmethod
    async def generate_with_tools(
        self,
        prompt: str,
        tools: list[ToolDeclaration],
        options: dict[str, Any] | None = None,
    ) -> GenerationResult:
        """Generate a completion that may request tool calls"""

    @abstractmethod
    def get_capabilities(self) -> ModelCapabilities:
        """Report what this model supports"""


class ModelProvider(ABC):
    """Resolves candidate names to execution handles"""

    @abstractmethod
    async def get_model(self, name: str) -> ModelHandle | None:
        """Return a handle for *name*, or None when it cannot be run"""


class OllamaModelHandle(ModelHandle):
    """ModelHandle over an Ollama daemon's chat API"""

    def __init__(
        self,
        name: str,
        base_url: str = "http://localhost:11434",
        timeout_seconds: int = 120,
        capabilities: ModelCapabilities | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._capabilities = capabilities or ModelCapabilities(tool_calling=True, streaming=True)
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post_json(self, endpoint: str, payload: dict) -> tuple[int, Any]:
        """POST *payload*; return (status, parsed body) or (status, error text)."""
        session = await self._get_session()
        async with session.post(f"{self.base_url}{endpoint}", json=payload) as response:
            if response.status == 200:
                return response.status, await response.json()
            return response.status, await response.text()

    def _build_payload(
        self,
        prompt: str,
        options: dict[str, Any] | None,
        tools: list[ToolDeclaration] | None = None,
    ) -> dict[str, Any]:
        options = dict(options or {})
        messages: list[dict[str, Any]] = []
        system_prompt = options.pop("system_prompt", None)
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        model_options: dict[str, Any] = {}
        if "max_tokens" in options:
            model_options["num_predict"] = options["max_tokens"]
        if "temperature" in options:
            model_options["temperature"] = options["temperature"]

        payload: dict[str, Any] = {
            "model": self.name,
            "messages": messages,
            "stream": False,
            "options": model_options,
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.parameters or {"type": "object", "properties": {}},
                    },
                }
                for tool in tools
            ]
        return payload

    async def _chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        start_time = time.perf_counter()
        status, data = await self._post_json("/api/chat", payload)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if status != 200:
            logger.error("Ollama chat for %s failed: HTTP %s", self.name, status)
            raise ModelNotAvailableError(
                f"Ollama returned HTTP {status} for {self.name}: {data}",
                details={"model": self.name, "status": status},
            )
        logger.debug("Ollama chat for %s took %.0fms", self.name, elapsed_ms)
        return data.get("message", {})

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        message = await self._chat(self._build_payload(prompt, options))
        return message.get("content", "")

    async def generate_with_tools(
        self,
        prompt: str,
        tools: list[ToolDeclaration],
        options: dict[str, Any] | None = None,
    ) -> GenerationResult:
        message = await self._chat(self._build_payload(prompt, options, tools))
        return GenerationResult(
            text=message.get("content", ""),
            tool_calls=self._normalize_tool_calls(message.get("tool_calls")),
        )

    def get_capabilities(self) -> ModelCapabilities:
        return self._capabilities

    @staticmethod
    def _normalize_tool_calls(raw_tool_calls: Any) -> list[ToolCall]:
        """Convert Ollama/OpenAI-style tool call entries to ToolCall objects."""
        if not isinstance(raw_tool_calls, list):
            return []

        calls: list[ToolCall] = []
        for raw in raw_tool_calls:
            if not isinstance(raw, dict):
                continue
            function = raw.get("function") if isinstance(raw.get("function"), dict) else raw
            name = function.get("name")
            if not name:
                continue
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"input": arguments}
            calls.append(
                ToolCall(
                    id=raw.get("id") or f"call_{uuid.uuid4().hex[:8]}",
                    name=name,
                    arguments=arguments if isinstance(arguments, dict) else {},
                )
            )
        return calls


class OllamaModelProvider(ModelProvider):
    """Hands out OllamaModelHandles for models the daemon has pulled"""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        timeout_seconds: int = 120,
        tags_ttl_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.tags_ttl_seconds = tags_ttl_seconds
        self._handles: dict[str, OllamaModelHandle] = {}
        self._session: aiohttp.ClientSession | None = None
        self._pulled: set[str] | None = None
        self._pulled_at = 0.0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    async def list_models(self) -> list[str]:
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}/api/tags") as response:
                if response.status == 200:
                    data = await response.json()
                    names = [m["name"] for m in data.get("models", [])]
                    self._pulled = set(names)
                    self._pulled_at = time.monotonic()
                    return names
        except aiohttp.ClientError as e:
            logger.error("Failed to list Ollama models: %s", e)
        return []

    async def _pulled_models(self) -> set[str]:
        """Pulled model names, refreshed from /api/tags at most once per TTL"""
        if self._pulled is not None and time.monotonic() - self._pulled_at < self.tags_ttl_seconds:
            return self._pulled
        return set(await self.list_models())

    async def get_model(self, name: str) -> ModelHandle | None:
        if name in self._handles:
            return self._handles[name]
        if name not in await self._pulled_models():
            logger.warning("Model %s is not pulled in Ollama", name)
            return None
        handle = OllamaModelHandle(
            name,
            base_url=self.base_url,
            timeout_seconds=self.timeout_seconds,
            session=await self._get_session(),
        )
        self._handles[name] = handle
        return handle

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._handles.clear()
        self._pulled = None
