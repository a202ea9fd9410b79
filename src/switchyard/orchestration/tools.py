"""Tool execution boundary used by tool_execution steps."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.types import ToolCall, ToolResult

logger = logging.getLogger(__name__)

ToolFunction = Callable[..., Awaitable[Any] | Any]


class ToolExecutor(ABC):
    """Runs a tool call a model asked for"""

    @abstractmethod
    async def execute(
        self, tool_call: ToolCall, execution_context: dict[str, Any] | None = None
    ) -> ToolResult:
        """Execute *tool_call*; failures are reported in the ToolResult"""


class FunctionToolExecutor(ToolExecutor):
    """
    ToolExecutor backed by plain Python callables.

    Each registered function is called with the tool call's arguments as
    keyword arguments; coroutine functions are awaited.
    """

    def __init__(self, functions: dict[str, ToolFunction] | None = None) -> None:
        self.functions: dict[str, ToolFunction] = dict(functions or {})

    def register(self, name: str, func: ToolFunction) -> None:
        self.functions[name] = func

    async def execute(
        self, tool_call: ToolCall, execution_context: dict[str, Any] | None = None
    ) -> ToolResult:
        func = self.functions.get(tool_call.name)
        if func is None:
            return ToolResult(tool_call.id, f"Unknown tool: {tool_call.name}", is_error=True)
        try:
            result = func(**tool_call.arguments)
            if asyncio.iscoroutine(result):
                result = await result
            return ToolResult(tool_call.id, result)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool_call.name, e)
            return ToolResult(tool_call.id, str(e), is_error=True)
