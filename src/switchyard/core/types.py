"""
Core Type Definitions
=====================

Value types shared between the model backends and the workflow orchestrator.
Tool calls are carried in a neutral shape; no backend's native tool-calling
wire format is reproduced here.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolDeclaration:
    """A tool a workflow step makes available to its model"""
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)  # JSON-schema style


@dataclass
class ToolCall:
    """A tool invocation requested by a model"""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Outcome of one tool invocation"""
    tool_call_id: str
    content: Any = None
    is_error: bool = False


@dataclass
class ModelCapabilities:
    tool_calling: bool = False
    streaming: bool = False
    image_input: bool = False
    max_context: int | None = None

    def supports(self, capability: str) -> bool:
        """Check a capability by its selection-criteria name"""
        return bool(getattr(self, capability, False))


@dataclass
class GenerationResult:
    """Text plus any tool calls a model asked for"""
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
