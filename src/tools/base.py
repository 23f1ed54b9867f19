"""Base class for callable tools.

A tool declares a name, a description and its parameter properties, and
implements execute() taking the JSON-encoded arguments chosen by the model.
Every declared property is required and extra properties are forbidden.

Example:
    >>> class EchoTool(Tool):
    ...     def __init__(self) -> None:
    ...         super().__init__("echo", "Echo text back.", {"text": {"type": "string"}})
    ...     async def execute(self, arguments: str) -> Any:
    ...         return json.loads(arguments)
    >>> EchoTool().schema()["parameters"]["required"]
    ['text']
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.utils.llm_adapters.base import ToolDefinition


class Tool(ABC):
    """Named, schema-described function callable by a model."""

    def __init__(self, name: str, description: str, parameters: dict[str, Any]) -> None:
        """Initialize tool metadata.

        Args:
            name: Function name, unique within an agent.
            description: What the tool does, shown to the model.
            parameters: JSON schema properties keyed by parameter name.
        """
        self.name = name
        self.description = description
        self.parameters = parameters

    def definition(self) -> ToolDefinition:
        """Return the tool descriptor consumed by provider adapters."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": dict(self.parameters),
                "required": list(self.parameters),
                "additionalProperties": False,
            },
        )

    def schema(self) -> dict[str, Any]:
        """Return the function declaration {name, description, parameters}."""
        return self.definition().to_dict()

    @abstractmethod
    async def execute(self, arguments: str) -> Any:
        """Run the tool.

        Args:
            arguments: JSON-encoded arguments from the model.

        Returns:
            JSON-serializable result.
        """
        ...
