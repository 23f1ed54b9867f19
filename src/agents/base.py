"""Agent base class.

Agents keep a conversation history and a registry of tools, and talk to
models only through a ProviderManager. A preferred provider, when set,
routes requests through the manager's fallback path.

Example:
    >>> from src.agents.base import Agent
    >>> agent = Agent(manager, preferred_provider="claude")
    >>> agent.register_tool(my_tool)
    >>> response = await agent.chat_completion_with_tools(
    ...     agent.messages, agent.tool_definitions()
    ... )
    >>> for call in response.tool_calls or []:
    ...     output = await agent.execute_tool_call(call)
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ProviderName,
    ToolCall,
    ToolDefinition,
)

if TYPE_CHECKING:
    from src.tools.base import Tool
    from src.utils.llm import ProviderManager

logger = logging.getLogger(__name__)


class Agent:
    """Façade over ProviderManager with tool registration and execution.

    Example:
        >>> agent = Agent(manager, model="gpt-4o")
        >>> response = await agent.chat_completion([ChatMessage("user", "Hi")])
    """

    def __init__(
        self,
        manager: ProviderManager,
        model: str | None = None,
        preferred_provider: str | ProviderName | None = None,
    ) -> None:
        """Create agent bound to a provider manager.

        Args:
            manager: Initialized provider manager.
            model: Default model applied when request options name none.
            preferred_provider: Provider tried first for every request.
        """
        self.manager = manager
        self.model = model
        self.preferred_provider = preferred_provider
        self.messages: list[ChatMessage] = []
        self.tools: dict[str, Tool] = {}

    def register_tool(self, tool: Tool) -> None:
        """Add a tool; a tool with the same name is replaced."""
        self.tools[tool.name] = tool

    def tool_definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self.tools.values()]

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat request through the manager.

        Raises:
            NoAvailableProviderError: Preferred and fallback providers failed.
            ProviderError: Any other provider failure without a preference.
        """
        request_options = self._with_model(options)
        if self.preferred_provider:
            return await self.manager.switch_provider_with_fallback(
                self.preferred_provider, messages, None, request_options
            )
        return await self.manager.chat_completion(messages, request_options)

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a tool-enabled chat request through the manager.

        Raises:
            NoAvailableProviderError: Preferred and fallback providers failed.
            ProviderError: Any other provider failure without a preference.
        """
        request_options = self._with_model(options)
        if self.preferred_provider:
            return await self.manager.switch_provider_with_fallback(
                self.preferred_provider, messages, tools, request_options
            )
        return await self.manager.chat_completion_with_tools(messages, tools, request_options)

    async def execute_tool_call(self, call: ToolCall) -> str:
        """Run a tool call requested by the model.

        Never raises: unknown tools and tool failures are reported as text
        so the conversation can continue.

        Args:
            call: Normalized tool call.

        Returns:
            JSON-encoded tool result, or a description of the failure.
        """
        name = call.function.name
        arguments = call.function.arguments

        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool: %s", name)
            return f"Unknown tool: {name}"

        logger.info("Calling %s with arguments: %s", name, arguments)
        try:
            result = await tool.execute(arguments)
            return json.dumps(result)
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return f"Error calling {name}: {e}"

    def set_preferred_provider(self, name: str | ProviderName) -> None:
        """Prefer a provider for subsequent requests if it is available."""
        if self.manager.is_provider_available(name):
            self.preferred_provider = ProviderName.parse(name)
            logger.info("Agent now prefers %s provider", self.preferred_provider)
        else:
            logger.warning("Provider %s is not available", name)

    def available_providers(self) -> list[ProviderName]:
        return self.manager.available_providers()

    def _with_model(self, options: ChatOptions | None) -> ChatOptions:
        options = options or ChatOptions()
        if options.model is None and self.model:
            return replace(options, model=self.model)
        return options
