"""Research planner agent.

Helps the user shape a web research plan through conversation, with tools
to store, list and delete plans. Each user turn runs a tool loop: the model
may request tools, their results are appended to the history, and the model
is called again until it answers without requesting tools.

Example:
    >>> agent = ResearchPlannerAgent(manager, renderer, store)
    >>> print(await agent.plan_topic("home battery storage"))
    >>> print(await agent.respond("Limit sources to the last two years"))
    >>> final_plan = await agent.finalize()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.agents.base import Agent
from src.tools.research_plans import research_plan_tools
from src.utils.llm_adapters.base import ChatMessage, ChatOptions, ProviderName

if TYPE_CHECKING:
    from src.utils.llm import ProviderManager
    from src.utils.prompts import PromptRenderer
    from src.utils.storage import ResearchPlanStore

logger = logging.getLogger(__name__)


class ResearchPlannerAgent(Agent):
    """Conversational research planner with research plan tools.

    Example:
        >>> agent = ResearchPlannerAgent(manager, renderer, store, max_tool_rounds=5)
        >>> reply = await agent.respond("I want to research fusion startups")
    """

    def __init__(
        self,
        manager: ProviderManager,
        renderer: PromptRenderer,
        store: ResearchPlanStore,
        model: str | None = None,
        preferred_provider: str | ProviderName | None = None,
        max_tool_rounds: int = 10,
    ) -> None:
        """Create planner with tools bound to a plan store.

        Args:
            manager: Initialized provider manager.
            renderer: Prompt renderer for planner templates.
            store: Research plan store used by the tools.
            model: Default model for requests.
            preferred_provider: Provider tried first for every request.
            max_tool_rounds: Upper bound on model calls per user turn.
        """
        super().__init__(manager, model=model, preferred_provider=preferred_provider)
        self.renderer = renderer
        self.max_tool_rounds = max_tool_rounds
        self.initial_input: str | None = None
        for tool in research_plan_tools(store):
            self.register_tool(tool)
        self.messages = [
            ChatMessage(role="system", content=renderer.render("research_planner_system"))
        ]

    async def plan_topic(self, topic: str) -> str:
        """Generate an initial research plan for a topic.

        Returns:
            Plan text from the model.
        """
        logger.info("Creating research plan for topic: %s", topic)
        self.initial_input = self.initial_input or topic

        prompt = self.renderer.render("research_planner_topic", {"topic": topic})
        self.messages.append(ChatMessage(role="user", content=prompt))

        response = await self.chat_completion(self.messages)
        self.messages.append(response.to_message())
        return response.content

    async def respond(self, user_input: str) -> str:
        """Handle one user turn, executing tool calls until the model answers.

        Args:
            user_input: User message.

        Returns:
            Final assistant text for this turn.
        """
        self.initial_input = self.initial_input or user_input
        self.messages.append(ChatMessage(role="user", content=user_input))
        options = ChatOptions(tool_choice="auto")

        content = ""
        for round_number in range(1, self.max_tool_rounds + 1):
            response = await self.chat_completion_with_tools(
                self.messages, self.tool_definitions(), options
            )
            self.messages.append(response.to_message())
            content = response.content

            if not response.tool_calls:
                return content

            logger.debug(
                "Round %d: executing %d tool calls", round_number, len(response.tool_calls)
            )
            for call in response.tool_calls:
                output = await self.execute_tool_call(call)
                self.messages.append(
                    ChatMessage(
                        role="tool",
                        content=output,
                        tool_call_id=call.id,
                        name=call.function.name,
                    )
                )

        logger.warning("Tool loop stopped after %d rounds", self.max_tool_rounds)
        return content

    async def finalize(self) -> str:
        """Ask the model for the final plan only.

        Returns:
            Final research plan text.
        """
        prompt = self.renderer.render("research_planner_final")
        self.messages.append(ChatMessage(role="user", content=prompt))

        response = await self.chat_completion(self.messages)
        self.messages.append(response.to_message())
        logger.info("Research plan finalized")
        return response.content
