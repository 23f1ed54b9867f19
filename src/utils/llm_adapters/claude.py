"""Anthropic Claude Messages API adapter.

Claude requires system instructions to be passed separately from the
conversation and represents tool use as typed content blocks, so this
adapter relocates system messages and converts tool calls and tool
results to and from those blocks.

Example:
    >>> from src.config import ProviderSettings
    >>> from src.utils.llm_adapters import ChatMessage, ClaudeAdapter
    >>>
    >>> adapter = ClaudeAdapter("sk-ant-...", ProviderSettings())
    >>> await adapter.initialize()
    >>> response = await adapter.chat_completion(
    ...     [
    ...         ChatMessage(role="system", content="Answer briefly."),
    ...         ChatMessage(role="user", content="What is 2+2?"),
    ...     ]
    ... )
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
from anthropic import APITimeoutError, AsyncAnthropic, RateLimitError

from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    FunctionCall,
    ProviderName,
    ResponseMode,
    ResponseUsage,
    ToolCall,
    ToolChoice,
    ToolDefinition,
    forced_tool_name,
    resolve_tool_names,
    split_system_messages,
)
from src.utils.llm_errors import (
    ProviderInitError,
    ProviderRateLimitError,
    ProviderRequestError,
    ProviderTimeoutError,
)

if TYPE_CHECKING:
    from src.config import ProviderSettings

logger = logging.getLogger(__name__)

# Messages API requires max_tokens on every request
DEFAULT_MAX_TOKENS = 4096


class ClaudeAdapter:
    """Adapter for Anthropic Messages API.

    Example:
        >>> adapter = ClaudeAdapter(api_key, settings)
        >>> await adapter.initialize()
    """

    name = ProviderName.CLAUDE
    display_name = "Claude"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    MODELS = [
        "claude-sonnet-4-20250514",
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-haiku-20240307",
    ]

    def __init__(self, api_key: str | None, settings: ProviderSettings | None = None) -> None:
        """Create adapter instance.

        Args:
            api_key: Anthropic API key.
            settings: Provider options bag. Defaults are used if None.
        """
        from src.config import ProviderSettings

        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.default_model = self.settings.model or self.DEFAULT_MODEL
        self.client: AsyncAnthropic | None = None

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Create the client.

        Raises:
            ProviderInitError: If the API key is missing or the client rejects it.
        """
        if not self.is_configured():
            raise ProviderInitError(self.name.value, "CLAUDE_API_KEY not set")

        try:
            client = AsyncAnthropic(
                api_key=self.api_key,
                timeout=float(self.settings.timeout),
                max_retries=self.settings.max_retries,
            )
        except Exception as e:
            raise ProviderInitError(self.name.value, str(e)) from e

        self.client = client
        logger.info("%s provider initialized (model %s)", self.display_name, self.default_model)

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a Messages API request without tools."""
        return await self._complete(messages, None, options or ChatOptions())

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a Messages API request with tools.

        Every tool_use block in the response becomes a ToolCall, in block order.
        """
        return await self._complete(messages, tools, options or ChatOptions())

    def supports_tools(self) -> bool:
        return True

    def supports_image_generation(self) -> bool:
        return False

    def available_models(self) -> list[str]:
        return list(self.MODELS)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _complete(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None,
        options: ChatOptions,
    ) -> ChatResponse:
        client = self._require_client()
        params = self._build_params(messages, tools, options)

        logger.debug(
            "Executing request to %s (%d messages, %d tools)",
            params["model"],
            len(messages),
            len(tools or []),
        )

        try:
            response = await client.messages.create(**params)
        except Exception as e:
            raise self._wrap_error(e) from e

        return self._process_response(response, "tools" if tools is not None else "chat")

    def _build_params(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None,
        options: ChatOptions,
    ) -> dict[str, Any]:
        """Build request parameters, leaving out unset options."""
        system, conversation = split_system_messages(messages)

        params: dict[str, Any] = self.settings.passthrough()
        params.update(
            {
                "model": options.model or self.default_model,
                "max_tokens": (
                    options.max_tokens or self.settings.max_tokens or DEFAULT_MAX_TOKENS
                ),
                "messages": self._convert_messages(conversation, tool_blocks=tools is not None),
                "temperature": (
                    options.temperature
                    if options.temperature is not None
                    else self.settings.temperature
                ),
            }
        )
        if system:
            params["system"] = system
        top_p = options.top_p if options.top_p is not None else self.settings.top_p
        if top_p is not None:
            params["top_p"] = top_p

        if tools is not None:
            params["tools"] = [self._convert_tool(t) for t in tools]
            params["tool_choice"] = self._convert_tool_choice(options.tool_choice)

        return params

    @staticmethod
    def _convert_tool(tool: ToolDefinition) -> dict[str, Any]:
        """Render a ToolDefinition as a Claude tool with input_schema."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": tool.parameters.get("properties") or {},
        }
        required = tool.parameters.get("required")
        if required:
            schema["required"] = list(required)
        return {"name": tool.name, "description": tool.description, "input_schema": schema}

    def _convert_tool_choice(self, tool_choice: ToolChoice | None) -> dict[str, str]:
        """Map tool choice to Claude form, unknown values degrade to auto."""
        name = forced_tool_name(tool_choice)
        if name:
            return {"type": "tool", "name": name}
        if tool_choice is None or tool_choice == "auto":
            return {"type": "auto"}
        if tool_choice == "none":
            return {"type": "none"}
        if tool_choice == "required":
            return {"type": "any"}
        logger.warning("Unsupported tool_choice %r for %s, using auto", tool_choice, self.name)
        return {"type": "auto"}

    @staticmethod
    def _convert_messages(
        messages: list[ChatMessage], tool_blocks: bool = True
    ) -> list[dict[str, Any]]:
        """Render conversation messages in Messages API form.

        With tool_blocks, assistant tool calls become tool_use blocks and
        consecutive tool results are grouped into one user message of
        tool_result blocks. The API rejects those blocks in a request
        without tools, so plain chat renders the same history as text.
        """
        if not tool_blocks:
            return ClaudeAdapter._flatten_tool_history(messages)

        converted: list[dict[str, Any]] = []
        previous_role: str | None = None

        for message in messages:
            if message.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                if previous_role == "tool" and converted:
                    converted[-1]["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            elif message.role == "assistant" and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.function.name,
                            "input": call.parsed_arguments(),
                        }
                    )
                converted.append({"role": "assistant", "content": blocks})
            else:
                converted.append({"role": message.role, "content": message.content})
            previous_role = message.role

        return converted

    @staticmethod
    def _flatten_tool_history(messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Render tool calls and results as plain text turns.

        Tool results and the user turn after them merge into one user message.
        """
        converted: list[dict[str, Any]] = []

        for message, tool_name in zip(messages, resolve_tool_names(messages)):
            role = message.role
            if role == "assistant" and message.tool_calls:
                lines = [message.content] if message.content else []
                for call in message.tool_calls:
                    lines.append(f"[Called {call.function.name}({call.function.arguments})]")
                text = "\n".join(lines)
            elif role == "tool":
                role = "user"
                text = f"[Result of {tool_name or 'tool'}: {message.content}]"
            else:
                text = message.content

            if converted and converted[-1]["role"] == role == "user":
                converted[-1]["content"] += f"\n\n{text}"
            else:
                converted.append({"role": role, "content": text})

        return converted

    def _process_response(self, response: Any, mode: ResponseMode) -> ChatResponse:
        """Extract text, usage and tool_use blocks from the vendor response."""
        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in getattr(response, "content", None) or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                texts.append(block.text)
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id,
                        function=FunctionCall(name=block.name, arguments=json.dumps(block.input)),
                    )
                )

        usage = ResponseUsage()
        usage_obj = getattr(response, "usage", None)
        if usage_obj is not None:
            input_tokens = getattr(usage_obj, "input_tokens", 0) or 0
            output_tokens = getattr(usage_obj, "output_tokens", 0) or 0
            usage = ResponseUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            )

        logger.debug(
            "Response received: model=%s, input=%d, output=%d, tool_calls=%d",
            response.model,
            usage.prompt_tokens,
            usage.completion_tokens,
            len(tool_calls),
        )

        return ChatResponse(
            provider=self.name,
            content="".join(texts),
            usage=usage,
            model=response.model or "unknown",
            finish_reason=response.stop_reason or "unknown",
            tool_calls=tool_calls or None,
            mode=mode,
        )

    def _require_client(self) -> AsyncAnthropic:
        if self.client is None:
            raise ProviderRequestError(self.name.value, "provider not initialized")
        return self.client

    def _wrap_error(self, e: Exception) -> ProviderRequestError:
        """Convert a vendor exception into the provider error hierarchy."""
        if isinstance(e, RateLimitError):
            logger.warning("Claude rate limit: %s", e)
            return ProviderRateLimitError(self.name.value, e)
        if isinstance(e, (httpx.TimeoutException, APITimeoutError)):
            logger.warning("Claude timeout: %s", e)
            return ProviderTimeoutError(self.name.value, e)
        logger.error("Unexpected error during Claude request: %s", e)
        return ProviderRequestError(self.name.value, e)
