"""OpenAI Chat Completions adapter.

Translates normalized messages and tool definitions into the Chat
Completions request shape and the vendor response back into ChatResponse.
Also exposes image generation, which only this provider supports.

Example:
    >>> from src.config import ProviderSettings
    >>> from src.utils.llm_adapters import ChatMessage, OpenAIAdapter
    >>>
    >>> adapter = OpenAIAdapter("sk-...", ProviderSettings(model="gpt-4o-mini"))
    >>> await adapter.initialize()
    >>> response = await adapter.chat_completion(
    ...     [ChatMessage(role="user", content="What is 2+2?")]
    ... )
    >>> response.content
    '4'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from openai import APITimeoutError, AsyncOpenAI, RateLimitError

from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    FunctionCall,
    ImageResult,
    ProviderName,
    ResponseMode,
    ResponseUsage,
    ToolCall,
    ToolChoice,
    ToolDefinition,
    forced_tool_name,
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


class OpenAIAdapter:
    """Adapter for OpenAI Chat Completions API.

    Holds one AsyncOpenAI client created by initialize(). Request options
    not given per call fall back to the provider settings.

    Example:
        >>> adapter = OpenAIAdapter(api_key, settings)
        >>> await adapter.initialize()
    """

    name = ProviderName.OPENAI
    display_name = "OpenAI"
    DEFAULT_MODEL = "gpt-4o-mini"
    MODELS = [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
    ]

    def __init__(self, api_key: str | None, settings: ProviderSettings | None = None) -> None:
        """Create adapter instance.

        Args:
            api_key: OpenAI API key.
            settings: Provider options bag. Defaults are used if None.
        """
        from src.config import ProviderSettings

        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.default_model = self.settings.model or self.DEFAULT_MODEL
        self.client: AsyncOpenAI | None = None

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Create the client and check that the API is reachable.

        Raises:
            ProviderInitError: If the API key is missing or listing models fails.
        """
        if not self.is_configured():
            raise ProviderInitError(self.name.value, "OPENAI_API_KEY not set")

        timeout = httpx.Timeout(float(self.settings.timeout), connect=10.0)
        client = AsyncOpenAI(
            api_key=self.api_key,
            timeout=timeout,
            max_retries=self.settings.max_retries,
        )

        try:
            await client.models.list()
        except Exception as e:
            logger.error("OpenAI reachability check failed: %s", e)
            raise ProviderInitError(self.name.value, str(e)) from e

        self.client = client
        logger.info("%s provider initialized (model %s)", self.display_name, self.default_model)

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: Normalized conversation.
            options: Per-request options.

        Returns:
            Normalized response with mode "chat".

        Raises:
            ProviderRateLimitError: Vendor rate limit.
            ProviderTimeoutError: Request timed out.
            ProviderRequestError: Any other vendor failure.
        """
        return await self._complete(messages, None, options or ChatOptions())

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat completion request with function tools.

        Args:
            messages: Normalized conversation.
            tools: Tool definitions to advertise.
            options: Per-request options; tool_choice defaults to "auto".

        Returns:
            Normalized response with mode "tools" and any tool calls.

        Raises:
            ProviderRateLimitError: Vendor rate limit.
            ProviderTimeoutError: Request timed out.
            ProviderRequestError: Any other vendor failure.
        """
        return await self._complete(messages, tools, options or ChatOptions())

    async def generate_image(
        self,
        prompt: str,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        n: int = 1,
    ) -> ImageResult:
        """Generate an image and return the URL of the first result.

        Raises:
            ProviderRequestError: Vendor failure or empty result.
        """
        client = self._require_client()
        try:
            response = await client.images.generate(
                model=model,
                prompt=prompt,
                n=n,
                size=size,  # type: ignore[arg-type]
                quality=quality,  # type: ignore[arg-type]
            )
        except Exception as e:
            raise self._wrap_error(e) from e

        if not response.data:
            raise ProviderRequestError(self.name.value, "image response has no data")

        image = response.data[0]
        logger.debug("Image generated with %s", model)
        return ImageResult(
            url=image.url or "",
            revised_prompt=getattr(image, "revised_prompt", None),
            model=model,
        )

    def supports_tools(self) -> bool:
        return True

    def supports_image_generation(self) -> bool:
        return True

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
        """Execute single request to OpenAI API."""
        client = self._require_client()
        params = self._build_params(messages, tools, options)

        logger.debug(
            "Executing request to %s (%d messages, %d tools)",
            params["model"],
            len(messages),
            len(tools or []),
        )

        try:
            response = await client.chat.completions.create(**params)
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
        params: dict[str, Any] = self.settings.passthrough()
        params.update(
            {
                "model": options.model or self.default_model,
                "messages": self._convert_messages(messages),
                "temperature": (
                    options.temperature
                    if options.temperature is not None
                    else self.settings.temperature
                ),
            }
        )

        max_tokens = options.max_tokens or self.settings.max_tokens
        if max_tokens:
            params["max_tokens"] = max_tokens
        top_p = options.top_p if options.top_p is not None else self.settings.top_p
        if top_p is not None:
            params["top_p"] = top_p
        if options.frequency_penalty is not None:
            params["frequency_penalty"] = options.frequency_penalty
        if options.presence_penalty is not None:
            params["presence_penalty"] = options.presence_penalty

        if tools is not None:
            params["tools"] = [{"type": "function", "function": t.to_dict()} for t in tools]
            params["tool_choice"] = self._convert_tool_choice(options.tool_choice)

        return params

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
        """Render normalized messages in Chat Completions form."""
        converted: list[dict[str, Any]] = []
        for message in messages:
            item: dict[str, Any] = {"role": message.role, "content": message.content}
            if message.role == "assistant" and message.tool_calls:
                item["content"] = message.content or None
                item["tool_calls"] = [call.to_dict() for call in message.tool_calls]
            elif message.role == "tool":
                item["tool_call_id"] = message.tool_call_id
            elif message.name:
                item["name"] = message.name
            converted.append(item)
        return converted

    def _convert_tool_choice(self, tool_choice: ToolChoice | None) -> ToolChoice:
        """Map tool choice to OpenAI form, unknown values degrade to "auto"."""
        if tool_choice is None:
            return "auto"
        if tool_choice in ("auto", "none", "required"):
            return tool_choice
        name = forced_tool_name(tool_choice)
        if name:
            return {"type": "function", "function": {"name": name}}
        logger.warning("Unsupported tool_choice %r for %s, using auto", tool_choice, self.name)
        return "auto"

    def _process_response(self, response: Any, mode: ResponseMode) -> ChatResponse:
        """Extract content, usage and tool calls from the vendor response.

        Raises:
            ProviderRequestError: If the response has no choices.
        """
        choices = getattr(response, "choices", None)
        if not choices:
            raise ProviderRequestError(self.name.value, "response has no choices")

        choice = choices[0]
        message = choice.message

        tool_calls: list[ToolCall] | None = None
        raw_calls = getattr(message, "tool_calls", None)
        if raw_calls:
            tool_calls = [
                ToolCall(
                    id=call.id,
                    type=getattr(call, "type", None) or "function",
                    function=FunctionCall(
                        name=call.function.name,
                        arguments=call.function.arguments or "{}",
                    ),
                )
                for call in raw_calls
            ]

        usage_obj = getattr(response, "usage", None)
        usage = ResponseUsage()
        if usage_obj is not None:
            usage = ResponseUsage(
                prompt_tokens=getattr(usage_obj, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage_obj, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage_obj, "total_tokens", 0) or 0,
            )

        logger.debug(
            "Response received: model=%s, prompt=%d, completion=%d, tool_calls=%d",
            response.model,
            usage.prompt_tokens,
            usage.completion_tokens,
            len(tool_calls or []),
        )

        return ChatResponse(
            provider=self.name,
            content=message.content or "",
            usage=usage,
            model=response.model or "unknown",
            finish_reason=choice.finish_reason or "unknown",
            tool_calls=tool_calls,
            mode=mode,
        )

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ProviderRequestError(self.name.value, "provider not initialized")
        return self.client

    def _wrap_error(self, e: Exception) -> ProviderRequestError:
        """Convert a vendor exception into the provider error hierarchy."""
        if isinstance(e, RateLimitError):
            logger.warning("OpenAI rate limit: %s", e)
            return ProviderRateLimitError(self.name.value, e)
        if isinstance(e, (httpx.TimeoutException, APITimeoutError)):
            logger.warning("OpenAI timeout: %s", e)
            return ProviderTimeoutError(self.name.value, e)
        logger.error("Unexpected error during OpenAI request: %s", e)
        return ProviderRequestError(self.name.value, e)
