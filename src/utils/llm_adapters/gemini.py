"""Google Gemini adapter.

Uses the google-genai async client. Gemini takes system instructions as a
request config field rather than as conversation turns, names the
assistant role "model", and returns function calls as structured parts.

Example:
    >>> from src.config import ProviderSettings
    >>> from src.utils.llm_adapters import ChatMessage, GeminiAdapter
    >>>
    >>> adapter = GeminiAdapter("AIza...", ProviderSettings(model="gemini-2.5-flash"))
    >>> await adapter.initialize()
    >>> response = await adapter.chat_completion(
    ...     [ChatMessage(role="user", content="What is 2+2?")]
    ... )
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

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


class GeminiAdapter:
    """Adapter for the Gemini generate_content API.

    Example:
        >>> adapter = GeminiAdapter(api_key, settings)
        >>> await adapter.initialize()
    """

    name = ProviderName.GEMINI
    display_name = "Gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"
    MODELS = [
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.0-flash",
    ]

    def __init__(self, api_key: str | None, settings: ProviderSettings | None = None) -> None:
        """Create adapter instance.

        Args:
            api_key: Gemini API key.
            settings: Provider options bag. Defaults are used if None.
        """
        from src.config import ProviderSettings

        self.api_key = api_key
        self.settings = settings or ProviderSettings()
        self.default_model = self.settings.model or self.DEFAULT_MODEL
        self.client: genai.Client | None = None

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Create the client.

        Raises:
            ProviderInitError: If the API key is missing or the client rejects it.
        """
        if not self.is_configured():
            raise ProviderInitError(self.name.value, "GEMINI_API_KEY not set")

        try:
            client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=self.settings.timeout * 1000),
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
        """Send a generate_content request without tools."""
        return await self._complete(messages, None, options or ChatOptions())

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a generate_content request with function declarations.

        Every function call part in the response becomes a ToolCall, in
        response order. Calls without a vendor id get a generated "call_<hex>"
        id, unique across responses so tool results map back to one call.
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
        model = options.model or self.default_model

        logger.debug(
            "Executing request to %s (%d messages, %d tools)",
            model,
            len(messages),
            len(tools or []),
        )

        try:
            system_instruction, conversation = split_system_messages(messages)
            config = self._build_config(system_instruction, tools, options)
            response = await client.aio.models.generate_content(
                model=model,
                contents=self._convert_messages(conversation),
                config=config,
            )
        except Exception as e:
            raise self._wrap_error(e) from e

        return self._process_response(response, model, "tools" if tools is not None else "chat")

    def _build_config(
        self,
        system_instruction: str,
        tools: list[ToolDefinition] | None,
        options: ChatOptions,
    ) -> types.GenerateContentConfig:
        """Build generation config, leaving out unset options."""
        params: dict[str, Any] = self.settings.passthrough()
        params["temperature"] = (
            options.temperature if options.temperature is not None else self.settings.temperature
        )
        if system_instruction:
            params["system_instruction"] = system_instruction

        max_tokens = options.max_tokens or self.settings.max_tokens
        if max_tokens:
            params["max_output_tokens"] = max_tokens
        top_p = options.top_p if options.top_p is not None else self.settings.top_p
        if top_p is not None:
            params["top_p"] = top_p

        if tools is not None:
            params["tools"] = [
                types.Tool(function_declarations=[self._convert_tool(t) for t in tools])
            ]
            params["tool_config"] = self._convert_tool_choice(options.tool_choice)

        return types.GenerateContentConfig(**params)

    @staticmethod
    def _convert_tool(tool: ToolDefinition) -> types.FunctionDeclaration:
        """Render a ToolDefinition as a Gemini function declaration.

        Gemini rejects additionalProperties and empty object schemas, so only
        type/properties/required are kept and tools without parameters are
        declared without a schema.
        """
        properties = tool.parameters.get("properties") or {}
        if not properties:
            return types.FunctionDeclaration(name=tool.name, description=tool.description)

        schema: dict[str, Any] = {"type": "object", "properties": properties}
        required = tool.parameters.get("required")
        if required:
            schema["required"] = list(required)
        return types.FunctionDeclaration(
            name=tool.name,
            description=tool.description,
            parameters_json_schema=schema,
        )

    def _convert_tool_choice(self, tool_choice: ToolChoice | None) -> types.ToolConfig:
        """Map tool choice to a function calling config, unknown values degrade to AUTO."""
        name = forced_tool_name(tool_choice)
        if name:
            calling = types.FunctionCallingConfig(mode="ANY", allowed_function_names=[name])
        elif tool_choice is None or tool_choice == "auto":
            calling = types.FunctionCallingConfig(mode="AUTO")
        elif tool_choice == "none":
            calling = types.FunctionCallingConfig(mode="NONE")
        elif tool_choice == "required":
            calling = types.FunctionCallingConfig(mode="ANY")
        else:
            logger.warning("Unsupported tool_choice %r for %s, using auto", tool_choice, self.name)
            calling = types.FunctionCallingConfig(mode="AUTO")
        return types.ToolConfig(function_calling_config=calling)

    @staticmethod
    def _convert_messages(messages: list[ChatMessage]) -> list[types.Content]:
        """Render conversation messages as Gemini contents.

        Consecutive tool results are grouped into one user turn of
        function_response parts.
        """
        tool_names = resolve_tool_names(messages)
        contents: list[types.Content] = []
        previous_role: str | None = None

        for message, tool_name in zip(messages, tool_names):
            if message.role == "tool":
                part = types.Part.from_function_response(
                    name=tool_name or "unknown",
                    response={"result": message.content},
                )
                if previous_role == "tool" and contents:
                    contents[-1].parts = [*(contents[-1].parts or []), part]
                else:
                    contents.append(types.Content(role="user", parts=[part]))
            elif message.role == "assistant":
                parts: list[types.Part] = []
                if message.content:
                    parts.append(types.Part.from_text(text=message.content))
                for call in message.tool_calls or []:
                    parts.append(
                        types.Part(
                            function_call=types.FunctionCall(
                                name=call.function.name,
                                args=call.parsed_arguments(),
                            )
                        )
                    )
                if not parts:
                    parts.append(types.Part.from_text(text=""))
                contents.append(types.Content(role="model", parts=parts))
            else:
                contents.append(
                    types.Content(role="user", parts=[types.Part.from_text(text=message.content)])
                )
            previous_role = message.role

        return contents

    def _process_response(self, response: Any, model: str, mode: ResponseMode) -> ChatResponse:
        """Extract text, usage and function calls from the vendor response."""
        tool_calls: list[ToolCall] | None = None
        function_calls = getattr(response, "function_calls", None)
        if function_calls:
            tool_calls = [
                ToolCall(
                    id=getattr(call, "id", None) or f"call_{uuid4().hex[:12]}",
                    function=FunctionCall(
                        name=call.name,
                        arguments=json.dumps(dict(call.args or {})),
                    ),
                )
                for call in function_calls
            ]

        usage = ResponseUsage()
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = ResponseUsage(
                prompt_tokens=getattr(metadata, "prompt_token_count", None) or 0,
                completion_tokens=getattr(metadata, "candidates_token_count", None) or 0,
                total_tokens=getattr(metadata, "total_token_count", None) or 0,
            )

        finish_reason = "stop"
        candidates = getattr(response, "candidates", None)
        if candidates:
            reason = getattr(candidates[0], "finish_reason", None)
            if reason is not None:
                finish_reason = str(getattr(reason, "value", reason))

        logger.debug(
            "Response received: model=%s, prompt=%d, completion=%d, tool_calls=%d",
            model,
            usage.prompt_tokens,
            usage.completion_tokens,
            len(tool_calls or []),
        )

        return ChatResponse(
            provider=self.name,
            content=getattr(response, "text", None) or "",
            usage=usage,
            model=model,
            finish_reason=finish_reason,
            tool_calls=tool_calls,
            mode=mode,
        )

    def _require_client(self) -> genai.Client:
        if self.client is None:
            raise ProviderRequestError(self.name.value, "provider not initialized")
        return self.client

    def _wrap_error(self, e: Exception) -> ProviderRequestError:
        """Convert a vendor exception into the provider error hierarchy."""
        if isinstance(e, genai_errors.APIError) and e.code == 429:
            logger.warning("Gemini rate limit: %s", e)
            return ProviderRateLimitError(self.name.value, e)
        if isinstance(e, httpx.TimeoutException):
            logger.warning("Gemini timeout: %s", e)
            return ProviderTimeoutError(self.name.value, e)
        logger.error("Unexpected error during Gemini request: %s", e)
        return ProviderRequestError(self.name.value, e)
