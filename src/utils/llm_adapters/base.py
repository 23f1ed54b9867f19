"""Base types and adapter contract for AI providers.

Defines the normalized message, tool and response types shared by all
adapter implementations, the closed set of provider identities, and the
ProviderAdapter protocol every adapter satisfies. Vendor-specific shapes
never leave an adapter: they are translated into these types.

Example:
    >>> from src.utils.llm_adapters.base import ChatMessage, ChatResponse, ResponseUsage
    >>> messages = [ChatMessage(role="user", content="Hello")]
    >>> response = ChatResponse(
    ...     provider=ProviderName.OPENAI,
    ...     content="Hi there",
    ...     usage=ResponseUsage(prompt_tokens=5, completion_tokens=3, total_tokens=8),
    ...     model="gpt-4o-mini",
    ...     finish_reason="stop",
    ... )
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Protocol

from src.utils.llm_errors import UnsupportedProviderError

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]
ResponseMode = Literal["chat", "tools"]
ToolChoice = str | dict[str, Any]


class ProviderName(str, Enum):
    """Closed set of supported provider identities.

    Order of declaration is the auto-selection priority.

    Example:
        >>> ProviderName.parse("Gemini")
        <ProviderName.GEMINI: 'gemini'>
    """

    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | ProviderName) -> ProviderName:
        """Convert a user-supplied name to a ProviderName.

        Args:
            value: Provider name, case-insensitive.

        Returns:
            Matching ProviderName.

        Raises:
            UnsupportedProviderError: If the name is not a supported provider.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedProviderError(str(value), [p.value for p in cls]) from None


@dataclass
class FunctionCall:
    """Function name and JSON-encoded arguments of a tool call."""

    name: str
    arguments: str


@dataclass
class ToolCall:
    """Normalized tool invocation requested by a model.

    Example:
        >>> call = ToolCall(id="call_0", function=FunctionCall("t", '{"x": "v"}'))
        >>> call.function.name
        't'
    """

    id: str
    function: FunctionCall
    type: str = "function"

    def to_dict(self) -> dict[str, Any]:
        """Render in the wire shape {id, type, function: {name, arguments}}."""
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.function.name, "arguments": self.function.arguments},
        }

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the arguments string, empty dict for blank or invalid JSON."""
        if not self.function.arguments:
            return {}
        try:
            args = json.loads(self.function.arguments)
        except json.JSONDecodeError:
            logger.warning("Tool call %s has invalid JSON arguments", self.id)
            return {}
        return args if isinstance(args, dict) else {}


@dataclass
class ChatMessage:
    """Normalized conversation message.

    Assistant messages replayed into history may carry tool_calls;
    tool results carry the tool_call_id they answer.

    Example:
        >>> ChatMessage(role="tool", content='{"ok": true}', tool_call_id="call_0")
    """

    role: Role
    content: str = ""
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] | None = None
    name: str | None = None


@dataclass
class ToolDefinition:
    """Tool descriptor advertised to a model.

    `parameters` is a JSON schema object:
    {type: "object", properties, required, additionalProperties: false}.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Render as a vendor-neutral function declaration."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ChatOptions:
    """Per-request options. None values fall back to provider settings.

    Example:
        >>> options = ChatOptions(model="gpt-4o", temperature=0.2, tool_choice="auto")
    """

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    tool_choice: ToolChoice | None = None


@dataclass
class ResponseUsage:
    """Token usage statistics from a provider response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ChatResponse:
    """Normalized response returned by every adapter.

    `mode` records which path produced the response: "tools" when the
    request was sent with tool declarations, "chat" otherwise (including
    when the manager degraded a tool request for a provider without tools).

    Example:
        >>> response.to_dict()["finishReason"]
        'stop'
    """

    provider: ProviderName
    content: str
    usage: ResponseUsage
    model: str
    finish_reason: str
    tool_calls: list[ToolCall] | None = None
    mode: ResponseMode = "chat"

    def to_dict(self) -> dict[str, Any]:
        """Render in the normalized wire shape."""
        return {
            "provider": self.provider.value,
            "content": self.content,
            "usage": self.usage.to_dict(),
            "model": self.model,
            "toolCalls": [c.to_dict() for c in self.tool_calls] if self.tool_calls else None,
            "finishReason": self.finish_reason,
        }

    def to_message(self) -> ChatMessage:
        """Convert to an assistant message for conversation history."""
        return ChatMessage(
            role="assistant",
            content=self.content,
            tool_calls=list(self.tool_calls) if self.tool_calls else None,
        )


@dataclass
class ImageResult:
    """Result of an image generation request."""

    url: str
    revised_prompt: str | None
    model: str


class ProviderAdapter(Protocol):
    """Interface that all provider adapters implement.

    Adapters are constructed with (api_key, settings) and are unusable
    until initialize() succeeds.

    Example:
        >>> adapter = OpenAIAdapter("sk-...", ProviderSettings())
        >>> await adapter.initialize()
        >>> response = await adapter.chat_completion([ChatMessage("user", "Hi")])
    """

    name: ProviderName
    display_name: str

    @property
    def is_ready(self) -> bool:
        """True once initialize() has completed successfully."""
        ...

    async def initialize(self) -> None:
        """Create the vendor client.

        Raises:
            ProviderInitError: Credential missing or vendor check failed.
        """
        ...

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat request.

        Raises:
            ProviderRequestError: Any vendor-side failure.
        """
        ...

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat request advertising callable tools.

        Raises:
            ProviderRequestError: Any vendor-side failure.
        """
        ...

    def supports_tools(self) -> bool: ...

    def supports_image_generation(self) -> bool: ...

    def available_models(self) -> list[str]: ...

    def is_configured(self) -> bool: ...


def split_system_messages(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Separate system instructions from the conversation.

    System message contents are joined with a blank line; the relative
    order of the remaining messages is preserved.

    Args:
        messages: Normalized messages.

    Returns:
        Tuple of (system_text, conversation_messages).
    """
    system_parts = [m.content for m in messages if m.role == "system" and m.content]
    conversation = [m for m in messages if m.role != "system"]
    return "\n\n".join(system_parts), conversation


def resolve_tool_names(messages: list[ChatMessage]) -> list[str | None]:
    """Function name answered by each message, None for non-tool messages.

    A tool result without a name is matched to the nearest preceding
    assistant call with the same id, so ids reused across rounds resolve
    to the call of their own round.
    """
    latest: dict[str, str] = {}
    names: list[str | None] = []
    for message in messages:
        for call in message.tool_calls or []:
            latest[call.id] = call.function.name
        if message.role == "tool":
            names.append(message.name or latest.get(message.tool_call_id or ""))
        else:
            names.append(None)
    return names


def forced_tool_name(tool_choice: ToolChoice | None) -> str | None:
    """Extract the function name from {"type": "function", "function": {"name": ...}}."""
    if isinstance(tool_choice, dict):
        function = tool_choice.get("function")
        if isinstance(function, dict) and function.get("name"):
            return str(function["name"])
    return None
