"""AI provider adapters package.

Provides one adapter per supported vendor (OpenAI, Gemini, Claude) behind
a shared normalized request/response contract, plus the dispatch table
used to construct an adapter from a provider identity.

Example:
    >>> from src.utils.llm_adapters import ADAPTER_CLASSES, ProviderName
    >>> from src.config import Config
    >>>
    >>> config = Config.load()
    >>> adapter_cls = ADAPTER_CLASSES[ProviderName.CLAUDE]
    >>> adapter = adapter_cls(config.api_key_for(ProviderName.CLAUDE), config.providers.claude)
"""

from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    FunctionCall,
    ImageResult,
    ProviderAdapter,
    ProviderName,
    ResponseUsage,
    ToolCall,
    ToolDefinition,
)
from src.utils.llm_adapters.claude import ClaudeAdapter
from src.utils.llm_adapters.gemini import GeminiAdapter
from src.utils.llm_adapters.openai import OpenAIAdapter

ADAPTER_CLASSES: dict[ProviderName, type] = {
    ProviderName.OPENAI: OpenAIAdapter,
    ProviderName.GEMINI: GeminiAdapter,
    ProviderName.CLAUDE: ClaudeAdapter,
}

__all__ = [
    "ADAPTER_CLASSES",
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "ClaudeAdapter",
    "FunctionCall",
    "GeminiAdapter",
    "ImageResult",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderName",
    "ResponseUsage",
    "ToolCall",
    "ToolDefinition",
]
