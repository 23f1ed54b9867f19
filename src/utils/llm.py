"""Provider-agnostic AI facade.

ProviderManager owns the registry of initialized adapters and the active
selection. It initializes providers (all detected, or one forced),
dispatches chat requests to the active adapter, degrades tool requests for
providers without tool support, and implements the single-alternate-attempt
fallback used when an agent prefers a specific provider.

Example:
    >>> from src.config import Config
    >>> from src.utils.llm import ProviderManager
    >>> from src.utils.llm_adapters import ChatMessage
    >>>
    >>> config = Config.load()
    >>> manager = ProviderManager.from_config(config)
    >>> await manager.initialize_all()
    >>> response = await manager.chat_completion(
    ...     [ChatMessage(role="user", content="Hello")]
    ... )
    >>> response.provider
    <ProviderName.OPENAI: 'openai'>
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.utils.llm_adapters import ADAPTER_CLASSES
from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ImageResult,
    ProviderAdapter,
    ProviderName,
    ToolDefinition,
)
from src.utils.llm_errors import (
    NoActiveProviderError,
    NoAvailableProviderError,
    ProviderError,
    ProviderInitError,
    ProviderNotAvailableError,
)

if TYPE_CHECKING:
    from src.config import Config, ProviderSettings

logger = logging.getLogger(__name__)

# Auto-selection order among successfully initialized providers
PROVIDER_PRIORITY = [ProviderName.OPENAI, ProviderName.GEMINI, ProviderName.CLAUDE]

AdapterFactory = Callable[[ProviderName, str, "ProviderSettings"], ProviderAdapter]


def create_adapter(name: ProviderName, api_key: str, settings: ProviderSettings) -> ProviderAdapter:
    """Construct the adapter for a provider identity from the dispatch table."""
    adapter: ProviderAdapter = ADAPTER_CLASSES[name](api_key, settings)
    return adapter


class ManagerState(str, Enum):
    """Lifecycle state of a ProviderManager."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"


class ProviderManager:
    """Registry of initialized providers with an active selection.

    Created explicitly and passed to agents; there is no module-level
    instance, so independent configurations never share state.

    Example:
        >>> manager = ProviderManager(
        ...     api_keys={ProviderName.OPENAI: "sk-..."},
        ...     settings={ProviderName.OPENAI: ProviderSettings(model="gpt-4o")},
        ... )
        >>> await manager.initialize_all()
        >>> manager.active_provider_name
        <ProviderName.OPENAI: 'openai'>
    """

    def __init__(
        self,
        api_keys: dict[ProviderName, str | None] | None = None,
        settings: dict[ProviderName, ProviderSettings] | None = None,
        adapter_factory: AdapterFactory = create_adapter,
    ) -> None:
        """Create manager with credentials and per-provider settings.

        Args:
            api_keys: Credential per provider; missing or empty means the
                provider is skipped by initialize_all().
            settings: Options bag per provider. Defaults are used if absent.
            adapter_factory: Builds an adapter for (name, api_key, settings).
        """
        self.api_keys: dict[ProviderName, str | None] = dict(api_keys or {})
        self.settings: dict[ProviderName, ProviderSettings] = dict(settings or {})
        self.adapter_factory = adapter_factory
        self.providers: dict[ProviderName, ProviderAdapter] = {}
        self.state = ManagerState.UNINITIALIZED
        self._active: ProviderName | None = None
        self._forced: ProviderName | None = None

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> ProviderManager:
        """Build a manager from loaded configuration.

        Args:
            config: Application configuration.
            **kwargs: Passed through to the constructor (e.g. adapter_factory).

        Returns:
            Uninitialized ProviderManager.
        """
        names = list(ProviderName)
        return cls(
            api_keys={name: config.api_key_for(name) for name in names},
            settings={name: config.providers.settings_for(name) for name in names},
            **kwargs,
        )

    @property
    def active_provider_name(self) -> ProviderName | None:
        """Currently selected provider, None if unset or no longer registered."""
        if self._active is not None and self._active not in self.providers:
            self._active = None
        return self._active

    @property
    def is_forced(self) -> bool:
        """True after initialize_single_provider() succeeded."""
        return self._forced is not None

    @property
    def forced_provider(self) -> ProviderName | None:
        return self._forced

    async def initialize_all(self) -> None:
        """Initialize every provider that has a credential.

        Initializations run concurrently; failures are logged and dropped.
        The active provider is chosen by PROVIDER_PRIORITY among survivors.
        Does nothing when a single provider was forced.
        """
        if self._forced is not None:
            logger.info(
                "Provider already manually set to %s. Skipping auto-initialization.",
                self._forced,
            )
            return

        self.state = ManagerState.INITIALIZING
        candidates: dict[ProviderName, ProviderAdapter] = {}
        for name in ProviderName:
            api_key = self.api_keys.get(name)
            if not api_key or name in self.providers:
                continue
            candidates[name] = self.adapter_factory(name, api_key, self._settings_for(name))

        logger.debug("Initializing %d providers: %s", len(candidates), ", ".join(candidates))

        results = await asyncio.gather(
            *(adapter.initialize() for adapter in candidates.values()),
            return_exceptions=True,
        )

        for (name, adapter), result in zip(candidates.items(), results):
            if isinstance(result, BaseException):
                logger.warning("Failed to initialize %s provider: %s", name, result)
                continue
            self.providers[name] = adapter
            logger.debug("%s provider initialized", name)

        self._active = self._select_default()
        self.state = ManagerState.READY if self._active else ManagerState.DEGRADED

        logger.info(
            "Auto-initialized %d AI providers, active: %s",
            len(self.providers),
            self._active or "none",
        )

    async def initialize_single_provider(
        self,
        name: str | ProviderName,
        settings: ProviderSettings | None = None,
    ) -> None:
        """Force a single provider, replacing the registry.

        Args:
            name: Provider identity.
            settings: Options bag overriding configured settings; its
                api_key, if set, overrides the configured credential.

        Raises:
            UnsupportedProviderError: Unknown identity (registry untouched).
            ProviderInitError: Missing credential or initialize() failed;
                the registry is left empty.
        """
        provider = ProviderName.parse(name)

        logger.info("Forcing initialization of %s provider only", provider)
        self.state = ManagerState.INITIALIZING
        self.providers.clear()
        self._active = None
        self._forced = None

        settings = settings or self._settings_for(provider)
        api_key = settings.api_key or self.api_keys.get(provider)
        if not api_key:
            self.state = ManagerState.DEGRADED
            raise ProviderInitError(provider.value, "API key not found in config or environment")

        adapter = self.adapter_factory(provider, api_key, settings)
        try:
            await adapter.initialize()
        except Exception as e:
            self.state = ManagerState.DEGRADED
            logger.error("Failed to initialize %s: %s", provider, e)
            if isinstance(e, ProviderError):
                raise
            raise ProviderInitError(provider.value, str(e)) from e

        self.providers[provider] = adapter
        self._active = provider
        self._forced = provider
        self.state = ManagerState.READY
        logger.info("Initialized %s as the only provider", provider)

    def clear(self) -> None:
        """Drop all providers and return to the uninitialized state."""
        self.providers.clear()
        self._active = None
        self._forced = None
        self.state = ManagerState.UNINITIALIZED

    def get_active_provider(self) -> ProviderAdapter:
        """Return the active adapter.

        Raises:
            NoActiveProviderError: No selection, or selection not registered.
        """
        name = self.active_provider_name
        if name is None:
            if self.is_forced:
                hint = "manual mode. Check your forced provider configuration."
            else:
                hint = "auto mode. Check your API keys in .env file."
            raise NoActiveProviderError(f"No active AI provider available ({hint})")
        return self.providers[name]

    def get_provider(self, name: str | ProviderName) -> ProviderAdapter:
        """Return a registered adapter by name.

        Raises:
            ProviderNotAvailableError: Not in the registry.
        """
        provider = self._lookup(name)
        return self.providers[provider]

    def set_active_provider(self, name: str | ProviderName) -> None:
        """Select a registered provider.

        Raises:
            ProviderNotAvailableError: Not in the registry.
        """
        self._active = self._lookup(name)
        logger.debug("Switched to %s provider", self._active)

    def is_provider_available(self, name: str | ProviderName) -> bool:
        try:
            self._lookup(name)
        except ProviderError:
            return False
        return True

    def available_providers(self) -> list[ProviderName]:
        return list(self.providers)

    def provider_info(self) -> dict[ProviderName, dict[str, Any]]:
        """Describe every registered provider and its capabilities."""
        active = self.active_provider_name
        return {
            name: {
                "name": adapter.display_name,
                "is_active": name == active,
                "supports_tools": adapter.supports_tools(),
                "supports_image_generation": adapter.supports_image_generation(),
                "available_models": adapter.available_models(),
                "is_configured": adapter.is_configured(),
            }
            for name, adapter in self.providers.items()
        }

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a chat request through the active provider.

        Raises:
            NoActiveProviderError: No provider selected.
            ProviderRequestError: Vendor failure.
        """
        provider = self.get_active_provider()
        return await provider.chat_completion(messages, options)

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Send a tool-enabled chat request through the active provider.

        If the provider does not support tools the plain chat path is used
        and the response has mode "chat".

        Raises:
            NoActiveProviderError: No provider selected.
            ProviderRequestError: Vendor failure.
        """
        provider = self.get_active_provider()

        if not provider.supports_tools():
            logger.warning(
                "Provider '%s' does not support tools, falling back to regular chat completion",
                provider.name,
            )
            return await provider.chat_completion(messages, options)

        return await provider.chat_completion_with_tools(messages, tools, options)

    async def switch_provider_with_fallback(
        self,
        preferred: str | ProviderName,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None = None,
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        """Try the preferred provider once, then the previously active one once.

        The selection active before the call is restored afterwards. Only
        that prior selection is used as the alternate, even when more
        providers are registered.

        Args:
            preferred: Provider to try first.
            messages: Normalized conversation.
            tools: Tool definitions; empty or None sends a plain chat request.
            options: Per-request options.

        Returns:
            Response from whichever attempt succeeded.

        Raises:
            NoAvailableProviderError: Both attempts failed, or the preferred
                attempt failed with no prior selection.
        """
        previous = self.active_provider_name

        try:
            try:
                self.set_active_provider(preferred)
                return await self._dispatch(messages, tools, options)
            except ProviderError as e:
                logger.warning(
                    "Failed to use %s, falling back to %s: %s",
                    preferred,
                    previous or "none",
                    e,
                )
                self._active = previous
                if previous is None or previous not in self.providers:
                    raise NoAvailableProviderError(
                        "No available AI providers can handle this request"
                    ) from e

            try:
                return await self._dispatch(messages, tools, options)
            except ProviderError as e:
                logger.error("Fallback provider %s also failed: %s", previous, e)
                raise NoAvailableProviderError(
                    "No available AI providers can handle this request"
                ) from e
        finally:
            self._active = previous

    async def generate_image(self, prompt: str, **kwargs: Any) -> ImageResult:
        """Generate an image with the active provider or the first capable one.

        Args:
            prompt: Image description.
            **kwargs: Passed to the adapter's generate_image (model, size, ...).

        Raises:
            NoAvailableProviderError: No registered provider generates images.
            ProviderRequestError: Vendor failure.
        """
        active = self.active_provider_name
        ordered = ([active] if active else []) + [n for n in self.providers if n != active]
        for name in ordered:
            adapter = self.providers[name]
            if adapter.supports_image_generation():
                logger.debug("Generating image with %s", name)
                result: ImageResult = await adapter.generate_image(prompt, **kwargs)  # type: ignore[attr-defined]
                return result

        raise NoAvailableProviderError("No registered provider supports image generation")

    async def _dispatch(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition] | None,
        options: ChatOptions | None,
    ) -> ChatResponse:
        if tools:
            return await self.chat_completion_with_tools(messages, tools, options)
        return await self.chat_completion(messages, options)

    def _select_default(self) -> ProviderName | None:
        for name in PROVIDER_PRIORITY:
            if name in self.providers:
                return name
        return next(iter(self.providers), None)

    def _settings_for(self, name: ProviderName) -> ProviderSettings:
        from src.config import ProviderSettings

        return self.settings.get(name) or ProviderSettings()

    def _lookup(self, name: str | ProviderName) -> ProviderName:
        """Resolve a name to a registered provider.

        Raises:
            ProviderNotAvailableError: Unknown or not registered.
        """
        try:
            provider = ProviderName.parse(name)
        except ProviderError:
            raise ProviderNotAvailableError(str(name)) from None
        if provider not in self.providers:
            raise ProviderNotAvailableError(provider.value)
        return provider
