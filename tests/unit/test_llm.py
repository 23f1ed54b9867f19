"""Unit tests for ProviderManager with fake adapters."""

from pathlib import Path
from typing import Any

import pytest

from src.config import Config, ProviderSettings
from src.utils.llm import PROVIDER_PRIORITY, ManagerState, ProviderManager
from src.utils.llm_adapters.base import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ImageResult,
    ProviderName,
    ResponseUsage,
    ToolDefinition,
)
from src.utils.llm_errors import (
    NoActiveProviderError,
    NoAvailableProviderError,
    ProviderInitError,
    ProviderNotAvailableError,
    ProviderRequestError,
    UnsupportedProviderError,
)

OPENAI = ProviderName.OPENAI
GEMINI = ProviderName.GEMINI
CLAUDE = ProviderName.CLAUDE

MESSAGES = [ChatMessage(role="user", content="Hello")]
TOOLS = [ToolDefinition("get_research_plans", "Gets plans", {"type": "object"})]


class FakeAdapter:
    """In-memory adapter recording calls."""

    def __init__(
        self,
        name: ProviderName,
        api_key: str = "key",
        tools: bool = True,
        images: bool = False,
        fail_init: bool = False,
        fail_chat: bool = False,
    ) -> None:
        self.name = name
        self.display_name = name.value.title()
        self.api_key = api_key
        self.settings: ProviderSettings | None = None
        self._tools = tools
        self._images = images
        self.fail_init = fail_init
        self.fail_chat = fail_chat
        self.ready = False
        self.chat_calls = 0
        self.tool_calls = 0
        self.last_options: ChatOptions | None = None

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def initialize(self) -> None:
        if self.fail_init:
            raise ProviderInitError(self.name.value, "invalid key")
        self.ready = True

    async def chat_completion(
        self, messages: list[ChatMessage], options: ChatOptions | None = None
    ) -> ChatResponse:
        self.chat_calls += 1
        self.last_options = options
        return self._respond("chat")

    async def chat_completion_with_tools(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDefinition],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        self.tool_calls += 1
        self.last_options = options
        return self._respond("tools")

    async def generate_image(self, prompt: str, **kwargs: Any) -> ImageResult:
        return ImageResult(url=f"https://{self.name}/img.png", revised_prompt=None, model="img")

    def supports_tools(self) -> bool:
        return self._tools

    def supports_image_generation(self) -> bool:
        return self._images

    def available_models(self) -> list[str]:
        return [f"{self.name}-model"]

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def calls(self) -> int:
        return self.chat_calls + self.tool_calls

    def _respond(self, mode: Any) -> ChatResponse:
        if self.fail_chat:
            raise ProviderRequestError(self.name.value, "service unavailable")
        return ChatResponse(
            provider=self.name,
            content=f"reply from {self.name}",
            usage=ResponseUsage(1, 1, 2),
            model=f"{self.name}-model",
            finish_reason="stop",
            mode=mode,
        )


def make_manager(
    adapters: dict[ProviderName, FakeAdapter],
    keys: dict[ProviderName, str | None] | None = None,
) -> ProviderManager:
    """Create manager whose factory returns the given fake adapters."""
    if keys is None:
        keys = {name: "key" for name in adapters}

    def factory(name: ProviderName, api_key: str, settings: ProviderSettings) -> FakeAdapter:
        adapter = adapters[name]
        adapter.api_key = api_key
        adapter.settings = settings
        return adapter

    return ProviderManager(api_keys=keys, adapter_factory=factory)


@pytest.fixture
def adapters() -> dict[ProviderName, FakeAdapter]:
    """Three healthy fake adapters."""
    return {name: FakeAdapter(name) for name in ProviderName}


class TestInitializeAll:
    """Tests for auto initialization."""

    @pytest.mark.asyncio
    async def test_initializes_keyed_providers(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Only providers with a credential are registered."""
        manager = make_manager(adapters, {OPENAI: None, GEMINI: "g-key", CLAUDE: "c-key"})

        await manager.initialize_all()

        assert manager.available_providers() == [GEMINI, CLAUDE]
        assert adapters[OPENAI].ready is False
        assert manager.active_provider_name is GEMINI
        assert manager.state is ManagerState.READY
        assert manager.is_forced is False

    @pytest.mark.asyncio
    async def test_priority_selects_openai(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Auto-selection follows the provider priority."""
        manager = make_manager(adapters)

        await manager.initialize_all()

        assert PROVIDER_PRIORITY[0] is OPENAI
        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_failed_provider_dropped(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Failures are dropped without aborting other providers."""
        adapters[OPENAI].fail_init = True
        manager = make_manager(adapters)

        await manager.initialize_all()

        assert OPENAI not in manager.available_providers()
        assert manager.available_providers() == [GEMINI, CLAUDE]
        assert manager.active_provider_name is GEMINI

    @pytest.mark.asyncio
    async def test_all_failed_leaves_no_active(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """No survivors means no active provider and DEGRADED state."""
        for adapter in adapters.values():
            adapter.fail_init = True
        manager = make_manager(adapters)

        await manager.initialize_all()

        assert manager.available_providers() == []
        assert manager.active_provider_name is None
        assert manager.state is ManagerState.DEGRADED
        with pytest.raises(NoActiveProviderError) as exc_info:
            manager.get_active_provider()
        assert "auto mode" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_no_keys(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Without credentials nothing is constructed."""
        manager = make_manager(adapters, {})

        await manager.initialize_all()

        assert manager.available_providers() == []
        assert all(not a.ready for a in adapters.values())

    @pytest.mark.asyncio
    async def test_noop_after_forced(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """initialize_all does nothing after a provider was forced."""
        manager = make_manager(adapters)
        await manager.initialize_single_provider("claude")

        await manager.initialize_all()

        assert manager.available_providers() == [CLAUDE]
        assert adapters[OPENAI].ready is False
        assert manager.active_provider_name is CLAUDE


class TestInitializeSingleProvider:
    """Tests for forced single-provider initialization."""

    @pytest.mark.asyncio
    async def test_replaces_registry(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Registry contains exactly the forced provider."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        await manager.initialize_single_provider("Gemini")

        assert manager.available_providers() == [GEMINI]
        assert manager.active_provider_name is GEMINI
        assert manager.forced_provider is GEMINI
        assert manager.is_forced is True
        assert manager.state is ManagerState.READY

    @pytest.mark.asyncio
    async def test_unknown_identity_keeps_registry(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Unknown name raises before touching the registry."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        with pytest.raises(UnsupportedProviderError) as exc_info:
            await manager.initialize_single_provider("mistral")

        assert "mistral" in str(exc_info.value)
        assert manager.available_providers() == [OPENAI, GEMINI, CLAUDE]
        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_missing_key_raises(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Missing credential raises and leaves the registry empty."""
        manager = make_manager(adapters, {OPENAI: "key"})
        await manager.initialize_all()

        with pytest.raises(ProviderInitError) as exc_info:
            await manager.initialize_single_provider(CLAUDE)

        assert "API key not found" in str(exc_info.value)
        assert manager.available_providers() == []
        assert manager.active_provider_name is None
        assert manager.state is ManagerState.DEGRADED

    @pytest.mark.asyncio
    async def test_settings_key_overrides(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """api_key in explicit settings is used when no credential is configured."""
        manager = make_manager(adapters, {})

        await manager.initialize_single_provider(
            CLAUDE, ProviderSettings(api_key="explicit-key", model="claude-x")
        )

        assert adapters[CLAUDE].api_key == "explicit-key"
        assert adapters[CLAUDE].settings is not None
        assert adapters[CLAUDE].settings.model == "claude-x"

    @pytest.mark.asyncio
    async def test_init_failure_empties_registry(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Adapter failure propagates and nothing is registered."""
        adapters[CLAUDE].fail_init = True
        manager = make_manager(adapters)

        with pytest.raises(ProviderInitError):
            await manager.initialize_single_provider(CLAUDE)

        assert manager.available_providers() == []
        assert manager.is_forced is False
        with pytest.raises(NoActiveProviderError):
            manager.get_active_provider()

    @pytest.mark.asyncio
    async def test_generic_failure_wrapped(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Non-provider exceptions are wrapped in ProviderInitError."""

        async def broken() -> None:
            raise OSError("network down")

        adapters[OPENAI].initialize = broken  # type: ignore[method-assign]
        manager = make_manager(adapters)

        with pytest.raises(ProviderInitError) as exc_info:
            await manager.initialize_single_provider(OPENAI)

        assert isinstance(exc_info.value.__cause__, OSError)


class TestSelection:
    """Tests for active selection and lookup."""

    @pytest.mark.asyncio
    async def test_set_active_provider(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Registered providers can be selected by name."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        manager.set_active_provider("claude")

        assert manager.active_provider_name is CLAUDE
        assert manager.get_active_provider() is adapters[CLAUDE]

    @pytest.mark.asyncio
    async def test_set_unregistered_raises(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Selecting an unregistered provider raises and keeps selection."""
        manager = make_manager(adapters, {OPENAI: "key"})
        await manager.initialize_all()

        with pytest.raises(ProviderNotAvailableError):
            manager.set_active_provider(CLAUDE)
        with pytest.raises(ProviderNotAvailableError):
            manager.set_active_provider("mistral")

        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_is_provider_available(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Availability reflects the registry."""
        manager = make_manager(adapters, {GEMINI: "key"})
        await manager.initialize_all()

        assert manager.is_provider_available("gemini") is True
        assert manager.is_provider_available(OPENAI) is False
        assert manager.is_provider_available("mistral") is False

    @pytest.mark.asyncio
    async def test_get_provider(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """get_provider returns registered adapters only."""
        manager = make_manager(adapters, {GEMINI: "key"})
        await manager.initialize_all()

        assert manager.get_provider("gemini") is adapters[GEMINI]
        with pytest.raises(ProviderNotAvailableError):
            manager.get_provider("openai")

    @pytest.mark.asyncio
    async def test_selection_invalid_after_clear(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """clear() resets registry, selection and state."""
        manager = make_manager(adapters)
        await manager.initialize_single_provider(OPENAI)

        manager.clear()

        assert manager.active_provider_name is None
        assert manager.is_forced is False
        assert manager.state is ManagerState.UNINITIALIZED
        with pytest.raises(NoActiveProviderError):
            manager.get_active_provider()

    @pytest.mark.asyncio
    async def test_forced_hint_in_error(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Error names manual mode when a provider was forced."""
        manager = make_manager(adapters)
        await manager.initialize_single_provider(OPENAI)
        manager.providers.clear()

        with pytest.raises(NoActiveProviderError) as exc_info:
            manager.get_active_provider()

        assert "manual mode" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_provider_info(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """provider_info describes capabilities of registered providers."""
        adapters[OPENAI] = FakeAdapter(OPENAI, images=True)
        manager = make_manager(adapters, {OPENAI: "key", CLAUDE: "key"})
        await manager.initialize_all()

        info = manager.provider_info()

        assert list(info) == [OPENAI, CLAUDE]
        assert info[OPENAI]["is_active"] is True
        assert info[OPENAI]["supports_image_generation"] is True
        assert info[CLAUDE]["is_active"] is False
        assert info[CLAUDE]["supports_tools"] is True
        assert info[CLAUDE]["available_models"] == ["claude-model"]
        assert info[CLAUDE]["is_configured"] is True


class TestChatDispatch:
    """Tests for chat requests through the active provider."""

    @pytest.mark.asyncio
    async def test_chat_uses_active(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Requests go to the active provider only."""
        manager = make_manager(adapters)
        await manager.initialize_all()
        manager.set_active_provider(CLAUDE)

        response = await manager.chat_completion(MESSAGES, ChatOptions(temperature=0.1))

        assert response.provider is CLAUDE
        assert adapters[CLAUDE].chat_calls == 1
        assert adapters[CLAUDE].last_options == ChatOptions(temperature=0.1)
        assert adapters[OPENAI].calls == 0

    @pytest.mark.asyncio
    async def test_chat_without_active_raises(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Requests fail before initialization."""
        manager = make_manager(adapters)

        with pytest.raises(NoActiveProviderError):
            await manager.chat_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_tools_request(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Tool-capable providers receive the tool request."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        response = await manager.chat_completion_with_tools(MESSAGES, TOOLS)

        assert response.mode == "tools"
        assert adapters[OPENAI].tool_calls == 1

    @pytest.mark.asyncio
    async def test_tools_degrade_to_chat(self) -> None:
        """Providers without tools get a plain chat request, mode is chat, every time."""
        adapters = {OPENAI: FakeAdapter(OPENAI, tools=False)}
        manager = make_manager(adapters)
        await manager.initialize_all()

        first = await manager.chat_completion_with_tools(MESSAGES, TOOLS)
        second = await manager.chat_completion_with_tools(MESSAGES, TOOLS)

        assert first == second
        assert first.mode == "chat"
        assert first.tool_calls is None
        assert adapters[OPENAI].chat_calls == 2
        assert adapters[OPENAI].tool_calls == 0

    @pytest.mark.asyncio
    async def test_request_error_propagates(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Adapter errors propagate unchanged."""
        adapters[OPENAI].fail_chat = True
        manager = make_manager(adapters)
        await manager.initialize_all()

        with pytest.raises(ProviderRequestError) as exc_info:
            await manager.chat_completion(MESSAGES)

        assert exc_info.value.provider == "openai"


class TestSwitchProviderWithFallback:
    """Tests for preferred-provider requests with fallback."""

    @pytest.mark.asyncio
    async def test_preferred_succeeds(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Preferred provider serves the request, selection restored."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        response = await manager.switch_provider_with_fallback("claude", MESSAGES)

        assert response.provider is CLAUDE
        assert adapters[OPENAI].calls == 0
        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_preferred_with_tools(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Tools route the request through the tool path."""
        manager = make_manager(adapters)
        await manager.initialize_all()

        response = await manager.switch_provider_with_fallback(GEMINI, MESSAGES, TOOLS)

        assert response.mode == "tools"
        assert adapters[GEMINI].tool_calls == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_previous(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Failure of the preferred provider falls back to the prior selection once."""
        adapters[CLAUDE].fail_chat = True
        manager = make_manager(adapters)
        await manager.initialize_all()

        response = await manager.switch_provider_with_fallback(CLAUDE, MESSAGES, TOOLS)

        assert response.provider is OPENAI
        assert adapters[CLAUDE].calls == 1
        assert adapters[OPENAI].calls == 1
        assert adapters[GEMINI].calls == 0
        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_both_fail(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Exactly two attempts, then NoAvailableProviderError; other providers untouched."""
        adapters[CLAUDE].fail_chat = True
        adapters[OPENAI].fail_chat = True
        manager = make_manager(adapters)
        await manager.initialize_all()

        with pytest.raises(NoAvailableProviderError) as exc_info:
            await manager.switch_provider_with_fallback(CLAUDE, MESSAGES)

        assert isinstance(exc_info.value.__cause__, ProviderRequestError)
        assert adapters[CLAUDE].calls == 1
        assert adapters[OPENAI].calls == 1
        assert adapters[GEMINI].calls == 0
        assert manager.active_provider_name is OPENAI

    @pytest.mark.asyncio
    async def test_preferred_unavailable_falls_back(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """Unregistered preferred provider is treated as a failed attempt."""
        manager = make_manager(adapters, {GEMINI: "key"})
        await manager.initialize_all()

        response = await manager.switch_provider_with_fallback(CLAUDE, MESSAGES)

        assert response.provider is GEMINI
        assert adapters[GEMINI].calls == 1

    @pytest.mark.asyncio
    async def test_no_previous_selection(self, adapters: dict[ProviderName, FakeAdapter]) -> None:
        """Without a prior selection a failed attempt raises immediately."""
        adapters[CLAUDE].fail_chat = True
        manager = make_manager(adapters, {CLAUDE: "key"})
        await manager.initialize_all()
        manager._active = None

        with pytest.raises(NoAvailableProviderError):
            await manager.switch_provider_with_fallback(CLAUDE, MESSAGES)

        assert adapters[CLAUDE].calls == 1
        assert manager.active_provider_name is None

    @pytest.mark.asyncio
    async def test_preferred_equals_previous(
        self, adapters: dict[ProviderName, FakeAdapter]
    ) -> None:
        """When preferred is the active provider it is tried at most twice."""
        adapters[OPENAI].fail_chat = True
        manager = make_manager(adapters)
        await manager.initialize_all()

        with pytest.raises(NoAvailableProviderError):
            await manager.switch_provider_with_fallback(OPENAI, MESSAGES)

        assert adapters[OPENAI].calls == 2
        assert adapters[GEMINI].calls == 0


class TestGenerateImage:
    """Tests for image generation routing."""

    @pytest.mark.asyncio
    async def test_uses_capable_provider(self) -> None:
        """Falls through to the first provider that generates images."""
        adapters = {
            GEMINI: FakeAdapter(GEMINI),
            OPENAI: FakeAdapter(OPENAI, images=True),
        }
        manager = make_manager(adapters)
        await manager.initialize_all()
        manager.set_active_provider(GEMINI)

        result = await manager.generate_image("a fox")

        assert result.url == "https://openai/img.png"

    @pytest.mark.asyncio
    async def test_no_capable_provider(self) -> None:
        """Raises when no registered provider generates images."""
        manager = make_manager({CLAUDE: FakeAdapter(CLAUDE)})
        await manager.initialize_all()

        with pytest.raises(NoAvailableProviderError) as exc_info:
            await manager.generate_image("a fox")

        assert not isinstance(exc_info.value, ProviderNotAvailableError)
        assert "image generation" in str(exc_info.value)


class TestFromConfig:
    """Tests for building a manager from Config."""

    def test_keys_and_settings(self, tmp_path: Path) -> None:
        """Credentials and settings are read per provider."""
        (tmp_path / "config.toml").write_text(
            '[providers.claude]\nmodel = "claude-x"\napi_key = "toml-key"\n',
            encoding="utf-8",
        )
        config = Config.load(project_root=tmp_path)
        config.api_keys[OPENAI] = "env-openai"

        manager = ProviderManager.from_config(config)

        assert manager.api_keys[OPENAI] == "env-openai"
        assert manager.api_keys[CLAUDE] == "toml-key"
        assert manager.settings[CLAUDE].model == "claude-x"
        assert manager.state is ManagerState.UNINITIALIZED
