"""Configuration loader for Research Agents.

Loads application settings from config.toml and provider credentials
from .env, provides prompt resolution and per-provider settings.

Example:
    >>> from src.config import Config
    >>> config = Config.load()
    >>> print(config.providers.mode)  # auto
    >>> print(config.api_key_for(ProviderName.OPENAI))  # sk-...
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Literal, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from src.utils.llm_adapters.base import ProviderName

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger(__name__)

SectionT = TypeVar("SectionT", bound=BaseModel)


class ConfigError(Exception):
    """config.toml is missing, unparsable or fails validation."""

    pass


class PromptNotFoundError(Exception):
    """No src/prompts/<name>.md for the requested prompt."""

    pass


class ProviderSettings(BaseModel):
    """Options bag for a single provider.

    Fields with None value are not passed to the vendor API. Unknown keys
    are kept and forwarded to the vendor request as-is.

    Example:
        >>> settings = ProviderSettings(model="gpt-4o", temperature=0.2)
        >>> settings.timeout
        600
    """

    model_config = ConfigDict(extra="allow")

    model: str | None = None
    api_key: str | None = None
    temperature: float = Field(ge=0.0, le=2.0, default=0.7)
    max_tokens: int | None = Field(ge=1, default=None)
    top_p: float | None = Field(ge=0.0, le=1.0, default=None)
    timeout: int = Field(ge=1, default=600)
    max_retries: int = Field(ge=0, le=10, default=2)

    def passthrough(self) -> dict[str, Any]:
        """Return extra keys that are forwarded to the vendor request."""
        return dict(self.model_extra or {})


class ProvidersConfig(BaseModel):
    """Provider selection configuration.

    In "auto" mode every provider with a credential is initialized.
    In "manual" mode only forced_provider is initialized.

    Example:
        >>> config = ProvidersConfig(mode="manual", forced_provider="claude")
        >>> config.forced_provider
        <ProviderName.CLAUDE: 'claude'>
    """

    mode: Literal["auto", "manual"] = "auto"
    forced_provider: ProviderName | None = None
    openai: ProviderSettings = Field(default_factory=ProviderSettings)
    gemini: ProviderSettings = Field(default_factory=ProviderSettings)
    claude: ProviderSettings = Field(default_factory=ProviderSettings)

    @model_validator(mode="after")
    def _check_forced_provider(self) -> ProvidersConfig:
        if self.mode == "manual" and self.forced_provider is None:
            raise ValueError("manual mode requires forced_provider")
        return self

    def settings_for(self, name: ProviderName) -> ProviderSettings:
        """Return the options bag for a provider."""
        settings: ProviderSettings = getattr(self, name.value)
        return settings


class AgentConfig(BaseModel):
    """Agent behaviour settings.

    Example:
        >>> config = AgentConfig(max_tool_rounds=5)
        >>> config.max_tool_rounds
        5
    """

    preferred_provider: ProviderName | None = None
    max_tool_rounds: int = Field(ge=1, le=50, default=10)


class DatabaseConfig(BaseModel):
    """Research plan database settings.

    Relative paths are resolved against the project root.
    """

    path: Path = Path("data/research.db")


class EnvSettings(BaseSettings):
    """Provider credentials and default models from the environment.

    Read after load_dotenv() has copied .env into os.environ.
    """

    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    claude_api_key: str | None = None
    openai_default_model: str | None = None
    gemini_default_model: str | None = None
    claude_default_model: str | None = None

    def api_key(self, name: ProviderName) -> str | None:
        return getattr(self, f"{name.value}_api_key")

    def default_model(self, name: ProviderName) -> str | None:
        return getattr(self, f"{name.value}_default_model")


def _load_env_settings(env_file_path: Path | None) -> EnvSettings:
    """Read provider variables, loading env_file_path into os.environ first."""
    if env_file_path is not None and env_file_path.exists():
        load_dotenv(env_file_path, override=True)

    return EnvSettings()


def _format_validation_error(section: str, e: ValidationError) -> str:
    """Build a one-line message naming the first failing field."""
    errors = e.errors()
    if not errors:
        return f"Validation error in {section} config: {e}"
    err = errors[0]
    field = ".".join(str(loc) for loc in err["loc"])
    if field:
        return f"Config error: {section}.{field} {err['msg']}"
    return f"Config error: {section} {err['msg']}"


def _parse_section(model: type[SectionT], section: str, toml_data: dict[str, Any]) -> SectionT:
    try:
        return model(**toml_data.get(section, {}))
    except ValidationError as e:
        raise ConfigError(_format_validation_error(section, e)) from e


class Config:
    """Settings for providers, agents and the plan database.

    Example:
        >>> config = Config.load()
        >>> config.providers.mode
        'auto'
        >>> config.api_key_for(ProviderName.CLAUDE)
    """

    def __init__(
        self,
        providers: ProvidersConfig,
        agent: AgentConfig,
        database: DatabaseConfig,
        api_keys: dict[ProviderName, str | None],
        project_root: Path,
    ) -> None:
        self.providers = providers
        self.agent = agent
        self.database = database
        self.api_keys = api_keys
        self.project_root = project_root

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        project_root: Path | None = None,
    ) -> Config:
        """Read config.toml and the provider variables from .env.

        Args:
            config_path: config.toml location; defaults to the project root.
            project_root: Directory holding config.toml, .env and src/prompts/.
                Found from the nearest pyproject.toml when omitted.

        Raises:
            ConfigError: Missing or unparsable config.toml, or a section
                that fails validation.
        """
        if project_root is None:
            project_root = cls._find_project_root()
        if config_path is None:
            config_path = project_root / "config.toml"
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML syntax in {config_path}: {e}") from e

        env_file = project_root / ".env"
        env_settings = _load_env_settings(env_file if env_file.exists() else None)

        providers = _parse_section(ProvidersConfig, "providers", toml_data)
        agent = _parse_section(AgentConfig, "agent", toml_data)
        database = _parse_section(DatabaseConfig, "database", toml_data)

        # config.toml model wins over *_DEFAULT_MODEL
        for name in ProviderName:
            settings = providers.settings_for(name)
            if settings.model is None:
                settings.model = env_settings.default_model(name) or None

        if not database.path.is_absolute():
            database.path = project_root / database.path

        api_keys = {name: env_settings.api_key(name) for name in ProviderName}

        logger.debug(
            "Config loaded: mode=%s, keys=%s",
            providers.mode,
            ", ".join(f"{name}={'***' if key else 'None'}" for name, key in api_keys.items()),
        )

        return cls(
            providers=providers,
            agent=agent,
            database=database,
            api_keys=api_keys,
            project_root=project_root,
        )

    @staticmethod
    def _find_project_root() -> Path:
        current = Path(__file__).resolve().parent
        while current != current.parent:
            if (current / "pyproject.toml").exists():
                return current
            current = current.parent

        raise ConfigError("Could not find project root (no pyproject.toml found)")

    def api_key_for(self, name: ProviderName) -> str | None:
        """Return the credential for a provider.

        A key set in the provider's config.toml section wins over .env.
        """
        settings = self.providers.settings_for(name)
        return settings.api_key or self.api_keys.get(name)

    def resolve_prompt(self, prompt_name: str) -> Path:
        """Path of src/prompts/<prompt_name>.md under the project root.

        Raises:
            PromptNotFoundError: The file does not exist.
        """
        prompt_path = self.project_root / "src" / "prompts" / f"{prompt_name}.md"
        if prompt_path.exists():
            logger.debug("Using prompt: %s", prompt_path)
            return prompt_path

        raise PromptNotFoundError(f"Prompt not found: {prompt_path}")
