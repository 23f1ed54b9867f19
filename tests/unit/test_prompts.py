"""Unit tests for prompts module."""

from pathlib import Path

import pytest

from src.config import Config, PromptNotFoundError
from src.utils.prompts import PromptRenderer, PromptRenderError

pytestmark = pytest.mark.usefixtures("clean_env")

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def config_setup(tmp_path: Path) -> tuple[Config, Path]:
    """Create Config with temporary project structure."""
    config_toml = tmp_path / "config.toml"
    config_toml.write_text("", encoding="utf-8")

    prompts_dir = tmp_path / "src" / "prompts"
    prompts_dir.mkdir(parents=True)

    config = Config.load(config_path=config_toml, project_root=tmp_path)
    return config, tmp_path


def write_prompt(tmp_path: Path, name: str, text: str) -> None:
    (tmp_path / "src" / "prompts" / f"{name}.md").write_text(text, encoding="utf-8")


# =============================================================================
# Rendering Tests
# =============================================================================


class TestRender:
    """Tests for rendering with valid context."""

    def test_render_valid_context(self, config_setup: tuple[Config, Path]) -> None:
        """Renders template with all required variables."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "topic", 'Plan research for "{{ topic }}".\n')

        result = PromptRenderer(config).render("topic", {"topic": "fusion startups"})

        assert result == 'Plan research for "fusion startups".'

    def test_render_without_context(self, config_setup: tuple[Config, Path]) -> None:
        """Templates without variables render with no context."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "system", "\nYou are a research planner.\n\n")

        result = PromptRenderer(config).render("system")

        assert result == "You are a research planner."

    def test_render_loop(self, config_setup: tuple[Config, Path]) -> None:
        """Jinja2 control structures work."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "list", "{% for t in topics %}- {{ t }}\n{% endfor %}")

        result = PromptRenderer(config).render("list", {"topics": ["a", "b"]})

        assert result == "- a\n- b"

    def test_no_autoescape(self, config_setup: tuple[Config, Path]) -> None:
        """Markup characters are kept as-is."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "raw", "{{ text }}")

        result = PromptRenderer(config).render("raw", {"text": "<b>&</b>"})

        assert result == "<b>&</b>"


# =============================================================================
# Error Tests
# =============================================================================


class TestRenderErrors:
    """Tests for rendering failures."""

    def test_missing_variable(self, config_setup: tuple[Config, Path]) -> None:
        """Undefined variables raise PromptRenderError."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "topic", "{{ topic }}")

        with pytest.raises(PromptRenderError) as exc_info:
            PromptRenderer(config).render("topic", {})

        assert "Missing variable in 'topic'" in str(exc_info.value)

    def test_syntax_error(self, config_setup: tuple[Config, Path]) -> None:
        """Broken templates raise PromptRenderError."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "broken", "{% for x in %}")

        with pytest.raises(PromptRenderError) as exc_info:
            PromptRenderer(config).render("broken", {})

        assert "Syntax error in 'broken'" in str(exc_info.value)

    def test_missing_template(self, config_setup: tuple[Config, Path]) -> None:
        """Missing template raises PromptNotFoundError."""
        config, _ = config_setup

        with pytest.raises(PromptNotFoundError):
            PromptRenderer(config).render("does_not_exist")


# =============================================================================
# Project Prompt Tests
# =============================================================================


class TestProjectPrompts:
    """Tests for shipped prompt templates."""

    @pytest.fixture
    def renderer(self, project_root: Path) -> PromptRenderer:
        config = Config.load(project_root=project_root)
        return PromptRenderer(config)

    def test_planner_system(self, renderer: PromptRenderer) -> None:
        result = renderer.render("research_planner_system")
        assert "research plan" in result

    def test_planner_topic(self, renderer: PromptRenderer) -> None:
        result = renderer.render("research_planner_topic", {"topic": "home batteries"})
        assert '"home batteries"' in result

    def test_planner_topic_requires_topic(self, renderer: PromptRenderer) -> None:
        with pytest.raises(PromptRenderError):
            renderer.render("research_planner_topic")

    def test_planner_final(self, renderer: PromptRenderer) -> None:
        assert "final version" in renderer.render("research_planner_final")

    def test_chat_system(self, renderer: PromptRenderer) -> None:
        assert renderer.render("chat_system")


class TestTemplateCache:
    """Tests for compiled template reuse."""

    def test_template_compiled_once(self, config_setup: tuple[Config, Path]) -> None:
        """Later edits to the file do not affect an already loaded template."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "topic", "First {{ topic }}")
        renderer = PromptRenderer(config)

        assert renderer.render("topic", {"topic": "a"}) == "First a"

        write_prompt(tmp_path, "topic", "Second {{ topic }}")

        assert renderer.render("topic", {"topic": "b"}) == "First b"

    def test_failed_syntax_not_cached(self, config_setup: tuple[Config, Path]) -> None:
        """A broken template is re-read on the next render."""
        config, tmp_path = config_setup
        write_prompt(tmp_path, "broken", "{% if %}")
        renderer = PromptRenderer(config)

        with pytest.raises(PromptRenderError):
            renderer.render("broken")

        write_prompt(tmp_path, "broken", "Fixed")

        assert renderer.render("broken") == "Fixed"
