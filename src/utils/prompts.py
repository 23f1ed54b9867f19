"""Jinja2 prompt templates for agents.

Templates live in src/prompts/<name>.md and are located through
Config.resolve_prompt(). Undefined variables are errors, so a template
that expects {{ topic }} cannot silently render without one.

Example:
    >>> renderer = PromptRenderer(Config.load())
    >>> renderer.render("research_planner_topic", {"topic": "fusion energy"})
"""

from __future__ import annotations

import logging
from typing import Any

from jinja2 import Environment, StrictUndefined, Template, TemplateSyntaxError, UndefinedError

from src.config import Config, PromptNotFoundError

logger = logging.getLogger(__name__)


class PromptRenderError(Exception):
    """Template could not be read, parsed or rendered."""

    pass


class PromptRenderer:
    """Renders prompt templates, compiling each template once."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._env = Environment(undefined=StrictUndefined, autoescape=False)
        self._templates: dict[str, Template] = {}

    def _template(self, template_name: str) -> Template:
        cached = self._templates.get(template_name)
        if cached is not None:
            return cached

        path = self._config.resolve_prompt(template_name)
        logger.debug("Loading prompt '%s' from %s", template_name, path)

        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PromptRenderError(f"Cannot read '{template_name}': {e}") from e

        try:
            template = self._env.from_string(source)
        except TemplateSyntaxError as e:
            raise PromptRenderError(f"Syntax error in '{template_name}': {e.message}") from e

        self._templates[template_name] = template
        return template

    def render(self, template_name: str, context: dict[str, Any] | None = None) -> str:
        """Render a template by name.

        Args:
            template_name: File name in src/prompts/ without ".md".
            context: Template variables.

        Returns:
            Rendered text with surrounding whitespace stripped.

        Raises:
            PromptNotFoundError: No such template.
            PromptRenderError: Unreadable file, syntax error or missing variable.
        """
        template = self._template(template_name)
        try:
            return template.render(context or {}).strip()
        except UndefinedError as e:
            raise PromptRenderError(f"Missing variable in '{template_name}': {e}") from e


__all__ = ["PromptRenderer", "PromptRenderError", "PromptNotFoundError"]
