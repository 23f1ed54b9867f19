"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

ENV_VARS = [
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "CLAUDE_API_KEY",
    "OPENAI_DEFAULT_MODEL",
    "GEMINI_DEFAULT_MODEL",
    "CLAUDE_DEFAULT_MODEL",
]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove provider variables from the environment.

    Each variable is registered with monkeypatch first, so values written
    by load_dotenv() during a test are rolled back afterwards.
    """
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch
