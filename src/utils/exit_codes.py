"""Exit codes for the research-agents CLI.

Each command ends with one of these codes. Errors raised by providers,
prompts and the plan store are mapped to a code by exit_code_for().

Example:
    >>> from src.utils.exit_codes import exit_code_for
    >>> from src.utils.llm_errors import NoActiveProviderError
    >>> exit_code_for(NoActiveProviderError("auto"))
    1
"""

from __future__ import annotations

import logging

from src.utils.llm_errors import (
    NoActiveProviderError,
    ProviderError,
    ProviderInitError,
    ProviderRateLimitError,
    UnsupportedProviderError,
)
from src.utils.prompts import PromptNotFoundError, PromptRenderError
from src.utils.storage import StorageIOError

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_RUNTIME_ERROR = 3
EXIT_API_LIMIT_ERROR = 4
EXIT_IO_ERROR = 5

EXIT_CODE_NAMES: dict[int, str] = {
    EXIT_SUCCESS: "SUCCESS",
    EXIT_CONFIG_ERROR: "CONFIG_ERROR",
    EXIT_INPUT_ERROR: "INPUT_ERROR",
    EXIT_RUNTIME_ERROR: "RUNTIME_ERROR",
    EXIT_API_LIMIT_ERROR: "API_LIMIT_ERROR",
    EXIT_IO_ERROR: "IO_ERROR",
}

EXIT_CODE_DESCRIPTIONS: dict[int, str] = {
    EXIT_SUCCESS: "Successful execution",
    EXIT_CONFIG_ERROR: "Configuration error (no provider available, broken config.toml)",
    EXIT_INPUT_ERROR: "Input error (unknown provider, unknown plan id)",
    EXIT_RUNTIME_ERROR: "Runtime error (provider request failed, fallback exhausted)",
    EXIT_API_LIMIT_ERROR: "API rate limit exceeded",
    EXIT_IO_ERROR: "Storage error (cannot read or write the research plan database)",
}

# Checked in order: subclasses before their bases.
ERROR_EXIT_CODES: tuple[tuple[type[Exception], int], ...] = (
    (UnsupportedProviderError, EXIT_INPUT_ERROR),
    (ProviderInitError, EXIT_CONFIG_ERROR),
    (NoActiveProviderError, EXIT_CONFIG_ERROR),
    (ProviderRateLimitError, EXIT_API_LIMIT_ERROR),
    (ProviderError, EXIT_RUNTIME_ERROR),
    (PromptNotFoundError, EXIT_CONFIG_ERROR),
    (PromptRenderError, EXIT_CONFIG_ERROR),
    (StorageIOError, EXIT_IO_ERROR),
)

HANDLED_ERRORS: tuple[type[Exception], ...] = tuple(cls for cls, _ in ERROR_EXIT_CODES)


def get_exit_code_name(code: int) -> str:
    """Return readable name for exit code, or "UNKNOWN({code})"."""
    return EXIT_CODE_NAMES.get(code, f"UNKNOWN({code})")


def get_exit_code_description(code: int) -> str:
    """Return description for exit code, or "Unknown exit code: {code}"."""
    return EXIT_CODE_DESCRIPTIONS.get(code, f"Unknown exit code: {code}")


def exit_code_for(error: Exception) -> int:
    """Map an error raised during a command to its exit code.

    Args:
        error: Exception caught by the CLI.

    Returns:
        Matching exit code; EXIT_RUNTIME_ERROR for anything unmapped.
    """
    for error_type, code in ERROR_EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return EXIT_RUNTIME_ERROR


def log_exit(logger: logging.Logger, code: int, message: str | None = None) -> None:
    """Log exit code with optional message.

    SUCCESS goes through logger.info(), every other code through
    logger.error().
    """
    text = f"[{get_exit_code_name(code)}] {get_exit_code_description(code)}"
    if message:
        text = f"{text}: {message}"

    if code == EXIT_SUCCESS:
        logger.info(text)
    else:
        logger.error(text)
