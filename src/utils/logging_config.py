"""Console logging for Research Agents.

Every record is printed on one line, tagged with an emoji for the module
that emitted it. Provider adapters are tagged by vendor so fallback
between providers is easy to follow:

    2025.06.05 14:32:07 | INFO    | 🤖 llm: Active provider: openai
    2025.06.05 14:32:08 | WARNING | 🟠 claude: Unsupported tool_choice, using auto
"""

import logging
import sys
from datetime import datetime

EMOJI_MAP: dict[str, str] = {
    "config": "⚙️",
    "cli": "🖥️",
    "llm": "🤖",
    "openai": "🟢",
    "gemini": "🔷",
    "claude": "🟠",
    "base": "🧩",
    "research_planner": "🗺️",
    "research_plans": "🔧",
    "storage": "💾",
    "prompts": "📝",
}

DEFAULT_EMOJI = "📋"

# SDK and transport loggers; chatty at DEBUG and may echo request headers
QUIET_LOGGERS = ["httpx", "httpcore", "openai", "anthropic", "google_genai"]


def module_label(logger_name: str) -> str:
    """Short label for a logger name ("src.utils.llm_adapters.claude" -> "claude")."""
    return logger_name.rsplit(".", 1)[-1]


class EmojiFormatter(logging.Formatter):
    """Format: YYYY.MM.DD HH:MM:SS | LEVEL   | 🏷️ module: message"""

    def format(self, record: logging.LogRecord) -> str:
        module = module_label(record.name)
        emoji = EMOJI_MAP.get(module, DEFAULT_EMOJI)
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y.%m.%d %H:%M:%S")
        return f"{timestamp} | {record.levelname:<7} | {emoji} {module}: {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Install the emoji handler on the root logger.

    Called once from the CLI callback. Replaces any existing root handlers
    and writes to stderr so command output on stdout stays clean.

    Args:
        verbose: DEBUG instead of INFO. SDK loggers stay at WARNING either way.
    """
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(EmojiFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
