from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
GRAY = "\033[90m"
CYAN = "\033[96m"
BLUE = "\033[94m"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}


def _paint(value: Any) -> str:
    if value is None:
        return f"{DIM}None{RESET}"
    if isinstance(value, (bool, int, float)):
        return f"\033[93m{value}{RESET}"
    if isinstance(value, str):
        return f"\033[92m{value}{RESET}"
    return f"\033[37m{value}{RESET}"


class ColoredConsoleRenderer:
    """Human-readable structlog renderer; falls back to JSON when stdout is not a tty."""

    def __init__(self, colored: bool = True) -> None:
        self.colored = colored and sys.stdout.isatty()
        self._json = structlog.processors.JSONRenderer()

    def __call__(self, logger: Any, name: str, event_dict: dict) -> str:
        if not self.colored:
            return self._json(logger, name, event_dict)

        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info").upper()
        event = event_dict.pop("event", "")

        parts = []
        if timestamp:
            parts.append(f"{GRAY}[{timestamp}]{RESET}")
        parts.append(f"{LEVEL_COLORS.get(level, LEVEL_COLORS['INFO'])}{BOLD}{level:8}{RESET}")
        parts.append(f"{CYAN}{event}{RESET}")
        if event_dict:
            separator = f" {DIM}|{RESET} "
            pairs = (f"{BLUE}{key}{RESET}={_paint(value)}" for key, value in event_dict.items())
            parts.append(f"{DIM}|{RESET} " + separator.join(pairs))
        return " ".join(parts)


class _StdlibFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if not sys.stdout.isatty():
            return super().format(record)
        color = LEVEL_COLORS.get(record.levelname, LEVEL_COLORS["INFO"])
        return (
            f"{GRAY}[{self.formatTime(record, '%H:%M:%S')}]{RESET} "
            f"{color}{BOLD}{record.levelname:8}{RESET} "
            f"{DIM}{record.name}{RESET} {record.getMessage()}"
        )


def setup_logging(level: int = logging.INFO, use_json: bool = False) -> None:
    """
    Configure structlog for the bot and route aiogram/aiohttp stdlib logs
    through a matching formatter.

    Args:
        level: Logging level (default: INFO)
        use_json: If True, use JSON format instead of colored output (default: False)
    """
    renderer = structlog.processors.JSONRenderer() if use_json else ColoredConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(_StdlibFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)

    logging.getLogger("aiogram").setLevel(logging.INFO)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def bind_action(action: str, **context: Any) -> None:
    """Attach the current staff action to every log line emitted while handling it."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(action=action, **context)

