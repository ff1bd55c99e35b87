"""
Logging setup for factory.

Every record carries the key of the item being processed (or
"factory-system" outside a pipeline run), taken from a context variable so
it follows the current thread without being passed around.
"""

from __future__ import annotations

import contextvars
import logging
import os
import re
import sys
from collections.abc import Iterable

DEFAULT_CONTEXT = "factory-system"

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(item_context)s %(name)s: %(message)s"

# Characters of a long message kept when not in debug mode
PREVIEW_CHARS = 100

_item_context: contextvars.ContextVar[str] = contextvars.ContextVar(
    "item_context", default=DEFAULT_CONTEXT
)


def set_item_context(item_key: str | None = None) -> None:
    """Tag subsequent records in this context with an item key (e.g. "PROJ-123")."""
    _item_context.set(item_key or DEFAULT_CONTEXT)


def clear_item_context() -> None:
    _item_context.set(DEFAULT_CONTEXT)


def get_item_context() -> str:
    return _item_context.get()


class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    GRAY = "\033[90m"
    ORANGE = "\033[38;5;208m"


# INFO messages containing one of these phrases get a color and a marker.
# First match wins.
EVENT_STYLES: list[tuple[str, str, str]] = [
    ("daemon started", Colors.GREEN, ">>>"),
    ("daemon running", Colors.GREEN, ">>>"),
    ("poller started", Colors.GREEN, ">>>"),
    ("processing", Colors.GREEN, ">>>"),
    ("cloning", Colors.GREEN, ">>>"),
    ("completed", Colors.GREEN, "✓"),
    ("created pr", Colors.GREEN, "✓"),
    ("stopped", Colors.GREEN, "✓"),
    ("transitioned", Colors.YELLOW, "→"),
    ("no changes made", Colors.GRAY, "⊘"),
    ("already processed", Colors.GRAY, "⊘"),
    ("stale pid", Colors.GRAY, "⊘"),
    ("creating branch", Colors.ORANGE, "⚙"),
    ("checking out", Colors.ORANGE, "⚙"),
    ("running claude", Colors.ORANGE, "⚙"),
    ("pushed branch", Colors.ORANGE, "⚙"),
]

LEVEL_COLORS = {
    logging.CRITICAL: Colors.RED,
    logging.ERROR: Colors.RED,
    logging.WARNING: Colors.YELLOW,
}


class PlainContextAwareFormatter(logging.Formatter):
    """Formatter that fills in %(item_context)s from the context variable."""

    def format(self, record: logging.LogRecord) -> str:
        record.item_context = get_item_context()
        return super().format(record)


class ContextAwareFormatter(PlainContextAwareFormatter):
    """Terminal formatter: warnings and errors by level, INFO by event type."""

    @staticmethod
    def _event_style(message: str) -> tuple[str, str] | None:
        lowered = message.lower()
        for phrase, color, marker in EVENT_STYLES:
            if phrase in lowered:
                return color, marker
        return None

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)

        level_color = LEVEL_COLORS.get(record.levelno)
        if level_color:
            return f"{level_color}{text}{Colors.RESET}"
        if record.levelno != logging.INFO:
            return text

        style = self._event_style(record.getMessage())
        if style is None:
            return text
        color, marker = style
        return f"{color}{marker} {text}{Colors.RESET}"


class MaskingFilter(logging.Filter):
    """Replace secret values with **** before a record is emitted.

    The message is rendered first so secrets passed as %-style arguments are
    caught too. Covers tokens echoed back in git, gh or HTTP error output.
    """

    MASK = "****"

    def __init__(self, secrets: Iterable[str | None]) -> None:
        super().__init__()
        values = sorted({s for s in secrets if s}, key=len, reverse=True)
        self._pattern = re.compile("|".join(map(re.escape, values))) if values else None

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        message = record.getMessage()
        masked = self._pattern.sub(self.MASK, message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _stream_handler(
    stream,
    formatter: logging.Formatter,
    masking_filter: MaskingFilter,
    level: int = logging.DEBUG,
    below: int | None = None,
) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    if below is not None:
        handler.addFilter(lambda record: record.levelno < below)
    handler.addFilter(masking_filter)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    daemon_mode: bool = False,
    masked_values: Iterable[str | None] = (),
) -> None:
    """
    Install factory's handlers on the root logger, replacing any existing ones.

    The level comes from the LOG_LEVEL environment variable (default INFO).

    Args:
        daemon_mode: Write plain records to stdout only. The supervisor points
            the daemon's stdout at daemon.log, so one stream keeps records in
            order. Otherwise records are colored, with WARNING and above going
            to stderr.
        masked_values: Secrets to replace with **** in every record.
    """
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    masking_filter = MaskingFilter(masked_values)

    if daemon_mode:
        handlers = [
            _stream_handler(sys.stdout, PlainContextAwareFormatter(LOG_FORMAT), masking_filter)
        ]
    else:
        formatter = ContextAwareFormatter(LOG_FORMAT)
        handlers = [
            _stream_handler(sys.stdout, formatter, masking_filter, below=logging.WARNING),
            _stream_handler(sys.stderr, formatter, masking_filter, level=logging.WARNING),
        ]

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers[:] = handlers


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def is_debug_mode() -> bool:
    return logging.getLogger().level <= logging.DEBUG


def log_message(logger: logging.Logger, label: str, content: str) -> None:
    """Log a long text at DEBUG: in full in debug mode, as a preview otherwise."""
    if is_debug_mode():
        logger.debug(f"{label}:\n{content}")
    else:
        logger.debug(f"{label}: {content[:PREVIEW_CHARS]}...")
