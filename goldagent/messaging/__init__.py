"""GoldAgent messaging.

Console output for CLI handlers goes through these helpers so that
presentation stays in one place:

    >>> from goldagent.messaging import emit_info, emit_error
    >>> emit_info("Scheduler daemon is not running")
    >>> emit_error("Store is locked")
"""

from typing import Optional

from .messages import MessageLevel, TextMessage
from .rich_renderer import DEFAULT_STYLES, RichConsoleRenderer

_renderer: Optional[RichConsoleRenderer] = None


def get_renderer() -> RichConsoleRenderer:
    global _renderer
    if _renderer is None:
        _renderer = RichConsoleRenderer()
    return _renderer


def set_renderer(renderer: Optional[RichConsoleRenderer]) -> None:
    """Replace the process-wide renderer (None restores the default)."""
    global _renderer
    _renderer = renderer


def emit_message(level: MessageLevel, text: str) -> None:
    get_renderer().render(TextMessage(level=level, text=text))


def emit_info(text: str) -> None:
    emit_message(MessageLevel.INFO, text)


def emit_success(text: str) -> None:
    emit_message(MessageLevel.SUCCESS, text)


def emit_warning(text: str) -> None:
    emit_message(MessageLevel.WARNING, text)


def emit_error(text: str) -> None:
    emit_message(MessageLevel.ERROR, text)


def emit_table(title: str, columns: list, rows: list) -> None:
    get_renderer().render_table(title, columns, rows)


__all__ = [
    "DEFAULT_STYLES",
    "MessageLevel",
    "RichConsoleRenderer",
    "TextMessage",
    "emit_error",
    "emit_info",
    "emit_message",
    "emit_success",
    "emit_table",
    "emit_warning",
    "get_renderer",
    "set_renderer",
]
