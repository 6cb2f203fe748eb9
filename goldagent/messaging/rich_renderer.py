"""Rich console renderer for structured messages."""

from typing import Dict, Optional

from rich.console import Console
from rich.markup import escape as escape_rich_markup
from rich.table import Table

from .messages import MessageLevel, TextMessage

DEFAULT_STYLES: Dict[MessageLevel, str] = {
    MessageLevel.ERROR: "bold red",
    MessageLevel.WARNING: "yellow",
    MessageLevel.SUCCESS: "green",
    MessageLevel.INFO: "white",
    MessageLevel.DEBUG: "dim",
}

_PREFIXES: Dict[MessageLevel, str] = {
    MessageLevel.ERROR: "✗ ",
    MessageLevel.WARNING: "⚠ ",
    MessageLevel.SUCCESS: "✓ ",
    MessageLevel.INFO: "",
    MessageLevel.DEBUG: "• ",
}


class RichConsoleRenderer:
    """Renders TextMessages and simple tables to a Rich console."""

    def __init__(
        self,
        console: Optional[Console] = None,
        styles: Optional[Dict[MessageLevel, str]] = None,
    ):
        self._console = console or Console()
        self._styles = styles or DEFAULT_STYLES.copy()

    @property
    def console(self) -> Console:
        return self._console

    def render(self, msg: TextMessage) -> None:
        """Render a text message with its level style.

        Text is escaped so that brackets in command strings or cron
        expressions are never interpreted as Rich markup.
        """
        style = self._styles.get(msg.level, "white")
        prefix = _PREFIXES.get(msg.level, "")
        self._console.print(f"{prefix}{escape_rich_markup(msg.text)}", style=style)

    def render_table(self, title: str, columns: list, rows: list) -> None:
        table = Table(title=title, show_header=True, header_style="bold", box=None, padding=(0, 2))
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(escape_rich_markup(str(cell)) for cell in row))
        self._console.print(table)
