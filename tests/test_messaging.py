"""Tests for console messaging helpers."""

import pytest
from rich.console import Console

from goldagent.messaging import (
    MessageLevel,
    RichConsoleRenderer,
    TextMessage,
    emit_error,
    emit_info,
    emit_success,
    emit_table,
    emit_warning,
    get_renderer,
    set_renderer,
)


@pytest.fixture
def console():
    console = Console(record=True, width=120, color_system=None)
    set_renderer(RichConsoleRenderer(console=console))
    yield console
    set_renderer(None)


class TestTextMessage:
    def test_frozen(self):
        msg = TextMessage(level=MessageLevel.INFO, text="hi")
        with pytest.raises(Exception):
            msg.text = "changed"

    def test_extra_fields_forbidden(self):
        with pytest.raises(Exception):
            TextMessage(level=MessageLevel.INFO, text="hi", colour="red")


class TestEmit:
    """emit_* helpers go through the process-wide renderer."""

    def test_levels_rendered_with_prefixes(self, console):
        emit_info("plain info")
        emit_success("all good")
        emit_warning("careful")
        emit_error("broken")
        out = console.export_text()
        assert "plain info" in out
        assert "✓ all good" in out
        assert "⚠ careful" in out
        assert "✗ broken" in out

    def test_markup_is_escaped(self, console):
        emit_info("echo [bold]not markup[/bold]")
        assert "[bold]not markup[/bold]" in console.export_text()

    def test_table(self, console):
        emit_table("Jobs", ["ID", "Command"], [["job-1", "echo [x]"]])
        out = console.export_text()
        assert "Jobs" in out
        assert "job-1" in out
        assert "echo [x]" in out

    def test_default_renderer_restored(self, console):
        set_renderer(None)
        assert isinstance(get_renderer(), RichConsoleRenderer)
