"""Tests for the output and diagnostics system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- JSON, plain, and Rich renderers
- The pipeline's debug trace routed through the global manager
"""

from __future__ import annotations

import json

import pytest

from reqflow import output as output_module
from reqflow.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("reqflow.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("reqflow.output._is_tty", lambda: True)


class TestFormatResolution:
    def test_auto_is_plain_when_piped(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_is_rich_on_terminal(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_is_plain_on_terminal_without_color(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_format_kept(self, non_tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON
        assert OutputManager(format=OutputFormat.RICH).format == OutputFormat.RICH


class TestColorDisabling:
    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_terminal(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


class TestStreams:
    def test_data_on_stdout_diagnostics_on_stderr(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True, verbose=True)
        mgr.format_response({"id": 1})
        mgr.info("HTTP 200")
        mgr.warning("slow")
        mgr.error("failed")
        mgr.debug("[dispatching] GET https://api.example.com/")
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"id": 1}
        assert "HTTP 200" in captured.err
        assert "Warning: slow" in captured.err
        assert "Error: failed" in captured.err
        assert "[debug] [dispatching] GET" in captured.err

    def test_quiet_keeps_warnings_and_errors(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("hidden")
        mgr.success("hidden")
        mgr.suggest("hidden")
        mgr.warning("shown")
        mgr.error("shown too")
        captured = capfd.readouterr()
        assert "hidden" not in captured.err
        assert "shown" in captured.err
        assert "shown too" in captured.err

    def test_debug_hidden_unless_verbose(self, capfd, non_tty):
        OutputManager(no_color=True).debug("trace")
        assert capfd.readouterr().err == ""

    def test_debug_with_color_escapes_markup(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        mgr = OutputManager(format=OutputFormat.PLAIN, verbose=True)
        mgr.debug("[retrying] GET /x: [bold]down[/bold]")
        err = capfd.readouterr().err
        assert "[retrying]" in err
        assert "[bold]down[/bold]" in err


class TestRenderers:
    def test_json_reformats_json_strings(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response('{"a":1}')
        assert capfd.readouterr().out == '{\n  "a": 1\n}\n'

    def test_json_passes_other_strings(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response("<html></html>")
        assert capfd.readouterr().out == "<html></html>\n"

    def test_plain_dict_is_tab_separated(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"id": 1, "name": "x"})
        assert capfd.readouterr().out == "id\t1\nname\tx\n"

    def test_plain_list_of_dicts_rows(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response([{"id": 1}, {"id": 2}])
        assert capfd.readouterr().out == "1\n2\n"

    def test_rich_renders_dict(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH).format_response({"key": "value"})
        out = capfd.readouterr().out
        assert "key" in out
        assert "value" in out

    def test_rich_renders_text_without_markup(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH).format_response("[red]literal[/red]", "text/plain")
        assert "[red]literal[/red]" in capfd.readouterr().out


class TestGlobalInstance:
    def test_lazy_default(self, non_tty):
        assert isinstance(get_output(), OutputManager)
        assert get_output() is get_output()

    def test_set_and_reset(self):
        mgr = OutputManager(quiet=True)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr

    def test_convenience_functions_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.JSON, no_color=True, verbose=True))
        output_module.format_response([1, 2])
        output_module.info("info line")
        output_module.debug("debug line")
        captured = capfd.readouterr()
        assert json.loads(captured.out) == [1, 2]
        assert "info line" in captured.err
        assert "debug line" in captured.err


class TestPipelineTrace:
    @pytest.mark.asyncio
    async def test_verbose_manager_receives_pipeline_states(self, capfd, non_tty, fake_transport_factory):
        from reqflow.client.pipeline import RequestPipeline
        from reqflow.models import RequestDescriptor

        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True))
        pipeline = RequestPipeline(fake_transport_factory())
        await pipeline.execute(RequestDescriptor(method="GET", url="https://api.example.com/x", cache_enabled=True))
        err = capfd.readouterr().err
        for state in ("init", "intercepted", "cache_check", "dispatching", "post_process", "done"):
            assert f"[{state}] GET https://api.example.com/x" in err
        assert "Cached GET https://api.example.com/x" in err
