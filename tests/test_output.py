"""Tests for the CLI output module.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY and colour)
- NO_COLOR / TERM=dumb detection
- stdout vs stderr discipline and --quiet
- Result rendering for objects, records and paginated bodies
- print_table in all three formats
- Logging configuration
"""

from __future__ import annotations

import json
import logging

import pytest
from rich.logging import RichHandler

from querykit import output as output_module
from querykit.output import (
    OutputFormat,
    OutputManager,
    color_disabled,
    configure_logging,
    get_output,
    records_of,
    reset_output,
    set_output,
)


@pytest.fixture()
def non_tty(monkeypatch):
    monkeypatch.setattr("querykit.output.stdout_is_terminal", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    monkeypatch.setattr("querykit.output.stdout_is_terminal", lambda: True)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("TERM", raising=False)


@pytest.fixture()
def querykit_logger():
    logger = logging.getLogger("querykit")
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.setLevel(level)


PAGE = {"count": 2, "next": None, "previous": None, "results": [{"id": 1, "name": "a"}, {"id": 2, "total": 9.5}]}


class TestFormatResolution:
    def test_auto_is_plain_off_terminal(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_is_rich_on_terminal(self, tty):
        assert OutputManager().format == OutputFormat.RICH

    def test_no_color_forces_plain(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_format_kept(self, non_tty):
        assert OutputManager(format=OutputFormat.RICH).format == OutputFormat.RICH


class TestColorDisabled:
    def test_no_color_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert color_disabled() is True

    def test_term_dumb(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert color_disabled() is True

    def test_normal_term(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert color_disabled() is False


class TestStreams:
    def test_results_on_stdout_only(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"id": 1})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"id": 1}
        assert captured.err == ""

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("info", "hello"), ("success", "hello"), ("suggest", "→ hello"), ("warning", "Warning: hello"), ("error", "Error: hello")],
    )
    def test_messages_on_stderr(self, capfd, non_tty, level, expected):
        OutputManager(no_color=True).message("hello", level)
        captured = capfd.readouterr()
        assert captured.out == ""
        assert captured.err.strip() == expected

    def test_quiet_keeps_only_problems(self, capfd, non_tty):
        manager = OutputManager(no_color=True, quiet=True)
        for level in ("info", "success", "suggest", "warning", "error"):
            manager.message(level, level)
        assert capfd.readouterr().err.splitlines() == ["Warning: warning", "Error: error"]

    def test_long_messages_are_not_wrapped(self, capfd, non_tty):
        text = "Unknown endpoint " + "x" * 200
        OutputManager(no_color=True).message(text, "error")
        assert capfd.readouterr().err.strip() == f"Error: {text}"


class TestRecords:
    def test_paginated_body(self):
        assert records_of(PAGE) == PAGE["results"]

    def test_plain_list(self):
        assert records_of([{"id": 1}]) == [{"id": 1}]

    def test_not_records(self):
        assert records_of({"id": 1}) is None
        assert records_of([1, 2]) is None
        assert records_of({"count": 0, "results": []}) is None


class TestFormatResponse:
    def test_json_keeps_unicode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"name": "Tè"})
        assert "Tè" in capfd.readouterr().out

    def test_plain_records_get_header_and_union_of_columns(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response(PAGE)
        assert capfd.readouterr().out.splitlines() == ["id\tname\ttotal", "1\ta\t", "2\t\t9.5"]

    def test_plain_object_as_key_value(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"id": 3, "items": [1, 2]})
        assert capfd.readouterr().out.splitlines() == ["id\t3", "items\t[1, 2]"]

    def test_plain_none_prints_nothing(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response(None)
        assert capfd.readouterr().out == ""

    def test_rich_records_as_table(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response(PAGE)
        out = capfd.readouterr().out
        assert "name" in out
        assert "9.5" in out

    def test_rich_object_as_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response({"id": 42})
        assert "42" in capfd.readouterr().out


class TestPrintTable:
    headers = ["NAME", "KIND"]
    rows = [["get_orders", "query"], ["checkout", "mutation"]]

    def test_json(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).print_table(self.headers, self.rows)
        assert json.loads(capfd.readouterr().out) == [
            {"NAME": "get_orders", "KIND": "query"},
            {"NAME": "checkout", "KIND": "mutation"},
        ]

    def test_plain(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).print_table(self.headers, self.rows, title="ignored")
        assert capfd.readouterr().out.splitlines() == ["NAME\tKIND", "get_orders\tquery", "checkout\tmutation"]

    def test_rich(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(self.headers, self.rows, title="Endpoints")
        out = capfd.readouterr().out
        assert "Endpoints" in out
        assert "get_orders" in out


class TestConfigureLogging:
    def test_default_threshold_is_warning(self, querykit_logger):
        configure_logging()
        assert querykit_logger.level == logging.WARNING
        assert sum(isinstance(h, RichHandler) for h in querykit_logger.handlers) == 1

    def test_verbose_enables_debug(self, querykit_logger):
        configure_logging(verbose=True)
        configure_logging(verbose=True)
        assert querykit_logger.level == logging.DEBUG
        assert sum(isinstance(h, RichHandler) for h in querykit_logger.handlers) == 1

    def test_records_reach_stderr(self, capfd, non_tty, querykit_logger):
        set_output(OutputManager(no_color=True))
        configure_logging()
        logging.getLogger("querykit.cache.store").warning("eviction stalled")
        captured = capfd.readouterr()
        assert "eviction stalled" in captured.err
        assert captured.out == ""


class TestProcessWideManager:
    def test_get_creates_default_once(self, non_tty):
        reset_output()
        assert get_output() is get_output()

    def test_module_functions_use_installed_manager(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.format_response([1, 2])
        output_module.success("ok")
        captured = capfd.readouterr()
        assert captured.out == "1\n2\n"
        assert captured.err.strip() == "ok"
