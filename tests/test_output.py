"""Tests for OutputManager stream discipline."""

from __future__ import annotations

import json
from pathlib import Path

from fetchkit.output import OutputFormat, OutputManager, get_output, reset_output, set_output


def _manager(**kwargs) -> OutputManager:
    kwargs.setdefault("no_color", True)
    return OutputManager(**kwargs)


class TestFormats:
    def test_json_to_stdout(self, capsys) -> None:
        _manager(format=OutputFormat.JSON).format_response({"a": 1, "b": [1, 2]})
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"a": 1, "b": [1, 2]}
        assert captured.err == ""

    def test_plain_dict(self, capsys) -> None:
        _manager(format=OutputFormat.PLAIN).format_response({"id": 1, "tags": ["x"]})
        assert capsys.readouterr().out.splitlines() == ["id\t1", 'tags\t["x"]']

    def test_plain_list_of_dicts(self, capsys) -> None:
        _manager(format=OutputFormat.PLAIN).format_response([{"id": 1, "n": "a"}, {"id": 2, "n": "b"}])
        assert capsys.readouterr().out.splitlines() == ["1\ta", "2\tb"]

    def test_auto_is_plain_when_not_a_tty(self, capsys) -> None:
        _manager().format_response({"id": 1})
        assert capsys.readouterr().out == "id\t1\n"

    def test_output_file(self, tmp_path: Path, capsys) -> None:
        target = tmp_path / "out.json"
        _manager(format=OutputFormat.JSON, output_file=str(target)).format_response({"a": 1})
        assert capsys.readouterr().out == ""
        assert json.loads(target.read_text()) == {"a": 1}


class TestDiagnostics:
    def test_messages_go_to_stderr(self, capsys) -> None:
        output = _manager()
        output.info("hello")
        output.warning("careful")
        output.error("broken")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.splitlines() == ["hello", "Warning: careful", "Error: broken"]

    def test_quiet_keeps_warnings_and_errors(self, capsys) -> None:
        output = _manager(quiet=True)
        output.info("hidden")
        output.success("hidden")
        output.warning("shown")
        output.error("shown")
        assert capsys.readouterr().err.splitlines() == ["Warning: shown", "Error: shown"]

    def test_debug_needs_verbose(self, capsys) -> None:
        _manager().debug("hidden")
        _manager(verbose=True).debug("shown")
        assert capsys.readouterr().err.splitlines() == ["[debug] shown"]


def test_global_instance() -> None:
    manager = _manager()
    set_output(manager)
    assert get_output() is manager
    reset_output()
    assert get_output() is not manager
