"""Tests for the output collaborators, input history and the CLI."""

import io
import json
import os
import sys

import pytest
from rich.console import Console

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from picocode import cli, output as output_module
from picocode.config import AgentConfig, Recipe
from picocode.history import InputHistory
from picocode.output import ConsoleOutput, Event, EventKind, QuietOutput
from picocode.session import Session

from fakes import RecordingOutput, ScriptedClient, call, final, tool_reply


def recording_console():
    return Console(file=io.StringIO(), width=200, color_system=None)


class TestConsoleOutput:
    def test_header(self):
        console = recording_console()
        ConsoleOutput(console).emit(Event(EventKind.HEADER, data={
            "provider": "openai", "model": "gpt-4o", "bash": True, "yolo": False,
            "limit": 50, "workspace": "/ws",
        }))
        text = console.file.getvalue()
        for part in ("picocode", "openai", "gpt-4o", "limit:50", "/ws"):
            assert part in text

    def test_tool_result_preview_is_capped(self):
        console = recording_console()
        body = "\n".join(f"line {i}" for i in range(10))
        ConsoleOutput(console).emit(Event(EventKind.TOOL_RESULT, text=body, success=True))
        text = console.file.getvalue()
        assert "line 3" in text
        assert "line 4" not in text
        assert "+6 lines" in text

    def test_confirm_uses_rich_prompt(self, monkeypatch):
        asked = []

        def fake_ask(prompt, **kwargs):
            asked.append((prompt, kwargs.get("default")))
            return True

        monkeypatch.setattr(output_module.Confirm, "ask", fake_ask)
        assert ConsoleOutput(recording_console()).confirm("Remove a.txt")
        assert "Remove a.txt" in asked[0][0]
        assert asked[0][1] is False

    def test_confirm_eof_denies(self, monkeypatch):
        def eof(prompt, **kwargs):
            raise EOFError

        monkeypatch.setattr(output_module.Confirm, "ask", eof)
        assert ConsoleOutput(recording_console()).confirm("Remove a.txt") is False


class TestQuietOutput:
    def test_only_errors(self):
        console = recording_console()
        quiet = QuietOutput(console)
        quiet.emit(Event(EventKind.TEXT, text="chatty"))
        quiet.emit(Event(EventKind.ERROR, text="boom"))
        text = console.file.getvalue()
        assert "chatty" not in text
        assert "Error: boom" in text


class TestInputHistory:
    def test_append_and_load_in_order(self, tmp_path):
        history = InputHistory(tmp_path / "hist")
        history.append("first")
        history.append("   ")
        history.append("second")
        assert InputHistory(tmp_path / "hist").load() == ["first", "second"]


# ============================================================
# CLI
# ============================================================

class TestCli:
    def test_parser_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.workspace == "."
        assert args.tool_call_limit is None
        assert not args.yolo and not args.no_bash and not args.json

    def test_list_personas(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--list-personas"])
        assert exc.value.code == 0
        assert "zen" in capsys.readouterr().out

    def _launch(self, tmp_path, replies, recipe=None):
        session = Session(AgentConfig(workspace_root=tmp_path, yolo=True), ScriptedClient(replies), RecordingOutput())
        return cli.Launch(session=session, message="do it", recipe=recipe, quiet=True)

    def test_headless_json(self, tmp_path, capsys):
        launch = self._launch(tmp_path, [tool_reply(call("list_dir")), final("all done")])
        assert cli.run_headless(launch, as_json=True) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["state"] == "completed"
        assert data["text"] == "all done"

    def test_headless_limit_exit_code(self, tmp_path):
        launch = self._launch(tmp_path, [tool_reply(*[call("list_dir") for _ in range(3)])])
        launch.session.loop.tool_call_limit = 2
        assert cli.run_headless(launch) == 1

    def test_recipe_error_if(self, tmp_path, capsys):
        recipe = Recipe(name="check", prompt="p", error_if="FAILED")
        launch = self._launch(tmp_path, [final("2 tests FAILED")], recipe=recipe)
        assert cli.run_headless(launch) == 1
        assert "2 tests FAILED" in capsys.readouterr().out

    def test_configuration_error_exits(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(cli.Settings, "load", classmethod(lambda cls, ws, path=None: cli.Settings()))
        for var in ("PICOCODE_API_KEY", "PICOCODE_API_URL", "OPENAI_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        (tmp_path / ".env").write_text("")
        with pytest.raises(SystemExit) as exc:
            cli.main([str(tmp_path), "--provider", "openai", "--input", "hi", "--env", str(tmp_path / ".env")])
        assert exc.value.code == 2
        assert "Configuration error" in capsys.readouterr().err
