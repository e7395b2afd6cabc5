"""Tests for the closed tool set and the executor registry."""

import asyncio
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from picocode.tool_registry import DESTRUCTIVE_TOOLS, TOOL_NAMES, ToolMetrics, ToolName, is_destructive
from picocode.tools import EXECUTORS, ToolCall, ToolResult, build_default_registry

from fakes import call, make_context


def run(coro):
    return asyncio.run(coro)


class TestToolSet:
    def test_every_name_has_an_executor(self):
        assert set(EXECUTORS) == set(ToolName)
        assert len(TOOL_NAMES) == len(ToolName)

    def test_destructive_classification(self):
        for name in ("bash", "remove", "write_file", "move_file", "edit_file"):
            assert is_destructive(name)
        for name in ("read_file", "list_dir", "grep_text", "glob_files", "make_dir"):
            assert not is_destructive(name)
        assert "copy_file" in DESTRUCTIVE_TOOLS

    def test_openai_schema(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))
        schema = registry.to_openai_schema()
        names = [entry["function"]["name"] for entry in schema]
        assert names == TOOL_NAMES
        edit = next(e for e in schema if e["function"]["name"] == "edit_file")
        assert set(edit["function"]["parameters"]["required"]) == {"path", "old", "new"}


class TestRegistryExecute:
    def test_success(self, tmp_path):
        (tmp_path / "a.txt").write_text("hi")
        registry = build_default_registry(make_context(tmp_path))
        result = run(registry.execute(call("read_file", call_id="c1", path="a.txt")))
        assert result == ToolResult(call_id="c1", success=True, output="hi")

    def test_tool_error_becomes_result(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))
        result = run(registry.execute(call("read_file", call_id="c1", path="../x")))
        assert not result.success
        assert result.error_kind == "PathEscape"
        assert result.to_message().startswith("Error [PathEscape]:")

    def test_unknown_tool(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))
        result = run(registry.execute(call("launch_rockets", call_id="c9")))
        assert result.call_id == "c9"
        assert result.error_kind == "UnknownTool"

    def test_missing_argument(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))
        result = run(registry.execute(call("write_file", path="a.txt")))
        assert result.error_kind == "InvalidArguments"
        assert "content" in result.error
        assert not (tmp_path / "a.txt").exists()

    def test_undecodable_arguments(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))
        broken = ToolCall(id="c1", name="read_file", argument_error="Expecting value")
        result = run(registry.execute(broken))
        assert result.error_kind == "InvalidArguments"

    def test_unexpected_exception_becomes_result(self, tmp_path):
        registry = build_default_registry(make_context(tmp_path))

        async def explode(ctx, path):
            raise RuntimeError("kaboom")

        registry.bind(ToolName.LIST_DIR, explode)
        result = run(registry.execute(call("list_dir", path=".")))
        assert result.error_kind == "RuntimeError"
        assert result.error == "kaboom"

    def test_metrics_recorded(self, tmp_path):
        metrics = ToolMetrics()
        registry = build_default_registry(make_context(tmp_path), metrics)
        run(registry.execute(call("list_dir")))
        run(registry.execute(call("read_file", path="missing")))
        summary = metrics.summary()
        assert summary["total_calls"] == 2
        assert summary["total_errors"] == 1
        assert summary["per_tool"]["read_file"]["errors"] == 1
        assert metrics.recent()[-1]["error_kind"] == "NotFound"
