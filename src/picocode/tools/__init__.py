"""Tool executors and the registry that binds them."""

from ..tool_registry import ToolMetrics, ToolName
from .registry import Tool, ToolCall, ToolContext, ToolRegistry, ToolResult
from . import file_tools, search_tools, shell_tools

EXECUTORS = {
    ToolName.READ_FILE: file_tools.read_file,
    ToolName.WRITE_FILE: file_tools.write_file,
    ToolName.EDIT_FILE: file_tools.edit_file,
    ToolName.LIST_DIR: file_tools.list_dir,
    ToolName.MAKE_DIR: file_tools.make_dir,
    ToolName.MOVE_FILE: file_tools.move_file,
    ToolName.COPY_FILE: file_tools.copy_file,
    ToolName.REMOVE: file_tools.remove,
    ToolName.GREP_TEXT: search_tools.grep_text,
    ToolName.GLOB_FILES: search_tools.glob_files,
    ToolName.BASH: shell_tools.bash,
    ToolName.AGENT_BROWSER: shell_tools.agent_browser,
}


def build_default_registry(context: ToolContext, metrics: ToolMetrics = None) -> ToolRegistry:
    """Bind every tool name to its executor."""
    registry = ToolRegistry(context, metrics)
    for name in ToolName:
        registry.bind(name, EXECUTORS[name])
    return registry


__all__ = [
    "EXECUTORS",
    "Tool",
    "ToolCall",
    "ToolContext",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
    "file_tools",
    "search_tools",
    "shell_tools",
]
