"""System prompt assembly and the text that frames Plan mode."""

from pathlib import Path
from typing import Optional

from .logger import get_logger

_log = get_logger("prompts")

AGENTS_FILE = "AGENTS.md"

GO_MESSAGE = "Implement the plan."

PLAN_MODE_PREFIX = """[PLAN MODE]
Explore and plan only. Read files, search the code and ask questions, but do not
modify anything yet. Finish with a short, numbered implementation plan.

"""


def load_agents_md(workspace_path) -> Optional[str]:
    """Load AGENTS.md from the workspace root, if it exists.

    Returns the file content, or None if the file is missing or empty.
    """
    agents_md = Path(workspace_path) / AGENTS_FILE
    if agents_md.is_file():
        try:
            content = agents_md.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            _log.warning("Failed to read %s: %s", AGENTS_FILE, e)
            return None
        if content:
            _log.debug("Loaded %s (%d chars) from %s", AGENTS_FILE, len(content), workspace_path)
            return content
    return None


def build_system_prompt(workspace_path, persona: Optional[str] = None,
                        extension: Optional[str] = None) -> str:
    """Persona (if any), then the base instruction, then the extension (if any)."""
    prompt = f"Concise coding assistant. cwd: {workspace_path}"
    if persona:
        prompt = f"{persona}\n\n{prompt}"
    if extension:
        prompt = f"{prompt}\n\n{extension}"
    return prompt
