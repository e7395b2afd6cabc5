"""Shell command execution tools."""

import asyncio
import shutil
from dataclasses import dataclass
from typing import Optional

import psutil

from ..errors import ToolUnavailable
from ..logger import get_logger, truncate
from .registry import ToolContext

log = get_logger("shell_tools")

AGENT_BROWSER_BIN = "agent-browser"


@dataclass
class ShellResult:
    """Result of a shell command execution."""

    stdout: str
    stderr: str
    return_code: int
    timed_out: bool = False

    def to_message(self) -> str:
        parts = [f"exit code: {self.return_code}"]
        if self.timed_out:
            parts[0] += " (timed out)"
        parts.append("stdout:\n" + (self.stdout.rstrip() or "(empty)"))
        parts.append("stderr:\n" + (self.stderr.rstrip() or "(empty)"))
        return "\n".join(parts)


def kill_process_tree(pid: int, timeout: float = 3.0) -> None:
    """Kill a process and all its descendants, children first."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        children = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        children = []

    for proc in reversed(children + [parent]):
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    psutil.wait_procs(children + [parent], timeout=timeout)


async def run_shell_command(
    command: str,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ShellResult:
    """Run ``command`` through the platform shell and wait for it.

    The child inherits the environment.  Processes the command leaves
    running in the background are not tracked.
    """
    process = await asyncio.create_subprocess_shell(
        command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    log.info("shell: pid=%d cmd=%s", process.pid, truncate(command))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        kill_process_tree(process.pid)
        await process.wait()
        log.warning("shell: pid=%d timed out after %ss", process.pid, timeout)
        return ShellResult(
            stdout="",
            stderr=f"Command timed out after {timeout} seconds",
            return_code=-1,
            timed_out=True,
        )
    except asyncio.CancelledError:
        kill_process_tree(process.pid)
        raise

    return ShellResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        return_code=process.returncode,
    )


async def bash(ctx: ToolContext, command: str) -> str:
    """Run a shell command in the workspace root.  Non-zero exit is reported, not raised."""
    if not ctx.bash_enabled:
        raise ToolUnavailable("The bash tool is disabled for this session")
    result = await run_shell_command(command, cwd=str(ctx.root), timeout=ctx.bash_timeout)
    return result.to_message()


def browser_available() -> bool:
    return shutil.which(AGENT_BROWSER_BIN) is not None


async def agent_browser(ctx: ToolContext, args: str) -> str:
    """Delegate to the optional agent-browser CLI."""
    if not browser_available():
        raise ToolUnavailable(f"{AGENT_BROWSER_BIN} is not installed or not on PATH")
    result = await run_shell_command(
        f"{AGENT_BROWSER_BIN} {args}", cwd=str(ctx.root), timeout=ctx.bash_timeout,
    )
    return result.to_message()
