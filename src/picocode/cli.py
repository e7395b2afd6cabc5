"""Command-line interface with headless and interactive modes."""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from .agent import DEFAULT_TOOL_CALL_LIMIT
from .config import AgentConfig, DEFAULT_PROVIDER, ProviderConfig, Recipe, Settings
from .errors import ConfigError
from .history import InputHistory
from .llm_client import OpenAICompatClient
from .logger import get_logger, init_logging
from .modes import Mode
from .output import ConsoleOutput, LogOutput, Output, QuietOutput
from .persona import get_persona, list_personas
from .prompts import load_agents_md
from .session import Session

log = get_logger("cli")


@dataclass
class Launch:
    """Everything resolved from flags, config files and a recipe."""
    session: Session
    message: Optional[str] = None
    recipe: Optional[Recipe] = None
    quiet: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="picocode",
        description="Minimal coding assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive mode in current directory
  picocode

  # One prompt, then exit
  picocode --input "Add a README"

  # Structured JSON outcome
  picocode --input "List the tests" --json

  # Run a recipe from the config file
  picocode --recipe review
        """,
    )

    parser.add_argument(
        "workspace",
        nargs="?",
        default=".",
        help="Workspace directory (default: current directory)",
    )

    # Provider
    parser.add_argument("-p", "--provider", help=f"LLM provider (default: {DEFAULT_PROVIDER})")
    parser.add_argument("-m", "--model", help="LLM model name (default: provider preset)")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file (default: .env)")

    # Input
    parser.add_argument("--input", help="Single prompt; run it and exit")
    parser.add_argument("--recipe", help="Run a named recipe from the config file")
    parser.add_argument("--config", help="Config file (default: ~/.picocode.json + .picocode/config.json)")

    # Behaviour
    parser.add_argument("--no-bash", action="store_true", help="Disable the bash tool")
    parser.add_argument("--yolo", action="store_true", help="Run destructive tools without confirmation")
    parser.add_argument("--plan", action="store_true", help="Start in Plan mode")
    parser.add_argument(
        "--tool-call-limit",
        type=int,
        default=None,
        help=f"Maximum number of tool calls per prompt (default: {DEFAULT_TOOL_CALL_LIMIT})",
    )
    parser.add_argument(
        "--persona",
        help="Persona name or persona file. Built-in personas:\n" + list_personas(),
    )
    parser.add_argument("--list-personas", action="store_true", help="List built-in personas and exit")

    # Output
    parser.add_argument("-q", "--quiet", action="store_true", help="Only errors and confirmations")
    parser.add_argument("--json", action="store_true", help="Print the turn outcome as JSON (headless)")

    return parser


def _read_stdin() -> Optional[str]:
    if sys.stdin.isatty():
        return None
    text = sys.stdin.read().strip()
    return text or None


def build_launch(args: argparse.Namespace, interactive: bool) -> Launch:
    """Resolve flags, config files and recipe into a ready Session."""
    workspace = Path(args.workspace).expanduser().resolve()
    if not workspace.is_dir():
        raise ConfigError(f"Workspace is not a directory: {workspace}")

    settings = Settings.load(workspace, Path(args.config) if args.config else None)
    recipe = settings.recipe(args.recipe) if args.recipe else None

    provider = args.provider or (recipe.provider if recipe else None) or settings.provider
    model = args.model or (recipe.model if recipe else None) or settings.model
    persona_name = args.persona or (recipe.persona if recipe else None)
    yolo = args.yolo or bool(recipe and recipe.yolo)
    quiet = args.quiet or bool(recipe and recipe.quiet)

    if persona_name:
        persona = get_persona(persona_name)
        if persona is None:
            raise ConfigError(f"Unknown persona {persona_name!r}. Use --list-personas.")
    else:
        persona = settings.agent_prompt_text()

    message = args.input
    if message is None and recipe is not None:
        message = recipe.load_prompt(settings.base_dir)

    if args.json:
        output: Output = LogOutput()
    elif quiet:
        output = QuietOutput()
    else:
        output = ConsoleOutput(history=InputHistory() if interactive else None)

    provider_config = ProviderConfig.from_env(provider, model, api_url=settings.api_url, env_path=Path(args.env))
    client = OpenAICompatClient.from_provider(provider_config)

    config = AgentConfig(
        workspace_root=workspace,
        tool_call_limit=args.tool_call_limit or settings.tool_call_limit or DEFAULT_TOOL_CALL_LIMIT,
        yolo=yolo,
        bash_auto_allow=settings.auto_allow("bash"),
        persona=persona,
        mode=Mode.PLAN if args.plan else Mode.CODE,
        bash_enabled=not args.no_bash,
        system_extension=load_agents_md(workspace),
    )

    session = Session(
        config,
        client,
        output,
        provider=provider_config.provider,
        model=provider_config.model,
        persona_name=persona_name,
    )
    return Launch(session=session, message=message, recipe=recipe, quiet=quiet)


def run_headless(launch: Launch, as_json: bool = False) -> int:
    """Run one message and exit.  Non-zero when the turn did not complete."""
    if not (launch.quiet or as_json):
        launch.session.show_header()
    try:
        outcome = asyncio.run(launch.session.run_once(launch.message))
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return 130

    if as_json:
        print(json.dumps(outcome.to_dict(), indent=2))
    elif launch.quiet and outcome.text is not None:
        print(outcome.text)

    if not outcome.completed:
        return 1
    if launch.recipe is not None and launch.recipe.is_error(outcome.text or ""):
        log.info("recipe %s: response matched error_if", launch.recipe.name)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_personas:
        print(list_personas())
        sys.exit(0)

    init_logging(str(Path(args.workspace).expanduser().resolve()))

    if args.input is None and not args.recipe:
        piped = _read_stdin()
        if piped is not None:
            args.input = piped
    headless = args.input is not None or bool(args.recipe)

    try:
        launch = build_launch(args, interactive=not headless)
    except ConfigError as e:
        Console(stderr=True).print(f"Configuration error: {e}", style="red", markup=False)
        sys.exit(2)

    if headless:
        sys.exit(run_headless(launch, as_json=args.json))

    launch.session.run_interactive()
    sys.exit(0)


if __name__ == "__main__":
    main()
