"""Configuration: agent settings, JSON config files, recipes and providers."""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .agent import DEFAULT_TOOL_CALL_LIMIT
from .confirmation import compile_patterns
from .errors import ConfigError
from .logger import get_logger
from .modes import Mode

_log = get_logger("config")


def get_global_config_path() -> Path:
    """Get path to global config: ~/.picocode.json"""
    return Path.home() / ".picocode.json"


def get_workspace_config_path(workspace: Optional[Path] = None) -> Path:
    """Get path to workspace config: workspace/.picocode/config.json"""
    ws = workspace or Path.cwd()
    return ws / ".picocode" / "config.json"


def load_json_config(path: Path, required: bool = False) -> dict:
    """Load config from a JSON file.

    Missing files give an empty config unless ``required``; a file that
    exists but cannot be parsed is always a ``ConfigError``.
    """
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def read_prompt(prompt: Optional[str], prompt_file: Optional[str], base: Optional[Path] = None) -> Optional[str]:
    """Inline prompt, or the content of ``prompt_file`` (which wins)."""
    if prompt_file:
        path = Path(prompt_file).expanduser()
        if not path.is_absolute() and base is not None:
            path = base / path
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Could not read prompt file {path}: {e}") from e
    return prompt


@dataclass
class AgentConfig:
    """Engine configuration, fixed at session start except for ``mode``."""

    workspace_root: Path
    tool_call_limit: int = DEFAULT_TOOL_CALL_LIMIT
    yolo: bool = False
    bash_auto_allow: List[str] = field(default_factory=list)
    persona: Optional[str] = None
    mode: Mode = Mode.CODE
    bash_enabled: bool = True
    create_dirs: bool = True
    bash_timeout: Optional[float] = None
    system_extension: Optional[str] = None

    def __post_init__(self):
        self.workspace_root = Path(self.workspace_root)
        if not self.workspace_root.is_absolute():
            raise ConfigError(f"workspace_root must be absolute: {self.workspace_root}")
        if isinstance(self.tool_call_limit, bool) or not isinstance(self.tool_call_limit, int) \
                or self.tool_call_limit < 1:
            raise ConfigError(f"tool_call_limit must be a positive integer, got {self.tool_call_limit!r}")
        if self.bash_timeout is not None and self.bash_timeout <= 0:
            raise ConfigError("bash_timeout must be positive")
        self.bash_auto_allow = list(self.bash_auto_allow)
        compile_patterns(self.bash_auto_allow)
        try:
            self.mode = Mode(self.mode)
        except ValueError as e:
            raise ConfigError(f"Unknown mode: {self.mode!r}") from e


@dataclass
class ToolSettings:
    auto_allow: List[str] = field(default_factory=list)


@dataclass
class Recipe:
    """A named preset of prompt and options, run headless."""

    name: str
    prompt: Optional[str] = None
    prompt_file: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    persona: Optional[str] = None
    yolo: Optional[bool] = None
    quiet: bool = False
    # Response is treated as an error when it matches this regex
    error_if: Optional[str] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Recipe":
        if not isinstance(data, dict):
            raise ConfigError(f"Recipe {name!r} must be an object")
        known = {k: data[k] for k in
                 ("prompt", "prompt_file", "provider", "model", "persona", "yolo", "quiet", "error_if")
                 if k in data}
        recipe = cls(name=name, **known)
        if recipe.error_if:
            try:
                re.compile(recipe.error_if)
            except re.error as e:
                raise ConfigError(f"Recipe {name!r} has an invalid error_if pattern: {e}") from e
        return recipe

    def load_prompt(self, base: Optional[Path] = None) -> str:
        text = read_prompt(self.prompt, self.prompt_file, base)
        if not text:
            raise ConfigError(f"Recipe {self.name!r} has no prompt")
        return text

    def is_error(self, response: str) -> bool:
        if not self.error_if:
            return False
        return re.search(self.error_if, response) is not None


@dataclass
class Settings:
    """Contents of the JSON config files."""

    agent_prompt: Optional[str] = None
    agent_prompt_file: Optional[str] = None
    tool_config: Dict[str, ToolSettings] = field(default_factory=dict)
    recipes: Dict[str, Recipe] = field(default_factory=dict)
    provider: Optional[str] = None
    model: Optional[str] = None
    api_url: Optional[str] = None
    tool_call_limit: Optional[int] = None
    base_dir: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "Settings":
        tool_config = {}
        for tool, raw in (data.get("tool_config") or {}).items():
            patterns = (raw or {}).get("auto_allow") or []
            if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
                raise ConfigError(f"tool_config.{tool}.auto_allow must be a list of strings")
            tool_config[tool] = ToolSettings(auto_allow=patterns)

        recipes = {name: Recipe.from_dict(name, raw) for name, raw in (data.get("recipes") or {}).items()}

        return cls(
            agent_prompt=data.get("agent_prompt"),
            agent_prompt_file=data.get("agent_prompt_file"),
            tool_config=tool_config,
            recipes=recipes,
            provider=data.get("provider"),
            model=data.get("model"),
            api_url=data.get("api_url"),
            tool_call_limit=data.get("tool_call_limit"),
            base_dir=base_dir,
        )

    @classmethod
    def load(cls, workspace: Optional[Path] = None, path: Optional[Path] = None) -> "Settings":
        """Load configuration from JSON files.

        With an explicit ``path`` only that file is read.  Otherwise, priority
        (later overrides earlier):
        1. ~/.picocode.json (global)
        2. workspace/.picocode/config.json (workspace-specific)
        """
        ws = Path(workspace) if workspace else Path.cwd()
        if path is not None:
            path = Path(path)
            _log.debug("Loading config from %s", path)
            return cls.from_dict(load_json_config(path, required=True), base_dir=path.parent)

        config_data: Dict[str, Any] = {}
        config_data.update(load_json_config(get_global_config_path()))
        config_data.update(load_json_config(get_workspace_config_path(ws)))
        return cls.from_dict(config_data, base_dir=ws)

    def auto_allow(self, tool: str = "bash") -> List[str]:
        settings = self.tool_config.get(tool)
        return list(settings.auto_allow) if settings else []

    def agent_prompt_text(self) -> Optional[str]:
        return read_prompt(self.agent_prompt, self.agent_prompt_file, self.base_dir)

    def recipe(self, name: str) -> Recipe:
        try:
            return self.recipes[name]
        except KeyError:
            known = ", ".join(sorted(self.recipes)) or "none"
            raise ConfigError(f"Unknown recipe {name!r} (known: {known})") from None


# ── Providers ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderPreset:
    api_url: str
    key_env: Optional[str]
    default_model: str


PROVIDERS: Dict[str, ProviderPreset] = {
    "openai": ProviderPreset("https://api.openai.com/v1", "OPENAI_API_KEY", "gpt-4o-mini"),
    "anthropic": ProviderPreset("https://api.anthropic.com/v1", "ANTHROPIC_API_KEY", "claude-3-5-sonnet-20241022"),
    "openrouter": ProviderPreset("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY", "meta-llama/llama-3-70b-instruct"),
    "deepseek": ProviderPreset("https://api.deepseek.com/v1", "DEEPSEEK_API_KEY", "deepseek-chat"),
    "groq": ProviderPreset("https://api.groq.com/openai/v1", "GROQ_API_KEY", "llama3-70b-8192"),
    "mistral": ProviderPreset("https://api.mistral.ai/v1", "MISTRAL_API_KEY", "mistral-large-latest"),
    "together": ProviderPreset("https://api.together.xyz/v1", "TOGETHER_API_KEY", "meta-llama/Llama-3-70b-chat-hf"),
    "xai": ProviderPreset("https://api.x.ai/v1", "XAI_API_KEY", "grok-1"),
    "gemini": ProviderPreset("https://generativelanguage.googleapis.com/v1beta/openai", "GEMINI_API_KEY", "gemini-1.5-pro"),
    "ollama": ProviderPreset("http://localhost:11434/v1", None, "llama3"),
}

DEFAULT_PROVIDER = "anthropic"


@dataclass
class ProviderConfig:
    """Where and how to reach the model."""

    provider: str
    api_url: str
    api_key: str
    model: str

    @classmethod
    def from_env(
        cls,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        env_path: Optional[Path] = None,
    ) -> "ProviderConfig":
        """Resolve provider settings from presets, ``.env`` and the environment.

        Precedence for provider, model and URL is the same: an explicit
        argument (CLI flag or settings file) wins over ``PICOCODE_PROVIDER``,
        ``PICOCODE_MODEL`` and ``PICOCODE_API_URL``, which win over the
        preset.  ``PICOCODE_API_KEY`` wins over the preset's key variable.
        """
        if env_path and env_path.exists():
            load_dotenv(env_path)
        else:
            load_dotenv()

        name = (provider or os.getenv("PICOCODE_PROVIDER") or DEFAULT_PROVIDER).lower()
        if name == "google":
            name = "gemini"
        preset = PROVIDERS.get(name)
        override_url = api_url or os.getenv("PICOCODE_API_URL")

        if preset is None and not override_url:
            known = ", ".join(sorted(PROVIDERS))
            raise ConfigError(f"Unknown provider {name!r}. Known providers: {known}, or set PICOCODE_API_URL")

        url = override_url or preset.api_url
        key = os.getenv("PICOCODE_API_KEY") or (os.getenv(preset.key_env, "") if preset and preset.key_env else "")
        resolved_model = model or os.getenv("PICOCODE_MODEL") or (preset.default_model if preset else "")

        if not key and (preset is None or preset.key_env):
            env_name = preset.key_env if preset else "PICOCODE_API_KEY"
            raise ConfigError(f"API key is required for {name}. Set {env_name} or PICOCODE_API_KEY.")
        if not resolved_model:
            raise ConfigError(f"No model configured for {name}. Pass --model or set PICOCODE_MODEL.")

        return cls(provider=name, api_url=url, api_key=key, model=resolved_model)
