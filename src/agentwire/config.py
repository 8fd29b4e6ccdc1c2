from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Literal

import msgspec

ENV_CLAUDE_CMD = "AGENTWIRE_CLAUDE_CMD"
ENV_MODEL = "AGENTWIRE_MODEL"

LOCAL_CONFIG_NAME = Path(".agentwire") / "agentwire.toml"
HOME_CONFIG_PATH = Path.home() / ".agentwire" / "agentwire.toml"
DEFAULT_LOG_DIR = "~/.agentwire/logs"


class ConfigError(RuntimeError):
    pass


class SessionSettings(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    claude_cmd: str = "claude"
    model: str | None = None
    # acceptEdits auto-approves edits but still gates destructive operations
    permission_mode: str = "acceptEdits"
    disallowed_tools: list[str] = msgspec.field(
        default_factory=lambda: ["AskUserQuestion"]
    )
    extra_args: list[str] = msgspec.field(default_factory=list)
    env: dict[str, str] = msgspec.field(default_factory=dict)
    cwd: str | None = None
    log_io: bool = False
    log_dir: str = DEFAULT_LOG_DIR
    preview_chars: int = 200
    tool_params: Literal["flat", "structured"] = "flat"
    idle_timeout_s: float | None = None
    cancel_grace_s: float = 2.0
    stderr_tail_lines: int = 200

    def working_dir(self) -> Path:
        if self.cwd:
            return Path(self.cwd).expanduser()
        return Path.cwd()

    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def load_config(path: str | Path | None = None) -> tuple[dict, Path | None]:
    """Load the raw config table.

    An explicit path must exist; otherwise the local then home candidates are
    tried and a missing file yields an empty table.
    """
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    return {}, None


def settings_from_config(config: dict, config_path: Path | None = None) -> SessionSettings:
    where = str(config_path) if config_path else "config"
    table = config.get("claude", {})
    if not isinstance(table, dict):
        raise ConfigError(f"Invalid `claude` in {where}; expected a table.")
    try:
        settings = msgspec.convert(table, type=SessionSettings)
    except msgspec.ValidationError as e:
        raise ConfigError(f"Invalid `claude` settings in {where}: {e}") from None
    if settings.preview_chars <= 0:
        raise ConfigError(
            f"Invalid `preview_chars` in {where}; expected a positive integer."
        )
    return _apply_env(settings)


def _apply_env(settings: SessionSettings) -> SessionSettings:
    """Environment variables take precedence over the config file."""
    overrides: dict[str, str] = {}
    env_cmd = os.environ.get(ENV_CLAUDE_CMD)
    if env_cmd and env_cmd.strip():
        overrides["claude_cmd"] = env_cmd.strip()
    env_model = os.environ.get(ENV_MODEL)
    if env_model and env_model.strip():
        overrides["model"] = env_model.strip()
    if not overrides:
        return settings
    return msgspec.structs.replace(settings, **overrides)


def load_settings(path: str | Path | None = None) -> SessionSettings:
    config, config_path = load_config(path)
    return settings_from_config(config, config_path)
