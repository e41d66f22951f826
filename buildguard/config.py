"""Configuration loading for buildguard (.buildguard.yml)."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .process.install import DEFAULT_INSTALL_TIMEOUT_SECONDS, parse_install_mode
from .validate.probe import HEALTH_ATTEMPT_SECONDS, HEALTH_DEADLINE_SECONDS
from .validate.profiles import ValidationProfile, profile_from_mapping

CONFIG_FILE_NAME = ".buildguard.yml"
DEFAULT_INSTALL_MODE = "always"
DEFAULT_COMMAND_TIMEOUT_SECONDS = 900.0
DEFAULT_CONTRACTS_DIR = Path("ci") / "contracts"
DEFAULT_FIXTURES_DIR = Path("ci") / "fixtures" / "diagnostics"


@dataclass
class TimeoutConfig:
    """Timeout overrides, in seconds."""

    health_deadline_seconds: Optional[float] = None
    health_attempt_seconds: Optional[float] = None
    install_seconds: Optional[float] = None
    command_seconds: Optional[float] = None


@dataclass
class ContractsConfig:
    """Where golden snapshots and diagnostic fixtures live."""

    dir: Optional[Path] = None
    fixtures_dir: Optional[Path] = None


@dataclass
class BuildGuardConfig:
    """Represents the settings defined in .buildguard.yml."""

    root: Path
    install_mode: Optional[str] = None
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    contracts: ContractsConfig = field(default_factory=ContractsConfig)
    profiles: Dict[str, ValidationProfile] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeSettings:
    """Effective settings for one CLI invocation, resolved once at the edge."""

    install_mode: str = DEFAULT_INSTALL_MODE
    health_deadline_seconds: float = HEALTH_DEADLINE_SECONDS
    health_attempt_seconds: float = HEALTH_ATTEMPT_SECONDS
    install_seconds: float = DEFAULT_INSTALL_TIMEOUT_SECONDS
    command_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS
    json_output: bool = False
    quiet: bool = False
    profile: Optional[str] = None
    profiles: Mapping[str, ValidationProfile] = field(default_factory=dict)
    contracts_dir: Path = DEFAULT_CONTRACTS_DIR
    fixtures_dir: Path = DEFAULT_FIXTURES_DIR
    config_path: Optional[Path] = None

    @property
    def forward_child_output_to_stderr(self) -> bool:
        return self.json_output

    @property
    def silence_children(self) -> bool:
        return self.quiet or self.json_output


def load_config(config_path: Path, *, required: bool = False) -> BuildGuardConfig:
    """Load configuration from disk.

    ``config_path`` may be a directory (``.buildguard.yml`` inside it is used)
    or a file. A missing file yields defaults unless ``required`` is set.
    """
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        if required:
            raise ConfigError(f"Config file not found: {config_file}")
        return BuildGuardConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    timeouts_data = _as_dict(data.get("timeouts"))
    timeouts = TimeoutConfig(
        health_deadline_seconds=_as_positive_float(timeouts_data.get("health_deadline_seconds")),
        health_attempt_seconds=_as_positive_float(timeouts_data.get("health_attempt_seconds")),
        install_seconds=_as_positive_float(timeouts_data.get("install_seconds")),
        command_seconds=_as_positive_float(timeouts_data.get("command_seconds")),
    )

    contracts_data = _as_dict(data.get("contracts"))
    contracts_dir = _as_str(contracts_data.get("dir"))
    fixtures_dir = _as_str(contracts_data.get("fixtures_dir"))
    contracts = ContractsConfig(
        dir=root / contracts_dir if contracts_dir else None,
        fixtures_dir=root / fixtures_dir if fixtures_dir else None,
    )

    profiles: Dict[str, ValidationProfile] = {}
    for name, body in _as_dict(data.get("profiles")).items():
        if not isinstance(body, dict):
            raise ConfigError(f"profile '{name}' must be a mapping")
        try:
            profiles[str(name)] = profile_from_mapping(str(name), body)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    return BuildGuardConfig(
        root=root,
        install_mode=parse_install_mode(data.get("install_mode")),
        timeouts=timeouts,
        contracts=contracts,
        profiles=profiles,
    )


def resolve_install_mode(
    *,
    no_install: bool = False,
    env_value: Optional[str] = None,
    flag_value: Optional[str] = None,
    config_value: Optional[str] = None,
) -> str:
    """Pick the install mode: --no-install, INSTALL_MODE, --install-mode, config, default.

    Unrecognised values fall through to the next source.
    """
    if no_install:
        return "never"
    for candidate in (env_value, flag_value, config_value):
        mode = parse_install_mode(candidate)
        if mode is not None:
            return mode
    return DEFAULT_INSTALL_MODE


def resolve_settings(
    args: argparse.Namespace,
    env: Mapping[str, str],
    config: BuildGuardConfig,
) -> RuntimeSettings:
    """Fold CLI flags, environment and config file into one immutable settings object."""
    install_mode = resolve_install_mode(
        no_install=bool(getattr(args, "no_install", False)),
        env_value=env.get("INSTALL_MODE"),
        flag_value=getattr(args, "install_mode", None),
        config_value=config.install_mode,
    )
    timeouts = config.timeouts
    contracts_dir = getattr(args, "contracts_dir", None)
    fixtures_dir = getattr(args, "fixtures_dir", None)
    json_output = bool(getattr(args, "json", False))
    config_arg = getattr(args, "config", None)
    return RuntimeSettings(
        install_mode=install_mode,
        health_deadline_seconds=timeouts.health_deadline_seconds or HEALTH_DEADLINE_SECONDS,
        health_attempt_seconds=timeouts.health_attempt_seconds or HEALTH_ATTEMPT_SECONDS,
        install_seconds=timeouts.install_seconds or DEFAULT_INSTALL_TIMEOUT_SECONDS,
        command_seconds=timeouts.command_seconds or DEFAULT_COMMAND_TIMEOUT_SECONDS,
        json_output=json_output,
        quiet=bool(getattr(args, "quiet", False)),
        profile=getattr(args, "profile", None) or None,
        profiles=dict(config.profiles),
        contracts_dir=Path(contracts_dir)
        if contracts_dir
        else (config.contracts.dir or DEFAULT_CONTRACTS_DIR),
        fixtures_dir=Path(fixtures_dir)
        if fixtures_dir
        else (config.contracts.fixtures_dir or DEFAULT_FIXTURES_DIR),
        config_path=Path(config_arg) if config_arg else None,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILE_NAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_positive_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value)
        except ValueError:
            return None
    else:
        return None
    return result if result > 0 else None


__all__ = [
    "BuildGuardConfig",
    "CONFIG_FILE_NAME",
    "ConfigError",
    "ContractsConfig",
    "RuntimeSettings",
    "TimeoutConfig",
    "load_config",
    "resolve_install_mode",
    "resolve_settings",
]
