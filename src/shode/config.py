"""Configuration models and loaders for shode."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from shode.engine.control_flow import DEFAULT_MAX_WHILE_ITERATIONS

CONFIG_FILE_NAMES: tuple[str, ...] = ("shode.yaml", "shode.yml", "pyproject.toml")


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for the command result cache."""

    enabled: bool = True
    capacity: int = 1000
    ttl_s: float = 300.0


@dataclass(frozen=True)
class PoolConfig:
    """Configuration for the external process pool.

    Attributes:
        max_size: Maximum number of concurrently running external processes.
        idle_timeout_s: Seconds an idle slot is kept before eviction.
        acquire_timeout_s: Maximum wait for a free slot; None waits forever.
        sweep_interval_s: Background reaper interval; 0 disables the reaper.
    """

    max_size: int = 10
    idle_timeout_s: float = 30.0
    acquire_timeout_s: float | None = None
    sweep_interval_s: float = 0.0


@dataclass(frozen=True)
class SecurityConfig:
    """Configuration for the command security gate.

    Attributes:
        enabled: Whether commands are checked at all.
        extra_dangerous_commands: Commands rejected in addition to the defaults.
        allowed_commands: Default dangerous commands to permit.
    """

    enabled: bool = True
    extra_dangerous_commands: list[str] = field(default_factory=list)
    allowed_commands: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration for the application.

    Attributes:
        working_dir: Initial working directory of scripts.
        env: Variables added on top of the host environment.
        command_timeout_s: Deadline for a whole script run; None is unbounded.
        cache: Command cache configuration.
        pool: Process pool configuration.
        security: Security gate configuration.
        max_while_iterations: Ceiling on while-loop iterations.
        log_level: Default logging level for the CLI.
    """

    working_dir: Path = Path(".")
    env: dict[str, str] = field(default_factory=dict)
    command_timeout_s: float | None = None
    cache: CacheConfig = field(default_factory=lambda: CacheConfig())
    pool: PoolConfig = field(default_factory=lambda: PoolConfig())
    security: SecurityConfig = field(default_factory=lambda: SecurityConfig())
    max_while_iterations: int = DEFAULT_MAX_WHILE_ITERATIONS
    log_level: str = "WARNING"


def load_config(path: Path | None = None) -> AppConfig:
    """Load application configuration from disk.

    Args:
        path: Optional path to a configuration file or workspace directory.

    Returns:
        Parsed AppConfig with defaults applied when no config exists.

    Raises:
        ValueError: If the file type is unsupported or the contents are invalid.
        RuntimeError: If a non-JSON YAML file is found and PyYAML is missing.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return AppConfig()

    if config_path.suffix in {".yaml", ".yml"}:
        raw_data = _load_yaml(config_path)
    elif config_path.name == "pyproject.toml" or config_path.suffix == ".toml":
        raw_data = _load_toml(config_path)
    else:
        raise ValueError(f"Unsupported config file type: {config_path}")

    return _parse_app_config(raw_data, base_path=config_path.parent)


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    """Serialize an AppConfig into a JSON-compatible dictionary."""

    return {
        "working_dir": str(config.working_dir),
        "env": dict(config.env),
        "command_timeout_s": config.command_timeout_s,
        "cache": {
            "enabled": config.cache.enabled,
            "capacity": config.cache.capacity,
            "ttl_s": config.cache.ttl_s,
        },
        "pool": {
            "max_size": config.pool.max_size,
            "idle_timeout_s": config.pool.idle_timeout_s,
            "acquire_timeout_s": config.pool.acquire_timeout_s,
            "sweep_interval_s": config.pool.sweep_interval_s,
        },
        "security": {
            "enabled": config.security.enabled,
            "extra_dangerous_commands": list(config.security.extra_dangerous_commands),
            "allowed_commands": list(config.security.allowed_commands),
        },
        "max_while_iterations": config.max_while_iterations,
        "log_level": config.log_level,
    }


def update_cache_enabled(config: AppConfig, enabled: bool) -> AppConfig:
    """Return a config copy with the command cache switched on or off."""

    return replace(config, cache=replace(config.cache, enabled=enabled))


def update_command_timeout(config: AppConfig, timeout_s: float | None) -> AppConfig:
    """Return a config copy with an updated script deadline."""

    return replace(config, command_timeout_s=timeout_s)


def _resolve_config_path(path: Path | None) -> Path | None:
    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILE_NAMES)
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILE_NAMES)
    else:
        candidate_paths.append(path)

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("shode", {})
        if not isinstance(tool_config, dict):
            raise ValueError("tool.shode must be a mapping.")
        return tool_config
    if not isinstance(data, dict):
        raise ValueError("TOML configuration must be a mapping.")
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if data is not None:
        if not isinstance(data, dict):
            raise ValueError("YAML configuration must be a mapping.")
        return data
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "PyYAML is required to parse non-JSON YAML configuration files."
        ) from exc
    parsed = yaml.safe_load(text)
    if not isinstance(parsed, dict):
        raise ValueError("YAML configuration must be a mapping.")
    return parsed


def _parse_app_config(raw_data: dict[str, Any], base_path: Path) -> AppConfig:
    working_dir = Path(raw_data.get("working_dir", ".")) if raw_data else Path(".")
    if not working_dir.is_absolute():
        working_dir = (base_path / working_dir).resolve()

    max_while_iterations = int(
        raw_data.get("max_while_iterations", DEFAULT_MAX_WHILE_ITERATIONS)
    )
    if max_while_iterations < 1:
        raise ValueError("max_while_iterations must be at least 1.")

    return AppConfig(
        working_dir=working_dir,
        env=_parse_env(raw_data.get("env", {})),
        command_timeout_s=_optional_float(raw_data.get("command_timeout_s")),
        cache=_parse_cache_config(raw_data.get("cache", {})),
        pool=_parse_pool_config(raw_data.get("pool", {})),
        security=_parse_security_config(raw_data.get("security", {})),
        max_while_iterations=max_while_iterations,
        log_level=str(raw_data.get("log_level", "WARNING")),
    )


def _parse_env(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    return {str(key): str(value) for key, value in raw.items()}


def _parse_cache_config(raw: Any) -> CacheConfig:
    if not isinstance(raw, dict):
        return CacheConfig()
    return CacheConfig(
        enabled=bool(raw.get("enabled", True)),
        capacity=int(raw.get("capacity", 1000)),
        ttl_s=float(raw.get("ttl_s", 300.0)),
    )


def _parse_pool_config(raw: Any) -> PoolConfig:
    if not isinstance(raw, dict):
        return PoolConfig()
    max_size = int(raw.get("max_size", 10))
    if max_size < 1:
        raise ValueError("pool.max_size must be at least 1.")
    return PoolConfig(
        max_size=max_size,
        idle_timeout_s=float(raw.get("idle_timeout_s", 30.0)),
        acquire_timeout_s=_optional_float(raw.get("acquire_timeout_s")),
        sweep_interval_s=float(raw.get("sweep_interval_s", 0.0)),
    )


def _parse_security_config(raw: Any) -> SecurityConfig:
    if not isinstance(raw, dict):
        return SecurityConfig()
    return SecurityConfig(
        enabled=bool(raw.get("enabled", True)),
        extra_dangerous_commands=_parse_names(
            raw.get("extra_dangerous_commands"), "security.extra_dangerous_commands"
        ),
        allowed_commands=_parse_names(raw.get("allowed_commands"), "security.allowed_commands"),
    )


def _parse_names(raw: Any, key: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{key} must be a list of command names.")
    return [str(item).strip() for item in raw if str(item).strip()]


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
