"""Application wiring for CLI-friendly script execution."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from shode.config import (
    AppConfig,
    config_to_dict,
    load_config,
    update_cache_enabled,
    update_command_timeout,
)
from shode.engine.cache import CommandCache
from shode.engine.engine import ExecutionEngine
from shode.engine.pool import ProcessPool
from shode.engine.results import ExecutionResult
from shode.environment.store import EnvironmentStore
from shode.execution.base import ProcessRunner
from shode.execution.context import ExecutionContext
from shode.intrinsics.builtins import build_default_intrinsics
from shode.security.base import AllowAllGate, SecurityGate
from shode.security.checker import SecurityChecker
from shode.syntax.nodes import CommandNode, ScriptNode
from shode.syntax.parser import SimpleParser
from shode.util.logging import get_logger
from shode.util.observability import ObservabilityManager, create_observability_manager


class AppConfigError(RuntimeError):
    """Raised when configuration or runtime setup fails."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for the services used to run scripts."""

    config: AppConfig
    engine: ExecutionEngine
    environment: EnvironmentStore
    parser: SimpleParser
    observability: ObservabilityManager


_LOGGER = get_logger("shode.app")


def initialize_config(workspace: Path) -> Path:
    """Create a default configuration file in the workspace.

    Args:
        workspace: Workspace directory where the config should be written.

    Returns:
        Path to the generated configuration file.

    Raises:
        AppConfigError: If the config file already exists.
    """

    workspace = workspace.resolve()
    config_path = workspace / "shode.yaml"
    if config_path.exists():
        raise AppConfigError(
            f"Config file already exists at {config_path}. Remove it or choose another "
            "workspace."
        )
    config_path.write_text(
        json.dumps(config_to_dict(AppConfig(working_dir=workspace)), indent=2),
        encoding="utf-8",
    )
    _LOGGER.info("Initialized configuration at %s", config_path)
    return config_path


def build_runtime(
    config: AppConfig,
    *,
    environment: EnvironmentStore | None = None,
    runner: ProcessRunner | None = None,
    observability: ObservabilityManager | None = None,
) -> RuntimeContext:
    """Build the execution engine and its collaborators from configuration.

    Args:
        config: Application configuration.
        environment: Optional pre-built environment store (for testing).
        runner: Optional pre-built process runner (for testing).
        observability: Optional observability manager.

    Returns:
        RuntimeContext with initialized services.

    Raises:
        AppConfigError: If the configured working directory does not exist.
    """

    if environment is None:
        if not config.working_dir.is_dir():
            raise AppConfigError(f"Working directory does not exist: {config.working_dir}")
        environment = EnvironmentStore.from_os(working_dir=config.working_dir)
    for key, value in config.env.items():
        environment.set(key, value)

    observability = observability or create_observability_manager()
    pool = ProcessPool(
        max_size=config.pool.max_size,
        idle_timeout_s=config.pool.idle_timeout_s,
    )
    if config.pool.sweep_interval_s > 0:
        pool.start_reaper(config.pool.sweep_interval_s)

    engine = ExecutionEngine(
        environment,
        build_default_intrinsics(environment),
        _build_security_gate(config),
        runner=runner,
        cache=CommandCache(capacity=config.cache.capacity, ttl_s=config.cache.ttl_s),
        pool=pool,
        observability=observability,
        cache_enabled=config.cache.enabled,
        pool_acquire_timeout_s=config.pool.acquire_timeout_s,
        max_while_iterations=config.max_while_iterations,
    )
    _LOGGER.info(
        "Runtime initialized in %s (cache %s, pool size %s).",
        environment.working_dir(),
        "enabled" if config.cache.enabled else "disabled",
        config.pool.max_size,
    )
    return RuntimeContext(
        config=config,
        engine=engine,
        environment=environment,
        parser=SimpleParser(),
        observability=observability,
    )


def run_script(
    script_path: Path,
    *,
    config_path: Path | None = None,
    timeout_s: float | None = None,
    use_cache: bool = True,
) -> ExecutionResult:
    """Parse and execute a script file.

    Args:
        script_path: Path to the script source.
        config_path: Optional config file or directory. Defaults to the
            script's directory.
        timeout_s: Optional deadline overriding the configured one.
        use_cache: Whether the command cache may be used.

    Returns:
        ExecutionResult of the script.
    """

    config = _load_run_config(config_path or script_path.resolve().parent, timeout_s, use_cache)
    runtime = build_runtime(config)
    script = runtime.parser.parse_file(script_path)
    _LOGGER.info("Running script %s with %s top-level nodes.", script_path, len(script))
    return _execute(runtime, script)


def run_inline(
    argv: Sequence[str],
    *,
    workspace: Path = Path("."),
    timeout_s: float | None = None,
) -> ExecutionResult:
    """Execute a single command given as an argument vector.

    Args:
        argv: Command name followed by its arguments.
        workspace: Directory to load configuration from.
        timeout_s: Optional deadline overriding the configured one.

    Returns:
        ExecutionResult of the single-command script.

    Raises:
        AppConfigError: If no command is given.
    """

    if not argv:
        raise AppConfigError("No command given.")
    config = _load_run_config(workspace, timeout_s, use_cache=True)
    runtime = build_runtime(config)
    command = CommandNode(name=argv[0], args=tuple(argv[1:]))
    return _execute(runtime, ScriptNode(nodes=(command,)))


def _load_run_config(path: Path, timeout_s: float | None, use_cache: bool) -> AppConfig:
    try:
        config = load_config(path)
    except (ValueError, RuntimeError, OSError) as exc:
        raise AppConfigError(f"Failed to load configuration: {exc}") from exc
    if timeout_s is not None:
        config = update_command_timeout(config, timeout_s)
    if not use_cache:
        config = update_cache_enabled(config, False)
    return config


def _execute(runtime: RuntimeContext, script: ScriptNode) -> ExecutionResult:
    context = ExecutionContext(timeout_s=runtime.config.command_timeout_s)
    with runtime.engine as engine:
        return engine.execute(script, context)


def _build_security_gate(config: AppConfig) -> SecurityGate:
    if not config.security.enabled:
        _LOGGER.warning("Security checks are disabled.")
        return AllowAllGate()
    checker = SecurityChecker()
    for name in config.security.extra_dangerous_commands:
        checker.add_dangerous_command(name)
    for name in config.security.allowed_commands:
        checker.remove_dangerous_command(name)
    return checker
