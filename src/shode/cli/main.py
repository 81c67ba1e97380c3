"""CLI entrypoints for shode."""

from __future__ import annotations

from pathlib import Path

import typer

from shode import __version__
from shode.app import AppConfigError, initialize_config, run_inline, run_script
from shode.engine.errors import EngineError
from shode.engine.results import ExecutionResult
from shode.syntax.parser import ParseError
from shode.util.logging import configure_logging

app = typer.Typer(help="Execute simplified shell scripts.")


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level (e.g., DEBUG, INFO, WARNING).",
    ),
) -> None:
    """Configure CLI-level options."""

    configure_logging(log_level)


@app.command()
def version() -> None:
    """Print version information."""

    typer.echo("shode - execution runtime for simplified shell scripts")
    typer.echo(f"Version: {__version__}")


@app.command()
def init(workspace: Path = typer.Argument(Path("."))) -> None:
    """Initialize configuration for a workspace."""

    try:
        config_path = initialize_config(workspace)
    except AppConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Created configuration at {config_path}")


@app.command("run")
def run_command(
    script: Path = typer.Argument(..., help="Script file to execute."),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Cancel the script after this many seconds.",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Bypass the command result cache.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file or directory (defaults to the script's directory).",
    ),
) -> None:
    """Run a script file and exit with its exit code."""

    if not script.is_file():
        typer.echo(f"Error: script not found: {script}", err=True)
        raise typer.Exit(code=1)
    try:
        result = run_script(script, config_path=config, timeout_s=timeout, use_cache=not no_cache)
    except (AppConfigError, ParseError, EngineError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _emit(result)


@app.command("exec")
def exec_command(
    argv: list[str] = typer.Argument(..., help="Command and arguments to execute."),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Cancel the command after this many seconds.",
    ),
    workspace: Path = typer.Option(
        Path("."),
        "--workspace",
        "-w",
        help="Directory to load configuration from.",
    ),
) -> None:
    """Execute a single command through the engine."""

    try:
        result = run_inline(argv, workspace=workspace, timeout_s=timeout)
    except (AppConfigError, EngineError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _emit(result)


def _emit(result: ExecutionResult) -> None:
    if result.output:
        typer.echo(result.output, nl=False)
    if result.error_text:
        typer.echo(result.error_text, nl=False, err=True)
    if result.exit_code != 0:
        raise typer.Exit(code=result.exit_code)
    if not result.success:
        raise typer.Exit(code=1)
